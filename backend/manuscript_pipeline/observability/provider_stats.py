"""
Provider Statistics — Attempt Trace Aggregation

Turns a list of attempt records (in-memory ProviderAttemptRecord traces or
persisted ProviderAttemptLog rows) into the numbers an operator looks at:

    summarize_attempts()  → totals, per-slot success/failure, mean latency
    provider_health()     → per-slot availability from the recent window

Both functions only read `provider`, `success` and `response_time_ms`;
provider_health() additionally reads `created_at` when present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Protocol

from manuscript_pipeline.llm.providers import PROVIDER_ORDER, ProviderSlot


class AttemptLike(Protocol):
    provider:         ProviderSlot
    success:          bool
    response_time_ms: float


@dataclass
class AttemptStats:
    total_attempts:           int
    successful_attempts:      int
    failed_attempts:          int
    success_by_provider:      dict[ProviderSlot, int] = field(default_factory=dict)
    failures_by_provider:     dict[ProviderSlot, int] = field(default_factory=dict)
    average_response_time_ms: float = 0.0
    success_rate:             float = 0.0    # percent, 0–100


@dataclass
class ProviderHealth:
    available:    bool
    success_rate: float                 # percent, 0–100
    last_used:    datetime | None = None


def summarize_attempts(attempts: Iterable[AttemptLike]) -> AttemptStats:
    """Aggregate an attempt trace; an empty trace yields all zeros."""
    records = list(attempts)
    success_by  = {slot: 0 for slot in PROVIDER_ORDER}
    failures_by = {slot: 0 for slot in PROVIDER_ORDER}

    for record in records:
        slot = ProviderSlot(record.provider)
        if record.success:
            success_by[slot] += 1
        else:
            failures_by[slot] += 1

    total     = len(records)
    succeeded = sum(success_by.values())

    return AttemptStats(
        total_attempts=total,
        successful_attempts=succeeded,
        failed_attempts=total - succeeded,
        success_by_provider=success_by,
        failures_by_provider=failures_by,
        average_response_time_ms=(
            sum(r.response_time_ms for r in records) / total if total else 0.0
        ),
        success_rate=(succeeded / total * 100) if total else 0.0,
    )


def provider_health(attempts: Iterable[AttemptLike]) -> dict[ProviderSlot, ProviderHealth]:
    """
    Per-slot health over the given attempts (callers pass a recent window).

    A slot is available while any attempt in the window succeeded; a slot
    that was never tried is assumed healthy.
    """
    by_slot: dict[ProviderSlot, list[AttemptLike]] = {slot: [] for slot in PROVIDER_ORDER}
    for record in attempts:
        by_slot[ProviderSlot(record.provider)].append(record)

    health: dict[ProviderSlot, ProviderHealth] = {}
    for slot, records in by_slot.items():
        if not records:
            health[slot] = ProviderHealth(available=True, success_rate=100.0)
            continue

        rate = sum(1 for r in records if r.success) / len(records) * 100
        timestamps = [
            ts for ts in (getattr(r, "created_at", None) for r in records) if ts is not None
        ]
        health[slot] = ProviderHealth(
            available=rate > 0,
            success_rate=rate,
            last_used=max(timestamps) if timestamps else None,
        )
    return health
