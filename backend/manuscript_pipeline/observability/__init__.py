"""Tracing and provider attempt statistics."""

from manuscript_pipeline.observability.provider_stats import (
    AttemptStats,
    ProviderHealth,
    provider_health,
    summarize_attempts,
)
from manuscript_pipeline.observability.tracing import TracingConfig, traced

__all__ = [
    "AttemptStats",
    "ProviderHealth",
    "TracingConfig",
    "provider_health",
    "summarize_attempts",
    "traced",
]
