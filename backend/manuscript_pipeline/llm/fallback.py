"""
Fallback Orchestrator — Per-Chunk Provider Failover with Retry

Resolves one chunk into a ProcessResult by walking the provider slots in
priority order and retrying each one before moving on:

    for provider in (main, backup1, backup2):
        for attempt in 1..max_retries:
            call provider, time it, append a ProviderAttemptRecord
            success            → return immediately
            failure, retries   → sleep policy.delay(attempt), same provider
        provider exhausted     → next provider, no delay

Failure classification (all recorded, none raised):
  - the provider call raised (network, rate limit, auth, anything)
  - the per-attempt timeout fired
  - the completion was empty or whitespace-only

Cancellation:
  An asyncio.Event passed as `cancel_event` is checked before every attempt
  and raced against the in-flight call and the backoff sleep. Once it fires
  the in-flight attempt is recorded as failed with the cancellation error
  and no further attempt starts for that chunk.

Bulk mode:
  process_chunks_parallel() runs batches of `concurrency_limit` chunks
  concurrently; batches themselves run one after another. Results come back
  batch-major.

The orchestrator holds no cross-call state beyond its provider handles, so
one instance is shared by every job in the process.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, Protocol, Sequence

from langchain_core.messages import BaseMessage

from manuscript_pipeline.core.config import Settings
from manuscript_pipeline.core.exceptions import EmptyResponseError, ProcessingCancelledError
from manuscript_pipeline.llm.providers import (
    PROVIDER_ORDER,
    CompletionProvider,
    ProviderSlot,
    build_messages,
    build_providers,
)
from manuscript_pipeline.llm.retry import RetryPolicy
from manuscript_pipeline.observability.tracing import traced

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderAttemptRecord:
    """One invocation of one provider for one chunk."""
    provider:         ProviderSlot
    attempt:          int              # 1-based, per provider
    success:          bool
    response_time_ms: float
    error_message:    str | None = None   # set iff success is False


@dataclass
class ProcessResult:
    """
    Uniform outcome of processing one chunk.

    `attempts` and `total_response_time_ms` are derived from the trace, so
    attempts == len(provider_attempts) always holds.
    """
    success:           bool
    provider_attempts: list[ProviderAttemptRecord] = field(default_factory=list)
    response:          str | None          = None   # set iff success
    provider_used:     ProviderSlot | None = None   # set iff success
    error_message:     str | None          = None   # set iff not success
    cancelled:         bool                = False
    chunk_id:          str | None          = None   # pass-through for tracing
    job_id:            str | None          = None

    @property
    def attempts(self) -> int:
        return len(self.provider_attempts)

    @property
    def total_response_time_ms(self) -> float:
        return sum(a.response_time_ms for a in self.provider_attempts)


@dataclass(frozen=True)
class ChunkProcessOutcome:
    chunk_id: str
    result:   ProcessResult


class ChunkLike(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def content(self) -> str: ...


# ---------------------------------------------------------------------------
# FallbackOrchestrator
# ---------------------------------------------------------------------------

class FallbackOrchestrator:
    """
    Ordered provider slots with bounded retries and exponential backoff.

    Usage::

        orchestrator = FallbackOrchestrator.from_settings(settings)
        result = await orchestrator.process_chunk(
            chunk.content,
            system_prompt="You are a meticulous copy editor.",
            user_prompt="Fix grammar and spelling:",
            chunk_id=chunk.id,
            job_id=job.id,
        )
    """

    def __init__(
        self,
        providers:       Mapping[ProviderSlot, CompletionProvider],
        policy:          RetryPolicy | None = None,
        attempt_timeout: float | None       = None,   # seconds per attempt
        bulk_limit:      int                = 3,
    ) -> None:
        self._slots = [slot for slot in PROVIDER_ORDER if slot in providers]
        if not self._slots:
            raise ValueError("FallbackOrchestrator needs at least one provider slot")
        self._providers       = dict(providers)
        self._policy          = policy or RetryPolicy()
        self._attempt_timeout = attempt_timeout or None
        self._bulk_limit      = bulk_limit

    @classmethod
    def from_settings(
        cls,
        settings:  Settings,
        providers: Mapping[ProviderSlot, CompletionProvider] | None = None,
    ) -> "FallbackOrchestrator":
        return cls(
            providers if providers is not None else build_providers(settings),
            policy=RetryPolicy.from_settings(settings),
            attempt_timeout=settings.llm_attempt_timeout_s or None,
            bulk_limit=settings.bulk_concurrency_limit,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def slots(self) -> list[ProviderSlot]:
        return list(self._slots)

    # -----------------------------------------------------------------------
    # Single chunk
    # -----------------------------------------------------------------------

    @traced("fallback.process_chunk")
    async def process_chunk(
        self,
        content:       str,
        *,
        system_prompt: str | None           = None,
        user_prompt:   str | None           = None,
        chunk_id:      str | None           = None,
        job_id:        str | None           = None,
        cancel_event:  asyncio.Event | None = None,
    ) -> ProcessResult:
        """
        Try every slot in order until one returns a non-empty completion.

        Never raises for provider failures; exhaustion and cancellation are
        reported through the returned ProcessResult.
        """
        messages    = build_messages(content, system_prompt, user_prompt)
        trace:      list[ProviderAttemptRecord] = []
        last_error  = ""
        max_retries = self._policy.max_retries

        for slot in self._slots:
            provider = self._providers[slot]

            for attempt in range(1, max_retries + 1):
                if cancel_event is not None and cancel_event.is_set():
                    return _cancelled_result(trace, last_error, chunk_id, job_id)

                t0 = time.perf_counter()
                try:
                    response = await self._attempt(provider, messages, cancel_event)
                    if not response or not response.strip():
                        raise EmptyResponseError()

                except ProcessingCancelledError as exc:
                    trace.append(ProviderAttemptRecord(
                        provider=slot,
                        attempt=attempt,
                        success=False,
                        response_time_ms=_elapsed_ms(t0),
                        error_message=str(exc),
                    ))
                    logger.warning(
                        "FallbackOrchestrator | job=%s chunk=%s provider=%s attempt=%d cancelled",
                        job_id, chunk_id, slot.value, attempt,
                    )
                    return _cancelled_result(trace, last_error, chunk_id, job_id)

                except Exception as exc:
                    last_error = self._describe_error(exc)
                    trace.append(ProviderAttemptRecord(
                        provider=slot,
                        attempt=attempt,
                        success=False,
                        response_time_ms=_elapsed_ms(t0),
                        error_message=last_error,
                    ))
                    logger.warning(
                        "FallbackOrchestrator | job=%s chunk=%s provider=%s attempt=%d/%d failed: %s",
                        job_id, chunk_id, slot.value, attempt, max_retries, last_error,
                    )

                else:
                    trace.append(ProviderAttemptRecord(
                        provider=slot,
                        attempt=attempt,
                        success=True,
                        response_time_ms=_elapsed_ms(t0),
                    ))
                    logger.info(
                        "FallbackOrchestrator | job=%s chunk=%s provider=%s attempt=%d ok attempts_total=%d",
                        job_id, chunk_id, slot.value, attempt, len(trace),
                    )
                    return ProcessResult(
                        success=True,
                        response=response,
                        provider_used=slot,
                        provider_attempts=trace,
                        chunk_id=chunk_id,
                        job_id=job_id,
                    )

                if attempt < max_retries:
                    delay_s = self._policy.delay_seconds(attempt)
                    if await _backoff(delay_s, cancel_event):
                        return _cancelled_result(trace, last_error, chunk_id, job_id)

            logger.error(
                "FallbackOrchestrator | job=%s chunk=%s provider=%s all %d attempts failed, "
                "moving to next provider",
                job_id, chunk_id, slot.value, max_retries,
            )

        return ProcessResult(
            success=False,
            error_message=f"All providers failed. Last error: {last_error}",
            provider_attempts=trace,
            chunk_id=chunk_id,
            job_id=job_id,
        )

    async def _attempt(
        self,
        provider:     CompletionProvider,
        messages:     list[BaseMessage],
        cancel_event: asyncio.Event | None,
    ) -> str:
        call: Awaitable[str] = provider.complete(messages)
        if self._attempt_timeout:
            call = asyncio.wait_for(call, timeout=self._attempt_timeout)
        if cancel_event is None:
            return await call
        return await _race_cancellation(call, cancel_event)

    def _describe_error(self, exc: Exception) -> str:
        if isinstance(exc, asyncio.TimeoutError):
            return f"Timed out after {self._attempt_timeout:g}s"
        return str(exc) or type(exc).__name__

    # -----------------------------------------------------------------------
    # Bulk mode
    # -----------------------------------------------------------------------

    async def process_chunks_parallel(
        self,
        chunks:            Sequence[ChunkLike],
        *,
        system_prompt:     str | None           = None,
        user_prompt:       str | None           = None,
        concurrency_limit: int | None           = None,
        job_id:            str | None           = None,
        cancel_event:      asyncio.Event | None = None,
    ) -> list[ChunkProcessOutcome]:
        """
        Process chunks in sequential batches of `concurrency_limit`,
        each batch concurrently. Returned in batch-major order.
        """
        if concurrency_limit is None:
            concurrency_limit = self._bulk_limit
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        batch_job_id = job_id or f"batch_{uuid.uuid4().hex[:12]}"
        outcomes: list[ChunkProcessOutcome] = []

        for offset in range(0, len(chunks), concurrency_limit):
            batch = list(chunks[offset : offset + concurrency_limit])
            logger.debug(
                "FallbackOrchestrator | job=%s batch_offset=%d batch_size=%d",
                batch_job_id, offset, len(batch),
            )
            results = await asyncio.gather(*(
                self.process_chunk(
                    chunk.content,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    chunk_id=chunk.id,
                    job_id=batch_job_id,
                    cancel_event=cancel_event,
                )
                for chunk in batch
            ))
            outcomes.extend(
                ChunkProcessOutcome(chunk_id=chunk.id, result=result)
                for chunk, result in zip(batch, results)
            )

        return outcomes


# ---------------------------------------------------------------------------
# Convenience
# ---------------------------------------------------------------------------

async def process_chunk_with_fallback(
    orchestrator:  FallbackOrchestrator,
    content:       str,
    system_prompt: str | None = None,
    user_prompt:   str | None = None,
) -> ProcessResult:
    """One-off processing outside any job, with generated correlation ids."""
    token = uuid.uuid4().hex[:12]
    return await orchestrator.process_chunk(
        content,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        chunk_id=f"temp_{token}",
        job_id=f"temp_{token}",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _elapsed_ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000


def _cancelled_result(
    trace:      list[ProviderAttemptRecord],
    last_error: str,
    chunk_id:   str | None,
    job_id:     str | None,
) -> ProcessResult:
    message = "Processing cancelled"
    if last_error:
        message += f". Last error: {last_error}"
    return ProcessResult(
        success=False,
        error_message=message,
        provider_attempts=trace,
        cancelled=True,
        chunk_id=chunk_id,
        job_id=job_id,
    )


async def _race_cancellation(call: Awaitable[Any], cancel_event: asyncio.Event) -> Any:
    """Await `call` unless `cancel_event` fires first; then abandon the call."""
    call_task   = asyncio.ensure_future(call)
    cancel_task = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        call_task.cancel()
        cancel_task.cancel()
        raise

    if call_task in done:
        cancel_task.cancel()
        return call_task.result()

    call_task.cancel()
    await asyncio.wait({call_task})
    raise ProcessingCancelledError()


async def _backoff(delay_s: float, cancel_event: asyncio.Event | None) -> bool:
    """Sleep `delay_s`; return True if cancellation fired first."""
    if cancel_event is None:
        await asyncio.sleep(delay_s)
        return False
    if cancel_event.is_set():
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_s)
    except asyncio.TimeoutError:
        return False
    return True
