"""
Retry policy — backoff between attempts against the same provider.

    delay(attempt) = min(retry_delay * 2^(attempt-1), max_retry_delay)   exponential
    delay(attempt) = retry_delay                                          fixed

All durations are milliseconds. The orchestrator only sleeps between
retries of one provider, never after a provider's last attempt.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from manuscript_pipeline.core.config import Settings


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries:              int  = Field(3, ge=1)
    retry_delay:              int  = Field(1_000, ge=0)    # ms
    max_retry_delay:          int  = Field(10_000, ge=0)   # ms
    enable_exponential_backoff: bool = True

    @model_validator(mode="after")
    def _cap_not_below_base(self) -> "RetryPolicy":
        if self.max_retry_delay < self.retry_delay:
            raise ValueError(
                f"max_retry_delay ({self.max_retry_delay}) must be >= "
                f"retry_delay ({self.retry_delay})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.llm_max_retries,
            retry_delay=settings.llm_retry_delay_ms,
            max_retry_delay=settings.llm_max_retry_delay_ms,
            enable_exponential_backoff=settings.llm_exponential_backoff,
        )

    def delay(self, attempt: int) -> int:
        """Backoff in milliseconds after the failed 1-based `attempt`."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        if not self.enable_exponential_backoff:
            return self.retry_delay
        # Cap the exponent so huge attempt numbers don't build huge ints
        exponent = min(attempt - 1, 32)
        return min(self.retry_delay * (2 ** exponent), self.max_retry_delay)

    def delay_seconds(self, attempt: int) -> float:
        return self.delay(attempt) / 1000.0
