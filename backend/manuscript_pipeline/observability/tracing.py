"""
Observability Tracing — LangSmith Integration + @traced

LangSmith (hosted):
  - Activated purely through environment variables that LangChain reads:
    LANGCHAIN_TRACING_V2, LANGCHAIN_API_KEY, LANGCHAIN_PROJECT
  - Every provider call made through a LangChain chat model is traced
    automatically once those are set.

Decorator `@traced(name)`:
  Instruments any async function with timing and error logging. Always
  active, independent of LangSmith.

Environment variables:
  LANGSMITH_API_KEY=ls__...          (copied into LANGCHAIN_API_KEY)
  LANGSMITH_PROJECT=manuscript-pipeline
"""

from __future__ import annotations

import functools
import logging
import os
import time
from typing import Any, Callable, Coroutine, TypeVar

from manuscript_pipeline.core.config import Settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])


# ---------------------------------------------------------------------------
# TracingConfig: initialise at startup
# ---------------------------------------------------------------------------

class TracingConfig:
    """
    Enable LangSmith tracing from settings.

    Call once at startup::

        TracingConfig.init(settings)
    """

    _initialised: bool = False

    @classmethod
    def init(cls, settings: Settings) -> None:
        if cls._initialised:
            return
        cls._initialised = True

        if settings.langsmith_api_key and not os.environ.get("LANGCHAIN_API_KEY"):
            os.environ["LANGCHAIN_TRACING_V2"] = "true"
            os.environ["LANGCHAIN_API_KEY"]    = settings.langsmith_api_key
            os.environ["LANGCHAIN_PROJECT"]    = settings.langsmith_project
            logger.info("LangSmith tracing enabled | project=%s", settings.langsmith_project)
        elif os.environ.get("LANGCHAIN_TRACING_V2") == "true":
            logger.info(
                "LangSmith tracing active (from env) | project=%s",
                os.environ.get("LANGCHAIN_PROJECT", "default"),
            )
        else:
            logger.debug("LangSmith tracing disabled (LANGCHAIN_TRACING_V2 not set)")

    @classmethod
    def reset(cls) -> None:
        cls._initialised = False


# ---------------------------------------------------------------------------
# @traced decorator
# ---------------------------------------------------------------------------

def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Decorator that instruments an async function with timing and error logging.

    Usage::

        @traced("fallback.process_chunk")
        async def process_chunk(...): ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.debug("trace | span=%s elapsed_ms=%.1f ok", span_name, elapsed_ms)
                return result
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.error(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, elapsed_ms, exc, exc_info=True,
                )
                raise

        return wrapper  # type: ignore[return-value]
    return decorator
