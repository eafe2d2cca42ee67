"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : store, fast_policy, make_provider, make_orchestrator,
                    seed_manuscript

Environment strategy:
  - Settings are read from env vars set here BEFORE any package import, so
    the cached Settings object sees zero retry delays and dummy API keys.
  - No test talks to a real provider: completions come from ScriptedProvider,
    which replays a list of responses / exceptions in call order.
  - Persistence is the InMemoryChunkStore.

How to run:
  pytest                          # all tests
  pytest -m unit                  # unit tests only
  pytest -m integration           # end-to-end pipeline runs
  pytest backend/tests/unit/test_chunking.py
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Awaitable, Callable

import pytest

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any package imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("APP_ENV",                    "development")
os.environ.setdefault("LOG_LEVEL",                  "DEBUG")
os.environ.setdefault("LLM_MAX_RETRIES",            "3")
os.environ.setdefault("LLM_RETRY_DELAY_MS",         "0")
os.environ.setdefault("LLM_MAX_RETRY_DELAY_MS",     "0")
os.environ.setdefault("LLM_ATTEMPT_TIMEOUT_S",      "0")
os.environ.setdefault("PROVIDER_MAIN__API_KEY",     "sk-test-main")
os.environ.setdefault("PROVIDER_BACKUP1__API_KEY",  "sk-test-backup1")
os.environ.setdefault("PROVIDER_BACKUP2__API_KEY",  "sk-test-backup2")
os.environ.setdefault("LANGSMITH_API_KEY",          "")

from langchain_core.messages import BaseMessage  # noqa: E402

from manuscript_pipeline.llm.fallback import FallbackOrchestrator  # noqa: E402
from manuscript_pipeline.llm.providers import ProviderSlot  # noqa: E402
from manuscript_pipeline.llm.retry import RetryPolicy  # noqa: E402
from manuscript_pipeline.storage.base import ChunkRecord, Manuscript  # noqa: E402
from manuscript_pipeline.storage.memory import InMemoryChunkStore  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Scripted completion provider
# ─────────────────────────────────────────────────────────────────────────────

Outcome = Any   # str | BaseException | Callable[[list[BaseMessage]], Awaitable[str]]


class ScriptedProvider:
    """
    CompletionProvider that replays `outcomes` in call order.

    Each outcome is a response string, an exception instance to raise, or an
    async callable receiving the messages. Once the script is used up every
    further call gets `default`.
    """

    def __init__(self, *outcomes: Outcome, default: Outcome = None) -> None:
        self._outcomes = list(outcomes)
        self._default  = default if default is not None else RuntimeError("provider unavailable")
        self.calls: list[list[BaseMessage]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(self, messages: list[BaseMessage]) -> str:
        self.calls.append(messages)
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(messages)
        return outcome


class HangingProvider:
    """Never answers; `started` is set as soon as a call is in flight."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.calls   = 0

    async def complete(self, messages: list[BaseMessage]) -> str:
        self.calls += 1
        self.started.set()
        await asyncio.Event().wait()
        return "unreachable"


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts per provider, no backoff sleep."""
    return RetryPolicy(max_retries=3, retry_delay=0, max_retry_delay=0)


@pytest.fixture
def make_provider() -> Callable[..., ScriptedProvider]:
    """
    Factory fixture.

    Usage:
        provider = make_provider("ok")
        provider = make_provider(RuntimeError("429"), "ok")
        provider = make_provider(default="always this")
    """
    return ScriptedProvider


@pytest.fixture
def hanging_provider() -> HangingProvider:
    return HangingProvider()


@pytest.fixture
def make_orchestrator(fast_policy):
    """
    Factory fixture: FallbackOrchestrator over scripted providers.

    Slots left unspecified always fail.
    """
    def _build(
        main:            Any = None,
        backup1:         Any = None,
        backup2:         Any = None,
        policy:          RetryPolicy | None = None,
        attempt_timeout: float | None = None,
    ) -> FallbackOrchestrator:
        providers = {
            ProviderSlot.MAIN:    main    or ScriptedProvider(),
            ProviderSlot.BACKUP1: backup1 or ScriptedProvider(),
            ProviderSlot.BACKUP2: backup2 or ScriptedProvider(),
        }
        return FallbackOrchestrator(
            providers, policy=policy or fast_policy, attempt_timeout=attempt_timeout,
        )
    return _build


@pytest.fixture
def seed_manuscript(store):
    """
    Factory fixture: persist a manuscript whose chunks have the given contents.

    Usage:
        manuscript = await seed_manuscript(["chunk one", "chunk two"])
    """
    async def _seed(contents: list[str], filename: str = "novel.txt") -> Manuscript:
        manuscript = Manuscript(
            filename=filename,
            mime_type="text/plain",
            size_bytes=sum(len(c) for c in contents),
            word_count=sum(len(c.split()) for c in contents),
        )
        records = [
            ChunkRecord(manuscript_id=manuscript.id, index=i, content=content)
            for i, content in enumerate(contents)
        ]
        return await store.create_manuscript(manuscript, records)
    return _seed
