"""
LLM Fallback Package

Runs one chunk at a time against three prioritised provider slots:
  - main     (first choice)
  - backup1  (first fallback)
  - backup2  (last resort)

Each slot is retried with exponential backoff before the next is tried.

Public API::

    from manuscript_pipeline.llm import FallbackOrchestrator

    orchestrator = FallbackOrchestrator.from_settings(settings)
    result = await orchestrator.process_chunk(chunk.content, user_prompt="Edit:")
    if result.success:
        print(result.provider_used, result.response)
"""

from manuscript_pipeline.llm.fallback import (
    ChunkProcessOutcome,
    FallbackOrchestrator,
    ProcessResult,
    ProviderAttemptRecord,
    process_chunk_with_fallback,
)
from manuscript_pipeline.llm.providers import (
    PROVIDER_ORDER,
    CompletionProvider,
    LangChainCompletionProvider,
    ProviderSlot,
    build_messages,
    build_providers,
)
from manuscript_pipeline.llm.retry import RetryPolicy

__all__ = [
    "PROVIDER_ORDER",
    "ChunkProcessOutcome",
    "CompletionProvider",
    "FallbackOrchestrator",
    "LangChainCompletionProvider",
    "ProcessResult",
    "ProviderAttemptRecord",
    "ProviderSlot",
    "RetryPolicy",
    "build_messages",
    "build_providers",
    "process_chunk_with_fallback",
]
