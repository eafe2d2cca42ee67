"""
Provider Slots — Prioritised Completion Backends

The orchestrator knows three logical providers, tried in this order:

    MAIN     → first choice
    BACKUP1  → first fallback
    BACKUP2  → last resort

A slot is only a priority position. Each slot is paired with its own
ProviderSlotConfig (model, credentials, endpoint) from settings, so the
slots can point at the same API or at entirely different deployments.

Transport:
  LangChainCompletionProvider builds a LangChain chat model the first time it
  is used (ChatOpenAI or AzureChatOpenAI) and calls `.ainvoke(messages)`.
  Anything with an async `complete(messages) -> str` can stand in for it,
  which is how tests script provider behaviour.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from manuscript_pipeline.core.config import ProviderSlotConfig, Settings
from manuscript_pipeline.core.exceptions import ProviderConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------

class ProviderSlot(str, Enum):
    """Closed set of provider priority slots; definition order is priority order."""
    MAIN    = "main"
    BACKUP1 = "backup1"
    BACKUP2 = "backup2"


PROVIDER_ORDER: tuple[ProviderSlot, ...] = tuple(ProviderSlot)


def slot_config(settings: Settings, slot: ProviderSlot) -> ProviderSlotConfig:
    return getattr(settings, f"provider_{slot.value}")


# ---------------------------------------------------------------------------
# Completion capability
# ---------------------------------------------------------------------------

@runtime_checkable
class CompletionProvider(Protocol):
    """Given role-tagged messages, return completion text or raise."""

    async def complete(self, messages: list[BaseMessage]) -> str: ...


class LangChainCompletionProvider:
    """
    CompletionProvider backed by a LangChain chat model.

    The model is built lazily so constructing providers never touches the
    network or validates credentials.
    """

    def __init__(self, slot: ProviderSlot, config: ProviderSlotConfig) -> None:
        self.slot    = slot
        self._config = config
        self._llm: BaseChatModel | None = None

    async def complete(self, messages: list[BaseMessage]) -> str:
        llm    = self._get_llm()
        result = await llm.ainvoke(messages)
        return _message_text(result.content)

    def _get_llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = build_chat_model(self.slot, self._config)
            logger.info(
                "LangChainCompletionProvider | slot=%s kind=%s model=%s initialised",
                self.slot.value, self._config.kind, self._config.model,
            )
        return self._llm

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(slot={self.slot.value}, "
            f"kind={self._config.kind}, model={self._config.model})"
        )


def build_chat_model(slot: ProviderSlot, config: ProviderSlotConfig) -> BaseChatModel:
    """Instantiate the LangChain chat model for one slot."""
    if not config.api_key:
        raise ProviderConfigurationError(
            f"Provider slot '{slot.value}' has no API key "
            f"(set PROVIDER_{slot.value.upper()}__API_KEY)"
        )

    if config.kind == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url or None,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    if config.kind == "azure_openai":
        from langchain_openai import AzureChatOpenAI
        if not config.azure_endpoint:
            raise ProviderConfigurationError(
                f"Provider slot '{slot.value}' is azure_openai but has no azure_endpoint"
            )
        return AzureChatOpenAI(
            azure_deployment=config.azure_deployment or config.model,
            azure_endpoint=config.azure_endpoint,
            api_key=config.api_key,
            api_version=config.azure_api_version,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    raise ProviderConfigurationError(f"Unsupported provider kind: {config.kind}")   # pragma: no cover


def build_providers(settings: Settings) -> dict[ProviderSlot, CompletionProvider]:
    """One LangChain-backed provider per slot, in priority order."""
    return {
        slot: LangChainCompletionProvider(slot, slot_config(settings, slot))
        for slot in PROVIDER_ORDER
    }


# ---------------------------------------------------------------------------
# Message construction
# ---------------------------------------------------------------------------

def build_messages(
    content:       str,
    system_prompt: str | None = None,
    user_prompt:   str | None = None,
) -> list[BaseMessage]:
    """
    [SystemMessage?, HumanMessage] for one chunk.

    The human message is the user instruction, a blank line, then the chunk
    content; without an instruction it is the content alone.
    """
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))

    final_prompt = f"{user_prompt}\n\n{content}" if user_prompt else content
    messages.append(HumanMessage(content=final_prompt))
    return messages


def _message_text(content: object) -> str:
    """Flatten LangChain message content (str or list of content blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)
