"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.

Provider slots are nested models; set them with a double-underscore path:

    PROVIDER_MAIN__API_KEY=sk-...
    PROVIDER_BACKUP1__KIND=azure_openai
    PROVIDER_BACKUP1__AZURE_ENDPOINT=https://eu.openai.azure.com
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSlotConfig(BaseModel):
    """Transport configuration for one priority slot (main / backup1 / backup2)."""

    kind:        Literal["openai", "azure_openai"] = "openai"
    model:       str   = "gpt-4o-mini"
    api_key:     str   = ""
    base_url:    str   = ""          # empty = provider default endpoint
    temperature: float = 0.3
    max_tokens:  int   = 4096

    # Azure OpenAI only
    azure_endpoint:    str = ""
    azure_deployment:  str = ""
    azure_api_version: str = "2024-08-01-preview"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    chunk_max_size:           int  = Field(15_000, gt=0)   # ~4000 tokens
    chunk_overlap_size:       int  = Field(500, ge=0)      # ~150 tokens
    chunk_preserve_paragraphs: bool = True

    # ------------------------------------------------------------------
    # Retry policy (milliseconds)
    # ------------------------------------------------------------------
    llm_max_retries:         int   = Field(3, ge=1)
    llm_retry_delay_ms:      int   = Field(1_000, ge=0)
    llm_max_retry_delay_ms:  int   = Field(10_000, ge=0)
    llm_exponential_backoff: bool  = True
    llm_attempt_timeout_s:   float = Field(120.0, ge=0)    # 0 disables the guard

    # ------------------------------------------------------------------
    # Provider slots, tried in order main → backup1 → backup2
    # ------------------------------------------------------------------
    provider_main:    ProviderSlotConfig = ProviderSlotConfig()
    provider_backup1: ProviderSlotConfig = ProviderSlotConfig()
    provider_backup2: ProviderSlotConfig = ProviderSlotConfig()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    processing_concurrency: int = Field(1, ge=1)   # 1 = strictly sequential by index
    bulk_concurrency_limit: int = Field(3, ge=1)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    langsmith_api_key: str = ""
    langsmith_project: str = "manuscript-pipeline"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env:   str = "development"   # development | staging | production
    debug:     bool = False
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
