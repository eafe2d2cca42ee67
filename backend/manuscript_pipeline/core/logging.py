"""
Logging setup.

Every module logs through `logging.getLogger(__name__)`; this module only
configures the root handler once per process (CLI or embedding service).
"""

from __future__ import annotations

import logging

from manuscript_pipeline.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from settings (DEBUG overrides log_level)."""
    level = logging.DEBUG if settings.debug else logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger(__name__).debug(
        "Logging configured | env=%s level=%s", settings.app_env, logging.getLevelName(level),
    )

    # Transport libraries are noisy at DEBUG; keep them at WARNING
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
