"""Engine configuration and logging setup.

Configuration is read from environment variables:

    DURABLE_WORKFLOW_MAX_RECURSION_DEPTH  Sub-workflow nesting limit (default: 50)
    DURABLE_WORKFLOW_LOOP_MAX             Default loop bound when a loop omits max (default: 100)
    DURABLE_WORKFLOW_LOG_LEVEL            Log level for configure_logging() (default: INFO)
"""

from __future__ import annotations

import logging
import os
import sys

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value: {raw!r} (expected integer), using default {default}")
        return default
    if value < 1:
        logger.warning(f"Invalid {name} value: {value} (must be >= 1), using default {default}")
        return default
    return value


class EngineSettings(BaseModel):
    """Tunables shared by every engine in the process.

    Example:
        settings = EngineSettings.from_env()
        engine = Engine(workflow, store=store, settings=settings)
    """

    model_config = {"frozen": True}

    max_recursion_depth: int = Field(default=50, ge=1)
    default_loop_max: int = Field(default=100, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> EngineSettings:
        log_level = os.getenv("DURABLE_WORKFLOW_LOG_LEVEL", "INFO").upper()
        if log_level not in VALID_LOG_LEVELS:
            logger.warning(
                f"Invalid DURABLE_WORKFLOW_LOG_LEVEL '{log_level}'. "
                f"Valid levels: {', '.join(sorted(VALID_LOG_LEVELS))}. Using INFO."
            )
            log_level = "INFO"

        return cls(
            max_recursion_depth=_env_int("DURABLE_WORKFLOW_MAX_RECURSION_DEPTH", 50),
            default_loop_max=_env_int("DURABLE_WORKFLOW_LOOP_MAX", 100),
            log_level=log_level,
        )


def configure_logging(settings: EngineSettings | None = None) -> None:
    """Configure root logging to stderr at the configured level."""
    settings = settings or EngineSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


__all__ = ["EngineSettings", "configure_logging"]
