"""Console logging for the grading scripts."""

import logging
import os
from logging.config import dictConfig

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
PROVIDER_LOGGERS = ("httpx", "google_genai")


def log_level_from_env() -> str:
    level = os.getenv("MILESTACK_LOG_LEVEL", "INFO").strip().upper()
    return level if isinstance(logging.getLevelName(level), int) else "INFO"


def configure_logging() -> None:
    """Log to stderr at ``MILESTACK_LOG_LEVEL`` (unknown names mean INFO).

    Provider HTTP clients stay at WARNING unless ``MILESTACK_DEBUG_HTTP=1``.
    """
    provider_level = "DEBUG" if os.getenv("MILESTACK_DEBUG_HTTP") == "1" else "WARNING"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"console": {"format": LOG_FORMAT}},
            "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "console"}},
            "loggers": {name: {"level": provider_level} for name in PROVIDER_LOGGERS},
            "root": {"handlers": ["console"], "level": log_level_from_env()},
        }
    )
