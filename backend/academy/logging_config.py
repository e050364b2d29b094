import logging
import os
from logging.config import dictConfig
from typing import Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Client libraries behind the Supabase store. They log every request at
# INFO, which drowns the per-candidate migration log.
HTTP_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "supabase", "gotrue")

# Application loggers that may be tuned apart from the root level.
LOGGER_LEVEL_ENV = {
    "academy.guardian_migration": "GUARDIAN_MIGRATION_LOG_LEVEL",
    "academy.telemetry": "ACADEMY_TELEMETRY_LOG_LEVEL",
}


def _logger_levels(root_level: str) -> Dict[str, Dict[str, str]]:
    http_level = "DEBUG" if os.getenv("ACADEMY_DEBUG_HTTP", "0") == "1" else "WARNING"
    loggers = {name: {"level": http_level} for name in HTTP_LOGGERS}
    for name, env_name in LOGGER_LEVEL_ENV.items():
        loggers[name] = {"level": os.getenv(env_name, root_level).upper()}
    return loggers


def configure_logging() -> None:
    """Configure backend logging.

    ``ACADEMY_LOG_LEVEL`` sets the root level. The migration and telemetry
    loggers follow it unless ``GUARDIAN_MIGRATION_LOG_LEVEL`` or
    ``ACADEMY_TELEMETRY_LOG_LEVEL`` is set. HTTP client chatter stays at
    WARNING unless ``ACADEMY_DEBUG_HTTP=1``.
    """
    level = os.getenv("ACADEMY_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": _logger_levels(level),
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s", level)
