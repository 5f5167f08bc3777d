"""Logging setup for the catalog functions, driven by environment variables."""

import os
import logging
import sys
from pythonjsonlogger.json import JsonFormatter

_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "storage3", "gotrue")


class LoggingConfig:
    """Logging settings. Read once at import, like CatalogConfig."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    # Free-text search terms are user input; operators can keep them out of logs
    LOG_SEARCH_TERMS = os.environ.get("LOG_SEARCH_TERMS", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def level(cls) -> int:
        return getattr(logging, cls.LOG_LEVEL, logging.INFO)

    @classmethod
    def formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return JsonFormatter(
                "%(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level"},
                timestamp=True,
            )
        return logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    @classmethod
    def setup_logging(cls) -> None:
        """Send everything to stdout (Vercel collects it) in the configured format."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level())
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(cls.level())
        handler.setFormatter(cls.formatter())
        root_logger.addHandler(handler)

        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
