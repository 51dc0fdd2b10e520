"""Process-wide logging setup driven by environment variables."""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

# Third-party loggers that are too chatty at INFO for a long-running process
QUIET_LOGGERS = ("httpx", "httpcore", "websockets", "supabase", "hpack")


class LoggingConfig:
    """Logging switches read once at import time."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        return logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    @classmethod
    def setup_logging(cls, level: Optional[str] = None) -> None:
        """Route all records to stdout; JSON lines unless LOG_FORMAT=text."""
        resolved = getattr(logging, (level or cls.LOG_LEVEL).upper(), logging.INFO)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved)
        handler.setFormatter(cls.build_formatter())

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(handler)
        root_logger.setLevel(resolved)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
