"""JSON logging configuration for the bootstrap CA client and server."""

import logging
import os

from pythonjsonlogger import jsonlogger

LOG_LEVEL_ENV_VAR = "BOOTSTRAP_CA_LOG_LEVEL"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter restricted to a focused field set.

    Emits timestamp, level, message, exc_info, funcName, lineno and threadName.
    threadName is kept because the server handles each connection on its own
    worker thread.
    """

    allowed_fields = frozenset(
        {
            "timestamp",
            "level",
            "message",
            "exc_info",
            "funcName",
            "lineno",
            "threadName",
        }
    )

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in self.allowed_fields]:
            log_record.pop(key)


def _resolve_level() -> int:
    """Return the level named by BOOTSTRAP_CA_LOG_LEVEL, INFO if unset or unknown."""
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _setup_logger() -> logging.Logger:
    """Initialize and configure singleton logger.

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger("bootstrap_ca")

    # Prevent duplicate handlers if module reloaded
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = CustomJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(threadName)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)

    logger.setLevel(_resolve_level())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


# Singleton logger instance - import this in other modules
LOGGER = _setup_logger()
