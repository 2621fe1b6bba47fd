# vaultrelay/utils/logger.py

import json
import logging
import sys
from datetime import datetime, timezone

LOGGER_NAME = "vaultrelay"


class JSONFormatter(logging.Formatter):
    """One JSON object per log line"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Extra fields passed via logger.info(..., extra={...})
        for field in ("user_id", "message_id", "action", "status_code"):
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Configure the package logger; child loggers (getLogger(__name__)) inherit it."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers so repeated app creation does not duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger
