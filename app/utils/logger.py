import logging
import json
import os
import sys
from pathlib import Path
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler


# Fields callers may attach via logger.x("msg", extra={...})
STRUCTURED_FIELDS = (
    "correlation_id", "user_id", "method", "path", "status", "duration_ms",
    "client_ip", "error", "error_type", "service", "operation",
    "cache_type", "reason", "table", "count", "career_name",
)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value not in (None, ""):
                entry[key] = value

        # Source location for warnings and above
        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for local development; appends cache context when present"""

    def __init__(self):
        super().__init__(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in ("operation", "cache_type", "user_id", "error")
            if getattr(record, key, None)
        ]
        return f"{line} [{' '.join(context)}]" if context else line


def setup_logger(name: str = "careerpath_ai", level: str = "INFO") -> logging.Logger:
    """
    Setup application logger.

    Production (Railway, or LOG_FORMAT=json) writes JSON lines to stdout for
    log drain ingestion. Local runs get a readable console plus a rotating
    JSON file under logs/.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    is_production = bool(os.getenv("RAILWAY_ENVIRONMENT")) or os.getenv("LOG_FORMAT") == "json"

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(StructuredFormatter() if is_production else SimpleFormatter())
    logger.addHandler(console_handler)

    if not is_production and os.getenv("LOG_TO_FILE", "true").lower() == "true":
        try:
            log_dir = Path("logs")
            log_dir.mkdir(exist_ok=True)

            file_handler = RotatingFileHandler(
                log_dir / "careerpath_ai.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(StructuredFormatter())
            logger.addHandler(file_handler)
        except OSError as e:
            # Railway has read-only filesystem
            logger.warning(f"Could not setup file logging: {e}")

    return logger


# Create default logger instance
logger = setup_logger(level=os.getenv("LOG_LEVEL", "INFO"))


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger; named loggers are children of the app logger and share its handlers"""
    if name:
        return logger.getChild(name)
    return logger
