"""
Centralized logging configuration for the lead sync service.

Console output is coloured in development and JSON in production; an
optional rotating file handler always writes JSON.
"""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGS_DIR = Path(__file__).parent.parent / "logs"

# Log levels by environment
LOG_LEVELS = {
    "development": logging.DEBUG,
    "production": logging.INFO,
    "testing": logging.WARNING,
}

NOISY_LOGGERS = ("urllib3", "httpcore", "httpx", "werkzeug", "google", "googleapiclient", "anthropic", "openai")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; structured fields go in extra={"extra_data": {...}}."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_obj["data"] = record.extra_data

        return json.dumps(log_obj, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    MAX_MESSAGE = 500

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        message = record.getMessage()
        if len(message) > self.MAX_MESSAGE:
            message = message[: self.MAX_MESSAGE] + "..."

        data = getattr(record, "extra_data", None)
        if data:
            message += " " + " ".join(f"{k}={v}" for k, v in data.items())

        line = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {record.name}: {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: Optional[str] = None,
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Use JSON formatting on the console
        log_file: Optional log file path; production logs to logs/leadsync.log

    Returns:
        The configured root logger
    """
    env = os.environ.get("FLASK_ENV", "development")
    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = LOG_LEVELS.get(env, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if json_logs else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file or env == "production":
        if not log_file:
            LOGS_DIR.mkdir(exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file or str(LOGS_DIR / "leadsync.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module (typically __name__)."""
    return logging.getLogger(name)
