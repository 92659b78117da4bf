"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for loan and payment operations.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

# Record attributes carried into every JSON entry when present
LOAN_FIELDS = ("loan", "action", "sequence_number", "details")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in LOAN_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "amortizer",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the root application logger
        log_format: "json" for structured output, anything else for plain text
        log_file: Write to this file instead of stderr

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "amortizer") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan: Optional[str] = None, action: Optional[str] = None,
               sequence_number: Optional[int] = None, details: Optional[dict] = None):
    """
    Log a loan operation with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        loan: Name of the loan acted upon
        action: Operation being performed
        sequence_number: Installment the operation concerns
        details: Additional structured data
    """
    fields = {
        "loan": loan,
        "action": action,
        "sequence_number": sequence_number,
        "details": details
    }
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={key: value for key, value in fields.items() if value is not None}
    )
