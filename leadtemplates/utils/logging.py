"""
Unified logging for the leadtemplates package.

Every component gets its logger from here so that template scoring, experiment
tracking and alerting share one format and one set of context fields.

Usage:
    from leadtemplates.utils.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Scored template", extra={"template_id": "tpl-1", "score": 72})
"""

import json
import logging
import os
import sys
import time
import uuid
from functools import wraps
from typing import Optional, Union


class RequestContextFilter(logging.Filter):
    """Stamp a request id on every record that does not already carry one."""

    def __init__(self, request_id: Optional[str] = None):
        super().__init__()
        self.request_id = request_id or str(uuid.uuid4())

    def filter(self, record):
        record.request_id = getattr(record, "request_id", self.request_id)
        return True


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "request_id": getattr(record, "request_id", "-"),
        }

        # Fields attached through LogContext
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data.update(record.extra)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


TEXT_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(request_id)s] - %(name)s - "
    "%(module)s.%(funcName)s:%(lineno)d - %(message)s"
)


def setup_logger(
    name: str,
    level: Union[int, str, None] = None,
    log_format: Optional[str] = None,
    request_id: Optional[str] = None,
) -> logging.Logger:
    """
    Configure and return a logger writing to stderr.

    Args:
        name: Logger name, usually ``__name__``
        level: Level name or number; defaults to ``LOG_LEVEL`` (INFO)
        log_format: ``json`` or ``text``; defaults to ``LOG_FORMAT`` (json)
        request_id: Optional id shared by related records

    Returns:
        The configured logger
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    log_format = log_format or os.getenv("LOG_FORMAT", "json")

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if not any(isinstance(f, RequestContextFilter) for f in logger.filters):
        logger.addFilter(RequestContextFilter(request_id))

    if log_format.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(
    name: str, level: Union[int, str, None] = None, request_id: Optional[str] = None
) -> logging.Logger:
    """Get a configured logger instance."""
    return setup_logger(name, level=level, request_id=request_id)


class LogContext:
    """
    Temporarily attach structured fields to every log record.

    Usage:
        with LogContext(logger, lead_stage="qualified", candidates=12):
            logger.info("Selecting templates")
    """

    def __init__(self, logger: logging.Logger, **context):
        self.logger = logger
        self.context = context
        self.old_factory = None

    def __enter__(self):
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            record.extra = dict(getattr(record, "extra", {}) or {})
            record.extra.update(context)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self.old_factory)


def log_execution_time(func):
    """
    Decorator logging how long a call took.

    Failures are logged with their duration and re-raised.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        func_logger = logging.getLogger(func.__module__)
        start_time = time.time()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            execution_time = time.time() - start_time
            func_logger.error(
                f"'{func.__qualname__}' failed after {execution_time:.4f} seconds: {e}",
                extra={"execution_time": execution_time, "error": str(e)},
            )
            raise

        execution_time = time.time() - start_time
        func_logger.debug(
            f"'{func.__qualname__}' executed in {execution_time:.4f} seconds",
            extra={"execution_time": execution_time},
        )
        return result

    return wrapper
