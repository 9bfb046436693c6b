"""Structured logging setup for the compliance scanner."""

import contextlib
import functools
import inspect
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

# Noisy at INFO; raised to WARNING unless the app runs quieter still.
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "PIL", "semantic_kernel")

# Fields every record carries so format strings can always reference them.
_RECORD_DEFAULTS: Dict[str, Any] = {"scan_id": "-"}


class ContextFilter(logging.Filter):
    """Stamp scan context (scan_id, step, ...) onto every log record."""

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.defaults = dict(defaults or {})
        self.context: Dict[str, Any] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in {**self.defaults, **self.context}.items():
            setattr(record, key, value)
        return True


_context_filter = ContextFilter(_RECORD_DEFAULTS)


def _attach(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_context_filter)
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Route all scanner logs to the console and, optionally, a file.

    Replaces any handlers already on the root logger. Format strings may use
    %(scan_id)s; records logged outside a scan show "-".

    Args:
        level: Level name such as "DEBUG" or "INFO"; unknown names mean INFO
        log_format: logging.Formatter format string
        log_file: Log file path; its parent directory is created

    Returns:
        The root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    _attach(root_logger, logging.StreamHandler(), numeric_level, formatter)
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        _attach(root_logger, logging.FileHandler(log_file, encoding="utf-8"), numeric_level, formatter)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return root_logger


def set_context(**kwargs):
    """
    Add fields to every subsequent log record.

    Example:
        set_context(scan_id="18c9f2a1b3e-1a2b3c4d")
        logger.info("Analyzing")  # record carries scan_id
    """
    _context_filter.context.update(kwargs)


def clear_context():
    _context_filter.context.clear()


def get_context() -> Dict[str, Any]:
    return dict(_context_filter.context)


@contextlib.contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """Scope extra log fields to a block, restoring the previous fields after."""
    saved = _context_filter.context.copy()
    set_context(**kwargs)
    try:
        yield
    finally:
        _context_filter.context = saved


def with_context(**context_kwargs):
    """
    Decorator form of log_context for plain functions and coroutines.

    Example:
        @with_context(step="analyzing")
        async def analyze(image): ...
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_context(**context_kwargs):
                    return await func(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with log_context(**context_kwargs):
                return func(*args, **kwargs)
        return wrapper
    return decorator
