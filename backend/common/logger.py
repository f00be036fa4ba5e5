"""
Application Logger

Central logging setup for the assessment engine. Every module obtains its
logger through ``app_logger.getChild(...)`` or ``get_logger(__name__)`` so
that level, format and handlers are controlled in one place.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import asyncio
from typing import Dict, Any, Optional, Union, Callable, TypeVar

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_LOGGER_NAME = "assessment_engine"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'with_context',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Context attached through ``LoggerAdapter`` (the ``data`` extra) is merged
    into the top level of the object.
    """

    def __init__(self, datefmt: Optional[str] = None, *, indent: Optional[int] = None):
        super().__init__(datefmt=datefmt)
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            log_object["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        data = getattr(record, 'data', None)
        if isinstance(data, dict):
            log_object.update(data)

        return json.dumps(log_object, indent=self.indent, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and optional file handlers.

    Args:
        name: Logger name
        level: Log level name or number
        format_string: Format used by the plain-text formatter
        date_format: Date format used by the plain-text formatter
        use_json: Emit JSON lines instead of plain text
        log_file: Path to a log file (no file handler when None)
        console_output: Whether to log to stdout

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    formatter = JsonFormatter() if use_json else logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Could not create log file {log_file}: {e}")

    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """
    Get a logger by name, optionally as a child of ``parent``.
    """
    if parent:
        return parent.getChild(name)
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches a fixed context (attempt id, user id...)
    to every record it emits.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs = dict(kwargs)
        extra = dict(kwargs.get('extra') or {})
        data = dict(extra.get('data') or {})
        data.update(self.extra)
        extra['data'] = data
        kwargs['extra'] = extra
        if self.extra:
            context = " ".join(f"{key}={value}" for key, value in self.extra.items())
            msg = f"{msg} [{context}]"
        return msg, kwargs

    def with_context(self, **context) -> 'LoggerAdapter':
        """Return a new adapter with ``context`` merged into the current one."""
        merged = dict(self.extra)
        merged.update(context)
        return LoggerAdapter(self.logger, merged)


def with_context(name: Optional[str] = None, **context) -> LoggerAdapter:
    """
    Create a logger adapter carrying ``context``.

    Args:
        name: Optional child name under the application logger
        context: Key/value pairs added to every record

    Returns:
        Logger adapter
    """
    logger = app_logger.getChild(name) if name else app_logger
    return LoggerAdapter(logger, context)


def get_app_logger() -> logging.Logger:
    """
    Get or create the application logger, configured from the environment.
    """
    logger = logging.getLogger(APP_LOGGER_NAME)
    if not logger.handlers:
        return configure_logger(
            name=APP_LOGGER_NAME,
            level=os.environ.get("LOG_LEVEL", "INFO"),
            use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
            log_file=os.environ.get("LOG_FILE"),
            console_output=True
        )
    return logger


app_logger = get_app_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator logging how long the wrapped (sync or async) callable took.

    Args:
        logger: Logger to use; defaults to the application logger

    Returns:
        Decorator
    """
    def decorator(func: F) -> F:
        def _report(started: float, error: Optional[Exception] = None) -> None:
            elapsed = time.perf_counter() - started
            target = logger or app_logger
            if error is None:
                target.debug(f"{func.__qualname__} executed in {elapsed:.3f} seconds")
            else:
                target.error(f"{func.__qualname__} failed after {elapsed:.3f} seconds: {error}")

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _report(started, e)
                raise
            _report(started)
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _report(started, e)
                raise
            _report(started)
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper
    return decorator
