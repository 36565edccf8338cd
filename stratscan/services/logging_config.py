"""
Scanner Logging: JSON or console output with per-tick correlation IDs

Centralized logging for the scanner.
Features:
- Correlation ID per scan pass, so every line of one tick can be grouped
- JSON format: {timestamp, correlation_id, service, level, message, extra}
- Coloured console format for local runs
- @log_method decorator for execution time tracking
"""
import functools
import inspect
import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

# Async-safe: each gathered symbol task inherits the tick's id
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

F = TypeVar("F", bound=Callable[..., Any])

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def get_correlation_id() -> Optional[str]:
    """Current correlation ID, or None outside a scan pass."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set a correlation ID for the current context.
    Generates a short random id when none is given.
    """
    cid = correlation_id or uuid.uuid4().hex[:12]
    _correlation_id.set(cid)
    return cid


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    {
        "timestamp": "2026-03-02T14:30:00.123456+00:00",
        "correlation_id": "4f1c0a9b2d3e",
        "service": "signal_engine",
        "level": "INFO",
        "message": "Signal AAPL LONG 2D->2U ...",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "correlation_id": get_correlation_id(),
            "service": record.name.rsplit(".", 1)[-1],
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)
        if extra:
            entry["extra"] = extra

        return json.dumps(entry)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line format: [cid] LEVEL service - message"""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        cid = get_correlation_id()
        short_cid = cid[:8] if cid else "--------"

        color = self.COLORS.get(record.levelname, "") if self.use_color else ""
        reset = self.RESET if color else ""

        formatted = (
            f"[{short_cid}] "
            f"{color}{record.levelname:8}{reset} "
            f"{record.name.rsplit('.', 1)[-1]:20} - "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


def _make_handler(use_json: bool, level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if use_json else ConsoleFormatter())
    return handler


def log_method(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    log_result: bool = False,
) -> Callable[[F], F]:
    """
    Decorator logging entry, exit and execution time of a sync or async callable.

    Usage:
        @log_method(level=logging.INFO)
        async def run_once(self, now=None):
            ...
    """
    def decorator(func: F) -> F:
        _logger = logger or logging.getLogger(func.__module__)
        name = func.__qualname__

        def _exit(start: float, result: Any) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            extra = {"function": name, "execution_time_ms": round(elapsed_ms, 2)}
            if log_result:
                extra["result"] = _safe_repr(result)
            _logger.log(level, f"EXIT: {name} ({elapsed_ms:.2f}ms)", extra=extra)

        def _error(start: float, exc: Exception) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            _logger.error(
                f"ERROR: {name} ({elapsed_ms:.2f}ms) - {type(exc).__name__}: {exc}",
                extra={
                    "function": name,
                    "execution_time_ms": round(elapsed_ms, 2),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            _logger.log(level, f"ENTER: {name}", extra={"function": name})
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _error(start, e)
                raise
            _exit(start, result)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            _logger.log(level, f"ENTER: {name}", extra={"function": name})
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _error(start, e)
                raise
            _exit(start, result)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


def _safe_repr(obj: Any, max_length: int = 200) -> str:
    try:
        result = json.dumps(obj)
    except (TypeError, ValueError):
        result = repr(obj)
    if len(result) > max_length:
        return result[:max_length - 3] + "..."
    return result


def setup_logging(use_json: bool = False, level: int = logging.INFO) -> None:
    """
    Configure the root logger for the whole process.

    Args:
        use_json: JSON structured output
        level: Root logging level
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(_make_handler(use_json, level))
