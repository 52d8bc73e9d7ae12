"""Logging configuration for the configkeeper MCP server.

Two streams are written:
- the main log (console on stderr plus a rotating file), shared by the
  ``configkeeper`` and ``mcp_config_store`` logger trees
- the perf log (``configkeeper.perf``), one line per timed git round-trip
  or tool call, in its own rotating file

Environment Variables:
    CONFIGKEEPER_LOG_LEVEL: Console level, DEBUG/INFO/WARNING/ERROR (default: INFO)
    CONFIGKEEPER_LOG_FILE: Main log file (default: ~/.configkeeper/configkeeper.log)
    CONFIGKEEPER_LOG_MAX_SIZE: Rotate after this many MB (default: 10)
    CONFIGKEEPER_LOG_BACKUPS: Rotated files to keep (default: 5)

Usage:
    setup_logging()  # once, from main()

    @timed("sync")
    def sync(self): ...

    async with timed_section("tool:config_save", context="network"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager, contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

perf_logger = logging.getLogger("configkeeper.perf")

# Logger trees that share the main handlers
MAIN_LOGGERS = ("configkeeper", "mcp_config_store")

_MAIN_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s"
_PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    level_str = os.environ.get("CONFIGKEEPER_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    default_path = Path.home() / ".configkeeper" / "configkeeper.log"
    return Path(os.environ.get("CONFIGKEEPER_LOG_FILE", str(default_path))).expanduser()


def _rotating_handler(path: Path, fmt: str) -> RotatingFileHandler:
    max_size_mb = int(os.environ.get("CONFIGKEEPER_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("CONFIGKEEPER_LOG_BACKUPS", "5"))
    handler = RotatingFileHandler(
        path,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATE_FORMAT))
    return handler


def _replace_handlers(logger: logging.Logger, *handlers: logging.Handler) -> None:
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging() -> None:
    """Configure the main and perf loggers.

    The console handler writes to stderr at CONFIGKEEPER_LOG_LEVEL because
    stdout carries the MCP stdio transport. The files capture DEBUG, which
    includes every git command line. Calling this again replaces the
    handlers instead of stacking them.
    """
    log_level = get_log_level()
    log_file = get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    perf_log_file = log_file.parent / "configkeeper-perf.log"

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(_MAIN_FORMAT, datefmt=_DATE_FORMAT))
    file_handler = _rotating_handler(log_file, _MAIN_FORMAT)

    for name in MAIN_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        _replace_handlers(logger, console_handler, file_handler)

    perf_logger.setLevel(logging.DEBUG)
    _replace_handlers(perf_logger, _rotating_handler(perf_log_file, _PERF_FORMAT), console_handler)
    perf_logger.propagate = False

    logging.getLogger("configkeeper").info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def _report(
    operation: str,
    context: Optional[str],
    start: float,
    error: Optional[BaseException] = None,
    extra: Optional[dict] = None,
) -> None:
    """Write one perf line for a finished operation."""
    elapsed = (time.perf_counter() - start) * 1000
    outcome = "OK" if error is None else f"FAIL: {error}"
    msg = f"{operation:20s} | {context or 'N/A':15s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        msg += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())

    if error is None:
        perf_logger.info(msg)
    else:
        perf_logger.warning(msg)


def timed(operation: str, context: Optional[str] = None):
    """Decorator that logs how long a method or coroutine took.

    Without an explicit context, the ``name`` attribute of the first
    argument is used, so methods of a named repository log under it.
    """
    def decorator(func: Callable) -> Callable:
        def _context(args) -> Optional[str]:
            if context is None and args:
                return getattr(args[0], "name", None)
            return context

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _report(operation, _context(args), start, e)
                    raise
                _report(operation, _context(args), start)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _report(operation, _context(args), start, e)
                raise
            _report(operation, _context(args), start)
            return result
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, context: Optional[str] = None, **extra):
    """Time an ``async with`` block; keyword arguments are appended to the line."""
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        _report(operation, context, start, e, extra)
        raise
    _report(operation, context, start, extra=extra)


@contextmanager
def timed_section_sync(operation: str, context: Optional[str] = None, **extra):
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        _report(operation, context, start, e, extra)
        raise
    _report(operation, context, start, extra=extra)
