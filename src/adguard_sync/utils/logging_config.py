"""Logging configuration for adguard-sync.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing helpers for fetches and replica runs

Environment Variables:
    ADGUARD_SYNC_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    ADGUARD_SYNC_LOG_FILE: Path to log file (default: ~/.adguard-sync/adguard-sync.log)
    ADGUARD_SYNC_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    ADGUARD_SYNC_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from adguard_sync.utils.logging_config import setup_logging, timed_section

    setup_logging()  # Call once at startup

    async with timed_section("sync_replica", device_id="replica-1"):
        ...
"""
import inspect
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("adguard_sync.perf")
main_logger = logging.getLogger("adguard_sync")

MAIN_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-32s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(default: str = "INFO") -> int:
    """Get log level from environment."""
    level_str = os.environ.get("ADGUARD_SYNC_LOG_LEVEL", default).upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".adguard-sync" / "adguard-sync.log"
    path_str = os.environ.get("ADGUARD_SYNC_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(level: Optional[str] = None, log_to_file: bool = True) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects ADGUARD_SYNC_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics, in its own file

    Args:
        level: Console level overriding the environment
        log_to_file: Set False to log to the console only
    """
    log_level = getattr(logging, level.upper(), logging.INFO) if level else get_log_level()
    max_size_mb = int(os.environ.get("ADGUARD_SYNC_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("ADGUARD_SYNC_LOG_BACKUPS", "5"))

    main_format = logging.Formatter(MAIN_FORMAT, datefmt=DATE_FORMAT)
    perf_format = logging.Formatter(PERF_FORMAT, datefmt=DATE_FORMAT)

    # Console handler - respects configured level
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.handlers.clear()
    main_logger.addHandler(console_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.handlers.clear()
    perf_logger.propagate = False
    perf_logger.addHandler(console_handler)

    log_file = None
    if log_to_file:
        log_file = get_log_file()
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # File handler - captures DEBUG and above (everything)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(main_format)
        main_logger.addHandler(file_handler)

        perf_handler = RotatingFileHandler(
            log_file.parent / "adguard-sync-perf.log",
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        perf_handler.setLevel(logging.DEBUG)
        perf_handler.setFormatter(perf_format)
        perf_logger.addHandler(perf_handler)

    main_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file or '-'}"
    )


def _perf_line(operation: str, device_id: Optional[str], start: float, status: str) -> str:
    elapsed = (time.perf_counter() - start) * 1000
    return f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of async functions.

    Args:
        operation: Name of the operation (e.g., "fetch", "apply")
        device_id: Optional instance name (can also be inferred from self.name)

    Usage:
        @timed("status")
        async def status(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"timed() only wraps coroutine functions, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            # Try to get the instance name from self if not provided
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], "name"):
                dev_id = args[0].name

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                perf_logger.info(_perf_line(operation, dev_id, start, "OK"))
                return result
            except Exception as e:
                perf_logger.warning(_perf_line(operation, dev_id, start, f"FAIL: {e}"))
                raise

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        device_id: Instance name
        **extra: Additional context to log

    Usage:
        async with timed_section("sync_replica", device_id="replica-1", dry_run=True):
            await engine.sync_replica(...)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        msg = _perf_line(operation, device_id, start, "OK")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        msg = _perf_line(operation, device_id, start, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
