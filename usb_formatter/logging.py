from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "USB_FORMATTER_LOG_DIR",
        Path.home() / ".local" / "state" / "usb-formatter" / "logs",
    )
)

CONSOLE_FORMAT = "<level>[{level}]</level> {message}"
DEBUG_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[source]: <8}</cyan> | "
    "{message}"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[source]: <8} | "
    "{extra[job_id]: <15} | "
    "{message}"
)


def _should_log_command(record) -> bool:
    """Keep raw command output out of the console unless tracing."""
    tags = record["extra"].get("tags", [])
    if "command" in tags:
        return record["level"].no >= logger.level("DEBUG").no
    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Configure console and file sinks.

    Logging Tiers:
    - ERROR: Pipeline failures (validation, unmount, partition, format)
    - WARNING: Non-fatal conditions (non-removable target, unconfirmed node)
    - SUCCESS/INFO: Stage transitions and results shown to the user
    - DEBUG: Every command executed and its output
    - TRACE: Partition node polling

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug or --trace is enabled (3 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging
        log_dir: Custom log directory (defaults to ~/.local/state/usb-formatter/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "app"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_command,
        colorize=True,
        format=DEBUG_CONSOLE_FORMAT if (debug or trace) else CONSOLE_FORMAT,
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        logger.warning("File logging disabled, cannot create {}: {}", log_dir, error)
        return logger

    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=FILE_FORMAT,
    )

    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            format=FILE_FORMAT + " | {extra[tags]}",
        )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["format", "storage"])
        source: Source component (e.g., "usb", "format", "cleaner")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


@contextmanager
def operation_context(operation: str, **details):
    """
    Track a long-running operation with automatic timing.

    Logs the start, the completion with its duration, or the failure with
    the exception type, then re-raises.

    Example:
        with operation_context("format", device="/dev/sdb") as log:
            log.debug("Unmounting devices")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])
        log.debug(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.debug(
                f"{operation.capitalize()} completed",
                duration_seconds=round(duration, 2),
            )
        except Exception as e:
            duration = time.time() - start_time
            log.debug(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_usb() -> Logger:
        """Logger for block device discovery."""
        return logger.bind(source="usb", tags=["usb", "storage"])

    @staticmethod
    def for_command() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="cmd", tags=["command"])

    @staticmethod
    def for_mount() -> Logger:
        """Logger for mount table queries and unmounting."""
        return logger.bind(source="mount", tags=["mount", "storage"])

    @staticmethod
    def for_format(job_id: str | None = None) -> Logger:
        """Logger for partitioning and formatting."""
        if job_id is None:
            job_id = f"format-{uuid.uuid4().hex[:8]}"
        return logger.bind(job_id=job_id, source="format", tags=["format", "storage"])

    @staticmethod
    def for_cleaner() -> Logger:
        """Logger for the Apple metadata cleaner."""
        return logger.bind(source="cleaner", tags=["cleaner", "files"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for startup, privilege and configuration."""
        return logger.bind(source="system", tags=["system"])
