"""
Logging for streamrt.

Wraps the standard logging module and optionally mirrors warnings into
diagnostic sinks, so a batch run can hand back every warning raised by
its worker threads:
- Python: Standard logging module
- Sinks: Lock-guarded, append-only record lists bound to one batch

Usage:
    from streamrt.rt_logging import get_logger

    logger = get_logger(__name__)
    logger.info("Solving 120 frequencies with 8 streams")
    logger.debug(f"Iteration {n}: delta={delta}")
    logger.warning("Phase matrix normalization deviates by 0.7%")
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from enum import IntEnum


class LogLevel(IntEnum):
    """Log levels matching Python logging."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


@dataclass(frozen=True)
class DiagnosticRecord:
    """One mirrored log record."""

    logger: str
    level: LogLevel
    message: str
    thread: str


class DiagnosticSink:
    """
    Append-only collection of diagnostics shared between worker threads.

    Every append goes through a lock; readers get a snapshot copy.
    """

    def __init__(self, min_level: LogLevel = LogLevel.WARNING):
        self.min_level = min_level
        self._records: list[DiagnosticRecord] = []
        self._lock = threading.Lock()

    def append(self, record: DiagnosticRecord) -> None:
        if record.level < self.min_level:
            return
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[DiagnosticRecord]:
        """Snapshot of the records collected so far."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# Sink of the batch running in the current context; worker tasks bind it themselves
_current_sink: ContextVar[DiagnosticSink | None] = ContextVar("streamrt_diagnostic_sink", default=None)


@contextmanager
def bind_sink(sink: DiagnosticSink) -> Iterator[DiagnosticSink]:
    """
    Mirror records logged in the current context into ``sink``.

    Pool threads do not inherit the caller's context, so each worker task
    binds the sink of the batch it belongs to. Concurrent batches never
    see each other's records.
    """
    token = _current_sink.set(sink)
    try:
        yield sink
    finally:
        _current_sink.reset(token)


class RTLogger:
    """
    Logger used throughout streamrt.

    Forwards to the standard logging module and mirrors records into the
    diagnostic sink bound in the current context.
    """

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO):
        """
        Initialize logger.

        Args:
            name: Logger name (usually module name)
            level: Minimum log level to display
        """
        self.name = name
        self.level = level

    def _log(self, level: LogLevel, message: str) -> None:
        """Internal logging method."""
        sink = _current_sink.get()
        if sink is not None:
            sink.append(DiagnosticRecord(self.name, level, message, threading.current_thread().name))

        if level < self.level:
            return  # Below minimum level

        logging.getLogger(self.name).log(level, message)

    def debug(self, message: str) -> None:
        """Log debug message."""
        self._log(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        """Log info message."""
        self._log(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self._log(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        """Log error message."""
        self._log(LogLevel.ERROR, message)

    def set_level(self, level: LogLevel | int) -> None:
        """Set minimum log level."""
        self.level = LogLevel(level) if isinstance(level, int) else level


# Global logger registry
_loggers: dict[str, RTLogger] = {}


def get_logger(name: str, level: LogLevel | int = LogLevel.INFO) -> RTLogger:
    """
    Get or create a logger for the given name.

    Args:
        name: Logger name (usually module name or __name__)
        level: Minimum log level (default: INFO)

    Returns:
        RTLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Batch started")
        >>> logger.debug(f"Sublayers: {n_sub}")
    """
    if name not in _loggers:
        _loggers[name] = RTLogger(name, LogLevel(level) if isinstance(level, int) else level)
    return _loggers[name]


def set_global_level(level: LogLevel | int) -> None:
    """
    Set log level for all existing loggers.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)

    Example:
        >>> import streamrt.rt_logging as rtlog
        >>> rtlog.set_global_level(rtlog.LogLevel.DEBUG)  # Show iteration deltas
    """
    level = LogLevel(level) if isinstance(level, int) else level
    for logger in _loggers.values():
        logger.set_level(level)


# Configure Python logging to be less verbose by default
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
    stream=sys.stdout,
)
