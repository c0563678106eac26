"""
Progress reporting abstraction for streamrt.

Uses the appropriate progress mechanism:
- Callback: progress_callback(current, total) supplied by the caller
- Terminal: tqdm progress bar
- Disabled: no-op (silent iteration)

Cancellation is cooperative: ``cancel()`` sets an event that batch loops
poll between frequencies through ``is_cancelled()``.

Usage:
    from streamrt.progress import get_progress_iterator, ProgressReporter

    # Simple iteration with progress
    for item in get_progress_iterator(items, desc="Processing"):
        process(item)

    # Manual progress control
    progress = ProgressReporter(total=len(frequencies), desc="Solving")
    for f in frequencies:
        if progress.is_cancelled():
            break
        solve(f)
        progress.update(1)
    progress.close()
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from typing import TypeVar

from tqdm import tqdm

from .rt_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProgressReporter:
    """
    Progress reporter that drives a callback, a tqdm bar, or nothing.

    Args:
        total: Total number of steps (required for percentage calculation).
        desc: Description shown in progress bar.
        callback: Optional ``callback(current, total)``. If provided, it
                  replaces the tqdm bar.
        disable: If True, disable all progress output.
        cancel_event: Optional event shared with other code that may
                  request cancellation. A private one is created if omitted.
    """

    def __init__(
        self,
        total: int,
        desc: str = "",
        callback: Callable[[int, int], None] | None = None,
        disable: bool = False,
        cancel_event: threading.Event | None = None,
    ):
        self.total = total
        self.desc = desc
        self.current = 0
        self.disable = disable
        self._closed = False
        self._callback = callback
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._lock = threading.Lock()
        self._tqdm_bar = None

        if disable or callback is not None:
            return

        self._tqdm_bar = tqdm(total=total, desc=desc)

    def update(self, n: int = 1) -> None:
        """Update progress by n steps. Safe to call from worker threads."""
        with self._lock:
            if self._closed:
                return

            self.current += n
            current = self.current

            if self.disable:
                return

            if self._tqdm_bar is not None:
                self._tqdm_bar.update(n)

        if self._callback is not None:
            self._callback(current, self.total)

    def set_description(self, desc: str) -> None:
        """Update the progress description."""
        self.desc = desc
        if self._tqdm_bar is not None:
            self._tqdm_bar.set_description(desc)

    def cancel(self) -> None:
        """Request cancellation; honoured between frequencies."""
        if not self._cancel_event.is_set():
            logger.info(f"Cancellation requested for: {self.desc or 'batch'}")
        self._cancel_event.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancel_event.is_set()

    def close(self) -> None:
        """Close the progress bar."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._tqdm_bar is not None:
            self._tqdm_bar.close()


class _ProgressIterator(Iterator[T]):
    """Iterator wrapper that reports progress."""

    def __init__(self, iterable: Iterable[T], reporter: ProgressReporter):
        self._iterator = iter(iterable)
        self._reporter = reporter

    def __iter__(self) -> _ProgressIterator[T]:
        return self

    def __next__(self) -> T:
        try:
            item = next(self._iterator)
            self._reporter.update(1)
            return item
        except StopIteration:
            self._reporter.close()
            raise


def get_progress_iterator(
    iterable: Iterable[T],
    desc: str = "",
    total: int | None = None,
    callback: Callable[[int, int], None] | None = None,
    disable: bool = False,
) -> Iterator[T]:
    """
    Wrap an iterable with progress reporting.

    Args:
        iterable: The iterable to wrap.
        desc: Description for the progress bar.
        total: Total number of items (computed from len() if not provided).
        callback: Optional ``callback(current, total)`` instead of tqdm.
        disable: If True, disable progress output entirely.

    Returns:
        Iterator that reports progress as items are consumed.

    Example:
        for f in get_progress_iterator(frequencies, desc="Aggregating"):
            aggregate(f, ...)
    """
    if total is None:
        try:
            total = len(iterable)  # type: ignore
        except TypeError:
            # Iterable doesn't have len()
            total = 0

    reporter = ProgressReporter(total=total, desc=desc, callback=callback, disable=disable)
    return _ProgressIterator(iterable, reporter)


def progress(
    iterable: Iterable[T],
    desc: str = "",
    total: int | None = None,
    **kwargs,
) -> Iterator[T]:
    """
    tqdm-like shorthand for ``get_progress_iterator``.

    Additional kwargs are ignored for compatibility.
    """
    return get_progress_iterator(iterable, desc=desc, total=total)
