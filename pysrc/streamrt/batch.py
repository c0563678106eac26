"""
Threaded frequency batch.

Frequencies are independent, so they are solved on a thread pool with a
bounded number of tasks in flight and drained in completion order. Every
result carries its input index, so completion order never affects where a
result lands.

Failure policy per frequency:
- NumericalDivergence, EnergyBudgetViolation: recorded as FAILED, the
  rest of the batch continues
- ExhaustedError: recorded as EXHAUSTED by the per-frequency solve
- InvalidConfiguration, InvalidAtmosphere, GeometryMismatch: contract
  violations; queued work is cancelled and the error propagates

Cancellation is checked before each submission only; a frequency that
already started runs to completion.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import nullcontext

from .errors import EnergyBudgetViolation, InvalidConfiguration, NumericalDivergence
from .models.results import FrequencyResult, FrequencyStatus
from .progress import ProgressReporter
from .rt_logging import DiagnosticSink, bind_sink, get_logger

logger = get_logger(__name__)

# Upper bound for the automatic worker count
_MAX_AUTO_WORKERS = 8

SolveFn = Callable[[int, float], FrequencyResult]


def resolve_workers(n_workers: int | None, n_frequencies: int) -> int:
    """Resolve the worker count for a batch of ``n_frequencies``."""
    if n_frequencies <= 0:
        return 1
    if n_workers is not None and n_workers < 1:
        raise InvalidConfiguration("n_workers", f"must be >= 1, got {n_workers}")
    if n_workers is None:
        cpu_count = os.cpu_count() or 2
        n_workers = max(1, min(_MAX_AUTO_WORKERS, cpu_count // 2))
    return max(1, min(n_workers, n_frequencies))


def _isolated(solve: SolveFn, index: int, frequency: float, sink: DiagnosticSink | None) -> FrequencyResult:
    with bind_sink(sink) if sink is not None else nullcontext():
        try:
            return solve(index, frequency)
        except (NumericalDivergence, EnergyBudgetViolation) as err:
            logger.warning(f"Frequency {index} ({frequency:.6e} Hz) failed: {err}")
            return FrequencyResult(index=index, frequency=frequency, status=FrequencyStatus.FAILED, error=err)


def run_frequencies(
    frequencies: Sequence[float],
    solve: SolveFn,
    n_workers: int,
    reporter: ProgressReporter,
    sink: DiagnosticSink | None = None,
) -> tuple[list[FrequencyResult], bool]:
    """
    Solve every frequency on a thread pool.

    Args:
        frequencies: Frequencies [Hz] in input order.
        solve: ``solve(index, frequency)`` for one frequency.
        n_workers: Worker threads.
        reporter: Progress reporter; its cancel flag stops new submissions.
        sink: Diagnostic sink bound inside every worker task, so warnings
            land in this batch only.

    Returns:
        (results in input order, cancelled flag). Frequencies never
        submitted because of cancellation get status CANCELLED.
    """
    n_freq = len(frequencies)
    results: list[FrequencyResult | None] = [None] * n_freq
    inflight_limit = max(1, min(n_freq, 2 * n_workers))
    futures: dict[Future, int] = {}
    next_submit = 0
    cancelled = False

    with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="streamrt") as executor:
        try:
            while futures or (next_submit < n_freq and not cancelled):
                while next_submit < n_freq and len(futures) < inflight_limit:
                    if reporter.is_cancelled():
                        cancelled = True
                        break
                    future = executor.submit(_isolated, solve, next_submit, float(frequencies[next_submit]), sink)
                    futures[future] = next_submit
                    next_submit += 1

                if not futures:
                    break
                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    index = futures.pop(future)
                    results[index] = future.result()
                    reporter.update(1)
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    if cancelled:
        logger.info(f"Batch cancelled after {next_submit} of {n_freq} frequencies were submitted")
    for index, result in enumerate(results):
        if result is None:
            results[index] = FrequencyResult(
                index=index, frequency=float(frequencies[index]), status=FrequencyStatus.CANCELLED
            )
    return results, cancelled


__all__ = ["resolve_workers", "run_frequencies"]
