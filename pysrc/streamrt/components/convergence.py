"""
Convergence / iteration controller.

Repeats a solver step until the largest change of every Stokes component,
expressed as Rayleigh-Jeans brightness temperature, is within its
threshold. The iteration bound is the only thing that stops a solve which
does not converge, and hitting it is reported as ``ExhaustedError``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ..errors import ExhaustedError, InvalidConfiguration
from ..models.state import ConvergenceState
from ..physics.planck import rayleigh_jeans_temperature
from ..rt_logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = get_logger(__name__)


def field_delta(
    new: NDArray[np.floating], old: NDArray[np.floating], frequency: float
) -> NDArray[np.floating]:
    """
    Largest absolute change per Stokes component, in brightness temperature [K].

    The maximum runs over every axis but the last (Stokes) one.
    """
    diff = np.abs(new - old).reshape(-1, new.shape[-1]).max(axis=0)
    return rayleigh_jeans_temperature(diff, frequency)


@dataclass
class ConvergenceOutcome:
    """
    Converged result of ``run_to_convergence``.

    Attributes:
        field: Field after the converging step.
        iterations: Steps performed.
        history: Per-Stokes deltas [K], one per step.
    """

    field: NDArray[np.floating]
    iterations: int
    history: list[NDArray[np.floating]]


def run_to_convergence(
    solver_step: Callable[[NDArray[np.floating]], NDArray[np.floating]],
    initial_field: NDArray[np.floating],
    frequency: float,
    epsilon: ArrayLike,
    max_iterations: int,
) -> ConvergenceOutcome:
    """
    Iterate ``solver_step`` from ``initial_field`` until converged.

    Args:
        solver_step: Maps a field to the next one; may raise
            ``NumericalDivergence``, which is propagated unchanged.
        initial_field: Starting field, (..., S).
        frequency: Frequency [Hz] for the brightness-temperature conversion.
        epsilon: Per-Stokes thresholds [K], at least S values.
        max_iterations: Step bound, >= 1.

    Returns:
        ConvergenceOutcome of the first step at which every Stokes
        component satisfies ``delta <= epsilon``.

    Raises:
        ExhaustedError: ``max_iterations`` steps without convergence. The
            last field is attached.
    """
    if max_iterations < 1:
        raise InvalidConfiguration("max_iterations", f"must be >= 1, got {max_iterations}")
    stokes_dim = initial_field.shape[-1]
    epsilon = np.asarray(epsilon, dtype=np.float64).reshape(-1)
    if epsilon.size < stokes_dim:
        raise InvalidConfiguration("epsilon", f"needs {stokes_dim} values, got {epsilon.size}")
    state = ConvergenceState.start(epsilon[:stokes_dim], max_iterations)

    field = initial_field
    while True:
        new = solver_step(field)
        state.record(field_delta(new, field, frequency))
        field = new
        logger.debug(f"Iteration {state.iteration}: delta={state.last_delta.tolist()} K")

        if state.converged:
            logger.debug(f"Converged after {state.iteration} iterations at {frequency:.6e} Hz")
            return ConvergenceOutcome(field=field, iterations=state.iteration, history=state.history)
        if state.exhausted:
            raise ExhaustedError(
                state.iteration,
                state.last_delta,
                state.epsilon,
                field=field,
                frequency=frequency,
            )


__all__ = ["field_delta", "ConvergenceOutcome", "run_to_convergence"]
