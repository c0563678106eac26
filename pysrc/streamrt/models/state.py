"""Per-frequency solver state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class SolverState(Enum):
    """Lifecycle of one frequency solve."""

    IDLE = "idle"
    LAYER_SWEEP = "layer_sweep"
    CONVERGING = "converging"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class ConvergenceState:
    """
    Bookkeeping for one iterative solve.

    Created when the solve starts and dropped when it ends.

    Attributes:
        epsilon: Per-Stokes thresholds [K].
        max_iterations: Iteration bound.
        iteration: Iterations completed so far.
        last_delta: Per-Stokes change [K] measured after the last iteration.
        history: All measured deltas, one array per iteration.
    """

    epsilon: NDArray[np.floating]
    max_iterations: int
    iteration: int = 0
    last_delta: NDArray[np.floating] | None = None
    history: list[NDArray[np.floating]] = field(default_factory=list)

    @classmethod
    def start(cls, epsilon, max_iterations: int) -> ConvergenceState:
        return cls(epsilon=np.asarray(epsilon, dtype=np.float64), max_iterations=max_iterations)

    def record(self, delta: NDArray[np.floating]) -> None:
        self.iteration += 1
        self.last_delta = delta
        self.history.append(delta)

    @property
    def converged(self) -> bool:
        """All Stokes components within their thresholds."""
        return self.last_delta is not None and bool(np.all(self.last_delta <= self.epsilon))

    @property
    def exhausted(self) -> bool:
        return self.iteration >= self.max_iterations and not self.converged
