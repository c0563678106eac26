"""Result data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from ..physics.planck import rayleigh_jeans_temperature

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..components.normalization import NormalizationStatus
    from ..rt_logging import DiagnosticRecord


class FrequencyStatus(str, Enum):
    """Outcome of one frequency in a batch."""

    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RadianceField:
    """
    Solved radiance at one frequency.

    Attributes:
        frequency: Frequency [Hz].
        data: Spectral radiance [W m^-2 sr^-1 Hz^-1], shape
            (n_levels, 2 * n_angles, stokes_dim). Levels run from the
            surface upward; streams run downwelling first (``za_grid[:n]``)
            then upwelling.
        za_grid: Polar angles [deg] matching the stream axis.
        altitudes: Level altitudes [m].
    """

    frequency: float
    data: NDArray[np.floating]
    za_grid: NDArray[np.floating]
    altitudes: NDArray[np.floating]

    @property
    def n_angles(self) -> int:
        """Angles per hemisphere."""
        return self.za_grid.size // 2

    @property
    def stokes_dim(self) -> int:
        return self.data.shape[-1]

    @property
    def downwelling(self) -> NDArray[np.floating]:
        """(n_levels, n_angles, stokes_dim)."""
        return self.data[:, : self.n_angles]

    @property
    def upwelling(self) -> NDArray[np.floating]:
        """(n_levels, n_angles, stokes_dim)."""
        return self.data[:, self.n_angles :]

    def brightness_temperature(self) -> NDArray[np.floating]:
        """Rayleigh-Jeans brightness temperature [K], same shape as ``data``."""
        return rayleigh_jeans_temperature(self.data, self.frequency)


@dataclass
class FrequencyResult:
    """
    Outcome of one frequency solve.

    Attributes:
        index: Position of the frequency in the batch input.
        frequency: Frequency [Hz].
        status: Converged, exhausted, failed or cancelled.
        field: Radiance field. Present when converged, and for exhausted
            solves (partially converged).
        iterations: Solver iterations used.
        n_streams_used: Stream count after any refinement.
        normalization: Outcome of the phase-matrix check.
        max_deviation: Largest single-scattering-albedo deviation seen.
        error: The exception for failed or exhausted frequencies.
    """

    index: int
    frequency: float
    status: FrequencyStatus
    field: RadianceField | None = None
    iterations: int = 0
    n_streams_used: int | None = None
    normalization: NormalizationStatus | None = None
    max_deviation: float = 0.0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is FrequencyStatus.CONVERGED


@dataclass
class BatchResult:
    """
    Results of a multi-frequency run.

    Entries of ``results`` are ordered like the input frequencies, however
    the worker threads finished.

    Attributes:
        frequencies: Input frequencies [Hz].
        results: One FrequencyResult per frequency.
        za_grid: Polar angles [deg] of the stream axis.
        altitudes: Level altitudes [m].
        stokes_dim: Number of Stokes components.
        accept_unconverged: Whether exhausted fields count as usable.
        cancelled: True if a cancel request stopped the batch early.
        diagnostics: Warnings collected from all worker threads.
    """

    frequencies: NDArray[np.floating]
    results: list[FrequencyResult]
    za_grid: NDArray[np.floating]
    altitudes: NDArray[np.floating]
    stokes_dim: int
    accept_unconverged: bool = False
    cancelled: bool = False
    diagnostics: list[DiagnosticRecord] = field(default_factory=list)

    def usable(self, result: FrequencyResult) -> bool:
        if result.field is None:
            return False
        return result.status is FrequencyStatus.CONVERGED or (
            self.accept_unconverged and result.status is FrequencyStatus.EXHAUSTED
        )

    @property
    def radiance(self) -> NDArray[np.floating]:
        """
        Stacked radiance, shape (n_freq, n_levels, 2 * n_angles, stokes_dim).

        Frequencies without a usable field are NaN.
        """
        out = np.full((self.frequencies.size, self.altitudes.size, self.za_grid.size, self.stokes_dim), np.nan)
        for result in self.results:
            if self.usable(result):
                out[result.index] = result.field.data
        return out

    def brightness_temperature(self) -> NDArray[np.floating]:
        """Rayleigh-Jeans brightness temperature [K] of ``radiance``."""
        return rayleigh_jeans_temperature(self.radiance, self.frequencies[:, None, None, None])

    @property
    def failed(self) -> list[FrequencyResult]:
        """Frequencies that did not produce a usable field."""
        return [r for r in self.results if not self.usable(r)]

    @property
    def all_converged(self) -> bool:
        return all(r.ok for r in self.results)

    def summary(self) -> str:
        counts = {status: 0 for status in FrequencyStatus}
        for r in self.results:
            counts[r.status] += 1
        parts = [f"{counts[s]} {s.value}" for s in FrequencyStatus if counts[s]]
        return f"{self.frequencies.size} frequencies: " + ", ".join(parts)
