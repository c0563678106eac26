"""
Data bundle classes passed between streamrt components.

Each bundle is the immutable output of one pipeline stage for a single
frequency; a refinement retry builds new bundles rather than editing old
ones:
- BulkOpticalProperties: layer extinction and absorption (aggregator)
- ScatteringPhaseMatrix: zeroth-azimuthal-mode phase matrix (aggregator, rescaled by normalization)
- SurfaceOpticalProperties: reflection matrix and emission vector on the streams (surface adapter)
- PreparedOptics: validated optics plus the grid they live on (normalization retry loop)

Array axis conventions:
- layer: counted from the surface upward
- hemisphere: 0 downwelling, 1 upwelling
- stream: index into ``AngularGrid.cosines``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .components.normalization import NormalizationStatus
    from .components.quadrature import AngularGrid


def _freeze(*arrays: NDArray[np.floating]) -> None:
    for arr in arrays:
        arr.setflags(write=False)


@dataclass(frozen=True)
class BulkOpticalProperties:
    """
    Layer-averaged bulk optical properties at one frequency.

    Attributes:
        frequency: Frequency [Hz].
        extinction: Particle extinction matrices [m^-1],
            (n_layers, 2, n_angles, S, S). Zero above the cloudbox.
        absorption: Particle absorption vectors [m^-1], (n_layers, 2, n_angles, S).
        gas_extinction: Gas absorption coefficient [m^-1], (n_layers,).
        nominal_extinction: Particle (0, 0) extinction at the phase-matrix
            temperature, (n_layers, 2, n_angles).
        nominal_absorption: Particle (0) absorption at the phase-matrix
            temperature, (n_layers, 2, n_angles).
    """

    frequency: float
    extinction: NDArray[np.floating]
    absorption: NDArray[np.floating]
    gas_extinction: NDArray[np.floating]
    nominal_extinction: NDArray[np.floating]
    nominal_absorption: NDArray[np.floating]

    def __post_init__(self):
        _freeze(
            self.extinction,
            self.absorption,
            self.gas_extinction,
            self.nominal_extinction,
            self.nominal_absorption,
        )

    @property
    def n_layers(self) -> int:
        return self.extinction.shape[0]

    @property
    def stokes_dim(self) -> int:
        return self.extinction.shape[-1]

    @property
    def total_extinction(self) -> NDArray[np.floating]:
        """Particle plus gas extinction matrices (gas only on the diagonal)."""
        eye = np.eye(self.stokes_dim)
        return self.extinction + self.gas_extinction[:, None, None, None, None] * eye

    @property
    def total_absorption(self) -> NDArray[np.floating]:
        """Particle plus gas absorption vectors (gas only in the first component)."""
        total = self.absorption.copy()
        total[..., 0] += self.gas_extinction[:, None, None]
        return total

    @property
    def scattering(self) -> NDArray[np.floating]:
        """Particle scattering coefficient ``ext[0, 0] - abs[0]``, (n_layers, 2, n_angles)."""
        return self.extinction[..., 0, 0] - self.absorption[..., 0]


@dataclass(frozen=True)
class ScatteringPhaseMatrix:
    """
    Azimuthally averaged bulk phase matrix.

    ``data[l, h_out, h_in, i_out, i_in]`` is the (S, S) matrix [m^-1 sr^-1]
    scattering radiance from stream ``i_in`` of hemisphere ``h_in`` into
    stream ``i_out`` of hemisphere ``h_out`` in layer ``l``. The four
    (h_out, h_in) pairs are the hemisphere blocks.

    Attributes:
        frequency: Frequency [Hz].
        data: Shape (n_layers, 2, 2, n_angles, n_angles, S, S).
    """

    frequency: float
    data: NDArray[np.floating]

    def __post_init__(self):
        _freeze(self.data)

    @property
    def n_layers(self) -> int:
        return self.data.shape[0]

    def scattering_integral(self, weights: NDArray[np.floating]) -> NDArray[np.floating]:
        """
        2*pi times the weighted sum of the (0, 0) element over outgoing streams.

        Returns:
            (n_layers, 2, n_angles) indexed by incident hemisphere and stream.
        """
        return 2.0 * np.pi * np.einsum("lhgoi,o->lgi", self.data[..., 0, 0], weights)

    def rescaled(self, factors: NDArray[np.floating]) -> ScatteringPhaseMatrix:
        """
        Copy with every element for incident (hemisphere, stream) divided by ``factors``.

        Args:
            factors: (n_layers, 2, n_angles) divisors; 1 leaves a column unchanged.
        """
        scaled = self.data / factors[:, None, :, None, :, None, None]
        return ScatteringPhaseMatrix(frequency=self.frequency, data=scaled)


@dataclass(frozen=True)
class SurfaceOpticalProperties:
    """
    Surface boundary condition on the quadrature streams.

    Upwelling radiance leaving the surface in stream ``i`` is
    ``sum_j reflection[i, j] @ down[j] + emission[i]``.

    Attributes:
        frequency: Frequency [Hz].
        skin_temperature: Surface skin temperature [K].
        reflection: (n_angles_out, n_angles_in, S, S).
        emission: Emitted radiance [W m^-2 sr^-1 Hz^-1], (n_angles, S).
        total_reflectance: Externally reported total reflectance per
            outgoing stream, (n_angles,).
    """

    frequency: float
    skin_temperature: float
    reflection: NDArray[np.floating]
    emission: NDArray[np.floating]
    total_reflectance: NDArray[np.floating]

    def __post_init__(self):
        _freeze(self.reflection, self.emission, self.total_reflectance)


@dataclass(frozen=True)
class PreparedOptics:
    """
    Optics that passed (or were allowed past) the normalization check.

    Attributes:
        grid: Angular grid the tensors are defined on.
        bulk: Bulk extinction and absorption.
        phase: Rescaled phase matrix.
        status: Normalization outcome on the final grid.
        max_deviation: Largest albedo deviation on the final grid.
        n_streams_requested: Stream count from the configuration.
        attempts: Number of grids tried.
    """

    grid: AngularGrid
    bulk: BulkOpticalProperties
    phase: ScatteringPhaseMatrix
    status: NormalizationStatus
    max_deviation: float
    n_streams_requested: int
    attempts: int = 1

    @property
    def refined(self) -> bool:
        return self.grid.n_streams != self.n_streams_requested
