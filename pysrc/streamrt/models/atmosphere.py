"""Atmosphere and particle input models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ..errors import InvalidAtmosphere

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..scattering_data import SingleScatteringData


def _as_readonly(values) -> NDArray[np.floating]:
    arr = np.array(values, dtype=np.float64)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class LayerGeometry:
    """
    Pre-gridded 1-D atmosphere.

    Levels are ordered from the surface upward; layer ``l`` lies between
    levels ``l`` and ``l + 1``.

    Attributes:
        altitudes: Level altitudes [m], strictly increasing.
        temperatures: Level temperatures [K], positive.
        pressures: Level pressures [Pa]. Optional; passed to the gas callback.
        vmr: Volume mixing ratios, shape (n_species, n_levels). Optional.
        position: (latitude, longitude) [deg] handed to the surface callback.
    """

    altitudes: NDArray[np.floating]
    temperatures: NDArray[np.floating]
    pressures: NDArray[np.floating] | None = None
    vmr: NDArray[np.floating] | None = None
    position: tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        object.__setattr__(self, "altitudes", _as_readonly(self.altitudes))
        object.__setattr__(self, "temperatures", _as_readonly(self.temperatures))
        n = self.altitudes.size

        if self.altitudes.ndim != 1 or n < 2:
            raise InvalidAtmosphere(
                "At least two altitude levels are required",
                field="altitudes",
                expected=">= 2 levels",
                got=str(self.altitudes.shape),
            )
        if np.any(np.diff(self.altitudes) <= 0.0):
            raise InvalidAtmosphere(
                "Altitudes must be strictly increasing from the surface upward",
                field="altitudes",
            )
        if self.temperatures.shape != (n,):
            raise InvalidAtmosphere(
                "Temperature profile does not match the altitude grid",
                field="temperatures",
                expected=str((n,)),
                got=str(self.temperatures.shape),
            )
        if np.any(~np.isfinite(self.temperatures)) or np.any(self.temperatures <= 0.0):
            raise InvalidAtmosphere("Temperatures must be finite and positive", field="temperatures")

        if self.pressures is not None:
            object.__setattr__(self, "pressures", _as_readonly(self.pressures))
            if self.pressures.shape != (n,):
                raise InvalidAtmosphere(
                    "Pressure profile does not match the altitude grid",
                    field="pressures",
                    expected=str((n,)),
                    got=str(self.pressures.shape),
                )
        if self.vmr is not None:
            vmr = _as_readonly(np.atleast_2d(self.vmr))
            object.__setattr__(self, "vmr", vmr)
            if vmr.shape[1] != n:
                raise InvalidAtmosphere(
                    "VMR field does not match the altitude grid",
                    field="vmr",
                    expected=f"(n_species, {n})",
                    got=str(vmr.shape),
                )

    @property
    def n_levels(self) -> int:
        return self.altitudes.size

    @property
    def n_layers(self) -> int:
        return self.altitudes.size - 1

    @property
    def thickness(self) -> NDArray[np.floating]:
        """Layer thicknesses [m]."""
        return np.diff(self.altitudes)

    def layer_midpoints(self) -> tuple[NDArray[np.floating], NDArray[np.floating], NDArray[np.floating]]:
        """
        Mean pressure, temperature and VMR of each boundary pair.

        Returns:
            (pressure (n_layers,), temperature (n_layers,), vmr (n_species, n_layers)).
            Missing pressure gives NaN; missing VMR gives zero species.
        """
        t_mid = 0.5 * (self.temperatures[:-1] + self.temperatures[1:])
        if self.pressures is not None:
            p_mid = 0.5 * (self.pressures[:-1] + self.pressures[1:])
        else:
            p_mid = np.full(self.n_layers, np.nan)
        if self.vmr is not None:
            vmr_mid = 0.5 * (self.vmr[:, :-1] + self.vmr[:, 1:])
        else:
            vmr_mid = np.zeros((0, self.n_layers))
        return p_mid, t_mid, vmr_mid


@dataclass(frozen=True)
class ParticleField:
    """
    Scattering elements and their number densities inside the cloudbox.

    The cloudbox must start at the surface: it spans levels
    ``cloudbox_limits[0] == 0`` through ``cloudbox_limits[1]``.

    Attributes:
        elements: Single-scattering data, one per scattering element.
        number_density: Number densities [m^-3], shape
            (n_elements, n_cloudbox_levels).
        cloudbox_limits: (lower, upper) level indices, inclusive.
    """

    elements: tuple[SingleScatteringData, ...]
    number_density: NDArray[np.floating]
    cloudbox_limits: tuple[int, int] | None = None

    def __post_init__(self):
        object.__setattr__(self, "elements", tuple(self.elements))
        if self.elements:
            pnd = _as_readonly(np.atleast_2d(self.number_density))
        else:
            raw = np.asarray(self.number_density)
            if self.cloudbox_limits is not None:
                n_cols = self.cloudbox_limits[1] - self.cloudbox_limits[0] + 1
            else:
                n_cols = raw.shape[-1] if raw.ndim and raw.shape[-1] > 1 else 2
            pnd = _as_readonly(np.zeros((0, n_cols)))
        object.__setattr__(self, "number_density", pnd)
        if self.cloudbox_limits is None:
            object.__setattr__(self, "cloudbox_limits", (0, max(pnd.shape[1] - 1, 1)))
        lower, upper = self.cloudbox_limits

        if lower != 0:
            raise InvalidAtmosphere(
                "The cloudbox must start at the surface",
                field="cloudbox_limits",
                expected="lower limit 0",
                got=str(lower),
            )
        if upper < 1:
            raise InvalidAtmosphere(
                "The cloudbox must contain at least one layer",
                field="cloudbox_limits",
                expected="upper limit >= 1",
                got=str(upper),
            )
        if len(self.elements) and pnd.shape != (len(self.elements), upper - lower + 1):
            raise InvalidAtmosphere(
                "Number density field does not match elements and cloudbox",
                field="number_density",
                expected=str((len(self.elements), upper - lower + 1)),
                got=str(pnd.shape),
            )
        if np.any(pnd < 0.0) or np.any(~np.isfinite(pnd)):
            raise InvalidAtmosphere("Number densities must be finite and non-negative", field="number_density")

    @classmethod
    def empty(cls, n_levels: int = 2) -> ParticleField:
        """Clear-sky field: no scattering elements."""
        return cls(elements=(), number_density=np.zeros((0, n_levels)), cloudbox_limits=(0, n_levels - 1))

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    @property
    def n_cloud_levels(self) -> int:
        return self.cloudbox_limits[1] - self.cloudbox_limits[0] + 1

    @property
    def n_cloud_layers(self) -> int:
        return self.n_cloud_levels - 1

    def mean_number_density(self) -> NDArray[np.floating]:
        """Number density averaged over each boundary pair, (n_elements, n_cloud_layers)."""
        return 0.5 * (self.number_density[:, :-1] + self.number_density[:, 1:])


__all__ = ["LayerGeometry", "ParticleField"]
