"""
Top-of-atmosphere radiance suppliers and simple gas callbacks.

A top supplier is any callable ``top(frequencies) -> (n_freq, 4)`` giving
the unpolarized downwelling radiance entering the atmosphere; the solver
applies the same vector to every downwelling stream.

A gas callback is any callable
``gas(frequency, pressure, temperature, vmr) -> (extinction, absorption)``
with an (S, S) extinction matrix and an (S,) absorption vector. Real
spectroscopy lives outside this package; the callbacks here cover clear
and grey test atmospheres.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ..constants import COSMIC_BG_TEMP
from ..errors import InvalidConfiguration
from ..physics.planck import planck

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


def _unpolarized(radiance: NDArray[np.floating]) -> NDArray[np.floating]:
    out = np.zeros((radiance.size, 4))
    out[:, 0] = radiance
    return out


def cosmic_background(frequencies: ArrayLike) -> NDArray[np.floating]:
    """Planck radiance of the cosmic microwave background, (n_freq, 4)."""
    f = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
    return _unpolarized(planck(f, COSMIC_BG_TEMP))


@dataclass(frozen=True)
class BlackbodyTop:
    """Downwelling blackbody radiance at a fixed temperature [K]."""

    temperature: float

    def __post_init__(self):
        if self.temperature < 0.0:
            raise InvalidConfiguration("temperature", f"must be >= 0 K, got {self.temperature}")

    def __call__(self, frequencies: ArrayLike) -> NDArray[np.floating]:
        f = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
        return _unpolarized(planck(f, self.temperature))


def transparent_gas(frequency, pressure, temperature, vmr):
    """Gas callback for a non-absorbing atmosphere."""
    return np.zeros((1, 1)), np.zeros(1)


@dataclass(frozen=True)
class ConstantAbsorptionGas:
    """
    Grey gas: absorption coefficient [m^-1] scaled by the total VMR.

    Without any species the bare coefficient is used.
    """

    coefficient: float

    def __post_init__(self):
        if self.coefficient < 0.0:
            raise InvalidConfiguration("coefficient", f"must be >= 0, got {self.coefficient}")

    def __call__(self, frequency, pressure, temperature, vmr):
        vmr = np.asarray(vmr, dtype=np.float64)
        value = self.coefficient * float(vmr.sum()) if vmr.size else self.coefficient
        return np.array([[value]]), np.array([value])


def constant_absorption_gas(coefficient: float) -> ConstantAbsorptionGas:
    """Gas callback returning a fixed absorption coefficient [m^-1] times total VMR."""
    return ConstantAbsorptionGas(coefficient)


__all__ = [
    "cosmic_background",
    "BlackbodyTop",
    "transparent_gas",
    "ConstantAbsorptionGas",
    "constant_absorption_gas",
]
