"""
Blackbody radiance and brightness-temperature conversions.

All radiances are spectral radiances per unit frequency,
W m^-2 sr^-1 Hz^-1.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from ..constants import BOLTZMANN_CONST, PLANCK_CONST, SPEED_OF_LIGHT

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


def planck(frequency: ArrayLike, temperature: ArrayLike) -> NDArray[np.floating]:
    """
    Planck function B_nu(T).

    Broadcasts ``frequency`` [Hz] against ``temperature`` [K]. A temperature
    of 0 K gives exactly zero radiance.
    """
    f = np.asarray(frequency, dtype=np.float64)
    t = np.asarray(temperature, dtype=np.float64)
    a = 2.0 * PLANCK_CONST * f**3 / SPEED_OF_LIGHT**2
    with np.errstate(divide="ignore", over="ignore"):
        b = PLANCK_CONST * f / (BOLTZMANN_CONST * t)
        return a / np.expm1(b)


def rayleigh_jeans_temperature(radiance: ArrayLike, frequency: ArrayLike) -> NDArray[np.floating]:
    """Rayleigh-Jeans brightness temperature [K] of a spectral radiance."""
    f = np.asarray(frequency, dtype=np.float64)
    return np.asarray(radiance, dtype=np.float64) * SPEED_OF_LIGHT**2 / (2.0 * BOLTZMANN_CONST * f**2)


def stokes_planck(frequency: float, temperature: float, stokes_dim: int = 4) -> NDArray[np.floating]:
    """Unpolarized blackbody Stokes vector ``[B, 0, 0, 0][:stokes_dim]``."""
    vec = np.zeros(stokes_dim)
    vec[0] = planck(frequency, temperature)
    return vec
