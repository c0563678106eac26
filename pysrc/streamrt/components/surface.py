"""
Surface reflection adapter component.

Maps an external surface model onto the solver's streams. The model is
called once per reflected (upwelling) stream with that stream's line of
sight and returns its own sampling of incident directions:
- no samples: blackbody-like, emission only
- one sample: specular, must hit the mirror stream exactly
- several samples: de-weighted by their cosine bin widths, interpolated
  onto the downwelling streams and re-weighted with the quadrature

Each reflected stream's row is then rescaled so its total reflectance
equals what the model reported.

Surface models are callables ``model(frequencies, position, los_za)``
returning ``SurfaceRTProperties``. Four are built in: ``BlackbodySurface``,
``LambertianSurface``, ``SpecularSurface`` and ``FresnelSurface``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from ..bundles import SurfaceOpticalProperties
from ..constants import (
    DEG2RAD,
    GRID_EXTRAPOLATION,
    MAX_SKIN_TEMPERATURE,
    MIN_SKIN_TEMPERATURE,
    SPECULAR_ANGLE_RTOL,
)
from ..errors import EnergyBudgetViolation, GeometryMismatch, InvalidAtmosphere
from ..physics.planck import planck
from ..rt_logging import get_logger
from ..utils import bin_edges, cosine_bin_weights, interp_linear_limited

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from .quadrature import AngularGrid

logger = get_logger(__name__)


@dataclass
class SurfaceRTProperties:
    """
    What a surface model returns for one reflected direction.

    Attributes:
        skin_temperature: Surface skin temperature [K].
        emission: Emitted Stokes vectors, (n_freq, 4).
        los: Incident line-of-sight polar angles [deg], (n_samples,).
        reflection: Reflection matrices, (n_samples, n_freq, 4, 4).
    """

    skin_temperature: float
    emission: NDArray[np.floating]
    los: NDArray[np.floating]
    reflection: NDArray[np.floating]


class SurfaceModel(Protocol):
    def __call__(
        self, frequencies: NDArray[np.floating], position: tuple[float, float], los_za: float
    ) -> SurfaceRTProperties: ...


def _check_skin_temperature(value: float) -> None:
    if not MIN_SKIN_TEMPERATURE <= value <= MAX_SKIN_TEMPERATURE:
        raise InvalidAtmosphere(
            f"Surface skin temperature {value} K is outside the valid range",
            field="skin_temperature",
            expected=f"[{MIN_SKIN_TEMPERATURE:g}, {MAX_SKIN_TEMPERATURE:g}] K",
            got=f"{value} K",
        )


def _resample_samples(
    los: NDArray[np.floating],
    rmatrix: NDArray[np.floating],
    grid: AngularGrid,
) -> NDArray[np.floating]:
    """Interpolate several sampled reflection matrices onto the downwelling streams."""
    order = np.argsort(los)
    los = los[order]
    rmatrix = rmatrix[order]
    lower, upper = bin_edges(los)
    lower = np.clip(lower, 0.0, 90.0)
    upper = np.clip(upper, 0.0, 90.0)
    bin_weight = cosine_bin_weights(lower, upper)
    safe = np.where(bin_weight > 0.0, bin_weight, 1.0)
    density = np.where((bin_weight > 0.0)[:, None, None], rmatrix / safe[:, None, None], 0.0)
    at_streams = interp_linear_limited(los, density, grid.angles, extrapolation=GRID_EXTRAPOLATION)
    return at_streams * (2.0 * grid.weights * grid.cosines)[:, None, None]


def resample_surface(
    surface_model: SurfaceModel,
    frequency: float,
    position: tuple[float, float],
    grid: AngularGrid,
    stokes_dim: int = 1,
) -> SurfaceOpticalProperties:
    """
    Surface reflection matrix and emission on the quadrature streams.

    Args:
        surface_model: Surface callback.
        frequency: Frequency [Hz].
        position: (latitude, longitude) [deg] passed through to the model.
        grid: Angular grid of the solve.
        stokes_dim: Number of Stokes components.

    Returns:
        SurfaceOpticalProperties with reflection (n, n, S, S) indexed
        [reflected stream, incident stream].

    Raises:
        InvalidAtmosphere: Skin temperature outside [0, 1000] K.
        GeometryMismatch: A specular sample does not hit the mirror stream,
            or the returned arrays disagree on the sample count.
        EnergyBudgetViolation: Non-zero reported reflectance that the
            resampled matrix cannot carry.
    """
    n = grid.n_angles
    za_grid = grid.za_grid
    angles = grid.angles
    frequencies = np.array([frequency], dtype=np.float64)

    reflection = np.zeros((n, n, stokes_dim, stokes_dim))
    emission = np.zeros((n, stokes_dim))
    total_reflectance = np.zeros(n)
    skin_temperature = None

    for rmu in range(n):
        rtp_los = float(za_grid[n + rmu])
        props = surface_model(frequencies, position, rtp_los)
        _check_skin_temperature(float(props.skin_temperature))
        skin_temperature = float(props.skin_temperature)

        los = np.atleast_1d(np.asarray(props.los, dtype=np.float64))
        emission[rmu] = np.asarray(props.emission, dtype=np.float64).reshape(-1, 4)[0, :stokes_dim]
        if los.size == 0:
            continue

        rmatrix = np.asarray(props.reflection, dtype=np.float64)
        if rmatrix.ndim != 4 or rmatrix.shape[0] != los.size or rmatrix.shape[2:] != (4, 4):
            raise GeometryMismatch(
                "surface model returned reflection matrices that do not match its directions",
                expected=f"({los.size}, n_freq, 4, 4)",
                got=str(rmatrix.shape),
                stream=rmu,
            )
        rmatrix = rmatrix[:, 0]

        r_ext = float(rmatrix[:, 0, 0].sum())
        total_reflectance[rmu] = r_ext
        if los.size == 1:
            if not np.isclose(los[0], angles[rmu], rtol=SPECULAR_ANGLE_RTOL, atol=SPECULAR_ANGLE_RTOL):
                raise GeometryMismatch(
                    "specular direction does not match the mirror stream",
                    expected=float(angles[rmu]),
                    got=float(los[0]),
                    stream=rmu,
                )
            reflection[rmu, rmu] = rmatrix[0, :stokes_dim, :stokes_dim]
        else:
            reflection[rmu] = _resample_samples(los, rmatrix[:, :stokes_dim, :stokes_dim], grid)

        row_sum = float(reflection[rmu, :, 0, 0].sum())
        if row_sum == 0.0:
            if r_ext != 0.0:
                raise EnergyBudgetViolation(
                    f"reported reflectance {r_ext:.3g} vanished after resampling onto the streams",
                    frequency=frequency,
                    stream=n + rmu,
                )
        else:
            reflection[rmu] *= r_ext / row_sum

    logger.debug(f"Surface at {frequency:.6e} Hz: reflectance {total_reflectance.round(4).tolist()}")
    return SurfaceOpticalProperties(
        frequency=float(frequency),
        skin_temperature=skin_temperature,
        reflection=reflection,
        emission=emission,
        total_reflectance=total_reflectance,
    )


# =============================================================================
# Built-in surface models
# =============================================================================


def _blackbody_emission(frequencies: ArrayLike, temperature: float) -> NDArray[np.floating]:
    f = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
    out = np.zeros((f.size, 4))
    out[:, 0] = planck(f, temperature)
    return out


@dataclass(frozen=True)
class BlackbodySurface:
    """Non-reflecting surface emitting Planck radiance at ``temperature``."""

    temperature: float

    def __call__(self, frequencies, position, los_za) -> SurfaceRTProperties:
        f = np.atleast_1d(frequencies)
        return SurfaceRTProperties(
            skin_temperature=self.temperature,
            emission=_blackbody_emission(f, self.temperature),
            los=np.zeros(0),
            reflection=np.zeros((0, f.size, 4, 4)),
        )


@dataclass(frozen=True)
class LambertianSurface:
    """
    Isotropic (Lambertian) reflector.

    Incident directions are sampled at the centres of ``n_angles`` equal
    polar bins over 0-90 deg; each sample carries the albedo share of its
    cosine-weighted bin.

    Attributes:
        temperature: Skin temperature [K].
        albedo: Total reflectance in [0, 1].
        n_angles: Number of sampled incident directions, >= 2.
    """

    temperature: float
    albedo: float
    n_angles: int = 20

    def __post_init__(self):
        if not 0.0 <= self.albedo <= 1.0:
            raise InvalidAtmosphere(
                "Lambertian albedo must lie in [0, 1]", field="albedo", expected="[0, 1]", got=str(self.albedo)
            )
        if self.n_angles < 2:
            raise InvalidAtmosphere(
                "Lambertian surface needs at least two sample angles", field="n_angles", got=str(self.n_angles)
            )

    def __call__(self, frequencies, position, los_za) -> SurfaceRTProperties:
        f = np.atleast_1d(frequencies)
        edges = np.linspace(0.0, 90.0, self.n_angles + 1)
        los = 0.5 * (edges[:-1] + edges[1:])
        share = cosine_bin_weights(edges[:-1], edges[1:])
        share = share / share.sum()
        reflection = np.zeros((los.size, f.size, 4, 4))
        reflection[:, :, 0, 0] = self.albedo * share[:, None]
        return SurfaceRTProperties(
            skin_temperature=self.temperature,
            emission=(1.0 - self.albedo) * _blackbody_emission(f, self.temperature),
            los=los,
            reflection=reflection,
        )


def _specular_emission(frequencies, temperature: float, matrix: NDArray[np.floating]) -> NDArray[np.floating]:
    # Kirchhoff: emissivity vector is (1, 0, 0, 0) minus the first column of R
    emissivity = np.array([1.0, 0.0, 0.0, 0.0]) - matrix[:, 0]
    bb = planck(np.atleast_1d(np.asarray(frequencies, dtype=np.float64)), temperature)
    return bb[:, None] * emissivity[None, :]


@dataclass(frozen=True)
class SpecularSurface:
    """
    Flat mirror-like surface with a fixed reflection matrix.

    Attributes:
        temperature: Skin temperature [K].
        reflectivity: Scalar reflectivity or a (4, 4) reflection matrix.
    """

    temperature: float
    reflectivity: float | NDArray[np.floating] = 0.0

    def matrix(self) -> NDArray[np.floating]:
        r = np.asarray(self.reflectivity, dtype=np.float64)
        if r.ndim == 0:
            return float(r) * np.eye(4)
        return r.reshape(4, 4)

    def __call__(self, frequencies, position, los_za) -> SurfaceRTProperties:
        f = np.atleast_1d(frequencies)
        matrix = self.matrix()
        return SurfaceRTProperties(
            skin_temperature=self.temperature,
            emission=_specular_emission(f, self.temperature, matrix),
            los=np.array([180.0 - los_za]),
            reflection=np.broadcast_to(matrix, (1, f.size, 4, 4)).copy(),
        )


def fresnel_matrix(refractive_index: complex, incidence_angle: float) -> NDArray[np.floating]:
    """
    4x4 Fresnel reflection matrix of a flat interface from vacuum.

    Args:
        refractive_index: Complex refractive index of the medium below.
        incidence_angle: Angle from the surface normal [deg].
    """
    cos_i = np.cos(incidence_angle * DEG2RAD)
    sin2 = np.sin(incidence_angle * DEG2RAD) ** 2
    n2 = complex(refractive_index) ** 2
    root = np.sqrt(n2 - sin2)
    r_v = (n2 * cos_i - root) / (n2 * cos_i + root)
    r_h = (cos_i - root) / (cos_i + root)
    rv = abs(r_v) ** 2
    rh = abs(r_h) ** 2
    cross = r_v * np.conj(r_h)
    matrix = np.zeros((4, 4))
    matrix[0, 0] = matrix[1, 1] = 0.5 * (rv + rh)
    matrix[0, 1] = matrix[1, 0] = 0.5 * (rv - rh)
    matrix[2, 2] = matrix[3, 3] = cross.real
    matrix[2, 3] = cross.imag
    matrix[3, 2] = -cross.imag
    return matrix


@dataclass(frozen=True)
class FresnelSurface:
    """Specular surface whose reflectivities follow from a complex refractive index."""

    temperature: float
    refractive_index: complex

    def __call__(self, frequencies, position, los_za) -> SurfaceRTProperties:
        f = np.atleast_1d(frequencies)
        incidence = 180.0 - los_za
        matrix = fresnel_matrix(self.refractive_index, incidence)
        return SurfaceRTProperties(
            skin_temperature=self.temperature,
            emission=_specular_emission(f, self.temperature, matrix),
            los=np.array([incidence]),
            reflection=np.broadcast_to(matrix, (1, f.size, 4, 4)).copy(),
        )


__all__ = [
    "SurfaceRTProperties",
    "SurfaceModel",
    "resample_surface",
    "BlackbodySurface",
    "LambertianSurface",
    "SpecularSurface",
    "FresnelSurface",
    "fresnel_matrix",
]
