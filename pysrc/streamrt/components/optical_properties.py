"""
Optical property aggregator component.

Turns single-scattering data plus number densities into layer-averaged bulk
optics on the solver's stream directions, for one frequency at a time:
- Bulk extinction and absorption: each element is queried at the two
  boundary levels of a layer, the two values are averaged and weighted by
  the mean number density of the boundary pair.
- Phase matrix: zeroth azimuthal mode of the bulk phase matrix, built at a
  single temperature grid point per element (``pfct_method``).
- Gas: the gas callback evaluated at each layer's midpoint state, added as
  pure diagonal absorption.

Everything returned is a fresh immutable bundle; calling twice with the
same inputs gives bit-identical arrays.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np

from ..bundles import BulkOpticalProperties, ScatteringPhaseMatrix
from ..errors import InvalidAtmosphere, InvalidConfiguration
from ..rt_logging import get_logger
from ..scattering_data import ParticleType, mirror_average
from ..utils import interp_weights

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..models.atmosphere import LayerGeometry, ParticleField
    from ..scattering_data import SingleScatteringData
    from .quadrature import AngularGrid

logger = get_logger(__name__)

# (frequency, pressure, temperature, vmr) -> (extinction matrix, absorption vector)
GasCallback = Callable[[float, float, float, "NDArray[np.floating]"], tuple]


def gas_extinction(
    frequency: float,
    geometry: LayerGeometry,
    gas_callback: GasCallback | None,
) -> NDArray[np.floating]:
    """
    Gas absorption coefficient [m^-1] of every layer.

    The callback is invoked once per layer at the mean pressure,
    temperature and VMR of the layer's two boundary levels. Only the
    (0, 0) element of the returned extinction matrix is used.

    Returns:
        (n_layers,) array; zeros when ``gas_callback`` is None.
    """
    out = np.zeros(geometry.n_layers)
    if gas_callback is None:
        return out
    p_mid, t_mid, vmr_mid = geometry.layer_midpoints()
    for layer in range(geometry.n_layers):
        ext, _ = gas_callback(frequency, float(p_mid[layer]), float(t_mid[layer]), vmr_mid[:, layer])
        ext = np.asarray(ext, dtype=np.float64)
        value = float(ext.reshape(-1)[0])
        if not np.isfinite(value) or value < 0.0:
            raise InvalidAtmosphere(
                f"Gas callback returned extinction {value} at layer {layer}",
                field="gas_extinction",
                expected="finite, non-negative",
                got=str(value),
            )
        out[layer] = value
    return out


def _check_particles(geometry: LayerGeometry, particles: ParticleField) -> None:
    top = particles.cloudbox_limits[1]
    if top > geometry.n_levels - 1:
        raise InvalidAtmosphere(
            "Cloudbox extends above the top of the atmosphere",
            field="cloudbox_limits",
            expected=f"upper limit <= {geometry.n_levels - 1}",
            got=str(top),
        )


def aggregate(
    frequency: float,
    geometry: LayerGeometry,
    particles: ParticleField,
    grid: AngularGrid,
    stokes_dim: int = 1,
    pfct_method: str = "median",
    gas_callback: GasCallback | None = None,
) -> BulkOpticalProperties:
    """
    Bulk extinction and absorption of every layer on the stream directions.

    Args:
        frequency: Frequency [Hz].
        geometry: Level altitudes and temperatures.
        particles: Scattering elements and number densities in the cloudbox.
        grid: Angular grid; properties are evaluated on ``grid.za_grid``.
        stokes_dim: Number of Stokes components.
        pfct_method: Temperature grid point for the nominal values.
        gas_callback: Optional gas optical-property callback.

    Returns:
        BulkOpticalProperties. Particle terms are zero above the cloudbox.
    """
    _check_particles(geometry, particles)
    n = grid.n_angles
    za = grid.za_grid
    n_layers = geometry.n_layers
    n_cloud = particles.n_cloud_layers
    pnd_mean = particles.mean_number_density()

    extinction = np.zeros((n_layers, 2, n, stokes_dim, stokes_dim))
    absorption = np.zeros((n_layers, 2, n, stokes_dim))
    nominal_ext = np.zeros((n_layers, 2, n))
    nominal_abs = np.zeros((n_layers, 2, n))

    for e, element in enumerate(particles.elements):
        # Single-particle values at every cloudbox level
        level_ext = np.stack(
            [
                element.extinction_matrix(frequency, geometry.temperatures[k], za, stokes_dim)
                for k in range(particles.n_cloud_levels)
            ]
        )
        level_abs = np.stack(
            [
                element.absorption_vector(frequency, geometry.temperatures[k], za, stokes_dim)
                for k in range(particles.n_cloud_levels)
            ]
        )
        layer_ext = 0.5 * (level_ext[:-1] + level_ext[1:])
        layer_abs = 0.5 * (level_abs[:-1] + level_abs[1:])
        weight = pnd_mean[e]
        extinction[:n_cloud] += (weight[:, None, None, None] * layer_ext).reshape(n_cloud, 2, n, stokes_dim, stokes_dim)
        absorption[:n_cloud] += (weight[:, None, None] * layer_abs).reshape(n_cloud, 2, n, stokes_dim)

        t_fixed = element.t_grid[element.temperature_index(pfct_method)]
        fixed_ext = element.extinction_matrix(frequency, t_fixed, za, 1)[..., 0, 0].reshape(2, n)
        fixed_abs = element.absorption_vector(frequency, t_fixed, za, 1)[..., 0].reshape(2, n)
        nominal_ext[:n_cloud] += weight[:, None, None] * fixed_ext
        nominal_abs[:n_cloud] += weight[:, None, None] * fixed_abs

    return BulkOpticalProperties(
        frequency=float(frequency),
        extinction=extinction,
        absorption=absorption,
        gas_extinction=gas_extinction(frequency, geometry, gas_callback),
        nominal_extinction=nominal_ext,
        nominal_absorption=nominal_abs,
    )


def _azimuth_trapezoid(n_points: int) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    aa = np.linspace(0.0, 180.0, n_points)
    weights = np.full(n_points, 1.0 / (n_points - 1))
    weights[0] *= 0.5
    weights[-1] *= 0.5
    return aa, weights


def _native_azimuth_weights(aa_grid: NDArray[np.floating]) -> NDArray[np.floating]:
    """Midpoint-rule weights of a particle's own 0-180 deg azimuth grid, normalized by 360 deg."""
    weights = np.empty(aa_grid.size)
    weights[0] = aa_grid[1] - aa_grid[0]
    weights[1:-1] = aa_grid[2:] - aa_grid[:-2]
    weights[-1] = aa_grid[-1] - aa_grid[-2]
    return weights / 360.0


def element_phase_mode0(
    element: SingleScatteringData,
    frequency: float,
    temperature: float,
    za_grid: NDArray[np.floating],
    stokes_dim: int = 1,
    pfct_aa_grid_size: int = 19,
) -> NDArray[np.floating]:
    """
    Zeroth azimuthal mode of one element's phase matrix on a polar grid.

    Totally random particles are integrated over an equidistant 0-180 deg
    azimuth grid with the trapezoid rule. Azimuthally random particles use
    their native azimuth grid, then are interpolated bilinearly from the
    table's polar grid onto ``za_grid``.

    Returns:
        (n_za_out, n_za_in, S, S) with rows indexed by scattered direction.
    """
    za_grid = np.asarray(za_grid, dtype=np.float64)

    if element.ptype is ParticleType.TOTALLY_RANDOM:
        if pfct_aa_grid_size < 2:
            raise InvalidConfiguration("pfct_aa_grid_size", f"must be >= 2, got {pfct_aa_grid_size}")
        aa, aa_weights = _azimuth_trapezoid(pfct_aa_grid_size)
        out = np.empty((za_grid.size, za_grid.size, stokes_dim, stokes_dim))
        for j, za_inc in enumerate(za_grid):
            pha = element.phase_matrix(
                frequency, temperature, za_grid[:, None], aa[None, :], za_inc, 0.0, stokes_dim
            )
            out[:, j] = np.einsum("oars,a->ors", pha, aa_weights)
        return mirror_average(out)

    if element.ptype is ParticleType.AZIMUTHALLY_RANDOM:
        if element.aa_grid.size < 2:
            raise InvalidAtmosphere(
                f"Particle '{element.description}' needs at least two azimuth grid points",
                field="aa_grid",
                expected=">= 2 points",
                got=str(element.aa_grid.size),
            )
        table = element.interpolate_table(element.pha_mat_data, frequency, temperature)
        table = table[..., :stokes_dim, :stokes_dim]
        native = np.einsum("xaiyz,a->xiyz", table, _native_azimuth_weights(element.aa_grid))
        native = mirror_average(native)
        s0, s1, sw = interp_weights(element.za_grid, za_grid)
        i0, i1, iw = interp_weights(element.za_grid, za_grid)
        out = np.zeros((za_grid.size, za_grid.size, stokes_dim, stokes_dim))
        for si, swt in ((s0, 1.0 - sw), (s1, sw)):
            for ii, iwt in ((i0, 1.0 - iw), (i1, iw)):
                out += (swt[:, None] * iwt[None, :])[..., None, None] * native[si[:, None], ii[None, :]]
        return out

    element._require_supported()
    raise InvalidAtmosphere(f"Unsupported particle type {element.ptype}", field="ptype")


def build_phase_matrix(
    frequency: float,
    particles: ParticleField,
    grid: AngularGrid,
    n_layers: int,
    stokes_dim: int = 1,
    pfct_aa_grid_size: int = 19,
    pfct_method: str = "median",
) -> ScatteringPhaseMatrix:
    """
    Bulk zeroth-mode phase matrix of every layer.

    Each element contributes its mode-0 matrix at its ``pfct_method``
    temperature grid point, weighted by the layer's mean number density.
    Layers above the cloudbox get zero.

    Returns:
        ScatteringPhaseMatrix with data (n_layers, 2, 2, n, n, S, S).
    """
    n = grid.n_angles
    n_cloud = particles.n_cloud_layers
    pnd_mean = particles.mean_number_density()
    data = np.zeros((n_layers, 2, 2, n, n, stokes_dim, stokes_dim))

    for e, element in enumerate(particles.elements):
        if not np.any(pnd_mean[e] > 0.0):
            continue
        t_fixed = element.t_grid[element.temperature_index(pfct_method)]
        mode0 = element_phase_mode0(element, frequency, t_fixed, grid.za_grid, stokes_dim, pfct_aa_grid_size)
        # (2n_out, 2n_in) -> (h_out, h_in, i_out, i_in)
        blocks = mode0.reshape(2, n, 2, n, stokes_dim, stokes_dim).transpose(0, 2, 1, 3, 4, 5)
        data[:n_cloud] += pnd_mean[e][:, None, None, None, None, None, None] * blocks

    logger.debug(f"Built phase matrix for {particles.n_elements} elements on {grid.n_streams} streams")
    return ScatteringPhaseMatrix(frequency=float(frequency), data=data)


__all__ = [
    "GasCallback",
    "gas_extinction",
    "aggregate",
    "element_phase_mode0",
    "build_phase_matrix",
]
