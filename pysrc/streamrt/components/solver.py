"""
Radiative-transfer core solver.

Successive orders of scattering on a fixed stream grid. Each layer is split
into equal sublayers no thicker than ``max_delta_tau``. Within a sublayer
the extinction matrix is constant and the source is taken as constant, so
transport over a path ``s`` is exact:

    I(s) = T I(0) + Q J,  T = expm(-K s),  Q = integral_0^s expm(-K t) dt

with ``J = a B + sum_j 2 pi w_j Z_j I_j`` built from the previous field.

One ``step`` is one sweep: downwelling radiance is propagated from the top
boundary to the surface, the surface reflects and emits, and upwelling
radiance is propagated back up. Starting from a zero field, step ``k``
contains all scattering orders below ``k``.

Field layout inside the solver is (n_sublevels, 2, n_angles, S). Output
is reduced to the input levels as (n_levels, 2 * n_angles, S), streams
ordered as ``grid.za_grid``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from ..constants import MAX_SUBLAYERS_PER_LAYER
from ..errors import InvalidAtmosphere, NumericalDivergence
from ..models.state import SolverState
from ..physics.planck import planck
from ..rt_logging import get_logger
from ..utils import interp_poly

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..bundles import PreparedOptics, SurfaceOpticalProperties
    from ..models.atmosphere import LayerGeometry
    from .quadrature import AngularGrid

logger = get_logger(__name__)


def transport_operators(
    extinction: NDArray[np.floating], path: NDArray[np.floating]
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """
    Transmission ``expm(-K s)`` and its path integral for stacked matrices.

    Args:
        extinction: (..., S, S) extinction matrices [m^-1].
        path: (...) path lengths [m].

    Returns:
        (T, Q), both (..., S, S).
    """
    path = np.asarray(path, dtype=np.float64)
    if extinction.shape[-1] == 1:
        k = extinction[..., 0, 0]
        x = k * path
        positive = k > 0.0
        integral = np.where(positive, -np.expm1(-x) / np.where(positive, k, 1.0), path)
        return np.exp(-x)[..., None, None], integral[..., None, None]

    lam, vec = np.linalg.eig(extinction)
    inv = np.linalg.inv(vec)
    x = lam * path[..., None]
    nonzero = np.abs(lam) > 0.0
    phi = np.where(nonzero, -np.expm1(-x) / np.where(nonzero, lam, 1.0), path[..., None])
    trans = (vec * np.exp(-x)[..., None, :]) @ inv
    integral = (vec * phi[..., None, :]) @ inv
    return trans.real, integral.real


@dataclass(frozen=True)
class PackedLayers:
    """
    Contiguous per-sublayer arrays consumed by the sweep.

    Attributes:
        layer_index: Parent layer of each sublayer, (M,).
        altitudes: Sublevel altitudes [m], (M + 1,).
        level_index: Sublevel position of every input level, (n_levels,).
        transmission: (M, 2, n, S, S).
        integral: (M, 2, n, S, S).
        emission_source: Thermal source ``a * B`` [W m^-3 sr^-1 Hz^-1], (M, 2, n, S).
        scattering_kernel: ``2 pi w_j Z`` per layer, (n_layers, 2, 2, n, n, S, S).
        scattering_layers: Layers with a non-zero kernel.
    """

    layer_index: NDArray[np.intp]
    altitudes: NDArray[np.floating]
    level_index: NDArray[np.intp]
    transmission: NDArray[np.floating]
    integral: NDArray[np.floating]
    emission_source: NDArray[np.floating]
    scattering_kernel: NDArray[np.floating]
    scattering_layers: tuple[int, ...]

    @property
    def n_sublayers(self) -> int:
        return self.layer_index.size


def sublayer_counts(
    geometry: LayerGeometry, extinction: NDArray[np.floating], max_delta_tau: float
) -> NDArray[np.intp]:
    """Sublayers per layer so that each has vertical optical thickness <= ``max_delta_tau``."""
    k_max = extinction[..., 0, 0].reshape(geometry.n_layers, -1).max(axis=1)
    tau = k_max * geometry.thickness
    counts = np.maximum(1, np.ceil(tau / max_delta_tau)).astype(np.intp)
    if np.any(counts > MAX_SUBLAYERS_PER_LAYER):
        logger.warning(
            f"Layer optical thickness {tau.max():.3g} needs more than {MAX_SUBLAYERS_PER_LAYER} "
            "sublayers; capping"
        )
        counts = np.minimum(counts, MAX_SUBLAYERS_PER_LAYER)
    return counts


def _pack(
    geometry: LayerGeometry,
    optics: PreparedOptics,
    frequency: float,
    max_delta_tau: float,
) -> PackedLayers:
    """Expand per-layer optics to per-sublayer contiguous arrays."""
    grid = optics.grid
    extinction = optics.bulk.total_extinction
    absorption = optics.bulk.total_absorption
    counts = sublayer_counts(geometry, extinction, max_delta_tau)

    layer_index = np.repeat(np.arange(geometry.n_layers), counts)
    sub_thickness = geometry.thickness / counts
    starts = np.concatenate([[0], np.cumsum(counts)])
    altitudes = np.concatenate(
        [geometry.altitudes[i] + sub_thickness[i] * np.arange(counts[i]) for i in range(geometry.n_layers)]
        + [geometry.altitudes[-1:]]
    )

    path = sub_thickness[:, None, None] / grid.cosines[None, None, :]
    path = np.broadcast_to(path, extinction.shape[:3])
    trans_layer, integ_layer = transport_operators(extinction, path)

    temperatures = np.interp(altitudes, geometry.altitudes, geometry.temperatures)
    b_sub = planck(frequency, temperatures)
    b_mid = 0.5 * (b_sub[:-1] + b_sub[1:])
    emission_source = absorption[layer_index] * b_mid[:, None, None, None]

    kernel = 2.0 * np.pi * optics.phase.data * grid.weights[None, None, None, None, :, None, None]
    scattering_layers = tuple(int(i) for i in np.flatnonzero(np.any(kernel != 0.0, axis=(1, 2, 3, 4, 5, 6))))

    return PackedLayers(
        layer_index=layer_index,
        altitudes=altitudes,
        level_index=starts.astype(np.intp),
        transmission=np.ascontiguousarray(trans_layer[layer_index]),
        integral=np.ascontiguousarray(integ_layer[layer_index]),
        emission_source=np.ascontiguousarray(emission_source),
        scattering_kernel=kernel,
        scattering_layers=scattering_layers,
    )


class RTSolver:
    """
    Per-frequency discrete-ordinate solver.

    Built from validated optics and a resampled surface; ``step`` is a pure
    map from one field to the next and owns no hidden state besides the
    iteration counter used for error reporting.

    Args:
        geometry: Atmosphere levels.
        optics: Validated optics on their (possibly refined) grid.
        surface: Surface reflection and emission on the same grid.
        top_radiance: Downwelling Stokes vector at the top, (S,) or (4,).
        frequency: Frequency [Hz].
        max_delta_tau: Largest sublayer optical thickness.
    """

    def __init__(
        self,
        geometry: LayerGeometry,
        optics: PreparedOptics,
        surface: SurfaceOpticalProperties,
        top_radiance: NDArray[np.floating],
        frequency: float,
        max_delta_tau: float,
    ):
        self.geometry = geometry
        self.grid = optics.grid
        self.frequency = float(frequency)
        self.stokes_dim = optics.bulk.stokes_dim
        if optics.phase.n_layers != geometry.n_layers or optics.bulk.n_layers != geometry.n_layers:
            raise InvalidAtmosphere(
                "Optical properties do not match the layer geometry",
                field="optics",
                expected=f"{geometry.n_layers} layers",
                got=f"{optics.bulk.n_layers} layers",
            )
        self.surface = surface
        self.top_radiance = np.asarray(top_radiance, dtype=np.float64).reshape(-1)[: self.stokes_dim]
        self.packed = _pack(geometry, optics, self.frequency, max_delta_tau)
        self.iteration = 0
        self.state = SolverState.IDLE
        logger.debug(
            f"Solver at {self.frequency:.6e} Hz: {self.grid.n_streams} streams, "
            f"{self.packed.n_sublayers} sublayers"
        )

    @property
    def field_shape(self) -> tuple[int, int, int, int]:
        return (self.packed.n_sublayers + 1, 2, self.grid.n_angles, self.stokes_dim)

    def initial_field(self) -> NDArray[np.floating]:
        """Zero field; the first step then gives the unscattered solution."""
        return np.zeros(self.field_shape)

    def _source(self, field: NDArray[np.floating]) -> NDArray[np.floating]:
        packed = self.packed
        source = packed.emission_source.copy()
        mean = 0.5 * (field[:-1] + field[1:])
        for layer in packed.scattering_layers:
            sub = packed.layer_index == layer
            source[sub] += np.einsum("hgijrs,mgjs->mhir", packed.scattering_kernel[layer], mean[sub])
        return source

    def step(self, field: NDArray[np.floating]) -> NDArray[np.floating]:
        """
        One sweep: down from the top, surface reflection, up to the top.

        Raises:
            NumericalDivergence: The new field contains a non-finite value.
        """
        self.state = SolverState.LAYER_SWEEP
        self.iteration += 1
        packed = self.packed
        source = self._source(field)
        added = np.einsum("mhirs,mhis->mhir", packed.integral, source)
        trans = packed.transmission
        n_sub = packed.n_sublayers

        new = np.empty_like(field)
        new[n_sub, 0] = self.top_radiance
        for m in range(n_sub - 1, -1, -1):
            new[m, 0] = np.einsum("irs,is->ir", trans[m, 0], new[m + 1, 0]) + added[m, 0]

        new[0, 1] = np.einsum("ijrs,js->ir", self.surface.reflection, new[0, 0]) + self.surface.emission
        for m in range(n_sub):
            new[m + 1, 1] = np.einsum("irs,is->ir", trans[m, 1], new[m, 1]) + added[m, 1]

        if not np.all(np.isfinite(new)):
            self.state = SolverState.FAILED
            sublevel, hemisphere, stream, _ = (int(v) for v in np.argwhere(~np.isfinite(new))[0])
            layer = int(packed.layer_index[min(sublevel, n_sub - 1)])
            raise NumericalDivergence(
                self.frequency, layer, hemisphere * self.grid.n_angles + stream, self.iteration
            )
        self.state = SolverState.CONVERGING
        return new

    def level_field(self, field: NDArray[np.floating]) -> NDArray[np.floating]:
        """Radiance at the input levels, (n_levels, 2 * n_angles, S)."""
        at_levels = field[self.packed.level_index]
        return at_levels.reshape(at_levels.shape[0], 2 * self.grid.n_angles, self.stokes_dim)


def interpolate_streams(
    data: NDArray[np.floating],
    source: AngularGrid,
    target: AngularGrid,
    order: int = 1,
    use_cosine: bool = False,
) -> NDArray[np.floating]:
    """
    Interpolate level radiance from one stream grid onto another.

    Each hemisphere is interpolated separately with a polynomial of
    ``order`` in za (or cos(za) with ``use_cosine``).

    Args:
        data: (n_levels, 2 * source.n_angles, S).
        source: Grid ``data`` is defined on.
        target: Grid to interpolate onto.

    Returns:
        (n_levels, 2 * target.n_angles, S).
    """
    x_src = source.cosines if use_cosine else source.angles
    x_tgt = target.cosines if use_cosine else target.angles
    order_idx = np.argsort(x_src)
    n_src = source.n_angles
    halves = []
    for h in range(2):
        values = data[:, h * n_src : (h + 1) * n_src][:, order_idx]
        # Stream axis first for interp_poly
        moved = np.moveaxis(values, 1, 0)
        halves.append(np.moveaxis(interp_poly(x_src[order_idx], moved, x_tgt, order), 0, 1))
    return np.concatenate(halves, axis=1)


__all__ = [
    "transport_operators",
    "PackedLayers",
    "sublayer_counts",
    "RTSolver",
    "interpolate_streams",
]
