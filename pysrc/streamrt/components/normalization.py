"""
Normalization and validation component.

Checks the single-scattering-albedo consistency of the bulk phase matrix:
for every layer and incident stream, 2 pi times the quadrature-weighted
sum of Z[0, 0] over all outgoing streams must reproduce the nominal
albedo ``(ext - abs) / ext`` within ``pfct_threshold``.

A failed check asks for a finer grid (``REFINE``) while the stream ceiling
allows it. Past the ceiling it is fatal, unless robust mode downgrades it
to ``WARN``. Whatever the outcome, a phase matrix handed to the solver is
rescaled column by column so that it scatters exactly the actual
``ext - abs`` of the layer.

``prepare_optics`` owns the retry loop: quadrature, aggregation and this
check are rerun with more streams until the check passes, for one
frequency at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from ..bundles import PreparedOptics
from ..constants import NORM_RATIO_WARN, NORM_WARN_FRACTION
from ..errors import EnergyBudgetViolation
from ..rt_logging import get_logger
from .optical_properties import aggregate, build_phase_matrix
from .quadrature import build_quadrature

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..bundles import BulkOpticalProperties, ScatteringPhaseMatrix
    from ..models.atmosphere import LayerGeometry, ParticleField
    from ..models.config import SolverConfig
    from .optical_properties import GasCallback

logger = get_logger(__name__)


class NormalizationStatus(str, Enum):
    """Outcome of the albedo check."""

    OK = "ok"
    REFINE = "refine"
    WARN = "warn"


@dataclass(frozen=True)
class NormalizationResult:
    """
    Result of ``validate``.

    Attributes:
        status: OK, REFINE or WARN.
        max_deviation: Largest absolute albedo deviation found.
        required_streams: Stream count to retry with (REFINE only).
        phase: Rescaled phase matrix (OK and WARN only).
        worst: (layer, stream) of the largest deviation; the stream indexes
            the mirrored za grid.
    """

    status: NormalizationStatus
    max_deviation: float
    required_streams: int | None = None
    phase: ScatteringPhaseMatrix | None = None
    worst: tuple[int, int] | None = None


def albedo_deviation(
    bulk: BulkOpticalProperties,
    phase: ScatteringPhaseMatrix,
    weights: NDArray[np.floating],
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """
    Absolute deviation between phase-matrix albedo and nominal albedo.

    Args:
        weights: Quadrature weights of one hemisphere (``grid.weights``).

    Returns:
        (deviation, scattering_integral), both (n_layers, 2, n_angles).
        Deviation is zero wherever the nominal extinction is zero.
    """
    sca_integ = phase.scattering_integral(weights)
    ext_nom = bulk.nominal_extinction
    abs_nom = bulk.nominal_absorption
    mask = ext_nom > 0.0
    safe_ext = np.where(mask, ext_nom, 1.0)
    w0_nominal = (ext_nom - abs_nom) / safe_ext
    w0_actual = sca_integ / safe_ext
    deviation = np.where(mask, np.abs(w0_actual - w0_nominal), 0.0)
    return deviation, sca_integ


def rescale_phase(
    bulk: BulkOpticalProperties,
    phase: ScatteringPhaseMatrix,
    sca_integ: NDArray[np.floating],
) -> ScatteringPhaseMatrix:
    """
    Rescale each incident column to scatter exactly the actual ``ext - abs``.

    The actual particle extinction and absorption (interpolated in
    temperature, not the nominal fixed-temperature values) set the target.
    Columns with a zero integral or zero target are left unchanged.
    """
    target = bulk.scattering
    valid = (sca_integ > 0.0) & (target > 0.0)
    factors = np.where(valid, sca_integ / np.where(valid, target, 1.0), 1.0)
    return phase.rescaled(factors)


def _warn_diagnostics(
    bulk: BulkOpticalProperties,
    deviation: NDArray[np.floating],
    sca_integ: NDArray[np.floating],
    tolerance: float,
) -> None:
    max_dev = float(deviation.max()) if deviation.size else 0.0
    if max_dev > NORM_WARN_FRACTION * tolerance:
        logger.warning(
            f"Scattering albedo deviation {max_dev:.3g} at {bulk.frequency:.6e} Hz "
            f"exceeds {NORM_WARN_FRACTION:g} of the tolerance {tolerance:g}"
        )
    nominal_sca = bulk.nominal_extinction - bulk.nominal_absorption
    mask = nominal_sca > 0.0
    if np.any(mask):
        ratio = sca_integ[mask] / nominal_sca[mask]
        worst = float(np.max(np.abs(1.0 - ratio)))
        if worst > NORM_RATIO_WARN:
            logger.warning(
                f"Phase matrix normalization ratio deviates from 1 by {worst:.3g} at {bulk.frequency:.6e} Hz"
            )


def validate(
    bulk: BulkOpticalProperties,
    phase: ScatteringPhaseMatrix,
    weights: NDArray[np.floating],
    tolerance: float,
    n_streams: int | None = None,
    auto_inc_nstreams: int = 0,
    robust: bool = False,
) -> NormalizationResult:
    """
    Check the single-scattering-albedo invariant and rescale the phase matrix.

    Args:
        bulk: Bulk optics from the aggregator.
        phase: Unscaled bulk phase matrix on the same grid.
        weights: Quadrature weights of one hemisphere.
        tolerance: Allowed absolute albedo deviation.
        n_streams: Current stream count; needed to request refinement.
        auto_inc_nstreams: Refinement ceiling, 0 disables refinement.
        robust: Downgrade a failure past the ceiling to ``WARN``.

    Returns:
        NormalizationResult; ``phase`` is the rescaled matrix unless the
        status is REFINE.

    Raises:
        EnergyBudgetViolation: Deviation above tolerance with no refinement
            left and ``robust`` unset.
    """
    deviation, sca_integ = albedo_deviation(bulk, phase, weights)
    max_dev = float(deviation.max()) if deviation.size else 0.0
    worst = None
    if deviation.size:
        layer, hemisphere, stream = np.unravel_index(int(np.argmax(deviation)), deviation.shape)
        worst = (int(layer), int(hemisphere * deviation.shape[2] + stream))

    if max_dev > tolerance:
        if n_streams is not None and auto_inc_nstreams and n_streams + 2 <= auto_inc_nstreams:
            logger.debug(f"Albedo deviation {max_dev:.3g} with {n_streams} streams, trying {n_streams + 2}")
            return NormalizationResult(
                status=NormalizationStatus.REFINE,
                max_deviation=max_dev,
                required_streams=n_streams + 2,
                worst=worst,
            )
        if not robust:
            raise EnergyBudgetViolation(
                f"phase matrix albedo deviates beyond tolerance {tolerance:g}",
                frequency=bulk.frequency,
                layer=worst[0],
                stream=worst[1],
                deviation=max_dev,
            )
        logger.warning(
            f"Scattering albedo deviation {max_dev:.3g} exceeds tolerance {tolerance:g} at "
            f"{bulk.frequency:.6e} Hz (layer {worst[0]}, stream {worst[1]}); "
            "continuing with rescaled phase matrix"
        )
        return NormalizationResult(
            status=NormalizationStatus.WARN,
            max_deviation=max_dev,
            phase=rescale_phase(bulk, phase, sca_integ),
            worst=worst,
        )

    _warn_diagnostics(bulk, deviation, sca_integ, tolerance)
    return NormalizationResult(
        status=NormalizationStatus.OK,
        max_deviation=max_dev,
        phase=rescale_phase(bulk, phase, sca_integ),
        worst=worst,
    )


def prepare_optics(
    frequency: float,
    geometry: LayerGeometry,
    particles: ParticleField,
    config: SolverConfig,
    gas_callback: GasCallback | None = None,
) -> PreparedOptics:
    """
    Build validated optics for one frequency, refining the grid as needed.

    Every frequency starts from ``config.n_streams``. Each attempt rebuilds
    the quadrature, the bulk optics and the phase matrix from scratch.
    Attempts are bounded by ``config.auto_inc_nstreams``.

    Raises:
        EnergyBudgetViolation: See ``validate``.
    """
    n_streams = config.n_streams
    attempts = 0
    while True:
        attempts += 1
        grid = build_quadrature(n_streams, config.quadrature, config.add_straight_angles)
        bulk = aggregate(
            frequency,
            geometry,
            particles,
            grid,
            stokes_dim=config.stokes_dim,
            pfct_method=config.pfct_method,
            gas_callback=gas_callback,
        )
        phase = build_phase_matrix(
            frequency,
            particles,
            grid,
            geometry.n_layers,
            stokes_dim=config.stokes_dim,
            pfct_aa_grid_size=config.pfct_aa_grid_size,
            pfct_method=config.pfct_method,
        )
        result = validate(
            bulk,
            phase,
            grid.weights,
            config.pfct_threshold,
            n_streams=n_streams,
            auto_inc_nstreams=config.auto_inc_nstreams,
            robust=config.robust,
        )
        if result.status is NormalizationStatus.REFINE:
            n_streams = result.required_streams
            continue

        if n_streams != config.n_streams:
            logger.info(f"Frequency {frequency:.6e} Hz: refined from {config.n_streams} to {n_streams} streams")
        return PreparedOptics(
            grid=grid,
            bulk=bulk,
            phase=result.phase,
            status=result.status,
            max_deviation=result.max_deviation,
            n_streams_requested=config.n_streams,
            attempts=attempts,
        )


__all__ = [
    "NormalizationStatus",
    "NormalizationResult",
    "albedo_deviation",
    "rescale_phase",
    "validate",
    "prepare_optics",
]
