"""
streamrt public API.

Wires the components into a per-frequency pipeline and a batch entry point:

    quadrature -> aggregation -> normalization (refining as needed)
    -> surface resampling -> solver sweeps under the convergence controller

Example:
    import numpy as np
    import streamrt

    geometry = streamrt.LayerGeometry(
        altitudes=np.linspace(0.0, 10e3, 11),
        temperatures=np.linspace(288.0, 223.0, 11),
    )
    cloud = streamrt.SingleScatteringData.henyey_greenstein(
        asymmetry=0.5, extinction=1e-7, single_scattering_albedo=0.9
    )
    particles = streamrt.ParticleField(
        elements=[cloud], number_density=np.full((1, 4), 1e3), cloudbox_limits=(0, 3)
    )
    batch = streamrt.calculate(
        frequencies=[89e9, 150e9],
        geometry=geometry,
        particles=particles,
        surface=streamrt.LambertianSurface(temperature=288.0, albedo=0.2),
    )
    print(batch.summary())
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np

from .batch import resolve_workers, run_frequencies
from .components.boundaries import cosmic_background
from .components.convergence import run_to_convergence
from .components.normalization import prepare_optics
from .components.quadrature import build_quadrature
from .components.solver import RTSolver, interpolate_streams
from .components.surface import BlackbodySurface, resample_surface
from .constants import MAX_SKIN_TEMPERATURE, MIN_SKIN_TEMPERATURE
from .errors import ExhaustedError, InvalidAtmosphere, InvalidConfiguration
from .models.atmosphere import ParticleField
from .models.config import SolverConfig
from .models.results import BatchResult, FrequencyResult, FrequencyStatus, RadianceField
from .models.state import SolverState
from .progress import ProgressReporter
from .rt_logging import DiagnosticSink, bind_sink, get_logger
from .scattering_data import ParticleType

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from .bundles import PreparedOptics
    from .components.optical_properties import GasCallback
    from .components.surface import SurfaceModel
    from .models.atmosphere import LayerGeometry

logger = get_logger(__name__)

TopSupplier = Callable[["NDArray[np.floating]"], "NDArray[np.floating]"]


def _as_frequencies(frequencies: ArrayLike) -> NDArray[np.floating]:
    f = np.atleast_1d(np.asarray(frequencies, dtype=np.float64))
    if f.ndim != 1 or f.size == 0:
        raise InvalidConfiguration("frequencies", f"must be a non-empty 1-D sequence, got shape {f.shape}")
    if np.any(~np.isfinite(f)) or np.any(f <= 0.0):
        raise InvalidConfiguration("frequencies", "must be finite and positive")
    return f


def validate_inputs(
    geometry: LayerGeometry,
    particles: ParticleField | None = None,
    surface: SurfaceModel | None = None,
    config: SolverConfig | None = None,
    frequencies: ArrayLike | None = None,
) -> list[str]:
    """
    Check inputs before the expensive solve.

    Profile shapes and monotonic altitudes are already enforced when the
    input objects are built; this adds the cross-object checks.

    Args:
        geometry: Atmosphere levels.
        particles: Scattering elements, optional.
        surface: Surface model, optional. Probed once at nadir.
        config: Solver configuration, optional.
        frequencies: Frequencies [Hz], optional.

    Returns:
        List of warnings (inputs usable but questionable).

    Raises:
        InvalidAtmosphere: Cloudbox above the top level, unsupported particle
            orientation, or surface skin temperature out of range.
        InvalidConfiguration: Bad frequency grid.
    """
    warnings: list[str] = []
    config = config or SolverConfig()
    f = _as_frequencies(frequencies) if frequencies is not None else None

    if particles is not None:
        top = particles.cloudbox_limits[1]
        if top > geometry.n_levels - 1:
            raise InvalidAtmosphere(
                "Cloudbox extends above the top of the atmosphere",
                field="cloudbox_limits",
                expected=f"upper limit <= {geometry.n_levels - 1}",
                got=str(top),
            )
        t_cloud = geometry.temperatures[: top + 1]
        for element in particles.elements:
            if element.ptype not in (ParticleType.TOTALLY_RANDOM, ParticleType.AZIMUTHALLY_RANDOM):
                raise InvalidAtmosphere(
                    f"Particle '{element.description}' has unsupported orientation {element.ptype.value}",
                    field="ptype",
                    expected="totally_random or azimuthally_random",
                    got=element.ptype.value,
                )
            if element.ptype is ParticleType.AZIMUTHALLY_RANDOM and element.aa_grid.size < 2:
                raise InvalidAtmosphere(
                    f"Particle '{element.description}' needs at least two azimuth grid points",
                    field="aa_grid",
                    expected=">= 2 points",
                    got=str(element.aa_grid.size),
                )
            if element.t_grid.size > 1 and (t_cloud.min() < element.t_grid[0] or t_cloud.max() > element.t_grid[-1]):
                warnings.append(
                    f"Cloudbox temperatures {t_cloud.min():.1f}-{t_cloud.max():.1f} K exceed the grid of "
                    f"'{element.description}'; values are clamped"
                )
            f_outside = f is not None and (f.min() < element.f_grid[0] or f.max() > element.f_grid[-1])
            if element.f_grid.size > 1 and f_outside:
                warnings.append(f"Frequencies exceed the grid of '{element.description}'; values are clamped")

    if surface is not None:
        probe = surface(np.array([f[0] if f is not None else 1.0e11]), geometry.position, 180.0)
        skin = float(probe.skin_temperature)
        if not MIN_SKIN_TEMPERATURE <= skin <= MAX_SKIN_TEMPERATURE:
            raise InvalidAtmosphere(
                f"Surface skin temperature {skin} K is outside the valid range",
                field="skin_temperature",
                expected=f"[{MIN_SKIN_TEMPERATURE:g}, {MAX_SKIN_TEMPERATURE:g}] K",
                got=f"{skin} K",
            )

    if config.stokes_dim > 1 and particles is not None:
        if any(e.ptype is ParticleType.AZIMUTHALLY_RANDOM for e in particles.elements) and config.stokes_dim < 4:
            warnings.append(
                "Azimuthally random particles couple all four Stokes components; "
                f"stokes_dim={config.stokes_dim} truncates them"
            )

    for message in warnings:
        logger.warning(message)
    return warnings


def _output_field(
    solver: RTSolver,
    field: NDArray[np.floating],
    optics: PreparedOptics,
    config: SolverConfig,
    geometry: LayerGeometry,
) -> RadianceField:
    data = solver.level_field(field)
    grid = optics.grid
    if optics.refined:
        requested = build_quadrature(config.n_streams, config.quadrature, config.add_straight_angles)
        data = interpolate_streams(data, grid, requested, config.za_interp_order, config.cos_za_interp)
        grid = requested
    return RadianceField(
        frequency=solver.frequency,
        data=data,
        za_grid=grid.za_grid,
        altitudes=np.array(geometry.altitudes),
    )


def _solve(
    index: int,
    frequency: float,
    geometry: LayerGeometry,
    particles: ParticleField,
    surface: SurfaceModel,
    config: SolverConfig,
    top: TopSupplier,
    gas: GasCallback | None,
) -> FrequencyResult:
    """Full pipeline for one frequency; exhaustion becomes an EXHAUSTED result."""
    optics = prepare_optics(frequency, geometry, particles, config, gas_callback=gas)
    surface_optics = resample_surface(surface, frequency, geometry.position, optics.grid, config.stokes_dim)
    top_radiance = np.asarray(top(np.array([frequency])), dtype=np.float64).reshape(-1, 4)[0]
    solver = RTSolver(geometry, optics, surface_optics, top_radiance, frequency, config.max_delta_tau)
    logger.debug(f"Frequency {frequency:.6e} Hz: solving with {optics.grid.n_streams} streams")

    result = FrequencyResult(
        index=index,
        frequency=float(frequency),
        status=FrequencyStatus.CONVERGED,
        n_streams_used=optics.grid.n_streams,
        normalization=optics.status,
        max_deviation=optics.max_deviation,
    )
    try:
        outcome = run_to_convergence(
            solver.step, solver.initial_field(), frequency, config.active_epsilon, config.max_iterations
        )
    except ExhaustedError as err:
        solver.state = SolverState.EXHAUSTED
        err.field = _output_field(solver, err.field, optics, config, geometry)
        logger.warning(f"Frequency {index} ({frequency:.6e} Hz): {err}")
        result.status = FrequencyStatus.EXHAUSTED
        result.field = err.field
        result.iterations = err.iterations
        result.error = err
        return result

    solver.state = SolverState.CONVERGED
    result.field = _output_field(solver, outcome.field, optics, config, geometry)
    result.iterations = outcome.iterations
    return result


def solve_frequency(
    frequency: float,
    geometry: LayerGeometry,
    particles: ParticleField | None = None,
    surface: SurfaceModel | None = None,
    config: SolverConfig | None = None,
    top: TopSupplier | None = None,
    gas: GasCallback | None = None,
) -> FrequencyResult:
    """
    Solve a single frequency.

    Args:
        frequency: Frequency [Hz].
        geometry: Atmosphere levels.
        particles: Scattering elements. Clear sky if omitted.
        surface: Surface model. A blackbody at the lowest level temperature
            if omitted.
        config: Solver settings. Defaults if omitted.
        top: Top-of-atmosphere supplier. Cosmic background if omitted.
        gas: Gas callback. No gas absorption if omitted.

    Returns:
        Converged FrequencyResult.

    Raises:
        ExhaustedError: No convergence within ``config.max_iterations``;
            the partially converged RadianceField is attached as ``field``.
        NumericalDivergence, EnergyBudgetViolation, GeometryMismatch,
        InvalidAtmosphere, InvalidConfiguration: see ``streamrt.errors``.
    """
    frequency = float(_as_frequencies(frequency)[0])
    config = config or SolverConfig()
    particles = particles if particles is not None else ParticleField.empty(geometry.n_levels)
    surface = surface if surface is not None else BlackbodySurface(float(geometry.temperatures[0]))
    top = top if top is not None else cosmic_background
    result = _solve(0, frequency, geometry, particles, surface, config, top, gas)
    if result.status is FrequencyStatus.EXHAUSTED:
        raise result.error
    return result


def calculate(
    frequencies: ArrayLike,
    geometry: LayerGeometry,
    particles: ParticleField | None = None,
    surface: SurfaceModel | None = None,
    config: SolverConfig | None = None,
    top: TopSupplier | None = None,
    gas: GasCallback | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
    cancel_event: threading.Event | None = None,
    show_progress: bool = True,
) -> BatchResult:
    """
    Solve the radiance field for every frequency.

    Frequencies run in parallel (``config.n_workers`` threads). Divergent
    solves and failed normalization checks are isolated per frequency;
    contract violations abort the batch.

    Args:
        frequencies: Frequencies [Hz].
        geometry: Atmosphere levels.
        particles: Scattering elements. Clear sky if omitted.
        surface: Surface model. A blackbody at the lowest level temperature
            if omitted.
        config: Solver settings. Defaults if omitted.
        top: Top-of-atmosphere supplier. Cosmic background if omitted.
        gas: Gas callback. No gas absorption if omitted.
        progress_callback: Optional ``callback(done, total)`` replacing the
            tqdm bar.
        cancel_event: Optional event; once set, no further frequencies are
            started.
        show_progress: Show a tqdm bar when no callback is given.

    Returns:
        BatchResult with results in input order.

    Example:
        >>> batch = calculate([89e9], geometry, surface=BlackbodySurface(280.0))
        >>> batch.brightness_temperature()[0, -1, 0, 0]
    """
    f = _as_frequencies(frequencies)
    config = config or SolverConfig()
    particles = particles if particles is not None else ParticleField.empty(geometry.n_levels)
    surface = surface if surface is not None else BlackbodySurface(float(geometry.temperatures[0]))
    top = top if top is not None else cosmic_background
    validate_inputs(geometry, particles, surface, config, f)

    n_workers = resolve_workers(config.n_workers, f.size)
    logger.info(
        f"Solving {f.size} frequencies with {config.n_streams} {config.quadrature} streams, "
        f"stokes_dim={config.stokes_dim}, {n_workers} workers"
    )

    def solve_one(index: int, frequency: float) -> FrequencyResult:
        return _solve(index, frequency, geometry, particles, surface, config, top, gas)

    sink = DiagnosticSink()
    reporter = ProgressReporter(
        total=f.size,
        desc="streamrt",
        callback=progress_callback,
        disable=not show_progress and progress_callback is None,
        cancel_event=cancel_event,
    )
    try:
        with bind_sink(sink):
            results, cancelled = run_frequencies(f, solve_one, n_workers, reporter, sink=sink)
    finally:
        reporter.close()

    requested = build_quadrature(config.n_streams, config.quadrature, config.add_straight_angles)
    batch = BatchResult(
        frequencies=f,
        results=results,
        za_grid=requested.za_grid,
        altitudes=np.array(geometry.altitudes),
        stokes_dim=config.stokes_dim,
        accept_unconverged=config.accept_unconverged,
        cancelled=cancelled,
        diagnostics=sink.records,
    )
    logger.info(f"Batch finished: {batch.summary()}")
    return batch


__all__ = ["validate_inputs", "solve_frequency", "calculate"]
