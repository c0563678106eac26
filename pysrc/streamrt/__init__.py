"""streamrt - Discrete-ordinate scattering radiative transfer.

Computes the polarized radiance field of a plane-parallel, layered
atmosphere with scattering particles, one frequency at a time. Radiance is
iterated to convergence with successive orders of scattering on a Gaussian
stream grid, which is refined automatically when the scattering phase
matrix cannot be represented on the requested grid.

Quick start::

    import numpy as np
    import streamrt

    geometry = streamrt.LayerGeometry(
        altitudes=np.linspace(0.0, 5e3, 6),
        temperatures=np.linspace(285.0, 255.0, 6),
    )
    rain = streamrt.SingleScatteringData.henyey_greenstein(
        asymmetry=0.3, extinction=2e-7, single_scattering_albedo=0.6
    )
    particles = streamrt.ParticleField(
        elements=[rain], number_density=np.full((1, 3), 5e3), cloudbox_limits=(0, 2)
    )
    batch = streamrt.calculate(
        [36.5e9, 89e9], geometry, particles,
        surface=streamrt.FresnelSurface(temperature=285.0, refractive_index=6.5 + 2.8j),
        config=streamrt.SolverConfig(n_streams=16, auto_inc_nstreams=32),
    )
    tb = batch.brightness_temperature()  # (n_freq, n_levels, n_za, stokes_dim)

Configuration::

    config = streamrt.SolverConfig(n_streams=8, stokes_dim=2, robust=True)
    config.save("solver.json")
    config = streamrt.SolverConfig.load("solver.json")
"""

import logging
from importlib.metadata import PackageNotFoundError, version

logger = logging.getLogger(__name__)

# Version: single source of truth is pyproject.toml
try:
    __version__ = version("streamrt")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts without metadata

from . import progress, rt_logging  # noqa: E402
from .api import calculate, solve_frequency, validate_inputs  # noqa: E402
from .components import (  # noqa: E402
    AngularGrid,
    BlackbodySurface,
    BlackbodyTop,
    FresnelSurface,
    LambertianSurface,
    NormalizationStatus,
    QuadratureFamily,
    SpecularSurface,
    SurfaceRTProperties,
    build_quadrature,
    constant_absorption_gas,
    cosmic_background,
    transparent_gas,
)
from .errors import (  # noqa: E402
    EnergyBudgetViolation,
    ExhaustedError,
    GeometryMismatch,
    InvalidAtmosphere,
    InvalidConfiguration,
    NumericalDivergence,
    StreamRTError,
)
from .models import (  # noqa: E402
    BatchResult,
    FrequencyResult,
    FrequencyStatus,
    LayerGeometry,
    ParticleField,
    RadianceField,
    SolverConfig,
    SolverState,
)
from .quantum import QuantumIdentifier, QuantumIdentifierType, QuantumNumbers, SpeciesRegistry  # noqa: E402
from .scattering_data import ParticleType, SingleScatteringData  # noqa: E402

__all__ = [
    # Version
    "__version__",
    # Core API
    "calculate",
    "solve_frequency",
    "validate_inputs",
    # Inputs
    "LayerGeometry",
    "ParticleField",
    "SingleScatteringData",
    "ParticleType",
    "SolverConfig",
    # Quadrature
    "AngularGrid",
    "QuadratureFamily",
    "build_quadrature",
    # Boundaries
    "BlackbodySurface",
    "LambertianSurface",
    "SpecularSurface",
    "FresnelSurface",
    "SurfaceRTProperties",
    "BlackbodyTop",
    "cosmic_background",
    "transparent_gas",
    "constant_absorption_gas",
    # Results
    "BatchResult",
    "FrequencyResult",
    "FrequencyStatus",
    "RadianceField",
    "SolverState",
    "NormalizationStatus",
    # Errors
    "StreamRTError",
    "InvalidConfiguration",
    "InvalidAtmosphere",
    "EnergyBudgetViolation",
    "GeometryMismatch",
    "NumericalDivergence",
    "ExhaustedError",
    # Spectroscopy identifiers
    "QuantumNumbers",
    "QuantumIdentifier",
    "QuantumIdentifierType",
    "SpeciesRegistry",
    # Utility modules
    "progress",
    "rt_logging",
]
