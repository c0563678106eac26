"""Solver components, leaves first.

Modules
-------
quadrature
    Polar streams and weights (``build_quadrature``).
optical_properties
    Bulk extinction, absorption and phase matrix per frequency.
normalization
    Single-scattering-albedo check, rescaling and the refinement loop.
surface
    Surface callbacks resampled onto the streams, plus built-in surfaces.
boundaries
    Top-of-atmosphere suppliers and simple gas callbacks.
solver
    Successive-orders-of-scattering sweep.
convergence
    Iteration controller.
"""

from .boundaries import BlackbodyTop, ConstantAbsorptionGas, constant_absorption_gas, cosmic_background, transparent_gas
from .convergence import ConvergenceOutcome, field_delta, run_to_convergence
from .normalization import NormalizationResult, NormalizationStatus, prepare_optics, validate
from .optical_properties import aggregate, build_phase_matrix, element_phase_mode0, gas_extinction
from .quadrature import AngularGrid, QuadratureFamily, build_quadrature
from .solver import RTSolver, interpolate_streams, transport_operators
from .surface import (
    BlackbodySurface,
    FresnelSurface,
    LambertianSurface,
    SpecularSurface,
    SurfaceRTProperties,
    resample_surface,
)

__all__ = [
    # Quadrature
    "AngularGrid",
    "QuadratureFamily",
    "build_quadrature",
    # Optical properties
    "aggregate",
    "build_phase_matrix",
    "element_phase_mode0",
    "gas_extinction",
    # Normalization
    "NormalizationResult",
    "NormalizationStatus",
    "prepare_optics",
    "validate",
    # Surface
    "SurfaceRTProperties",
    "resample_surface",
    "BlackbodySurface",
    "LambertianSurface",
    "SpecularSurface",
    "FresnelSurface",
    # Boundaries
    "cosmic_background",
    "BlackbodyTop",
    "transparent_gas",
    "ConstantAbsorptionGas",
    "constant_absorption_gas",
    # Solver
    "RTSolver",
    "interpolate_streams",
    "transport_operators",
    # Convergence
    "ConvergenceOutcome",
    "field_delta",
    "run_to_convergence",
]
