"""Data models for streamrt calculations.

Modules
-------
atmosphere
    ``LayerGeometry`` (levels, temperatures, pressures, VMR) and
    ``ParticleField`` (scattering elements and number densities).
config
    ``SolverConfig``: run-time numerical settings.
state
    ``SolverState`` and ``ConvergenceState``: per-frequency solve bookkeeping.
results
    ``RadianceField``, ``FrequencyResult``, ``BatchResult``: solver output.
"""

from .atmosphere import LayerGeometry, ParticleField
from .config import SolverConfig
from .results import BatchResult, FrequencyResult, FrequencyStatus, RadianceField
from .state import ConvergenceState, SolverState

__all__ = [
    # Inputs
    "LayerGeometry",
    "ParticleField",
    # Configuration
    "SolverConfig",
    # State
    "SolverState",
    "ConvergenceState",
    # Results
    "RadianceField",
    "FrequencyResult",
    "FrequencyStatus",
    "BatchResult",
]
