"""
Physical constants and default solver parameters for streamrt.

This module consolidates the constants used across the quadrature,
optical-property, surface and solver components so that each value is
defined once.
"""

import math

# =============================================================================
# Physical Constants
# =============================================================================
# Reference: CODATA 2018 exact SI values

# Speed of light in vacuum (m/s)
SPEED_OF_LIGHT = 2.99792458e8

# Planck constant (J s)
PLANCK_CONST = 6.62607015e-34

# Boltzmann constant (J/K)
BOLTZMANN_CONST = 1.380649e-23

# Cosmic microwave background temperature (K)
# Default top-of-atmosphere boundary for downwelling radiance
COSMIC_BG_TEMP = 2.735

DEG2RAD = math.pi / 180.0
RAD2DEG = 180.0 / math.pi


# =============================================================================
# Quadrature
# =============================================================================

# Sum of the quadrature weights over one hemisphere [0, 1]
# (mirrored over [-1, 1] the sum is 2)
HEMISPHERE_WEIGHT_SUM = 1.0

QUADRATURE_CODES = {
    "D": "double_gauss",
    "G": "gauss_legendre",
    "L": "lobatto",
}


# =============================================================================
# Normalization & Validation
# =============================================================================

# Warn when the albedo deviation exceeds this fraction of the tolerance
NORM_WARN_FRACTION = 0.1

# Warn when the raw normalization ratio deviates from 1 by more than this
NORM_RATIO_WARN = 1e-2

# Valid temperature selections for phase-matrix construction
PFCT_METHODS = ("low", "median", "high")


# =============================================================================
# Surface
# =============================================================================

# Relative tolerance for matching a specular direction to a stream
SPECULAR_ANGLE_RTOL = 1e-12

# Extrapolation allowance when resampling, in units of the edge grid spacing
GRID_EXTRAPOLATION = 0.5

# Valid range for the surface skin temperature (K)
MIN_SKIN_TEMPERATURE = 0.0
MAX_SKIN_TEMPERATURE = 1000.0


# =============================================================================
# Solver Defaults
# =============================================================================

DEFAULT_N_STREAMS = 8
DEFAULT_QUADRATURE = "double_gauss"
DEFAULT_EPSILON_K = 0.01  # per Stokes component, Rayleigh-Jeans BT (K)
DEFAULT_MAX_ITERATIONS = 500
DEFAULT_PFCT_AA_GRID_SIZE = 19
DEFAULT_PFCT_THRESHOLD = 0.05
DEFAULT_PFCT_METHOD = "median"
DEFAULT_MAX_DELTA_TAU = 0.05

# Upper bound on sublayers per layer; very opaque layers are capped
MAX_SUBLAYERS_PER_LAYER = 2000


__all__ = [
    "SPEED_OF_LIGHT",
    "PLANCK_CONST",
    "BOLTZMANN_CONST",
    "COSMIC_BG_TEMP",
    "DEG2RAD",
    "RAD2DEG",
    "HEMISPHERE_WEIGHT_SUM",
    "QUADRATURE_CODES",
    "NORM_WARN_FRACTION",
    "NORM_RATIO_WARN",
    "PFCT_METHODS",
    "SPECULAR_ANGLE_RTOL",
    "GRID_EXTRAPOLATION",
    "MIN_SKIN_TEMPERATURE",
    "MAX_SKIN_TEMPERATURE",
    "DEFAULT_N_STREAMS",
    "DEFAULT_QUADRATURE",
    "DEFAULT_EPSILON_K",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_PFCT_AA_GRID_SIZE",
    "DEFAULT_PFCT_THRESHOLD",
    "DEFAULT_PFCT_METHOD",
    "DEFAULT_MAX_DELTA_TAU",
    "MAX_SUBLAYERS_PER_LAYER",
]
