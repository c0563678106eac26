"""Shared pytest configuration and input factories."""

import sys
from pathlib import Path

import numpy as np

# Make ``from conftest import ...`` work from tests/spec as well
_tests_dir = str(Path(__file__).resolve().parent)
if _tests_dir not in sys.path:
    sys.path.insert(0, _tests_dir)

from streamrt import LayerGeometry, ParticleField, SingleScatteringData, SolverConfig  # noqa: E402

FREQUENCY = 89.0e9


def make_geometry(n_levels: int = 3, top: float = 2000.0, temperature=280.0, **kwargs) -> LayerGeometry:
    """Evenly spaced levels from the ground to ``top``; scalar temperature means isothermal."""
    altitudes = np.linspace(0.0, top, n_levels)
    temperatures = np.broadcast_to(np.asarray(temperature, dtype=np.float64), (n_levels,))
    return LayerGeometry(altitudes=altitudes, temperatures=temperatures, **kwargs)


def make_particles(element: SingleScatteringData, geometry: LayerGeometry, tau: float, n_cloud_levels=None):
    """
    One scattering element filling the lowest ``n_cloud_levels`` levels.

    The number density is uniform and chosen so that every cloud layer has
    vertical optical thickness ``tau`` (at the element's first table entry).
    """
    n_cloud_levels = n_cloud_levels or geometry.n_levels
    extinction = float(element.ext_mat_data.reshape(element.ext_mat_data.shape[0], -1)[0, 0])
    dz = float(geometry.thickness[0])
    pnd = tau / (extinction * dz)
    return ParticleField(
        elements=[element],
        number_density=np.full((1, n_cloud_levels), pnd),
        cloudbox_limits=(0, n_cloud_levels - 1),
    )


def make_isotropic_slab(albedo: float = 0.5, tau: float = 1.0, temperature=280.0, n_levels: int = 3):
    """Geometry and an isotropically scattering cloud of optical thickness ``tau`` per layer."""
    geometry = make_geometry(n_levels=n_levels, temperature=temperature)
    element = SingleScatteringData.isotropic(extinction=1.0e-6, single_scattering_albedo=albedo)
    return geometry, make_particles(element, geometry, tau)


def make_hg_slab(asymmetry: float = 0.8, albedo: float = 0.5, tau: float = 0.5, temperature=280.0, n_levels: int = 3):
    """Geometry and a Henyey-Greenstein cloud of optical thickness ``tau`` per layer."""
    geometry = make_geometry(n_levels=n_levels, temperature=temperature)
    element = SingleScatteringData.henyey_greenstein(
        asymmetry=asymmetry, extinction=1.0e-6, single_scattering_albedo=albedo
    )
    return geometry, make_particles(element, geometry, tau)


def make_config(**overrides) -> SolverConfig:
    """Small, fast solver configuration; keyword arguments override the defaults."""
    settings = {
        "n_streams": 4,
        "max_iterations": 200,
        "epsilon": (1e-3, 1e-3, 1e-3, 1e-3),
        "max_delta_tau": 0.05,
        "n_workers": 1,
    }
    settings.update(overrides)
    return SolverConfig(**settings)
