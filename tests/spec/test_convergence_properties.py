"""
Iteration behaviour of the coupled scattering solve.

- Over a black surface with albedo below one, the per-iteration change
  never grows
- The iteration count never exceeds the configured bound
"""

import numpy as np
import pytest
from conftest import FREQUENCY, make_config, make_isotropic_slab
from streamrt import BlackbodySurface, BlackbodyTop, ExhaustedError, RadianceField, solve_frequency
from streamrt.components.convergence import run_to_convergence
from streamrt.components.normalization import prepare_optics
from streamrt.components.solver import RTSolver
from streamrt.components.surface import resample_surface


@pytest.mark.parametrize("albedo", [0.3, 0.8])
def test_delta_history_non_increasing(albedo):
    geometry, particles = make_isotropic_slab(albedo=albedo, tau=1.0)
    config = make_config(epsilon=(1e-6,))
    optics = prepare_optics(FREQUENCY, geometry, particles, config)
    surface = resample_surface(BlackbodySurface(0.0), FREQUENCY, geometry.position, optics.grid)
    top = BlackbodyTop(150.0)(np.array([FREQUENCY]))[0]
    solver = RTSolver(geometry, optics, surface, top, FREQUENCY, config.max_delta_tau)

    outcome = run_to_convergence(solver.step, solver.initial_field(), FREQUENCY, config.active_epsilon, 500)

    history = np.array(outcome.history)[:, 0]
    assert outcome.iterations > 3
    assert np.all(history[1:] <= history[:-1] * (1.0 + 1e-9))
    assert history[-1] <= 1e-6


@pytest.mark.parametrize("max_iterations", [1, 3])
def test_iteration_bound(max_iterations):
    geometry, particles = make_isotropic_slab(albedo=0.9, tau=2.0)
    with pytest.raises(ExhaustedError) as exc_info:
        solve_frequency(
            FREQUENCY, geometry, particles, config=make_config(max_iterations=max_iterations, epsilon=(1e-9,))
        )
    err = exc_info.value
    assert err.iterations == max_iterations
    assert isinstance(err.field, RadianceField)
    assert np.all(np.isfinite(err.field.data))


def test_converged_within_bound():
    geometry, particles = make_isotropic_slab(albedo=0.5, tau=0.5)
    result = solve_frequency(FREQUENCY, geometry, particles, config=make_config(max_iterations=50))
    assert 2 <= result.iterations <= 50
