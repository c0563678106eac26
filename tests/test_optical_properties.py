"""
Tests for the optical property aggregator.
"""

from dataclasses import replace

import numpy as np
import pytest
from conftest import FREQUENCY, make_geometry
from streamrt import (
    InvalidAtmosphere,
    InvalidConfiguration,
    ParticleField,
    SingleScatteringData,
    build_quadrature,
    constant_absorption_gas,
    transparent_gas,
)
from streamrt.components.optical_properties import (
    aggregate,
    build_phase_matrix,
    element_phase_mode0,
    gas_extinction,
)
from streamrt.scattering_data import ParticleType


@pytest.fixture
def grid():
    return build_quadrature(4, "D")


def isotropic_field(pnd, extinction=2.0e-6, albedo=0.25, **kwargs):
    element = SingleScatteringData.isotropic(extinction, albedo, **kwargs)
    pnd = np.atleast_2d(np.asarray(pnd, dtype=np.float64))
    return ParticleField(elements=[element], number_density=pnd, cloudbox_limits=(0, pnd.shape[1] - 1))


class TestGasExtinction:
    def test_no_callback(self):
        np.testing.assert_array_equal(gas_extinction(FREQUENCY, make_geometry(), None), 0.0)

    def test_transparent(self):
        np.testing.assert_array_equal(gas_extinction(FREQUENCY, make_geometry(), transparent_gas), 0.0)

    def test_evaluated_at_layer_midpoints(self):
        """The callback sees the mean state of each boundary pair."""
        seen = []

        def gas(frequency, pressure, temperature, vmr):
            seen.append((pressure, temperature))
            return np.array([[1e-5]]), np.array([1e-5])

        geometry = make_geometry(
            n_levels=3, temperature=[290.0, 280.0, 260.0], pressures=[1e5, 8e4, 6e4]
        )
        gas_extinction(FREQUENCY, geometry, gas)
        assert seen == [(9e4, 285.0), (7e4, 270.0)]

    def test_scaled_by_vmr(self):
        vmr = np.array([[0.5, 0.5, 0.5], [0.1, 0.1, 0.1]])
        geometry = make_geometry(vmr=vmr)
        result = gas_extinction(FREQUENCY, geometry, constant_absorption_gas(1e-4))
        np.testing.assert_allclose(result, 6e-5)

    def test_negative_extinction_rejected(self):
        def gas(frequency, pressure, temperature, vmr):
            return np.array([[-1e-5]]), np.array([-1e-5])

        with pytest.raises(InvalidAtmosphere) as exc_info:
            gas_extinction(FREQUENCY, make_geometry(), gas)
        assert exc_info.value.field == "gas_extinction"


class TestAggregate:
    def test_clear_sky(self, grid):
        bulk = aggregate(FREQUENCY, make_geometry(), ParticleField.empty(3), grid)
        assert bulk.extinction.shape == (2, 2, grid.n_angles, 1, 1)
        assert not np.any(bulk.extinction)
        assert not np.any(bulk.nominal_extinction)

    def test_boundary_pair_average(self, grid):
        """Layer values use the mean number density of the two boundary levels."""
        bulk = aggregate(FREQUENCY, make_geometry(), isotropic_field([1.0, 2.0, 3.0]), grid, stokes_dim=2)
        pnd_mean = np.array([1.5, 2.5])
        np.testing.assert_allclose(bulk.extinction[..., 0, 0], 2e-6 * pnd_mean[:, None, None] * np.ones((2, 2, 3)))
        np.testing.assert_allclose(bulk.extinction[..., 1, 1], bulk.extinction[..., 0, 0])
        np.testing.assert_array_equal(bulk.extinction[..., 0, 1], 0.0)
        np.testing.assert_allclose(bulk.absorption[..., 0], 1.5e-6 * pnd_mean[:, None, None] * np.ones((2, 2, 3)))
        np.testing.assert_allclose(bulk.scattering, 0.5e-6 * pnd_mean[:, None, None] * np.ones((2, 2, 3)))

    def test_zero_above_cloudbox(self, grid):
        geometry = make_geometry(n_levels=4)
        bulk = aggregate(FREQUENCY, geometry, isotropic_field([1.0, 1.0, 1.0]), grid)
        assert np.all(bulk.extinction[:2] > 0.0)
        assert not np.any(bulk.extinction[2])

    def test_cloudbox_above_top(self, grid):
        with pytest.raises(InvalidAtmosphere):
            aggregate(FREQUENCY, make_geometry(n_levels=2), isotropic_field([1.0, 1.0, 1.0]), grid)

    def test_gas_added_to_diagonal(self, grid):
        geometry = make_geometry()
        gas = constant_absorption_gas(3e-5)
        bulk = aggregate(FREQUENCY, geometry, ParticleField.empty(3), grid, 2, gas_callback=gas)
        np.testing.assert_allclose(bulk.total_extinction[..., 0, 0], 3e-5)
        np.testing.assert_allclose(bulk.total_extinction[..., 1, 1], 3e-5)
        np.testing.assert_allclose(bulk.total_absorption[..., 0], 3e-5)
        np.testing.assert_array_equal(bulk.total_absorption[..., 1], 0.0)

    @pytest.mark.parametrize("method, nominal", [("low", 1.0), ("median", 2.0), ("high", 3.0)])
    def test_nominal_at_phase_temperature(self, grid, method, nominal):
        """Nominal values come from one temperature grid point, actual values are interpolated."""
        base = SingleScatteringData.isotropic(1.0, 0.5, t_grid=(200.0, 250.0, 300.0))
        element = replace(
            base,
            ext_mat_data=np.array([[1.0, 2.0, 3.0]]),
            abs_vec_data=np.array([[0.5, 1.0, 1.5]]),
        )
        particles = ParticleField(elements=[element], number_density=np.ones((1, 3)))
        geometry = make_geometry(temperature=225.0)

        bulk = aggregate(FREQUENCY, geometry, particles, grid, pfct_method=method)

        np.testing.assert_allclose(bulk.nominal_extinction, nominal)
        np.testing.assert_allclose(bulk.nominal_absorption, nominal / 2.0)
        np.testing.assert_allclose(bulk.extinction[..., 0, 0], 1.5)

    def test_general_orientation_rejected(self, grid):
        field = isotropic_field([1.0, 1.0, 1.0])
        general = replace(field.elements[0], ptype=ParticleType.GENERAL)
        particles = ParticleField(elements=[general], number_density=field.number_density)
        with pytest.raises(InvalidAtmosphere):
            aggregate(FREQUENCY, make_geometry(), particles, grid)


class TestPhaseMatrix:
    def test_isotropic_constant(self, grid):
        particles = isotropic_field([1.0, 2.0, 3.0])
        phase = build_phase_matrix(FREQUENCY, particles, grid, n_layers=2)
        c = 0.5e-6 / (4.0 * np.pi)
        assert phase.data.shape == (2, 2, 2, grid.n_angles, grid.n_angles, 1, 1)
        np.testing.assert_allclose(phase.data[0], 1.5 * c)
        np.testing.assert_allclose(phase.data[1], 2.5 * c)

    def test_isotropic_scattering_integral(self, grid):
        """2 pi times the weighted outgoing sum gives the scattering coefficient."""
        phase = build_phase_matrix(FREQUENCY, isotropic_field([1.0, 1.0, 1.0]), grid, n_layers=2)
        np.testing.assert_allclose(phase.scattering_integral(grid.weights), 0.5e-6)

    def test_empty_layers_above_cloud(self, grid):
        phase = build_phase_matrix(FREQUENCY, isotropic_field([1.0, 1.0]), grid, n_layers=3)
        assert np.any(phase.data[0])
        assert not np.any(phase.data[1:])

    def test_hg_scattering_integral(self):
        """With enough streams the Henyey-Greenstein integral is close to the cross section."""
        grid = build_quadrature(32, "D")
        element = SingleScatteringData.henyey_greenstein(0.3, extinction=1.0, single_scattering_albedo=0.8)
        particles = ParticleField(elements=[element], number_density=np.ones((1, 2)))
        phase = build_phase_matrix(FREQUENCY, particles, grid, n_layers=1)
        np.testing.assert_allclose(phase.scattering_integral(grid.weights), 0.8, rtol=2e-2)

    @pytest.mark.parametrize("stokes_dim", [1, 2])
    def test_azimuthally_random_matches_totally_random(self, grid, stokes_dim):
        """Both orientation paths agree for a particle that is representable in both."""
        element = SingleScatteringData.isotropic(1.0, 0.6)
        aro = element.to_azimuthally_random(np.linspace(0.0, 180.0, 19), np.linspace(0.0, 180.0, 7))
        t = float(element.t_grid[0])
        tro_mode0 = element_phase_mode0(element, FREQUENCY, t, grid.za_grid, stokes_dim)
        aro_mode0 = element_phase_mode0(aro, FREQUENCY, t, grid.za_grid, stokes_dim)
        np.testing.assert_allclose(aro_mode0, tro_mode0, atol=1e-12)

    def test_mirror_average_decouples_u(self, grid):
        """The mode-0 matrix has no coupling between {I, Q} and U."""
        element = SingleScatteringData.rayleigh(1.0, 1.0)
        mode0 = element_phase_mode0(element, FREQUENCY, 273.15, grid.za_grid, stokes_dim=3)
        np.testing.assert_array_equal(mode0[..., :2, 2], 0.0)
        np.testing.assert_array_equal(mode0[..., 2, :2], 0.0)

    def test_azimuth_grid_size(self, grid):
        element = SingleScatteringData.isotropic(1.0, 0.6)
        with pytest.raises(InvalidConfiguration):
            element_phase_mode0(element, FREQUENCY, 273.15, grid.za_grid, pfct_aa_grid_size=1)
