"""
Tests for tabulated single-scattering data.
"""

import numpy as np
import pytest
from streamrt import InvalidAtmosphere, InvalidConfiguration, ParticleType, SingleScatteringData
from streamrt.scattering_data import mirror_average, wrap_azimuth

FREQ = 1.0e11


def trapezoid(y, x):
    return float(np.sum(0.5 * (y[1:] + y[:-1]) * np.diff(x)))


def two_temperature_table():
    """Isotropic element whose cross sections change linearly between 200 K and 300 K."""
    return SingleScatteringData(
        ptype=ParticleType.TOTALLY_RANDOM,
        f_grid=np.array([FREQ]),
        t_grid=np.array([200.0, 300.0]),
        za_grid=np.array([0.0, 180.0]),
        aa_grid=np.zeros(0),
        pha_mat_data=np.zeros((1, 2, 2, 6)),
        ext_mat_data=np.array([[1.0e-6, 3.0e-6]]),
        abs_vec_data=np.array([[0.5e-6, 1.5e-6]]),
        description="linear in temperature",
    )


class TestFactories:
    @pytest.mark.parametrize("asymmetry", [-0.3, 0.0, 0.5, 0.85])
    def test_hg_integrates_to_scattering(self, asymmetry):
        """2 pi times the integral of F11 over the sphere is the scattering cross section."""
        ssd = SingleScatteringData.henyey_greenstein(asymmetry, extinction=2e-6, single_scattering_albedo=0.6)
        theta = np.deg2rad(ssd.za_grid)
        f11 = ssd.pha_mat_data[0, 0, :, 0]
        integral = 2.0 * np.pi * trapezoid(f11 * np.sin(theta), theta)
        assert integral == pytest.approx(1.2e-6, rel=2e-3)

    def test_rayleigh_integrates_to_scattering(self):
        ssd = SingleScatteringData.rayleigh(extinction=1e-6, single_scattering_albedo=0.2)
        theta = np.deg2rad(ssd.za_grid)
        integral = 2.0 * np.pi * trapezoid(ssd.pha_mat_data[0, 0, :, 0] * np.sin(theta), theta)
        assert integral == pytest.approx(2e-7, rel=1e-3)

    def test_rayleigh_forward_backward_symmetric(self):
        f11 = SingleScatteringData.rayleigh(1e-6, 0.5).pha_mat_data[0, 0, :, 0]
        np.testing.assert_allclose(f11, f11[::-1])

    def test_absorption_from_albedo(self):
        ssd = SingleScatteringData.isotropic(extinction=4e-6, single_scattering_albedo=0.25)
        assert ssd.extinction_matrix(FREQ, 273.15)[0, 0] == pytest.approx(4e-6)
        assert ssd.absorption_vector(FREQ, 273.15)[0] == pytest.approx(3e-6)

    @pytest.mark.parametrize("albedo", [-0.1, 1.5])
    def test_invalid_albedo(self, albedo):
        with pytest.raises(InvalidConfiguration):
            SingleScatteringData.isotropic(1e-6, albedo)
        with pytest.raises(InvalidConfiguration):
            SingleScatteringData.rayleigh(1e-6, albedo)

    def test_invalid_asymmetry(self):
        with pytest.raises(InvalidConfiguration):
            SingleScatteringData.henyey_greenstein(1.0, 1e-6, 0.5)

    def test_table_shape_checked(self):
        ssd = SingleScatteringData.isotropic(1e-6, 0.5)
        with pytest.raises(InvalidAtmosphere) as exc_info:
            SingleScatteringData(
                ptype=ssd.ptype,
                f_grid=ssd.f_grid,
                t_grid=ssd.t_grid,
                za_grid=ssd.za_grid,
                aa_grid=ssd.aa_grid,
                pha_mat_data=ssd.pha_mat_data,
                ext_mat_data=np.zeros((2, 2)),
                abs_vec_data=ssd.abs_vec_data,
            )
        assert exc_info.value.field == "ext_mat_data"


class TestInterpolation:
    def test_linear_in_temperature(self):
        ssd = two_temperature_table()
        assert ssd.extinction_matrix(FREQ, 250.0)[0, 0] == pytest.approx(2e-6)
        assert ssd.absorption_vector(FREQ, 225.0)[0] == pytest.approx(0.75e-6)

    def test_clamped_outside_grid(self):
        ssd = two_temperature_table()
        assert ssd.extinction_matrix(FREQ, 150.0)[0, 0] == pytest.approx(1e-6)
        assert ssd.extinction_matrix(FREQ, 400.0)[0, 0] == pytest.approx(3e-6)

    def test_temperature_index(self):
        ssd = SingleScatteringData.isotropic(1e-6, 0.5, t_grid=(200.0, 250.0, 300.0, 350.0))
        assert ssd.temperature_index("low") == 0
        assert ssd.temperature_index("median") == 2
        assert ssd.temperature_index("high") == 3
        with pytest.raises(InvalidConfiguration):
            ssd.temperature_index("mean")

    def test_extinction_matrix_diagonal(self):
        ssd = SingleScatteringData.isotropic(3e-6, 0.5)
        ext = ssd.extinction_matrix(FREQ, 273.15, za=np.array([10.0, 120.0]), stokes_dim=4)
        assert ext.shape == (2, 4, 4)
        np.testing.assert_allclose(ext, 3e-6 * np.broadcast_to(np.eye(4), (2, 4, 4)))


class TestPhaseMatrix:
    def test_isotropic_constant(self):
        ssd = SingleScatteringData.isotropic(1e-6, 0.5)
        pha = ssd.phase_matrix(FREQ, 273.15, [0.0, 45.0, 170.0], [0.0, 90.0, 200.0], 30.0, 0.0)
        assert pha.shape == (3, 1, 1)
        np.testing.assert_allclose(pha[..., 0, 0], 0.5e-6 / (4.0 * np.pi))

    def test_forward_scattering_unrotated(self):
        """Along the incident direction the lab frame is the scattering plane frame."""
        ssd = SingleScatteringData.rayleigh(1e-6, 1.0)
        pha = ssd.phase_matrix(FREQ, 273.15, 60.0, 0.0, 60.0, 0.0, stokes_dim=4)
        c = 3.0e-6 / (16.0 * np.pi)
        np.testing.assert_allclose(np.diag(pha), [2.0 * c, 2.0 * c, 2.0 * c, 2.0 * c])
        assert pha[0, 1] == pytest.approx(0.0, abs=1e-20)

    def test_azimuth_mirror_symmetry(self):
        """Z(-daa) = D Z(daa) D with D = diag(1, 1, -1, -1)."""
        ssd = SingleScatteringData.rayleigh(1e-6, 0.8)
        plus = ssd.phase_matrix(FREQ, 273.15, 50.0, 40.0, 120.0, 0.0, stokes_dim=4)
        minus = ssd.phase_matrix(FREQ, 273.15, 50.0, -40.0, 120.0, 0.0, stokes_dim=4)
        d = np.array([1.0, 1.0, -1.0, -1.0])
        np.testing.assert_allclose(minus, d[:, None] * plus * d[None, :], atol=1e-22)

    def test_general_orientation_rejected(self):
        ssd = SingleScatteringData(
            ptype=ParticleType.GENERAL,
            f_grid=np.array([FREQ]),
            t_grid=np.array([273.15]),
            za_grid=np.zeros(0),
            aa_grid=np.zeros(0),
            pha_mat_data=np.zeros(0),
            ext_mat_data=np.zeros(0),
            abs_vec_data=np.zeros(0),
        )
        with pytest.raises(InvalidAtmosphere):
            ssd.phase_matrix(FREQ, 273.15, 0.0, 0.0, 0.0, 0.0)
        with pytest.raises(InvalidAtmosphere):
            ssd.extinction_matrix(FREQ, 273.15)


class TestAzimuthallyRandomTabulation:
    def test_matches_totally_random_on_grid(self):
        ssd = SingleScatteringData.henyey_greenstein(0.4, 1e-6, 0.7, n_angles=721)
        za = np.array([10.0, 50.0, 100.0, 170.0])
        aa = np.array([0.0, 45.0, 90.0, 135.0, 180.0])
        tab = ssd.to_azimuthally_random(za, aa)

        assert tab.ptype is ParticleType.AZIMUTHALLY_RANDOM
        # Forward and backward directions are left out; their frame is degenerate
        for za_s in (10.0, 100.0, 170.0):
            for aa_s in aa:
                expected = ssd.phase_matrix(FREQ, 273.15, za_s, aa_s, 50.0, 0.0, stokes_dim=4)
                got = tab.phase_matrix(FREQ, 273.15, za_s, aa_s, 50.0, 0.0, stokes_dim=4)
                np.testing.assert_allclose(got, expected, rtol=1e-8, atol=1e-6 * np.abs(expected).max())

    def test_extinction_preserved(self):
        ssd = SingleScatteringData.isotropic(2e-6, 0.3)
        tab = ssd.to_azimuthally_random([0.0, 90.0, 180.0], [0.0, 180.0])
        expected = ssd.extinction_matrix(FREQ, 273.15, za=45.0, stokes_dim=2)
        np.testing.assert_allclose(tab.extinction_matrix(FREQ, 273.15, za=45.0, stokes_dim=2), expected)
        assert tab.absorption_vector(FREQ, 273.15, za=45.0)[0] == pytest.approx(1.4e-6)

    def test_only_from_totally_random(self):
        tab = SingleScatteringData.isotropic(1e-6, 0.5).to_azimuthally_random([0.0, 180.0], [0.0, 180.0])
        with pytest.raises(InvalidConfiguration):
            tab.to_azimuthally_random([0.0, 180.0], [0.0, 180.0])


class TestHelpers:
    def test_wrap_azimuth(self):
        wrapped = wrap_azimuth([190.0, -180.0, 180.0, 30.0, -200.0])
        np.testing.assert_allclose(wrapped, [-170.0, 180.0, 180.0, 30.0, 160.0])

    def test_mirror_average_decouples(self):
        matrix = np.arange(16.0).reshape(4, 4)
        avg = mirror_average(matrix)
        np.testing.assert_array_equal(avg[:2, 2:], 0.0)
        np.testing.assert_array_equal(avg[2:, :2], 0.0)
        np.testing.assert_array_equal(avg[:2, :2], matrix[:2, :2])
        np.testing.assert_array_equal(avg[2:, 2:], matrix[2:, 2:])
