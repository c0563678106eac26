"""
Tests for the surface reflection adapter and built-in surface models.
"""

import numpy as np
import pytest
from conftest import FREQUENCY
from streamrt import (
    BlackbodySurface,
    EnergyBudgetViolation,
    FresnelSurface,
    GeometryMismatch,
    InvalidAtmosphere,
    LambertianSurface,
    SpecularSurface,
    SurfaceRTProperties,
    build_quadrature,
)
from streamrt.components.surface import fresnel_matrix, resample_surface
from streamrt.physics.planck import planck

POSITION = (45.0, 10.0)


@pytest.fixture
def grid():
    return build_quadrature(8, "D")


class FixedSamples:
    """Surface model returning the same sampled directions for every stream."""

    def __init__(self, los, reflectance, temperature=280.0):
        self.los = np.asarray(los, dtype=np.float64)
        self.reflectance = np.asarray(reflectance, dtype=np.float64)
        self.temperature = temperature

    def __call__(self, frequencies, position, los_za):
        reflection = np.zeros((self.los.size, len(frequencies), 4, 4))
        reflection[:, :, 0, 0] = self.reflectance[:, None]
        return SurfaceRTProperties(
            skin_temperature=self.temperature,
            emission=np.zeros((len(frequencies), 4)),
            los=self.los,
            reflection=reflection,
        )


class TestBlackbody:
    def test_emission_only(self, grid):
        surface = resample_surface(BlackbodySurface(275.0), FREQUENCY, POSITION, grid, stokes_dim=2)
        assert surface.reflection.shape == (grid.n_angles, grid.n_angles, 2, 2)
        assert not np.any(surface.reflection)
        np.testing.assert_allclose(surface.emission[:, 0], planck(FREQUENCY, 275.0))
        np.testing.assert_array_equal(surface.emission[:, 1], 0.0)
        assert surface.skin_temperature == 275.0

    def test_zero_kelvin(self, grid):
        surface = resample_surface(BlackbodySurface(0.0), FREQUENCY, POSITION, grid)
        assert not np.any(surface.emission)

    @pytest.mark.parametrize("temperature", [-1.0, 1000.5])
    def test_skin_temperature_range(self, grid, temperature):
        with pytest.raises(InvalidAtmosphere):
            resample_surface(BlackbodySurface(temperature), FREQUENCY, POSITION, grid)


class TestSpecular:
    def test_scalar_reflectivity(self, grid):
        surface = resample_surface(SpecularSurface(290.0, reflectivity=0.3), FREQUENCY, POSITION, grid, 2)
        for i in range(grid.n_angles):
            np.testing.assert_allclose(surface.reflection[i, i], 0.3 * np.eye(2))
        off_diagonal = surface.reflection.copy()
        off_diagonal[np.arange(grid.n_angles), np.arange(grid.n_angles)] = 0.0
        assert not np.any(off_diagonal)
        np.testing.assert_allclose(surface.emission[:, 0], 0.7 * planck(FREQUENCY, 290.0))
        np.testing.assert_allclose(surface.total_reflectance, 0.3)

    def test_misaligned_direction(self, grid):
        """A single sample off the mirror stream is a contract violation."""
        with pytest.raises(GeometryMismatch) as exc_info:
            resample_surface(FixedSamples([10.0], [0.5]), FREQUENCY, POSITION, grid)
        assert exc_info.value.got == 10.0
        assert exc_info.value.stream == 0

    def test_shape_disagreement(self, grid):
        def model(frequencies, position, los_za):
            return SurfaceRTProperties(
                skin_temperature=280.0,
                emission=np.zeros((1, 4)),
                los=np.array([20.0, 40.0]),
                reflection=np.zeros((1, 1, 4, 4)),
            )

        with pytest.raises(GeometryMismatch):
            resample_surface(model, FREQUENCY, POSITION, grid)


class TestFresnel:
    def test_normal_incidence(self):
        matrix = fresnel_matrix(2.0, 0.0)
        assert matrix[0, 0] == pytest.approx(1.0 / 9.0)
        assert matrix[0, 1] == pytest.approx(0.0, abs=1e-15)
        # r_v and r_h have opposite signs at normal incidence
        assert matrix[2, 2] == pytest.approx(-1.0 / 9.0)

    def test_vertical_below_horizontal(self):
        """Away from normal incidence vertical polarization reflects less."""
        matrix = fresnel_matrix(3.0 + 0.5j, 50.0)
        assert matrix[0, 1] < 0.0
        assert 0.0 < matrix[0, 0] < 1.0

    def test_kirchhoff_emission(self, grid):
        model = FresnelSurface(temperature=285.0, refractive_index=6.5 + 2.8j)
        surface = resample_surface(model, FREQUENCY, POSITION, grid, stokes_dim=2)
        r00 = np.array([fresnel_matrix(6.5 + 2.8j, a)[0, 0] for a in grid.angles])
        np.testing.assert_allclose(surface.emission[:, 0], planck(FREQUENCY, 285.0) * (1.0 - r00))
        np.testing.assert_allclose(np.diagonal(surface.reflection[..., 0, 0]), r00)


class TestSampledReflection:
    def test_lambertian_row_sums(self, grid):
        surface = resample_surface(LambertianSurface(280.0, albedo=0.4), FREQUENCY, POSITION, grid)
        np.testing.assert_allclose(surface.reflection[..., 0, 0].sum(axis=1), 0.4)
        np.testing.assert_allclose(surface.emission[:, 0], 0.6 * planck(FREQUENCY, 280.0))

    def test_lambertian_is_cosine_weighted(self, grid):
        """Each incident stream contributes in proportion to its 2 w mu share."""
        surface = resample_surface(LambertianSurface(280.0, albedo=0.4), FREQUENCY, POSITION, grid)
        expected = 0.4 * 2.0 * grid.weights * grid.cosines
        np.testing.assert_allclose(surface.reflection[0, :, 0, 0], expected, rtol=0.05, atol=1e-12)

    def test_extra_angle_carries_no_reflection(self, grid):
        surface = resample_surface(LambertianSurface(280.0, albedo=0.4), FREQUENCY, POSITION, grid)
        assert grid.weights[-1] == 0.0
        np.testing.assert_array_equal(surface.reflection[:, -1], 0.0)

    def test_reflectance_lost_in_resampling(self, grid):
        """Samples beyond the horizon cannot carry the reported reflectance."""
        with pytest.raises(EnergyBudgetViolation):
            resample_surface(FixedSamples([170.0, 175.0], [0.2, 0.2]), FREQUENCY, POSITION, grid)

    def test_samples_not_extrapolated_past_half_spacing(self):
        """Samples at 30, 40 and 50 deg reach streams in [25, 55] deg only."""
        fine = build_quadrature(16)
        surface = resample_surface(FixedSamples([30.0, 40.0, 50.0], [0.1, 0.1, 0.1]), FREQUENCY, POSITION, fine)
        incident = surface.reflection[0, :, 0, 0]
        weighted = fine.weights > 0.0
        inside = (fine.angles >= 25.0) & (fine.angles <= 55.0) & weighted

        assert np.any(inside)
        assert np.all(incident[inside] > 0.0)
        np.testing.assert_array_equal(incident[~inside], 0.0)
        assert incident.sum() == pytest.approx(0.3)

    def test_zero_reflectance_allowed(self, grid):
        surface = resample_surface(FixedSamples([170.0, 175.0], [0.0, 0.0]), FREQUENCY, POSITION, grid)
        assert not np.any(surface.reflection)

    def test_lambertian_validation(self):
        with pytest.raises(InvalidAtmosphere):
            LambertianSurface(280.0, albedo=1.5)
        with pytest.raises(InvalidAtmosphere):
            LambertianSurface(280.0, albedo=0.5, n_angles=1)
