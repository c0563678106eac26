"""
Tests for SolverConfig validation and persistence.
"""

import json

import pytest
from streamrt import InvalidConfiguration, SolverConfig


class TestDefaults:
    def test_defaults(self):
        config = SolverConfig.defaults()
        assert config.n_streams == 8
        assert config.quadrature == "double_gauss"
        assert config.stokes_dim == 1
        assert config.active_epsilon == (0.01,)

    def test_quadrature_code_resolved(self):
        """One-letter codes are stored as the family name."""
        assert SolverConfig(quadrature="G").quadrature == "gauss_legendre"
        assert SolverConfig(quadrature="l").quadrature == "lobatto"


class TestValidation:
    """Malformed settings are rejected on construction."""

    @pytest.mark.parametrize(
        "kwargs, parameter",
        [
            ({"n_streams": 5}, "n_streams"),
            ({"n_streams": 0}, "n_streams"),
            ({"n_streams": 4.0}, "n_streams"),
            ({"quadrature": "radau"}, "quadrature"),
            ({"stokes_dim": 5}, "stokes_dim"),
            ({"stokes_dim": 3, "epsilon": (0.1, 0.1)}, "epsilon"),
            ({"epsilon": (0.0,)}, "epsilon"),
            ({"max_iterations": 0}, "max_iterations"),
            ({"n_streams": 16, "auto_inc_nstreams": 8}, "auto_inc_nstreams"),
            ({"pfct_aa_grid_size": 1}, "pfct_aa_grid_size"),
            ({"pfct_threshold": 0.0}, "pfct_threshold"),
            ({"pfct_method": "mean"}, "pfct_method"),
            ({"max_delta_tau": -1.0}, "max_delta_tau"),
            ({"n_workers": 0}, "n_workers"),
        ],
    )
    def test_invalid(self, kwargs, parameter):
        with pytest.raises(InvalidConfiguration) as exc_info:
            SolverConfig(**kwargs)
        assert exc_info.value.parameter == parameter

    def test_epsilon_only_checked_for_active_components(self):
        """Unused Stokes thresholds may be anything."""
        config = SolverConfig(stokes_dim=1, epsilon=(0.05, 0.0))
        assert config.active_epsilon == (0.05,)


class TestPersistence:
    """JSON save/load."""

    def test_save_load_round_trip(self, tmp_path):
        config = SolverConfig(n_streams=16, stokes_dim=2, robust=True, auto_inc_nstreams=32)
        path = tmp_path / "nested" / "solver.json"
        config.save(path)

        loaded = SolverConfig.load(path)

        assert loaded == config
        assert isinstance(loaded.epsilon, tuple)

    def test_saved_file_is_plain_json(self, tmp_path):
        path = tmp_path / "solver.json"
        SolverConfig(quadrature="L").save(path)
        data = json.loads(path.read_text())
        assert data["quadrature"] == "lobatto"
        assert isinstance(data["epsilon"], list)

    def test_from_dict_ignores_unknown_keys(self):
        config = SolverConfig.from_dict({"n_streams": 6, "colour": "blue"})
        assert config.n_streams == 6

    def test_from_dict_validates(self):
        with pytest.raises(InvalidConfiguration):
            SolverConfig.from_dict({"n_streams": 7})
