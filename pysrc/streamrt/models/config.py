"""Solver configuration."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from ..constants import (
    DEFAULT_EPSILON_K,
    DEFAULT_MAX_DELTA_TAU,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_N_STREAMS,
    DEFAULT_PFCT_AA_GRID_SIZE,
    DEFAULT_PFCT_METHOD,
    DEFAULT_PFCT_THRESHOLD,
    DEFAULT_QUADRATURE,
    PFCT_METHODS,
)
from ..errors import InvalidConfiguration
from ..rt_logging import get_logger

logger = get_logger(__name__)


@dataclass
class SolverConfig:
    """
    Configuration consumed by the discrete-ordinate solver.

    Groups all numerical settings in one typed object. Pure configuration,
    no atmospheric data. Invalid values raise ``InvalidConfiguration`` on
    construction.

    Attributes:
        n_streams: Number of quadrature streams over both hemispheres.
            Even, >= 2. Default 8.
        quadrature: Quadrature family: "double_gauss", "gauss_legendre" or
            "lobatto" (or the codes "D", "G", "L"). Default "double_gauss".
        add_straight_angles: Add a zero-weight mu = 1 stream for exact
            zenith/nadir output. Ignored for Lobatto. Default True.
        stokes_dim: Number of Stokes components, 1-4. Default 1.
        epsilon: Convergence thresholds per Stokes component in
            Rayleigh-Jeans brightness temperature [K]. Only the first
            ``stokes_dim`` entries are used.
        max_iterations: Upper bound on solver iterations per frequency.
        auto_inc_nstreams: Ceiling for automatic stream refinement when the
            phase-matrix normalization check fails. 0 disables refinement.
        robust: Downgrade a failed normalization check (after any
            refinement) to a warning instead of an error.
        pfct_aa_grid_size: Azimuth points used to integrate totally random
            phase matrices over 0-180 deg. >= 2.
        pfct_threshold: Tolerance on the single-scattering-albedo deviation.
        pfct_method: Temperature grid point used for phase matrices: "low",
            "median" or "high".
        za_interp_order: Polynomial order when interpolating radiance from a
            refined stream grid back to the requested one.
        cos_za_interp: Interpolate in cos(za) instead of za.
        max_delta_tau: Largest optical thickness of one internal sublayer.
        n_workers: Threads for the frequency batch. None picks a default
            based on CPU count.
        accept_unconverged: Keep fields that hit ``max_iterations`` in the
            batch output instead of marking them unusable.

    Examples:
        Basic usage with defaults:

        >>> config = SolverConfig.defaults()
        >>> config.save("solver.json")

        Polarized run with automatic refinement:

        >>> config = SolverConfig(n_streams=16, stokes_dim=2, auto_inc_nstreams=48)
    """

    n_streams: int = DEFAULT_N_STREAMS
    quadrature: str = DEFAULT_QUADRATURE
    add_straight_angles: bool = True
    stokes_dim: int = 1
    epsilon: tuple[float, ...] = field(default_factory=lambda: (DEFAULT_EPSILON_K,) * 4)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    auto_inc_nstreams: int = 0
    robust: bool = False
    pfct_aa_grid_size: int = DEFAULT_PFCT_AA_GRID_SIZE
    pfct_threshold: float = DEFAULT_PFCT_THRESHOLD
    pfct_method: str = DEFAULT_PFCT_METHOD
    za_interp_order: int = 1
    cos_za_interp: bool = False
    max_delta_tau: float = DEFAULT_MAX_DELTA_TAU
    n_workers: int | None = None
    accept_unconverged: bool = False

    def __post_init__(self):
        """Validate all settings."""
        # Deferred to avoid a models <-> components import cycle
        from ..components.quadrature import QuadratureFamily

        if isinstance(self.n_streams, bool) or not isinstance(self.n_streams, int):
            raise InvalidConfiguration("n_streams", f"must be an integer, got {self.n_streams!r}")
        if self.n_streams < 2 or self.n_streams % 2:
            raise InvalidConfiguration("n_streams", f"must be even and >= 2, got {self.n_streams}")
        self.quadrature = QuadratureFamily.from_name(self.quadrature).value
        if self.stokes_dim not in (1, 2, 3, 4):
            raise InvalidConfiguration("stokes_dim", f"must be 1, 2, 3 or 4, got {self.stokes_dim}")

        eps = tuple(float(e) for e in self.epsilon)
        if len(eps) < self.stokes_dim:
            raise InvalidConfiguration(
                "epsilon", f"needs {self.stokes_dim} values for stokes_dim={self.stokes_dim}, got {len(eps)}"
            )
        if any(e <= 0.0 for e in eps[: self.stokes_dim]):
            raise InvalidConfiguration("epsilon", f"thresholds must be positive, got {eps}")
        self.epsilon = eps

        if self.max_iterations < 1:
            raise InvalidConfiguration("max_iterations", f"must be >= 1, got {self.max_iterations}")
        if self.auto_inc_nstreams < 0:
            raise InvalidConfiguration("auto_inc_nstreams", f"must be >= 0, got {self.auto_inc_nstreams}")
        if 0 < self.auto_inc_nstreams < self.n_streams:
            raise InvalidConfiguration(
                "auto_inc_nstreams",
                f"ceiling {self.auto_inc_nstreams} is below n_streams={self.n_streams}",
            )
        if self.pfct_aa_grid_size < 2:
            raise InvalidConfiguration("pfct_aa_grid_size", f"must be >= 2, got {self.pfct_aa_grid_size}")
        if not self.pfct_threshold > 0.0:
            raise InvalidConfiguration("pfct_threshold", f"must be positive, got {self.pfct_threshold}")
        if self.pfct_method not in PFCT_METHODS:
            raise InvalidConfiguration("pfct_method", f"must be one of {PFCT_METHODS}, got {self.pfct_method!r}")
        if self.za_interp_order < 1:
            raise InvalidConfiguration("za_interp_order", f"must be >= 1, got {self.za_interp_order}")
        if not self.max_delta_tau > 0.0:
            raise InvalidConfiguration("max_delta_tau", f"must be positive, got {self.max_delta_tau}")
        if self.n_workers is not None and self.n_workers < 1:
            raise InvalidConfiguration("n_workers", f"must be >= 1, got {self.n_workers}")

    @property
    def active_epsilon(self) -> tuple[float, ...]:
        """Thresholds for the Stokes components actually solved."""
        return self.epsilon[: self.stokes_dim]

    @classmethod
    def defaults(cls) -> SolverConfig:
        """
        Standard configuration for most users.

        Returns:
            SolverConfig with 8 double-Gauss streams, unpolarized,
            0.01 K convergence threshold.
        """
        return cls()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["epsilon"] = list(self.epsilon)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SolverConfig:
        """
        Build from a plain dict, ignoring unknown keys with a warning.

        Example:
            >>> SolverConfig.from_dict({"n_streams": 16, "robust": True})
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")
        kwargs = {k: v for k, v in data.items() if k in known}
        if "epsilon" in kwargs:
            kwargs["epsilon"] = tuple(kwargs["epsilon"])
        return cls(**kwargs)

    def save(self, path: str | Path):
        """
        Save configuration to JSON file.

        Args:
            path: Output path for JSON file

        Example:
            >>> config = SolverConfig.defaults()
            >>> config.save("my_settings.json")
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Saved configuration to {path}")

    @classmethod
    def load(cls, path: str | Path) -> SolverConfig:
        """
        Load configuration from JSON file.

        Args:
            path: Path to JSON configuration file

        Returns:
            SolverConfig loaded from file

        Example:
            >>> config = SolverConfig.load("my_settings.json")
            >>> batch = calculate(frequencies, geometry, particles, surface, config=config)
        """
        path = Path(path)

        with open(path) as f:
            data = json.load(f)

        config = cls.from_dict(data)
        logger.info(f"Loaded configuration from {path}")
        return config
