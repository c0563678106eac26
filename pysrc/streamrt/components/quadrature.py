"""
Angular quadrature component.

Builds the polar-angle streams of one hemisphere for the discrete-ordinate
solver. Three classical rules are available:
- Double Gauss: Gauss-Legendre rule mapped onto [0, 1]
- Gauss-Legendre: positive half of the full-sphere rule on [-1, 1]
- Lobatto: positive half of the Gauss-Lobatto rule, which includes mu = 1

Cosines run from the zenith towards the horizon, weights sum to one per
hemisphere and to two once mirrored onto [-1, 1].
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from numpy.polynomial import legendre

from ..constants import HEMISPHERE_WEIGHT_SUM, QUADRATURE_CODES, RAD2DEG
from ..errors import InvalidConfiguration

if TYPE_CHECKING:
    from numpy.typing import NDArray


class QuadratureFamily(str, Enum):
    """Supported quadrature rules."""

    DOUBLE_GAUSS = "double_gauss"
    GAUSS_LEGENDRE = "gauss_legendre"
    LOBATTO = "lobatto"

    @classmethod
    def from_name(cls, name: QuadratureFamily | str) -> QuadratureFamily:
        """Resolve a family from its value or its one-letter code (D, G, L)."""
        if isinstance(name, cls):
            return name
        if isinstance(name, str):
            key = name.strip()
            key = QUADRATURE_CODES.get(key.upper(), key.lower())
            for family in cls:
                if family.value == key:
                    return family
        valid = [f.value for f in cls] + list(QUADRATURE_CODES)
        raise InvalidConfiguration("quadrature", f"unknown family {name!r}, expected one of {valid}")


@dataclass(frozen=True)
class AngularGrid:
    """
    Streams of one hemisphere plus optional extra angles.

    Attributes:
        cosines: Direction cosines, quadrature nodes first (strictly
            decreasing) followed by any extra angle at mu = 1.
        weights: Matching weights; extra angles carry zero weight.
        n_streams: Total number of quadrature streams (both hemispheres).
        family: Quadrature rule used.
        n_extra: Number of appended zero-weight angles.
    """

    cosines: NDArray[np.floating]
    weights: NDArray[np.floating]
    n_streams: int
    family: QuadratureFamily
    n_extra: int = 0

    def __post_init__(self):
        # Grids are replaced on refinement, never edited
        self.cosines.setflags(write=False)
        self.weights.setflags(write=False)

    @property
    def n_quad(self) -> int:
        """Quadrature streams per hemisphere."""
        return self.n_streams // 2

    @property
    def n_angles(self) -> int:
        """All angles per hemisphere, including extra ones."""
        return self.cosines.size

    @property
    def angles(self) -> NDArray[np.floating]:
        """Polar angles [deg] of the downwelling hemisphere."""
        return np.arccos(np.clip(self.cosines, -1.0, 1.0)) * RAD2DEG

    @property
    def za_grid(self) -> NDArray[np.floating]:
        """Full 0-180 deg polar grid: ``angle[i]`` then ``180 - angle[i]``."""
        angles = self.angles
        return np.concatenate([angles, 180.0 - angles])

    @property
    def mirrored_cosines(self) -> NDArray[np.floating]:
        """Cosines of the full polar grid, matching ``za_grid``."""
        return np.concatenate([self.cosines, -self.cosines])

    @property
    def mirrored_weights(self) -> NDArray[np.floating]:
        """Weights of the full polar grid; they sum to 2."""
        return np.concatenate([self.weights, self.weights])


def _double_gauss(n_quad: int) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    x, w = legendre.leggauss(n_quad)
    return 0.5 * (x + 1.0), 0.5 * w


def _gauss_legendre(n_quad: int) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    x, w = legendre.leggauss(2 * n_quad)
    keep = x > 0.0
    return x[keep], w[keep]


def _lobatto(n_quad: int) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    # Nodes: +-1 and the roots of P'_{N-1}; weights 2 / (N (N-1) P_{N-1}(x)^2)
    n_total = 2 * n_quad
    basis = legendre.Legendre.basis(n_total - 1)
    inner = np.sort(np.real(basis.deriv().roots()))
    x = np.concatenate([[-1.0], inner, [1.0]])
    w = 2.0 / (n_total * (n_total - 1) * basis(x) ** 2)
    keep = x > 0.0
    return x[keep], w[keep]


_RULES = {
    QuadratureFamily.DOUBLE_GAUSS: _double_gauss,
    QuadratureFamily.GAUSS_LEGENDRE: _gauss_legendre,
    QuadratureFamily.LOBATTO: _lobatto,
}


def build_quadrature(
    n_streams: int,
    family: QuadratureFamily | str = QuadratureFamily.DOUBLE_GAUSS,
    extra_straight_angle: bool = True,
) -> AngularGrid:
    """
    Build the angular grid for ``n_streams`` streams.

    Args:
        n_streams: Total number of streams, even and at least 2.
        family: Quadrature rule (enum, value string or D/G/L code).
        extra_straight_angle: Append mu = 1 with zero weight so that exact
            zenith/nadir radiances are produced. Lobatto already contains
            mu = 1, so no angle is added for it.

    Returns:
        AngularGrid with ``n_streams // 2`` quadrature cosines in strictly
        decreasing order, followed by the extra angle if any.

    Raises:
        InvalidConfiguration: odd or too small stream count, unknown family.
    """
    if isinstance(n_streams, bool) or not isinstance(n_streams, (int, np.integer)):
        raise InvalidConfiguration("n_streams", f"must be an integer, got {n_streams!r}")
    if n_streams < 2 or n_streams % 2:
        raise InvalidConfiguration("n_streams", f"must be even and >= 2, got {n_streams}")
    family = QuadratureFamily.from_name(family)

    mu, w = _RULES[family](int(n_streams) // 2)
    order = np.argsort(mu)[::-1]
    mu, w = mu[order], w[order]
    # Renormalize against round-off to the hemisphere weight sum
    w = HEMISPHERE_WEIGHT_SUM * w / w.sum()

    n_extra = 0
    if extra_straight_angle and family is not QuadratureFamily.LOBATTO:
        mu = np.append(mu, 1.0)
        w = np.append(w, 0.0)
        n_extra = 1

    return AngularGrid(
        cosines=np.ascontiguousarray(mu, dtype=np.float64),
        weights=np.ascontiguousarray(w, dtype=np.float64),
        n_streams=int(n_streams),
        family=family,
        n_extra=n_extra,
    )
