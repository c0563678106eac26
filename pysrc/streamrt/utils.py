"""Grid interpolation helpers shared by the aggregator, surface adapter and solver."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from .constants import DEG2RAD, GRID_EXTRAPOLATION

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


def interp_weights(grid: ArrayLike, x: ArrayLike, clamp: bool = True):
    """
    Bracketing indices and linear weights of ``x`` on an ascending grid.

    Interpolated values are ``(1 - w) * y[i0] + w * y[i1]``. A single-point
    grid gives ``i0 = i1 = 0`` and ``w = 0``. With ``clamp`` the weights
    stay in [0, 1] (nearest-edge value outside the grid); otherwise the
    edge segment is extended linearly.

    Returns:
        Tuple ``(i0, i1, w)`` of arrays shaped like ``x``.
    """
    grid = np.asarray(grid, dtype=np.float64)
    x = np.asarray(x, dtype=np.float64)
    n = grid.size
    if n == 1:
        zeros = np.zeros(x.shape, dtype=np.intp)
        return zeros, zeros, np.zeros(x.shape)
    i0 = np.clip(np.searchsorted(grid, x, side="right") - 1, 0, n - 2)
    i1 = i0 + 1
    w = (x - grid[i0]) / (grid[i1] - grid[i0])
    if clamp:
        w = np.clip(w, 0.0, 1.0)
    return i0, i1, w


def interp_linear_limited(
    grid: ArrayLike,
    values: ArrayLike,
    x: ArrayLike,
    extrapolation: float = GRID_EXTRAPOLATION,
) -> NDArray[np.floating]:
    """
    Linear interpolation along axis 0 with bounded extrapolation.

    Points within ``extrapolation`` edge-grid-spacings outside the grid are
    extrapolated from the edge segment. Points further out get zero.

    Args:
        grid: Ascending grid, at least two points.
        values: Array with ``len(grid)`` entries along axis 0.
        x: Points to interpolate to.
        extrapolation: Allowed extrapolation in units of the edge spacing.
    """
    grid = np.asarray(grid, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    i0, i1, w = interp_weights(grid, x, clamp=False)
    lo = grid[0] - extrapolation * (grid[1] - grid[0])
    hi = grid[-1] + extrapolation * (grid[-1] - grid[-2])
    inside = (x >= lo) & (x <= hi)
    shape = (-1,) + (1,) * (values.ndim - 1)
    out = (1.0 - w).reshape(shape) * values[i0] + w.reshape(shape) * values[i1]
    out[~inside] = 0.0
    return out


def interp_poly(
    grid: ArrayLike,
    values: ArrayLike,
    x: ArrayLike,
    order: int = 1,
    extrapolation: float = GRID_EXTRAPOLATION,
) -> NDArray[np.floating]:
    """
    Lagrange polynomial interpolation along axis 0.

    Each target uses the ``order + 1`` grid points centred on it; near the
    grid ends the window is shifted inwards. Targets outside the grid are
    extrapolated at most ``extrapolation`` edge-grid-spacings; further out
    they take the value at that bound.
    """
    grid = np.asarray(grid, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    x = np.atleast_1d(np.asarray(x, dtype=np.float64))
    n = grid.size
    if n > 1:
        lo = grid[0] - extrapolation * (grid[1] - grid[0])
        hi = grid[-1] + extrapolation * (grid[-1] - grid[-2])
        x = np.clip(x, lo, hi)
    order = min(order, n - 1)
    out = np.empty((x.size,) + values.shape[1:])
    for k, xk in enumerate(x):
        start = int(np.clip(np.searchsorted(grid, xk) - (order + 1) // 2, 0, n - order - 1))
        xs = grid[start : start + order + 1]
        coeffs = np.empty(order + 1)
        for j in range(order + 1):
            others = np.delete(xs, j)
            coeffs[j] = np.prod((xk - others) / (xs[j] - others))
        out[k] = np.tensordot(coeffs, values[start : start + order + 1], axes=1)
    return out


def bin_edges(points: ArrayLike) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """
    Lower and upper bin edges around ascending sample points.

    Inner edges sit at midpoints; the outer edges are extended by half the
    neighbouring spacing.
    """
    points = np.asarray(points, dtype=np.float64)
    mid = 0.5 * (points[1:] + points[:-1])
    lower = np.concatenate([[points[0] - 0.5 * (points[1] - points[0])], mid])
    upper = np.concatenate([mid, [points[-1] + 0.5 * (points[-1] - points[-2])]])
    return lower, upper


def cosine_bin_weights(za_lower: ArrayLike, za_upper: ArrayLike) -> NDArray[np.floating]:
    """
    Cosine-weighted solid-angle fraction of polar bins given in degrees.

    ``0.5 * (cos(2 a) - cos(2 b))`` equals ``sin(b)^2 - sin(a)^2``; over
    [0, 90] the bins sum to one.
    """
    a = np.asarray(za_lower, dtype=np.float64) * DEG2RAD
    b = np.asarray(za_upper, dtype=np.float64) * DEG2RAD
    return 0.5 * (np.cos(2.0 * a) - np.cos(2.0 * b))
