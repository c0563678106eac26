"""streamrt error types for actionable error messages.

These exceptions carry structured information about what went wrong and
where (frequency, layer, stream), rather than generic error messages.

Example:
    try:
        batch = streamrt.calculate(frequencies, geometry, particles, surface)
    except streamrt.InvalidConfiguration as e:
        print(f"Bad setting '{e.parameter}': {e.reason}")
    except streamrt.GeometryMismatch as e:
        print(f"Surface model returned {e.got}, expected {e.expected}")
"""

from __future__ import annotations

from typing import Any


class StreamRTError(Exception):
    """Base class for all streamrt errors."""

    pass


class InvalidConfiguration(StreamRTError):
    """Raised when solver parameters are malformed.

    Never retried: an odd stream count or an unknown quadrature family
    cannot be fixed by iterating.

    Attributes:
        parameter: The problematic parameter name.
        reason: Why the configuration is invalid.
    """

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        message = f"Invalid configuration for '{parameter}': {reason}"
        super().__init__(message)


class InvalidAtmosphere(StreamRTError):
    """Raised when atmospheric or particle input fields are inconsistent.

    Attributes:
        field: Name of the problematic field (e.g., "temperatures", "number_density").
        expected: What was expected (optional).
        got: What was actually provided (optional).
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        expected: str | None = None,
        got: str | None = None,
    ):
        self.field = field
        self.expected = expected
        self.got = got
        super().__init__(message)


class EnergyBudgetViolation(StreamRTError):
    """Raised when scattering optics fail the single-scattering-albedo check.

    Also raised by the surface adapter when a non-zero external reflectance
    cannot be reproduced on the quadrature streams.

    Attributes:
        reason: What failed.
        frequency: Frequency [Hz] at which it failed (optional).
        layer: Layer index, counted from the surface (optional).
        stream: Stream index in the mirrored za grid (optional).
        deviation: Absolute albedo deviation (optional).
    """

    def __init__(
        self,
        reason: str,
        frequency: float | None = None,
        layer: int | None = None,
        stream: int | None = None,
        deviation: float | None = None,
    ):
        self.reason = reason
        self.frequency = frequency
        self.layer = layer
        self.stream = stream
        self.deviation = deviation
        message = f"Energy budget violation: {reason}"
        where = []
        if frequency is not None:
            where.append(f"frequency={frequency:.6e} Hz")
        if layer is not None:
            where.append(f"layer={layer}")
        if stream is not None:
            where.append(f"stream={stream}")
        if deviation is not None:
            where.append(f"deviation={deviation:.3g}")
        if where:
            message += f" ({', '.join(where)})"
        super().__init__(message)


class GeometryMismatch(StreamRTError):
    """Raised when a collaborator returns geometry the solver did not ask for.

    Always fatal: this signals a contract violation by the surface or
    scattering collaborator, not a numerical problem.

    Attributes:
        reason: What is inconsistent.
        expected: The expected value.
        got: The value actually returned.
        stream: Stream index concerned (optional).
    """

    def __init__(self, reason: str, expected: Any, got: Any, stream: int | None = None):
        self.reason = reason
        self.expected = expected
        self.got = got
        self.stream = stream
        message = f"Geometry mismatch: {reason}\n  Expected: {expected}\n  Got: {got}"
        if stream is not None:
            message += f"\n  Stream: {stream}"
        super().__init__(message)


class NumericalDivergence(StreamRTError):
    """Raised when the radiance field becomes non-finite during a solve.

    Attributes:
        frequency: Frequency [Hz] being solved.
        layer: Layer index (from the surface) holding the first non-finite value.
        stream: Stream index of that value.
        iteration: Iteration in which it appeared.
    """

    def __init__(self, frequency: float, layer: int, stream: int, iteration: int):
        self.frequency = frequency
        self.layer = layer
        self.stream = stream
        self.iteration = iteration
        message = (
            f"Non-finite radiance at frequency={frequency:.6e} Hz, "
            f"layer={layer}, stream={stream} (iteration {iteration})"
        )
        super().__init__(message)


class ExhaustedError(StreamRTError):
    """Raised when the iteration bound is hit before convergence.

    The partially converged field is attached so the caller can decide
    whether it is usable.

    Attributes:
        iterations: Number of iterations performed.
        delta: Last per-Stokes change in Rayleigh-Jeans brightness temperature [K].
        epsilon: Per-Stokes thresholds [K] that were not met.
        field: Radiance field after the last iteration.
        frequency: Frequency [Hz] being solved (optional).
    """

    def __init__(self, iterations: int, delta: Any, epsilon: Any, field: Any = None, frequency: float | None = None):
        self.iterations = iterations
        self.delta = delta
        self.epsilon = epsilon
        self.field = field
        self.frequency = frequency
        message = f"No convergence after {iterations} iterations: delta={list(delta)} K, epsilon={list(epsilon)} K"
        if frequency is not None:
            message += f" (frequency={frequency:.6e} Hz)"
        super().__init__(message)
