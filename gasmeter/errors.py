"""Exceptions raised by gasmeter.

Failures of the measured operation are never raised from the meter; they are
reported through the result envelope. The exceptions here cover misuse of the
instrumentation and invalid configuration.
"""

from __future__ import annotations


class GasMeterError(Exception):
    """Base exception for all gasmeter errors."""


class InstrumentationClosedError(GasMeterError):
    """Raised when an instrumented handle is used after its window closed.

    Attributes
    ----------
    handle
        Kind of handle that was used (``"http"`` or ``"files"``).

    """

    def __init__(self, message: str, *, handle: str) -> None:
        """Store the handle kind alongside the message."""
        self.handle = handle
        super().__init__(message)

    @classmethod
    def http(cls) -> InstrumentationClosedError:
        """Create error for an HTTP request sent after release.

        Returns
        -------
        InstrumentationClosedError
            Error naming the HTTP handle.

        """
        msg = "HTTP request issued after the invocation context was released"
        return cls(msg, handle="http")

    @classmethod
    def files(cls, operation: str) -> InstrumentationClosedError:
        """Create error for a file operation issued after release.

        Parameters
        ----------
        operation
            Name of the file entry point that was called.

        Returns
        -------
        InstrumentationClosedError
            Error naming the file handle and the attempted operation.

        """
        msg = f"File operation {operation!r} issued after the invocation context was released"
        return cls(msg, handle="files")


class ClientOptionsError(GasMeterError, ValueError):
    """Raised when an instrumented HTTP client is requested with conflicting options."""

    @classmethod
    def proxy_with_transport(cls) -> ClientOptionsError:
        """Create error for a proxy combined with an explicit transport."""
        return cls(
            "Pass either 'proxy' or 'transport'; a proxy applies to the "
            "default transport only"
        )


class GasPolicyError(GasMeterError, ValueError):
    """Raised when a gas policy carries unusable weights or ceilings."""

    @classmethod
    def negative_weight(cls, metric: str, weight: float) -> GasPolicyError:
        """Create error for a weight below zero."""
        return cls(f"Weight for {metric!r} must be non-negative, got {weight!r}")

    @classmethod
    def non_finite_weight(cls, metric: str, weight: float) -> GasPolicyError:
        """Create error for a NaN or infinite weight."""
        return cls(f"Weight for {metric!r} must be finite, got {weight!r}")

    @classmethod
    def non_positive_ceiling(cls, metric: str, ceiling: float) -> GasPolicyError:
        """Create error for a ceiling that cannot normalise a metric."""
        return cls(
            f"Ceiling for {metric!r} must be a finite positive number, got {ceiling!r}"
        )


class MeterConfigError(GasMeterError):
    """Raised when meter configuration read from the environment is invalid."""

    @classmethod
    def invalid_boolean(cls, env_var: str, raw: str) -> MeterConfigError:
        """Create error for an environment flag that is not a boolean.

        Parameters
        ----------
        env_var
            Name of the offending environment variable.
        raw
            Raw value found in the environment.

        Returns
        -------
        MeterConfigError
            Error naming the variable and its value.

        """
        msg = f"{env_var} must be a boolean (1/0, true/false, yes/no, on/off), got: {raw!r}"
        return cls(msg)
