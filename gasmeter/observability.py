"""Emit structured observability events for metered invocations.

``Meter`` reports the start, completion, and failure of every invocation
through ``MeterEventLogger``; the process probe reports degraded platform
facilities through the same logger.

Usage
-----
>>> event_logger = MeterEventLogger()
>>> event_logger.log_invocation_started(operation="fetch_prices")

"""

from __future__ import annotations

import enum
import typing as typ

from gasmeter.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from gasmeter.metrics import MetricsRecord

logger = get_logger(__name__)


class MeterEventType(enum.StrEnum):
    """Structured log event types emitted by the meter."""

    INVOCATION_STARTED = "meter.invocation.started"
    INVOCATION_COMPLETED = "meter.invocation.completed"
    INVOCATION_FAILED = "meter.invocation.failed"
    PROBE_DEGRADED = "meter.probe.degraded"
    RELEASE_FAILED = "meter.release.failed"


def operation_name(operation: object) -> str:
    """Return a readable name for ``operation`` for log fields."""
    name = getattr(operation, "__qualname__", None) or getattr(
        operation, "__name__", None
    )
    if isinstance(name, str):
        return name
    return type(operation).__name__


class MeterEventLogger:
    """Emit metering lifecycle events via femtologging."""

    def log_invocation_started(self, *, operation: str) -> None:
        """Log the start of one metered invocation.

        Parameters
        ----------
        operation
            Name of the operation being measured.

        """
        log_info(
            logger,
            "[%s] operation=%s",
            MeterEventType.INVOCATION_STARTED,
            operation,
        )

    def log_invocation_completed(
        self,
        *,
        operation: str,
        gas: float,
        metrics: MetricsRecord,
    ) -> None:
        """Log a successful invocation with its gas and headline metrics.

        Parameters
        ----------
        operation
            Name of the operation that was measured.
        gas
            Gas score computed for the invocation.
        metrics
            Metrics record produced for the invocation.

        """
        log_info(
            logger,
            "[%s] operation=%s gas=%.6f cpu_time_ms=%.3f wall_time_ms=%.3f "
            "sent_bytes=%d received_bytes=%d file_read_bytes=%d file_write_bytes=%d",
            MeterEventType.INVOCATION_COMPLETED,
            operation,
            gas,
            metrics.cpu_time_ms,
            metrics.wall_time_ms,
            metrics.sent_bytes,
            metrics.received_bytes,
            metrics.file_read_bytes,
            metrics.file_write_bytes,
        )

    def log_invocation_failed(
        self,
        *,
        operation: str,
        error: BaseException,
        gas: float,
        metrics: MetricsRecord,
    ) -> None:
        """Log an invocation whose operation raised.

        The failure is part of the result rather than a meter fault, so the
        event is a warning.

        Parameters
        ----------
        operation
            Name of the operation that was measured.
        error
            Exception raised by the operation.
        gas
            Gas score computed for the partial execution.
        metrics
            Metrics record produced for the partial execution.

        """
        log_warning(
            logger,
            "[%s] operation=%s gas=%.6f wall_time_ms=%.3f error_type=%s error_message=%s",
            MeterEventType.INVOCATION_FAILED,
            operation,
            gas,
            metrics.wall_time_ms,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_probe_degraded(self, *, facility: str, error: BaseException) -> None:
        """Log a platform facility that could not be read.

        Parameters
        ----------
        facility
            Facility that failed (``"cpu"``, ``"memory"``, or ``"heap"``).
        error
            Exception raised while reading it.

        """
        log_warning(
            logger,
            "[%s] facility=%s error_type=%s error_message=%s",
            MeterEventType.PROBE_DEGRADED,
            facility,
            type(error).__name__,
            str(error),
        )

    def log_release_failed(self, *, handle: str, error: BaseException) -> None:
        """Log an instrumented handle that failed to close on release."""
        log_warning(
            logger,
            "[%s] handle=%s error_type=%s error_message=%s",
            MeterEventType.RELEASE_FAILED,
            handle,
            type(error).__name__,
            str(error),
            exc_info=error,
        )
