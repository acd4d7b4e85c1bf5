"""Run one operation inside a metering window.

The orchestrator brackets the operation with process snapshots, hands it a
fresh ``InvocationContext`` and releases that context before the closing
snapshot on every exit path. An exception raised by the operation becomes a
``Failure`` outcome; the metrics of the partial execution are still returned.
"""

from __future__ import annotations

import dataclasses as dc
import inspect
import typing as typ

from gasmeter.context import InvocationContext
from gasmeter.metrics import ByteCounters, ByteTally, MetricsRecord
from gasmeter.snapshot import ProcessProbe

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gasmeter.observability import MeterEventLogger
    from gasmeter.snapshot import Probe

type Operation[**P, T] = cabc.Callable[
    typ.Concatenate[InvocationContext, P], cabc.Awaitable[T] | T
]


@dc.dataclass(frozen=True, slots=True)
class Success[T]:
    """Outcome of an operation that returned ``value``."""

    value: T


@dc.dataclass(frozen=True, slots=True)
class Failure:
    """Outcome of an operation that raised ``error``.

    Attributes
    ----------
    message
        Exception message, or the exception type name when it has none.
    error
        The exception raised by the operation.

    """

    message: str
    error: Exception

    @classmethod
    def from_exception(cls, error: Exception) -> Failure:
        """Build a failure outcome from ``error``."""
        return cls(message=str(error) or type(error).__name__, error=error)


type Outcome[T] = Success[T] | Failure


@dc.dataclass(frozen=True, slots=True)
class Capture[T]:
    """Result of one metering window.

    Attributes
    ----------
    outcome
        Tagged success value or failure reason of the operation.
    metrics
        Resources consumed during the window.
    tally
        Byte counters of the invocation at release.

    """

    outcome: Outcome[T]
    metrics: MetricsRecord
    tally: ByteTally

    @property
    def succeeded(self) -> bool:
        """Return whether the operation completed without raising."""
        return isinstance(self.outcome, Success)


class CaptureOrchestrator:
    """Measure operations one invocation at a time.

    Every call to ``capture`` owns its counters and context, so overlapping
    captures on one orchestrator do not share byte counts. CPU and memory
    come from process-wide facilities and include whatever else runs
    concurrently in the process.

    Parameters
    ----------
    probe
        Source of process snapshots; a ``ProcessProbe`` by default.
    event_logger
        Passed to each invocation context for release failures.

    """

    def __init__(
        self,
        probe: Probe | None = None,
        *,
        event_logger: MeterEventLogger | None = None,
    ) -> None:
        """Bind the orchestrator to a probe."""
        self._probe = probe or ProcessProbe(event_logger=event_logger)
        self._events = event_logger

    @property
    def probe(self) -> Probe:
        """Return the snapshot source."""
        return self._probe

    async def capture[**P, T](
        self,
        operation: Operation[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> Capture[T]:
        """Run ``operation`` once and measure it.

        Parameters
        ----------
        operation
            Callable taking the invocation context followed by ``args`` and
            ``kwargs``; it may return a value or an awaitable.
        *args, **kwargs
            Arguments forwarded to ``operation``.

        Returns
        -------
        Capture
            Outcome, metrics, and byte tally of the invocation.

        Raises
        ------
        BaseException
            Cancellation and interpreter exits propagate after the context
            has been released; ordinary exceptions never do.

        """
        counters = ByteCounters()
        with self._probe.window():
            start = self._probe.snapshot()
            async with InvocationContext(counters, event_logger=self._events) as ctx:
                outcome = await self._invoke(ctx, operation, *args, **kwargs)
            end = self._probe.snapshot()
        tally = counters.tally()
        return Capture(
            outcome=outcome,
            metrics=MetricsRecord.from_window(start, end, tally),
            tally=tally,
        )

    @staticmethod
    async def _invoke[**P, T](
        ctx: InvocationContext,
        operation: Operation[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> Outcome[T]:
        try:
            value = operation(ctx, *args, **kwargs)
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:  # noqa: BLE001
            return Failure.from_exception(exc)
        return Success(typ.cast("T", value))
