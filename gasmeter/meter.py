"""Meter facade: measure an operation and score its cost.

Usage
-----
>>> import asyncio
>>> from gasmeter import Meter
>>> meter = Meter(include=["metric", "report"])
>>> async def idle(ctx):
...     await asyncio.sleep(0.05)
...     return "done"
>>> result = asyncio.run(meter.estimate_gas(idle))
>>> result.success, result.data
(True, 'done')

"""

from __future__ import annotations

import os
import typing as typ

from gasmeter.capture import CaptureOrchestrator, Failure, Success
from gasmeter.config import IncludeFlag, MeterOptions
from gasmeter.logging import configure_logging, get_logger, log_warning
from gasmeter.metrics import ByteTally
from gasmeter.observability import MeterEventLogger, operation_name
from gasmeter.policy import DEFAULT_POLICY, GasPolicy
from gasmeter.report import ReportRecord, report_from
from gasmeter.result import GasResult
from gasmeter.snapshot import ProcessProbe

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gasmeter.capture import Capture, Operation
    from gasmeter.metrics import MetricsRecord
    from gasmeter.snapshot import Probe

logger = get_logger(__name__)

_LOG_LEVEL_ENV = "GASMETER_LOG_LEVEL"


class Meter:
    """Measure operations and convert their footprint into a gas score.

    Each invocation runs with its own instrumentation context, so a single
    meter can measure overlapping invocations without mixing their byte
    counts.

    Parameters
    ----------
    options
        Base options; defaults to ``MeterOptions()``.
    include
        Result sections to attach, overriding ``options.include``.
    policy
        Weight and ceiling tables used for scoring.
    probe
        Snapshot source. When omitted, a ``ProcessProbe`` honouring
        ``options.trace_allocations`` is used.
    event_logger
        Receives lifecycle events.

    """

    def __init__(
        self,
        options: MeterOptions | None = None,
        *,
        include: cabc.Iterable[str] | None = None,
        policy: GasPolicy | None = None,
        probe: Probe | None = None,
        event_logger: MeterEventLogger | None = None,
    ) -> None:
        """Store configuration and build the capture orchestrator."""
        self._options = (options or MeterOptions()).merged(include=include)
        self._policy = policy or DEFAULT_POLICY
        self._events = event_logger or MeterEventLogger()
        self._probe = probe
        self._orchestrator = self._build_orchestrator()
        self._counters = ByteTally()

    @classmethod
    def from_env(
        cls,
        *,
        policy: GasPolicy | None = None,
        probe: Probe | None = None,
        event_logger: MeterEventLogger | None = None,
    ) -> Meter:
        """Create a meter configured from ``GASMETER_*`` environment variables.

        ``GASMETER_INCLUDE`` and ``GASMETER_TRACE_ALLOCATIONS`` feed the
        options. When ``GASMETER_LOG_LEVEL`` is set, femtologging is
        configured at that level; an unknown level falls back to ``INFO``
        with a warning.
        """
        raw_level = os.environ.get(_LOG_LEVEL_ENV)
        if raw_level is not None:
            applied, invalid = configure_logging(raw_level)
            if invalid:
                log_warning(
                    logger,
                    "Invalid %s %r, falling back to %s",
                    _LOG_LEVEL_ENV,
                    raw_level,
                    applied,
                )
        return cls(
            MeterOptions.from_env(),
            policy=policy,
            probe=probe,
            event_logger=event_logger,
        )

    def _build_orchestrator(self) -> CaptureOrchestrator:
        probe = self._probe or ProcessProbe(
            trace_allocations=self._options.trace_allocations,
            event_logger=self._events,
        )
        return CaptureOrchestrator(probe, event_logger=self._events)

    @property
    def options(self) -> MeterOptions:
        """Return the current options."""
        return self._options

    @property
    def policy(self) -> GasPolicy:
        """Return the scoring policy."""
        return self._policy

    @property
    def counters(self) -> ByteTally:
        """Return the byte counters of the most recent completed invocation."""
        return self._counters

    def reset(self) -> None:
        """Zero the byte counters."""
        self._counters = ByteTally()

    def set_options(
        self,
        *,
        include: cabc.Iterable[str] | None = None,
        trace_allocations: bool | None = None,
    ) -> Meter:
        """Merge the given options into the current ones.

        Options left as ``None`` keep their current value. Unknown include
        flags are stored and ignored.

        Returns
        -------
        Meter
            This meter, for chaining.

        """
        previous = self._options
        self._options = previous.merged(
            include=include,
            trace_allocations=trace_allocations,
        )
        if self._options.trace_allocations != previous.trace_allocations:
            self._orchestrator = self._build_orchestrator()
        return self

    async def estimate_gas[**P, T](
        self,
        operation: Operation[P, T],
        /,
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> GasResult:
        """Run ``operation``, score it, and assemble the result.

        Parameters
        ----------
        operation
            Callable receiving the invocation context followed by ``args``
            and ``kwargs``.
        *args, **kwargs
            Arguments forwarded to ``operation``.

        Returns
        -------
        GasResult
            Success flag, return value or failure message, gas score, and
            the configured optional sections. A failing operation produces
            ``success=False`` rather than an exception.

        """
        capture, gas = await self._measure(operation, *args, **kwargs)
        metric = capture.metrics if self._options.includes(IncludeFlag.METRIC) else None
        report = (
            report_from(capture.metrics)
            if self._options.includes(IncludeFlag.REPORT)
            else None
        )
        match capture.outcome:
            case Success(value=value):
                return GasResult(
                    success=True, data=value, gas=gas, metric=metric, report=report
                )
            case Failure(message=message):
                return GasResult(
                    success=False, data=message, gas=gas, metric=metric, report=report
                )

    async def calculate_metrics[**P, T](
        self,
        operation: Operation[P, T],
        /,
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> MetricsRecord:
        """Run ``operation`` and return only its metrics record."""
        capture, _gas = await self._measure(operation, *args, **kwargs)
        return capture.metrics

    def estimate_gas_from_metrics(self, metrics: MetricsRecord) -> float:
        """Return the gas score of an existing metrics record."""
        return self._policy.estimate(metrics)

    def generate_report(self, metrics: MetricsRecord) -> ReportRecord:
        """Return the human-readable report of an existing metrics record."""
        return report_from(metrics)

    async def _measure[**P, T](
        self,
        operation: Operation[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> tuple[Capture[T], float]:
        name = operation_name(operation)
        self._events.log_invocation_started(operation=name)
        capture = await self._orchestrator.capture(operation, *args, **kwargs)
        gas = self._policy.estimate(capture.metrics)
        self._counters = capture.tally
        if isinstance(capture.outcome, Failure):
            self._events.log_invocation_failed(
                operation=name,
                error=capture.outcome.error,
                gas=gas,
                metrics=capture.metrics,
            )
        else:
            self._events.log_invocation_completed(
                operation=name,
                gas=gas,
                metrics=capture.metrics,
            )
        return capture, gas
