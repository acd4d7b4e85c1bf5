"""Measure the resource footprint of an operation as a single gas score.

A ``Meter`` runs one operation inside a metering window: it snapshots CPU
time, memory, and wall time around the operation, attributes network and
file bytes through a per-invocation ``InvocationContext``, and reduces the
resulting ``MetricsRecord`` to a gas score with a ``GasPolicy``.

Public API
----------
Meter
    Facade exposing ``estimate_gas`` and ``calculate_metrics``.
MeterOptions
    Include flags and heap tracing switch; loadable from the environment.
IncludeFlag
    Recognised include flags (``metric`` and ``report``).
InvocationContext
    Instrumented HTTP clients and file entry points for one invocation.
MetricsRecord
    Immutable resource usage of one invocation.
GasPolicy
    Weight and ceiling tables used for scoring.
GasResult
    Result envelope of ``Meter.estimate_gas``.
ReportRecord
    Human-readable projection of a metrics record.
report_from
    Build a ``ReportRecord`` from a ``MetricsRecord``.
estimate_gas
    Score a ``MetricsRecord`` with a policy.

Examples
--------
>>> import asyncio
>>> from gasmeter import Meter
>>> async def write_log(ctx, path):
...     return ctx.files.write_text(path, "hello")
>>> meter = Meter(include=["metric"])
>>> result = asyncio.run(meter.estimate_gas(write_log, "out.log"))
>>> result.metric.file_write_bytes
5

"""

from __future__ import annotations

from gasmeter.capture import Capture, CaptureOrchestrator, Failure, Success
from gasmeter.config import IncludeFlag, MeterOptions
from gasmeter.context import InvocationContext
from gasmeter.errors import (
    ClientOptionsError,
    GasMeterError,
    GasPolicyError,
    InstrumentationClosedError,
    MeterConfigError,
)
from gasmeter.meter import Meter
from gasmeter.metrics import ByteTally, MetricsRecord
from gasmeter.policy import DEFAULT_POLICY, GasPolicy, estimate_gas
from gasmeter.report import ReportRecord, report_from
from gasmeter.result import GasResult
from gasmeter.snapshot import MetricSnapshot, ProcessProbe

__all__ = [
    "DEFAULT_POLICY",
    "ByteTally",
    "Capture",
    "CaptureOrchestrator",
    "ClientOptionsError",
    "Failure",
    "GasMeterError",
    "GasPolicy",
    "GasPolicyError",
    "GasResult",
    "IncludeFlag",
    "InstrumentationClosedError",
    "Meter",
    "MeterConfigError",
    "MeterOptions",
    "MetricSnapshot",
    "MetricsRecord",
    "InvocationContext",
    "ProcessProbe",
    "ReportRecord",
    "Success",
    "estimate_gas",
    "report_from",
]
