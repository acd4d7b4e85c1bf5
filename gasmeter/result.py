"""Result envelope returned by ``Meter.estimate_gas``."""

from __future__ import annotations

import typing as typ

import msgspec

from gasmeter.metrics import MetricsRecord
from gasmeter.report import ReportRecord


class GasResult(msgspec.Struct, frozen=True, kw_only=True, omit_defaults=True):
    """Outcome and cost of one metered invocation.

    ``metric`` and ``report`` are only present when the meter was configured
    to include them; when absent they are left out of the encoded form
    entirely rather than encoded as ``null``.

    Attributes
    ----------
    success
        Whether the operation completed without raising.
    data
        The operation's return value, or the failure message.
    gas
        Gas score of the invocation.
    metric
        Raw metrics, when included.
    report
        Human-readable report, when included.

    """

    success: bool
    data: typ.Any
    gas: float
    metric: MetricsRecord | None = None
    report: ReportRecord | None = None

    def to_builtins(self) -> dict[str, typ.Any]:
        """Return the result as JSON-compatible builtins with published keys."""
        return typ.cast("dict[str, typ.Any]", msgspec.to_builtins(self))

    def to_json(self) -> bytes:
        """Return the result encoded as JSON."""
        return msgspec.json.encode(self)
