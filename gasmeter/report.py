"""Human-readable summary of a metrics record.

Units are fixed: memory is always shown in MB (MiB) and transfer volumes
in KB (KiB), without scaling to larger or smaller units.
"""

from __future__ import annotations

import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    from gasmeter.metrics import MetricsRecord

_KIB = 1024
_MIB = 1024 * 1024

_REPORT_KEYS: typ.Final[dict[str, str]] = {
    "cpu_time_ms": "cpuTimeMs",
    "wall_time_ms": "wallTimeMs",
    "peak_memory_rss": "peakMemoryRSS",
    "memory_heap_used": "memoryHeapUsed",
    "memory_external": "memoryExternal",
    "network_transferred": "networkTransferred",
    "file_io": "fileIO",
}


class ReportRecord(msgspec.Struct, frozen=True, kw_only=True, rename=_REPORT_KEYS):
    """Formatted view of one invocation's metrics.

    Attributes
    ----------
    cpu_time_ms, wall_time_ms
        Copied verbatim from the metrics record.
    peak_memory_rss, memory_heap_used, memory_external
        Memory deltas formatted as ``"<n.nn> MB"``.
    network_transferred
        Sent plus received bytes formatted as ``"<n.nn> KB"``.
    file_io
        Read plus written file bytes formatted as ``"<n.nn> KB"``.

    """

    cpu_time_ms: float
    wall_time_ms: float
    peak_memory_rss: str
    memory_heap_used: str
    memory_external: str
    network_transferred: str
    file_io: str


def format_megabytes(value: float) -> str:
    """Return ``value`` bytes as MB with two decimals."""
    return f"{value / _MIB:.2f} MB"


def format_kilobytes(value: float) -> str:
    """Return ``value`` bytes as KB with two decimals."""
    return f"{value / _KIB:.2f} KB"


def report_from(metrics: MetricsRecord) -> ReportRecord:
    """Return the human-readable report for ``metrics``."""
    return ReportRecord(
        cpu_time_ms=metrics.cpu_time_ms,
        wall_time_ms=metrics.wall_time_ms,
        peak_memory_rss=format_megabytes(metrics.memory_rss),
        memory_heap_used=format_megabytes(metrics.memory_heap_used),
        memory_external=format_megabytes(metrics.memory_external),
        network_transferred=format_kilobytes(
            metrics.sent_bytes + metrics.received_bytes
        ),
        file_io=format_kilobytes(metrics.file_read_bytes + metrics.file_write_bytes),
    )
