"""Metrics record and per-invocation byte counters."""

from __future__ import annotations

import dataclasses as dc
import threading
import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    from gasmeter.snapshot import MetricSnapshot

_NS_PER_MS = 1_000_000

METRIC_KEYS: typ.Final[dict[str, str]] = {
    "cpu_time_ms": "cpuTimeMs",
    "cpu_percentage": "cpuPercentage",
    "memory_rss": "memoryRSS",
    "memory_heap_used": "memoryHeapUsed",
    "memory_external": "memoryExternal",
    "wall_time_ms": "wallTimeMs",
    "sent_bytes": "sentBytes",
    "received_bytes": "receivedBytes",
    "file_read_bytes": "fileReadBytes",
    "file_write_bytes": "fileWriteBytes",
}


@dc.dataclass(frozen=True, slots=True)
class ByteTally:
    """Frozen view of the byte counters at the end of an invocation."""

    sent_bytes: int = 0
    received_bytes: int = 0
    file_read_bytes: int = 0
    file_write_bytes: int = 0


class ByteCounters:
    """Byte accumulators owned by exactly one invocation.

    Hooks report from the event loop and, for blocking clients and
    ``asyncio.to_thread`` file calls, from worker threads, so updates are
    serialised with a lock. Once sealed, further additions are dropped so
    that late callbacks are not attributed to a finished invocation.
    """

    def __init__(self) -> None:
        """Start with every counter at zero and the counters open."""
        self._lock = threading.Lock()
        self._sealed = False
        self._sent = 0
        self._received = 0
        self._read = 0
        self._written = 0

    @property
    def sealed(self) -> bool:
        """Return whether the owning invocation has been released."""
        return self._sealed

    @property
    def sent_bytes(self) -> int:
        """Bytes sent through instrumented HTTP handles."""
        return self._sent

    @property
    def received_bytes(self) -> int:
        """Bytes received through instrumented HTTP handles."""
        return self._received

    @property
    def file_read_bytes(self) -> int:
        """Bytes read through instrumented file entry points."""
        return self._read

    @property
    def file_write_bytes(self) -> int:
        """Bytes written through instrumented file entry points."""
        return self._written

    def add_sent(self, count: int) -> None:
        """Record ``count`` bytes sent."""
        with self._lock:
            if not self._sealed:
                self._sent += count

    def add_received(self, count: int) -> None:
        """Record ``count`` bytes received."""
        with self._lock:
            if not self._sealed:
                self._received += count

    def add_read(self, count: int) -> None:
        """Record ``count`` bytes read from a file."""
        with self._lock:
            if not self._sealed:
                self._read += count

    def add_written(self, count: int) -> None:
        """Record ``count`` bytes written to a file."""
        with self._lock:
            if not self._sealed:
                self._written += count

    def reset(self) -> None:
        """Zero every counter without changing the sealed state."""
        with self._lock:
            self._sent = 0
            self._received = 0
            self._read = 0
            self._written = 0

    def seal(self) -> None:
        """Stop accepting additions."""
        with self._lock:
            self._sealed = True

    def tally(self) -> ByteTally:
        """Return a consistent frozen copy of the counters."""
        with self._lock:
            return ByteTally(
                sent_bytes=self._sent,
                received_bytes=self._received,
                file_read_bytes=self._read,
                file_write_bytes=self._written,
            )


class MetricsRecord(msgspec.Struct, frozen=True, kw_only=True, rename=METRIC_KEYS):
    """Resource usage measured for one invocation.

    Memory fields are deltas between the end and start of the window and
    may be negative when the operation released memory. Byte fields are
    window-scoped totals, not deltas.

    Attributes
    ----------
    cpu_time_ms
        Process user CPU time consumed during the window.
    cpu_percentage
        ``cpu_time_ms`` as a percentage of ``wall_time_ms``; zero when no
        wall time elapsed.
    memory_rss
        Change in resident set size, bytes.
    memory_heap_used
        Change in traced Python heap, bytes.
    memory_external
        Change in resident memory outside the traced heap, bytes.
    wall_time_ms
        Monotonic elapsed time of the window.
    sent_bytes, received_bytes
        HTTP bytes observed through instrumented clients.
    file_read_bytes, file_write_bytes
        File bytes observed through instrumented entry points.

    """

    cpu_time_ms: float = 0.0
    cpu_percentage: float = 0.0
    memory_rss: int = 0
    memory_heap_used: int = 0
    memory_external: int = 0
    wall_time_ms: float = 0.0
    sent_bytes: int = 0
    received_bytes: int = 0
    file_read_bytes: int = 0
    file_write_bytes: int = 0

    @classmethod
    def from_window(
        cls,
        start: MetricSnapshot,
        end: MetricSnapshot,
        tally: ByteTally,
    ) -> MetricsRecord:
        """Build a record from the window's snapshots and final byte tally.

        Parameters
        ----------
        start
            Snapshot taken before the operation ran.
        end
            Snapshot taken after the instrumentation was released.
        tally
            Byte counters of the invocation.

        Returns
        -------
        MetricsRecord
            The measured deltas and totals.

        """
        wall_ns = max(end.wall_ns - start.wall_ns, 0)
        cpu_time_ms = max(end.cpu_time_ms - start.cpu_time_ms, 0.0)
        wall_time_ms = wall_ns / _NS_PER_MS
        return cls(
            cpu_time_ms=cpu_time_ms,
            cpu_percentage=cpu_percentage(cpu_time_ms, wall_time_ms),
            memory_rss=end.rss - start.rss,
            memory_heap_used=end.heap_used - start.heap_used,
            memory_external=end.external - start.external,
            wall_time_ms=wall_time_ms,
            sent_bytes=tally.sent_bytes,
            received_bytes=tally.received_bytes,
            file_read_bytes=tally.file_read_bytes,
            file_write_bytes=tally.file_write_bytes,
        )

    def as_mapping(self) -> dict[str, float]:
        """Return the record keyed by its published metric names."""
        return {key: getattr(self, field) for field, key in METRIC_KEYS.items()}


def cpu_percentage(cpu_time_ms: float, wall_time_ms: float) -> float:
    """Return CPU time as a percentage of wall time, or 0 for an empty window.

    Multi-threaded work can push the value above 100.
    """
    if wall_time_ms <= 0:
        return 0.0
    return 100.0 * cpu_time_ms / wall_time_ms
