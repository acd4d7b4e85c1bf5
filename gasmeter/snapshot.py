"""Process resource snapshots taken at the edges of a metering window.

CPU time and resident memory come from psutil, Python heap usage from
``tracemalloc`` and wall time from the monotonic ``perf_counter_ns`` clock.
A facility that cannot be read contributes zero and is reported through
``MeterEventLogger`` instead of aborting the measurement.
"""

from __future__ import annotations

import contextlib
import dataclasses as dc
import threading
import time
import tracemalloc
import typing as typ

import psutil

from gasmeter.observability import MeterEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_MS_PER_S = 1000.0

_trace_lock = threading.Lock()
_trace_holders = 0
_trace_owned = False


@dc.dataclass(frozen=True, slots=True)
class MetricSnapshot:
    """Process resource figures at one instant.

    Attributes
    ----------
    cpu_time_ms
        User CPU time consumed by the process so far.
    rss
        Resident set size in bytes.
    heap_used
        Bytes currently traced by ``tracemalloc``; zero when not tracing.
    external
        Resident bytes outside the traced heap.
    wall_ns
        Monotonic clock reading in nanoseconds.

    """

    cpu_time_ms: float = 0.0
    rss: int = 0
    heap_used: int = 0
    external: int = 0
    wall_ns: int = 0


@typ.runtime_checkable
class Probe(typ.Protocol):
    """Source of metric snapshots for the capture orchestrator."""

    def snapshot(self) -> MetricSnapshot:
        """Return the current process figures."""
        ...

    def window(self) -> contextlib.AbstractContextManager[None]:
        """Return a context that brackets one measurement window."""
        ...


def _acquire_heap_tracing() -> None:
    global _trace_holders, _trace_owned  # noqa: PLW0603
    with _trace_lock:
        if _trace_holders == 0 and not tracemalloc.is_tracing():
            tracemalloc.start()
            _trace_owned = True
        _trace_holders += 1


def _release_heap_tracing() -> None:
    global _trace_holders, _trace_owned  # noqa: PLW0603
    with _trace_lock:
        _trace_holders -= 1
        if _trace_holders == 0 and _trace_owned:
            tracemalloc.stop()
            _trace_owned = False


class ProcessProbe:
    """Read CPU, memory, and wall-clock figures for the current process.

    Parameters
    ----------
    trace_allocations
        Start ``tracemalloc`` for each window when nothing else is tracing,
        so heap growth can be measured. Windows share one tracing session;
        the last window to close stops it.
    process
        Optional ``psutil.Process`` to read from; defaults to this process.
    event_logger
        Receives ``meter.probe.degraded`` events.

    """

    def __init__(
        self,
        *,
        trace_allocations: bool = True,
        process: psutil.Process | None = None,
        event_logger: MeterEventLogger | None = None,
    ) -> None:
        """Bind the probe to a process and event logger."""
        self._trace_allocations = trace_allocations
        self._process = process or psutil.Process()
        self._events = event_logger or MeterEventLogger()

    @property
    def trace_allocations(self) -> bool:
        """Return whether windows start heap tracing."""
        return self._trace_allocations

    @contextlib.contextmanager
    def window(self) -> cabc.Iterator[None]:
        """Hold heap tracing open for the duration of one window."""
        if not self._trace_allocations:
            yield
            return
        _acquire_heap_tracing()
        try:
            yield
        finally:
            _release_heap_tracing()

    def snapshot(self) -> MetricSnapshot:
        """Return the current CPU, memory, and wall-clock figures."""
        cpu_time_ms = self._read_cpu_time_ms()
        rss = self._read_rss()
        heap_used = self._read_heap()
        return MetricSnapshot(
            cpu_time_ms=cpu_time_ms,
            rss=rss,
            heap_used=heap_used,
            external=max(rss - heap_used, 0),
            wall_ns=time.perf_counter_ns(),
        )

    def _read_cpu_time_ms(self) -> float:
        try:
            return self._process.cpu_times().user * _MS_PER_S
        except (psutil.Error, OSError) as exc:
            self._events.log_probe_degraded(facility="cpu", error=exc)
            return 0.0

    def _read_rss(self) -> int:
        try:
            return int(self._process.memory_info().rss)
        except (psutil.Error, OSError) as exc:
            self._events.log_probe_degraded(facility="memory", error=exc)
            return 0

    def _read_heap(self) -> int:
        if not tracemalloc.is_tracing():
            return 0
        current, _peak = tracemalloc.get_traced_memory()
        return current
