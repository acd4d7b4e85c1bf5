"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from gasmeter import Meter
from tests.helpers.fake_probe import ScriptedProbe, snapshot_at

if typ.TYPE_CHECKING:
    import collections.abc as cabc


@pytest.fixture
def scripted_probe() -> ScriptedProbe:
    """Probe reporting 100 ms of wall time, 20 ms of CPU and 4 MiB of RSS growth."""
    return ScriptedProbe(
        snapshot_at(wall_ms=1_000.0, cpu_ms=500.0, rss=10 * 1024 * 1024, heap=1024),
        snapshot_at(wall_ms=1_100.0, cpu_ms=520.0, rss=14 * 1024 * 1024, heap=3072),
    )


@pytest.fixture
def scripted_meter(scripted_probe: ScriptedProbe) -> Meter:
    """Meter using the scripted probe and including both optional sections."""
    return Meter(include=["metric", "report"], probe=scripted_probe)


@pytest.fixture
def echo_transport() -> httpx.MockTransport:
    """Mock transport answering every request with a fixed 11-byte body."""

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"Hello World")

    return httpx.MockTransport(_handler)


@pytest.fixture
def make_echo_transport() -> cabc.Callable[[bytes], httpx.MockTransport]:
    """Build mock transports answering with a chosen body."""

    def _make(body: bytes) -> httpx.MockTransport:
        def _handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        return httpx.MockTransport(_handler)

    return _make
