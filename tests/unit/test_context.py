"""Unit tests for the per-invocation instrumentation context."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from gasmeter.capture import CaptureOrchestrator, Failure
from gasmeter.context import InvocationContext
from gasmeter.errors import ClientOptionsError, InstrumentationClosedError
from gasmeter.metrics import ByteTally
from gasmeter.observability import MeterEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from gasmeter.files import CountingFile
    from tests.helpers.fake_probe import ScriptedProbe


class _RecordingEvents(MeterEventLogger):
    """Event logger remembering release failures."""

    def __init__(self) -> None:
        self.release_failures: list[tuple[str, BaseException]] = []

    def log_release_failed(self, *, handle: str, error: BaseException) -> None:
        self.release_failures.append((handle, error))


class TestInvocationContext:
    """Tests for ``InvocationContext`` acquisition and release."""

    @pytest.mark.asyncio
    async def test_counts_http_and_file_traffic(
        self, echo_transport: httpx.MockTransport, tmp_path: Path
    ) -> None:
        """Traffic through the context's handles lands on its counters."""
        async with InvocationContext() as ctx:
            client = ctx.http_client(transport=echo_transport)
            response = await client.get("https://example.test/")
            ctx.files.write_text(tmp_path / "out.txt", "abc")

        tally = ctx.tally()
        assert response.content == b"Hello World"
        assert tally.sent_bytes > 0
        assert tally.received_bytes > len(b"Hello World")
        assert tally.file_write_bytes == 3

    @pytest.mark.asyncio
    async def test_release_closes_owned_clients(
        self, echo_transport: httpx.MockTransport
    ) -> None:
        """Leaving the block closes every client the context created."""
        async with InvocationContext() as ctx:
            async_client = ctx.http_client(transport=echo_transport)
            sync_client = ctx.sync_http_client(transport=echo_transport)

        assert ctx.closed is True
        assert async_client.is_closed is True
        assert sync_client.is_closed is True

    @pytest.mark.asyncio
    async def test_release_happens_when_block_raises(
        self, echo_transport: httpx.MockTransport
    ) -> None:
        """An exception inside the block still releases the context."""
        ctx = InvocationContext()
        with pytest.raises(RuntimeError, match="boom"):
            async with ctx:
                client = ctx.http_client(transport=echo_transport)
                raise RuntimeError("boom")  # noqa: EM101, TRY003

        assert ctx.closed is True
        assert client.is_closed is True

    @pytest.mark.asyncio
    async def test_handles_refuse_work_after_release(
        self, echo_transport: httpx.MockTransport, tmp_path: Path
    ) -> None:
        """Handles kept past the window raise instead of counting."""
        async with InvocationContext() as ctx:
            transport = ctx.wrap_transport(echo_transport)

        async with httpx.AsyncClient(transport=transport) as late_client:
            with pytest.raises(InstrumentationClosedError):
                await late_client.get("https://example.test/")
        with pytest.raises(InstrumentationClosedError):
            ctx.files.read_bytes(tmp_path / "anything")
        assert ctx.tally() == ByteTally()

    @pytest.mark.asyncio
    async def test_release_failure_is_logged_and_counters_still_sealed(self) -> None:
        """A client that fails to close does not stop the release."""
        events = _RecordingEvents()
        ctx = InvocationContext(event_logger=events)

        class _BrokenTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(
                self, request: httpx.Request
            ) -> httpx.Response:
                return httpx.Response(200)

            async def aclose(self) -> None:
                raise OSError("socket already gone")  # noqa: EM101, TRY003

        async with ctx:
            ctx.http_client(transport=_BrokenTransport())

        assert ctx.closed is True
        assert [handle for handle, _ in events.release_failures] == ["http"]
        assert isinstance(events.release_failures[0][1], OSError)

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self) -> None:
        """Releasing twice is harmless."""
        ctx = InvocationContext()
        await ctx.aclose()
        await ctx.aclose()

        assert ctx.closed is True

    @pytest.mark.asyncio
    async def test_separate_contexts_do_not_share_counts(
        self, echo_transport: httpx.MockTransport
    ) -> None:
        """Each context owns its counters."""
        async with InvocationContext() as first, InvocationContext() as second:
            await first.http_client(transport=echo_transport).get("https://a.test/")

        assert first.tally().received_bytes > 0
        assert second.tally() == ByteTally()


class TestFileRelease:
    """Tests for files opened through the context."""

    @pytest.mark.asyncio
    async def test_file_left_open_by_failing_operation_is_closed(
        self, scripted_probe: ScriptedProbe, tmp_path: Path
    ) -> None:
        """A file opened before the operation raises is closed on release."""
        orchestrator = CaptureOrchestrator(scripted_probe)
        opened: list[CountingFile] = []

        def _fails_mid_write(ctx: InvocationContext) -> None:
            handle = ctx.files.open(tmp_path / "partial.txt", "w")
            opened.append(handle)
            handle.write("half")
            raise RuntimeError("disk quota")  # noqa: EM101, TRY003

        capture = await orchestrator.capture(_fails_mid_write)

        assert isinstance(capture.outcome, Failure)
        assert opened[0].wrapped.closed is True
        assert capture.tally.file_write_bytes == 4
        assert (tmp_path / "partial.txt").read_text() == "half"

    @pytest.mark.asyncio
    async def test_stale_file_handle_refuses_io(self, tmp_path: Path) -> None:
        """Reads and writes on a handle kept past release raise."""
        target = tmp_path / "kept.txt"
        target.write_text("line\n")

        async with InvocationContext() as ctx:
            reader = ctx.files.open(target)
            writer = ctx.files.open(tmp_path / "other.txt", "w")

        for call in (
            reader.read,
            reader.readline,
            reader.readlines,
            lambda: next(iter(reader)),
            lambda: writer.write("x"),
            lambda: writer.writelines(["x"]),
        ):
            with pytest.raises(InstrumentationClosedError):
                call()
        assert ctx.tally() == ByteTally()

    @pytest.mark.asyncio
    async def test_file_close_failure_is_logged(self, tmp_path: Path) -> None:
        """A file that fails to close is reported and release completes."""
        events = _RecordingEvents()
        ctx = InvocationContext(event_logger=events)

        async with ctx:
            handle = ctx.files.open(tmp_path / "flaky.txt", "w")
            real_close = handle.wrapped.close

            def _failing_close() -> None:
                real_close()
                raise OSError("flush failed")  # noqa: EM101, TRY003

            handle.close = _failing_close  # type: ignore[method-assign]

        assert ctx.closed is True
        assert [name for name, _ in events.release_failures] == ["files"]


class TestClientOptions:
    """Tests for mount and proxy handling on context clients."""

    @pytest.mark.asyncio
    async def test_mounted_transports_are_counted(
        self,
        make_echo_transport: cabc.Callable[[bytes], httpx.MockTransport],
    ) -> None:
        """Traffic routed through a mount lands on the context's counters."""
        async with InvocationContext() as ctx:
            client = ctx.http_client(
                transport=make_echo_transport(b"default"),
                mounts={"https://mounted.test": make_echo_transport(b"mounted!")},
            )
            response = await client.get("https://mounted.test/path")

        assert response.content == b"mounted!"
        assert ctx.tally().sent_bytes > 0
        assert ctx.tally().received_bytes > len(b"mounted!")

    def test_sync_mounted_transports_are_counted(
        self,
        make_echo_transport: cabc.Callable[[bytes], httpx.MockTransport],
    ) -> None:
        """Blocking clients wrap their mounts too."""
        ctx = InvocationContext()
        client = ctx.sync_http_client(
            mounts={"https://mounted.test": make_echo_transport(b"mounted!")},
        )

        response = client.get("https://mounted.test/path")
        client.close()

        assert response.content == b"mounted!"
        assert ctx.tally().received_bytes > len(b"mounted!")

    def test_proxy_with_explicit_transport_is_rejected(
        self, echo_transport: httpx.MockTransport
    ) -> None:
        """A proxy cannot be combined with a caller-supplied transport."""
        ctx = InvocationContext()

        with pytest.raises(ClientOptionsError, match="proxy"):
            ctx.http_client(transport=echo_transport, proxy="http://proxy.test:3128")
        with pytest.raises(ClientOptionsError, match="proxy"):
            ctx.sync_http_client(
                transport=echo_transport, proxy="http://proxy.test:3128"
            )
