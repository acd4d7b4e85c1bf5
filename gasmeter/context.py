"""Per-invocation instrumentation context.

Each invocation gets its own ``InvocationContext``. The measured operation
receives it as its first argument and performs network and file I/O through
the handles it hands out, so bytes are attributed to that invocation alone
and no process-wide entry point is ever replaced.

Usage
-----
>>> async def fetch(ctx: InvocationContext, url: str) -> int:
...     async with ctx.http_client() as client:
...         response = await client.get(url)
...     return response.status_code

"""

from __future__ import annotations

import typing as typ

import httpx

from gasmeter.errors import ClientOptionsError
from gasmeter.files import InstrumentedFiles
from gasmeter.metrics import ByteCounters, ByteTally
from gasmeter.network import CountingAsyncTransport, CountingTransport
from gasmeter.observability import MeterEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import types


class InvocationContext:
    """Instrumented handles scoped to one invocation.

    The context is acquired with ``async with``; leaving the block releases
    it on every exit path. Release closes every HTTP client and file the
    context handed out and then seals the counters, after which the handles
    refuse new work and late stream chunks are no longer counted.

    Parameters
    ----------
    counters
        Counters to accumulate into; a fresh zeroed set by default.
    event_logger
        Receives ``meter.release.failed`` events.

    """

    def __init__(
        self,
        counters: ByteCounters | None = None,
        *,
        event_logger: MeterEventLogger | None = None,
    ) -> None:
        """Create the context with its counters and file entry points."""
        self._counters = counters or ByteCounters()
        self._events = event_logger or MeterEventLogger()
        self._files = InstrumentedFiles(self._counters)
        self._async_clients: list[httpx.AsyncClient] = []
        self._sync_clients: list[httpx.Client] = []

    async def __aenter__(self) -> InvocationContext:
        """Return the context for use by the operation."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Release the context."""
        await self.aclose()

    @property
    def counters(self) -> ByteCounters:
        """Return the counters owned by this invocation."""
        return self._counters

    @property
    def files(self) -> InstrumentedFiles:
        """Return the byte-counting file entry points."""
        return self._files

    @property
    def closed(self) -> bool:
        """Return whether the context has been released."""
        return self._counters.sealed

    def tally(self) -> ByteTally:
        """Return the current byte totals."""
        return self._counters.tally()

    def wrap_transport(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CountingAsyncTransport:
        """Return ``transport`` wrapped so its traffic is counted here."""
        return CountingAsyncTransport(self._counters, transport)

    def wrap_sync_transport(
        self,
        transport: httpx.BaseTransport | None = None,
    ) -> CountingTransport:
        """Return blocking ``transport`` wrapped so its traffic is counted here."""
        return CountingTransport(self._counters, transport)

    def http_client(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        proxy: httpx.Proxy | str | None = None,
        mounts: cabc.Mapping[str, httpx.AsyncBaseTransport | None] | None = None,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.AsyncClient:
        """Return an ``httpx.AsyncClient`` whose traffic is counted.

        Parameters
        ----------
        transport
            Inner transport performing the requests; the default httpx
            transport when omitted.
        proxy
            Proxy for the default transport. Cannot be combined with
            ``transport``.
        mounts
            URL pattern to transport mapping; each transport is wrapped so
            mounted traffic is counted too.
        **kwargs
            Passed through to ``httpx.AsyncClient``.

        Returns
        -------
        httpx.AsyncClient
            Client owned by the context and closed when it is released.

        Raises
        ------
        ClientOptionsError
            If both ``transport`` and ``proxy`` are given.

        """
        if proxy is not None:
            if transport is not None:
                raise ClientOptionsError.proxy_with_transport()
            transport = httpx.AsyncHTTPTransport(proxy=proxy)
        client = httpx.AsyncClient(
            transport=self.wrap_transport(transport),
            mounts=_wrap_mounts(mounts, self.wrap_transport),
            **kwargs,
        )
        self._async_clients.append(client)
        return client

    def sync_http_client(
        self,
        *,
        transport: httpx.BaseTransport | None = None,
        proxy: httpx.Proxy | str | None = None,
        mounts: cabc.Mapping[str, httpx.BaseTransport | None] | None = None,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.Client:
        """Return an ``httpx.Client`` whose traffic is counted.

        Accepts the same ``proxy`` and ``mounts`` handling as ``http_client``.
        """
        if proxy is not None:
            if transport is not None:
                raise ClientOptionsError.proxy_with_transport()
            transport = httpx.HTTPTransport(proxy=proxy)
        client = httpx.Client(
            transport=self.wrap_sync_transport(transport),
            mounts=_wrap_mounts(mounts, self.wrap_sync_transport),
            **kwargs,
        )
        self._sync_clients.append(client)
        return client

    async def aclose(self) -> None:
        """Close owned clients and files, then seal the counters.

        Safe to call twice. A handle that fails to close is logged and does
        not stop the release.
        """
        if self.closed:
            return
        try:
            for client in self._async_clients:
                try:
                    await client.aclose()
                except Exception as exc:  # noqa: BLE001
                    self._events.log_release_failed(handle="http", error=exc)
            for sync_client in self._sync_clients:
                try:
                    sync_client.close()
                except Exception as exc:  # noqa: BLE001
                    self._events.log_release_failed(handle="http", error=exc)
            for handle in self._files.detach_open_handles():
                try:
                    handle.close()
                except Exception as exc:  # noqa: BLE001
                    self._events.log_release_failed(handle="files", error=exc)
        finally:
            self._async_clients.clear()
            self._sync_clients.clear()
            self._counters.seal()


def _wrap_mounts[T](
    mounts: cabc.Mapping[str, T | None] | None,
    wrap: cabc.Callable[[T], typ.Any],
) -> dict[str, typ.Any] | None:
    if mounts is None:
        return None
    return {
        pattern: None if transport is None else wrap(transport)
        for pattern, transport in mounts.items()
    }
