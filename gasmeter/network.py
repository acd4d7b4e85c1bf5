"""Byte-counting httpx transports for network attribution.

The transports wrap any httpx transport and add the bytes of every request
and response that crosses them to one invocation's counters. Counting
happens at the transport boundary: the request line, header block, and body
are counted as sent; the status line, header block, and body as received.
Bodies with a declared ``Content-Length`` are counted from the header;
streamed bodies are counted chunk by chunk as they are consumed.
"""

from __future__ import annotations

import typing as typ

import httpx

from gasmeter.errors import InstrumentationClosedError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gasmeter.metrics import ByteCounters

_HTTP_VERSION = b"HTTP/1.1"
_CRLF_LEN = 2
_HEADER_SEPARATOR_LEN = 2
_BODYLESS_STATUS = frozenset({204, 304})


def _header_block_size(raw_headers: cabc.Iterable[tuple[bytes, bytes]]) -> int:
    """Return the encoded size of a header block including the blank line."""
    size = sum(
        len(name) + _HEADER_SEPARATOR_LEN + len(value) + _CRLF_LEN
        for name, value in raw_headers
    )
    return size + _CRLF_LEN


def request_head_size(request: httpx.Request) -> int:
    """Return the size of the request line and headers of ``request``."""
    line = b" ".join((request.method.encode("ascii"), request.url.raw_path, _HTTP_VERSION))
    return len(line) + _CRLF_LEN + _header_block_size(request.headers.raw)


def response_head_size(response: httpx.Response) -> int:
    """Return the size of the status line and headers of ``response``."""
    status = str(response.status_code).encode("ascii")
    reason = response.reason_phrase.encode("ascii", errors="replace")
    line = b" ".join((_HTTP_VERSION, status, reason))
    return len(line) + _CRLF_LEN + _header_block_size(response.headers.raw)


def declared_length(headers: httpx.Headers) -> int | None:
    """Return the ``Content-Length`` of ``headers`` when present and valid."""
    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length >= 0 else None


def _response_has_body(request: httpx.Request, response: httpx.Response) -> bool:
    return request.method != "HEAD" and response.status_code not in _BODYLESS_STATUS


class _CountingAsyncStream(httpx.AsyncByteStream):
    """Async body stream that reports each chunk's size as it passes."""

    def __init__(
        self,
        stream: typ.AsyncIterable[bytes],
        record: cabc.Callable[[int], None],
    ) -> None:
        self._stream = stream
        self._record = record

    async def __aiter__(self) -> cabc.AsyncIterator[bytes]:
        async for chunk in self._stream:
            self._record(len(chunk))
            yield chunk

    async def aclose(self) -> None:
        if isinstance(self._stream, httpx.AsyncByteStream):
            await self._stream.aclose()


class _CountingSyncStream(httpx.SyncByteStream):
    """Blocking body stream that reports each chunk's size as it passes."""

    def __init__(
        self,
        stream: typ.Iterable[bytes],
        record: cabc.Callable[[int], None],
    ) -> None:
        self._stream = stream
        self._record = record

    def __iter__(self) -> cabc.Iterator[bytes]:
        for chunk in self._stream:
            self._record(len(chunk))
            yield chunk

    def close(self) -> None:
        if isinstance(self._stream, httpx.SyncByteStream):
            self._stream.close()


def _count_request_head(counters: ByteCounters, request: httpx.Request) -> bool:
    """Count the request head and declared body; return True to stream-count."""
    if counters.sealed:
        raise InstrumentationClosedError.http()
    counters.add_sent(request_head_size(request))
    length = declared_length(request.headers)
    if length is None:
        return True
    counters.add_sent(length)
    return False


def _count_response_head(
    counters: ByteCounters,
    request: httpx.Request,
    response: httpx.Response,
) -> bool:
    """Count the response head and declared body; return True to stream-count."""
    counters.add_received(response_head_size(response))
    if not _response_has_body(request, response):
        return False
    length = declared_length(response.headers)
    if length is None:
        return True
    counters.add_received(length)
    return False


class CountingAsyncTransport(httpx.AsyncBaseTransport):
    """Async transport that attributes HTTP bytes to one invocation.

    Parameters
    ----------
    counters
        Counters of the invocation that owns this transport.
    inner
        Transport that performs the request; defaults to
        ``httpx.AsyncHTTPTransport``.

    Examples
    --------
    >>> transport = CountingAsyncTransport(counters)
    >>> client = httpx.AsyncClient(transport=transport)

    """

    def __init__(
        self,
        counters: ByteCounters,
        inner: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Wrap ``inner`` so its traffic is added to ``counters``."""
        self._counters = counters
        self._inner = inner or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Forward ``request`` to the inner transport, counting both directions.

        Raises
        ------
        InstrumentationClosedError
            If the owning invocation has already been released.

        """
        if _count_request_head(self._counters, request):
            request.stream = _CountingAsyncStream(
                typ.cast("typ.AsyncIterable[bytes]", request.stream),
                self._counters.add_sent,
            )
        response = await self._inner.handle_async_request(request)
        if _count_response_head(self._counters, request, response):
            response.stream = _CountingAsyncStream(
                typ.cast("typ.AsyncIterable[bytes]", response.stream),
                self._counters.add_received,
            )
        return response

    async def aclose(self) -> None:
        """Close the inner transport."""
        await self._inner.aclose()


class CountingTransport(httpx.BaseTransport):
    """Blocking counterpart of ``CountingAsyncTransport``."""

    def __init__(
        self,
        counters: ByteCounters,
        inner: httpx.BaseTransport | None = None,
    ) -> None:
        """Wrap ``inner`` so its traffic is added to ``counters``."""
        self._counters = counters
        self._inner = inner or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Forward ``request`` to the inner transport, counting both directions."""
        if _count_request_head(self._counters, request):
            request.stream = _CountingSyncStream(
                typ.cast("typ.Iterable[bytes]", request.stream),
                self._counters.add_sent,
            )
        response = self._inner.handle_request(request)
        if _count_response_head(self._counters, request, response):
            response.stream = _CountingSyncStream(
                typ.cast("typ.Iterable[bytes]", response.stream),
                self._counters.add_received,
            )
        return response

    def close(self) -> None:
        """Close the inner transport."""
        self._inner.close()
