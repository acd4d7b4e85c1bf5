"""Byte-counting file entry points for filesystem attribution."""

from __future__ import annotations

import asyncio
import typing as typ
from pathlib import Path

from gasmeter.errors import InstrumentationClosedError

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from gasmeter.metrics import ByteCounters

type PathLike = str | os.PathLike[str]

_DEFAULT_ENCODING = "utf-8"


def _byte_length(data: str | bytes | bytearray | memoryview, encoding: str) -> int:
    if isinstance(data, str):
        return len(data.encode(encoding, errors="replace"))
    return memoryview(data).nbytes


class CountingFile:
    """File object proxy that counts bytes read and written.

    Text is counted by its encoded length in the file's encoding. Reads and
    writes raise ``InstrumentationClosedError`` once the owning invocation
    has been released. ``peek`` does not consume data and is not counted;
    the bytes are counted when a later read returns them. Methods not listed
    here are delegated to the wrapped file unchanged.
    """

    def __init__(self, raw: typ.IO[typ.Any], counters: ByteCounters) -> None:
        """Wrap an open file object."""
        self._raw = raw
        self._counters = counters
        self._encoding = getattr(raw, "encoding", None) or _DEFAULT_ENCODING

    def __enter__(self) -> CountingFile:
        """Return the proxy itself."""
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close the wrapped file."""
        self._raw.close()

    def __iter__(self) -> cabc.Iterator[typ.Any]:
        """Yield lines from the wrapped file, counting each one."""
        self._ensure_open("__iter__")
        for line in self._raw:
            self._ensure_open("__iter__")
            self._counted_read(line)
            yield line

    def __getattr__(self, name: str) -> typ.Any:  # noqa: ANN401
        """Delegate everything else to the wrapped file."""
        return getattr(self._raw, name)

    @property
    def wrapped(self) -> typ.IO[typ.Any]:
        """Return the wrapped file object."""
        return self._raw

    def _ensure_open(self, operation: str) -> None:
        if self._counters.sealed:
            raise InstrumentationClosedError.files(operation)

    def _counted_read(self, data: typ.Any) -> typ.Any:  # noqa: ANN401
        self._counters.add_read(_byte_length(data, self._encoding))
        return data

    def read(self, size: int = -1) -> typ.Any:  # noqa: ANN401
        """Read up to ``size`` bytes or characters."""
        self._ensure_open("read")
        return self._counted_read(self._raw.read(size))

    def read1(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes with at most one raw read."""
        self._ensure_open("read1")
        return self._counted_read(self._raw.read1(size))  # type: ignore[attr-defined]

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Read into ``buffer`` and return the number of bytes read."""
        self._ensure_open("readinto")
        count = self._raw.readinto(buffer) or 0  # type: ignore[attr-defined]
        self._counters.add_read(count)
        return count

    def readinto1(self, buffer: bytearray | memoryview) -> int:
        """Read into ``buffer`` with at most one raw read."""
        self._ensure_open("readinto1")
        count = self._raw.readinto1(buffer) or 0  # type: ignore[attr-defined]
        self._counters.add_read(count)
        return count

    def readline(self, size: int = -1) -> typ.Any:  # noqa: ANN401
        """Read one line."""
        self._ensure_open("readline")
        return self._counted_read(self._raw.readline(size))

    def readlines(self, hint: int = -1) -> list[typ.Any]:
        """Read the remaining lines."""
        self._ensure_open("readlines")
        lines = self._raw.readlines(hint)
        for line in lines:
            self._counted_read(line)
        return lines

    def write(self, data: typ.Any) -> int:  # noqa: ANN401
        """Write ``data`` and count its encoded size."""
        self._ensure_open("write")
        written = self._raw.write(data)
        self._counters.add_written(_byte_length(data, self._encoding))
        return written

    def writelines(self, lines: cabc.Iterable[typ.Any]) -> None:
        """Write each of ``lines``."""
        self._ensure_open("writelines")
        for line in lines:
            self.write(line)


class InstrumentedFiles:
    """File entry points that attribute bytes to one invocation.

    Blocking methods run inline; the ``a``-prefixed methods run the same
    work in a worker thread via ``asyncio.to_thread``.

    Parameters
    ----------
    counters
        Counters of the invocation that owns these entry points.

    Examples
    --------
    >>> files = InstrumentedFiles(counters)
    >>> files.write_text("out.txt", "hello")
    5
    >>> files.read_text("out.txt")
    'hello'

    """

    def __init__(self, counters: ByteCounters) -> None:
        """Bind the entry points to ``counters``."""
        self._counters = counters
        self._handles: list[CountingFile] = []

    def _ensure_open(self, operation: str) -> None:
        if self._counters.sealed:
            raise InstrumentationClosedError.files(operation)

    def detach_open_handles(self) -> list[CountingFile]:
        """Return the handles from ``open`` that are still open and forget all.

        The owning context closes the returned handles on release.
        """
        handles = [handle for handle in self._handles if not handle.closed]
        self._handles.clear()
        return handles

    def read_bytes(self, path: PathLike) -> bytes:
        """Return the contents of ``path`` as bytes."""
        self._ensure_open("read_bytes")
        data = Path(path).read_bytes()
        self._counters.add_read(len(data))
        return data

    def read_text(self, path: PathLike, encoding: str = _DEFAULT_ENCODING) -> str:
        """Return the contents of ``path`` decoded with ``encoding``."""
        self._ensure_open("read_text")
        data = Path(path).read_bytes()
        self._counters.add_read(len(data))
        return data.decode(encoding)

    def write_bytes(self, path: PathLike, data: bytes) -> int:
        """Write ``data`` to ``path`` and return the byte count."""
        self._ensure_open("write_bytes")
        written = Path(path).write_bytes(data)
        self._counters.add_written(written)
        return written

    def write_text(
        self,
        path: PathLike,
        text: str,
        encoding: str = _DEFAULT_ENCODING,
    ) -> int:
        """Write ``text`` to ``path`` and return the encoded byte count."""
        self._ensure_open("write_text")
        return self.write_bytes(path, text.encode(encoding))

    def open(
        self,
        path: PathLike,
        mode: str = "r",
        *,
        encoding: str | None = None,
    ) -> CountingFile:
        """Open ``path`` and return a counting proxy for the file object.

        Handles left open by the operation are closed when the owning
        invocation context is released.
        """
        self._ensure_open("open")
        if "b" not in mode and encoding is None:
            encoding = _DEFAULT_ENCODING
        raw = Path(path).open(mode, encoding=encoding)  # noqa: SIM115
        handle = CountingFile(raw, self._counters)
        self._handles.append(handle)
        return handle

    async def aread_bytes(self, path: PathLike) -> bytes:
        """Return the contents of ``path`` without blocking the event loop."""
        return await asyncio.to_thread(self.read_bytes, path)

    async def aread_text(
        self,
        path: PathLike,
        encoding: str = _DEFAULT_ENCODING,
    ) -> str:
        """Return the decoded contents of ``path`` without blocking."""
        return await asyncio.to_thread(self.read_text, path, encoding)

    async def awrite_bytes(self, path: PathLike, data: bytes) -> int:
        """Write ``data`` to ``path`` without blocking the event loop."""
        return await asyncio.to_thread(self.write_bytes, path, data)

    async def awrite_text(
        self,
        path: PathLike,
        text: str,
        encoding: str = _DEFAULT_ENCODING,
    ) -> int:
        """Write ``text`` to ``path`` without blocking the event loop."""
        return await asyncio.to_thread(self.write_text, path, text, encoding)
