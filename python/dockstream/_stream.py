# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Stream demultiplexing for hijacked attach/exec/logs connections.

When a container runs without a TTY the engine multiplexes stdout and stderr
over a single connection.  Each frame has an 8-byte header:
  - byte 0: stream type (0 = stdin echo, 1 = stdout, 2 = stderr)
  - bytes 1-3: padding (zero)
  - bytes 4-7: payload length (big-endian uint32)

``FrameDemultiplexer`` is the push-style reassembler: it accepts fragments
of any size and dispatches whole payloads to per-stream sinks.  The async
helpers below pull frames from an ``asyncio.StreamReader`` instead.
"""

from __future__ import annotations

import dataclasses
import struct
from typing import TYPE_CHECKING, Any, Callable, NamedTuple, Protocol, Union

from dockstream._buffer import DEFAULT_MAX_BUFFER, BoundedBuffer

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncGenerator

STREAM_STDIN = 0
STREAM_STDOUT = 1
STREAM_STDERR = 2
HEADER_SIZE = 8
_HEADER_FORMAT = ">BxxxI"  # 1 byte type, 3 padding, 4 byte length


class Writable(Protocol):
    def write(self, data: bytes, /) -> object: ...


Sink = Union[Callable[[bytes], object], Writable]


class Frame(NamedTuple):
    """One decoded multiplexed-stream frame."""

    stream: int
    payload: bytes


def parse_stream_header(header: bytes) -> tuple[int, int]:
    """Parse an 8-byte multiplexed stream frame header.

    Returns:
        Tuple of (stream_type, payload_length).

    """
    stream_type, payload_length = struct.unpack(_HEADER_FORMAT, header)
    return stream_type, payload_length


def make_frame(stream_type: int, payload: bytes) -> bytes:
    """Build a multiplexed frame (header + payload)."""
    return struct.pack(_HEADER_FORMAT, stream_type, len(payload)) + payload


def as_sink(target: Sink | None) -> Callable[[bytes], Any] | None:
    """Normalise a sink: a callable, or anything with a ``write`` method."""
    if target is None:
        return None
    write = getattr(target, "write", None)
    if callable(write):
        return write  # type: ignore[no-any-return]
    if callable(target):
        return target  # type: ignore[no-any-return]
    msg = f"sink must be callable or expose write(), got {type(target).__name__}"
    raise TypeError(msg)


class FrameDemultiplexer:
    """Reassemble multiplexed frames and route payloads to stdout/stderr sinks.

    Partial frames stay buffered across ``feed`` calls until their payload is
    complete.  Payloads for any stream other than stdout or stderr are dropped.
    """

    def __init__(
        self,
        stdout: Sink | None = None,
        stderr: Sink | None = None,
        *,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ) -> None:
        self._stdout = as_sink(stdout)
        self._stderr = as_sink(stderr)
        self._buffer = BoundedBuffer(max_buffer)

    @property
    def pending(self) -> int:
        """Number of buffered bytes belonging to an incomplete frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[Frame]:
        """Consume a fragment and dispatch every frame it completes.

        Returns:
            The completed frames, in order, including ignored stream types.

        """
        self._buffer.extend(data)
        frames: list[Frame] = []
        while len(self._buffer) >= HEADER_SIZE:
            stream_type, payload_length = parse_stream_header(self._buffer.peek(HEADER_SIZE))
            total_frame = HEADER_SIZE + payload_length
            if len(self._buffer) < total_frame:
                break
            payload = self._buffer.consume(total_frame)[HEADER_SIZE:]
            frame = Frame(stream_type, payload)
            frames.append(frame)
            self._dispatch(frame)
        return frames

    def _dispatch(self, frame: Frame) -> None:
        if frame.stream == STREAM_STDOUT and self._stdout is not None:
            self._stdout(frame.payload)
        elif frame.stream == STREAM_STDERR and self._stderr is not None:
            self._stderr(frame.payload)

    def __call__(self, data: bytes) -> None:
        self.feed(data)

    def write(self, data: bytes) -> int:
        """File-like alias for ``feed`` so the demuxer can itself be a sink."""
        self.feed(data)
        return len(data)


@dataclasses.dataclass
class DemuxResult:
    """Result of demultiplexing a complete exec/logs stream."""

    stdout_bytes: bytes = b""
    stderr_bytes: bytes = b""
    truncated: bool = False

    def stdout_text(self) -> str:
        """Decode stdout bytes to string."""
        return self.stdout_bytes.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        """Decode stderr bytes to string."""
        return self.stderr_bytes.decode("utf-8", errors="replace")


class OutputCollector:
    """Accumulates demultiplexed output up to a byte limit."""

    def __init__(self, max_output: int) -> None:
        self.stdout_parts: list[bytes] = []
        self.stderr_parts: list[bytes] = []
        self.remaining = max_output
        self.truncated = False

    def stdout(self, payload: bytes) -> None:
        self._take(self.stdout_parts, payload)

    def stderr(self, payload: bytes) -> None:
        self._take(self.stderr_parts, payload)

    def _take(self, parts: list[bytes], payload: bytes) -> None:
        if self.truncated:
            return
        if len(payload) > self.remaining:
            payload = payload[: self.remaining]
            self.truncated = True
        self.remaining -= len(payload)
        if payload:
            parts.append(payload)

    def result(self) -> DemuxResult:
        return DemuxResult(
            stdout_bytes=b"".join(self.stdout_parts),
            stderr_bytes=b"".join(self.stderr_parts),
            truncated=self.truncated,
        )


async def demux_stream(
    reader: asyncio.StreamReader,
    max_output: int = 10 * 1024 * 1024,
    *,
    read_size: int = 65536,
) -> DemuxResult:
    """Read a multiplexed stream to EOF into separate stdout/stderr.

    Args:
        reader: Async stream reader positioned after the response headers.
        max_output: Maximum total bytes to accumulate before truncating.
        read_size: Bytes requested per socket read.

    Returns:
        DemuxResult with stdout and stderr bytes.  A trailing partial frame
        at EOF is discarded.

    """
    collector = OutputCollector(max_output)
    demux = FrameDemultiplexer(collector.stdout, collector.stderr)
    while not collector.truncated:
        data = await reader.read(read_size)
        if not data:
            break
        demux.feed(data)
    return collector.result()


async def demux_stream_iter(
    reader: asyncio.StreamReader,
    *,
    read_size: int = 65536,
) -> AsyncGenerator[tuple[int, bytes], None]:
    """Yield ``(stream_type, payload)`` for each stdout/stderr frame until EOF."""
    demux = FrameDemultiplexer()
    while True:
        data = await reader.read(read_size)
        if not data:
            break
        for frame in demux.feed(data):
            if frame.stream in (STREAM_STDOUT, STREAM_STDERR) and frame.payload:
                yield frame.stream, frame.payload
