# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""HTTP/1.1 chunked transfer-encoding helpers.

``extract_chunks`` is the incremental decoder used by the response reader:
it pulls every complete chunk out of the bytes received so far and hands
back whatever could not be consumed yet.  A zero-size chunk terminates the
body; it is reported as an empty payload and left at the head of the
remainder so the caller can see that the body is complete.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

from dockstream.errors import ChunkedEncodingError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

CRLF = b"\r\n"
TERMINAL_CHUNK = b"0\r\n\r\n"


class ChunkExtraction(NamedTuple):
    """Chunks decoded from a buffer plus the bytes left unconsumed."""

    chunks: list[bytes]
    remainder: bytes
    needed: int = 0
    """Length the remainder must reach before its pending chunk is complete."""

    @property
    def complete(self) -> bool:
        """True if the terminal (size zero) chunk has been reached."""
        return bool(self.chunks) and self.chunks[-1] == b""


def parse_chunk_size(line: bytes, *, strict: bool = False) -> int:
    """Parse a hex chunk-size line, ignoring chunk extensions.

    Unparsable sizes count as ``0`` (terminal) unless *strict* is set.
    """
    size_field = line.split(b";", 1)[0].strip()
    try:
        size = int(size_field, 16)
    except ValueError:
        size = -1
    if size < 0:
        if strict:
            raise ChunkedEncodingError(line)
        return 0
    return size


def extract_chunks(buffer: bytes, *, strict: bool = False) -> ChunkExtraction:
    """Extract all complete chunks from *buffer*.

    Args:
        buffer: Bytes received so far that have not been consumed.
        strict: Raise ``ChunkedEncodingError`` on a malformed size line
            instead of treating it as the terminal chunk.

    Returns:
        ChunkExtraction with payloads in arrival order.  When the terminal
        chunk is found, ``b""`` is the last payload and ``remainder`` starts
        at the terminal size line.  While a chunk is cut short, ``needed``
        is the remainder length that completes it.

    """
    chunks: list[bytes] = []
    pos = 0
    needed = 0
    length = len(buffer)

    while pos < length:
        crlf = buffer.find(CRLF, pos)
        if crlf == -1:
            break

        size_line = buffer[pos:crlf]
        if not size_line.strip():
            pos = crlf + 2
            continue

        size = parse_chunk_size(size_line, strict=strict)
        if size == 0:
            chunks.append(b"")
            break

        data_start = crlf + 2
        data_end = data_start + size
        if data_end + 2 > length:
            needed = data_end + 2 - pos
            break

        chunks.append(buffer[data_start:data_end])
        pos = data_end + 2

    return ChunkExtraction(chunks, buffer[pos:], needed)


def dechunk(data: bytes, *, strict: bool = False) -> bytes:
    """Decode a complete chunked body into its payload bytes."""
    extraction = extract_chunks(data, strict=strict)
    return b"".join(extraction.chunks)


def encode_chunk(data: bytes) -> bytes:
    """Frame one payload as ``<hex-size>\\r\\n<data>\\r\\n``."""
    return f"{len(data):x}".encode("ascii") + CRLF + data + CRLF


def encode_chunked(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Yield the chunked encoding of *chunks*, ending with the terminal chunk.

    Empty source chunks are skipped since a zero-size chunk would end the body.
    """
    for chunk in chunks:
        if chunk:
            yield encode_chunk(chunk)
    yield TERMINAL_CHUNK
