# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Bounded byte buffer for partial chunk, header and frame reassembly."""

from __future__ import annotations

from dockstream.errors import BufferLimitExceeded

DEFAULT_MAX_BUFFER = 64 * 1024 * 1024


class BoundedBuffer:
    """Append-at-tail, consume-from-head byte buffer with a hard size limit.

    Unlike a ring buffer nothing is ever evicted: dropping bytes would
    desynchronise the framing, so overflow raises ``BufferLimitExceeded``.
    Not thread-safe; owned by a single parser.
    """

    def __init__(self, limit: int = DEFAULT_MAX_BUFFER) -> None:
        if limit <= 0:
            msg = f"buffer limit must be positive, got {limit}"
            raise ValueError(msg)
        self._limit = limit
        self._data = bytearray()

    @property
    def limit(self) -> int:
        """Maximum number of bytes the buffer may hold."""
        return self._limit

    def extend(self, data: bytes) -> None:
        """Append *data*, raising if the limit would be exceeded."""
        if len(self._data) + len(data) > self._limit:
            raise BufferLimitExceeded(self._limit)
        self._data.extend(data)

    def find(self, sub: bytes, start: int = 0) -> int:
        return self._data.find(sub, start)

    def peek(self, n: int | None = None) -> bytes:
        """Return up to *n* bytes from the head without consuming them."""
        if n is None:
            return bytes(self._data)
        return bytes(self._data[:n])

    def consume(self, n: int) -> bytes:
        """Remove and return *n* bytes from the head."""
        head = bytes(self._data[:n])
        del self._data[:n]
        return head

    def replace(self, data: bytes) -> None:
        """Swap the whole content for *data*."""
        self._data = bytearray()
        self.extend(data)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)
