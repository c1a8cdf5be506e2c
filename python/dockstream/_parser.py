# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Incremental HTTP/1.1 response reader.

The engine's responses arrive as socket reads that never line up with
protocol boundaries, and some of them stop being HTTP halfway through:
attach/exec answer with a raw-stream content type and then reuse the
connection for a framed byte stream.  ``ResponseReader`` is a push parser
for that situation.  Callers hand it every read via ``feed()`` and act on the
events it returns:

* ``HeadersReceived`` once the status line and headers are parsed
* ``BodyChunk`` for body bytes when streaming was requested
* ``ResponseResolved`` / ``ResponseRejected`` exactly once per response
* ``StreamData`` for every byte after the headers of a hijacked connection
* ``StreamFailed`` if such a stream turns out to be unframeable

All outcome guarding lives in the ``ParseState`` transitions: once the state
is terminal (or upgraded) no further resolution can be produced, so a late
read racing a timeout cannot resolve a response twice.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import types
from typing import Union

from dockstream._buffer import DEFAULT_MAX_BUFFER, BoundedBuffer
from dockstream._chunked import ChunkExtraction, extract_chunks
from dockstream.errors import (
    Conflict,
    HTTPError,
    NotFound,
    ProtocolError,
    SocketCommunicationError,
    Unauthorized,
)
from dockstream.types import BodyMode, ParseState, Response, ResponseHead

_log = logging.getLogger(__name__)

RAW_STREAM = "application/vnd.docker.raw-stream"
MULTIPLEXED_STREAM = "application/vnd.docker.multiplexed-stream"
STREAM_MEDIA_TYPES = frozenset({RAW_STREAM, MULTIPLEXED_STREAM})
APPLICATION_JSON = "application/json"
APPLICATION_NDJSON = "application/x-ndjson"

_HEADER_END = b"\r\n\r\n"
_STATUS_ERRORS: dict[int, type[HTTPError]] = {
    404: NotFound,
    401: Unauthorized,
    409: Conflict,
}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class HeadersReceived:
    head: ResponseHead


@dataclasses.dataclass(frozen=True)
class BodyChunk:
    data: bytes


@dataclasses.dataclass(frozen=True)
class StreamData:
    data: bytes


@dataclasses.dataclass(frozen=True)
class ResponseResolved:
    response: Response


@dataclasses.dataclass(frozen=True)
class ResponseRejected:
    error: Exception


@dataclasses.dataclass(frozen=True)
class StreamFailed:
    error: Exception


Event = Union[
    HeadersReceived, BodyChunk, StreamData, ResponseResolved, ResponseRejected, StreamFailed
]


# ---------------------------------------------------------------------------
# Head parsing and error mapping
# ---------------------------------------------------------------------------


def parse_head(block: bytes) -> ResponseHead:
    """Parse a status line plus header lines (without the blank line).

    Never raises: an unparsable status becomes ``0`` and header lines without
    a name are skipped.  Repeated headers keep the last value.
    """
    lines = block.lstrip(b"\r\n").decode("latin-1").split("\r\n")
    parts = lines[0].split(" ", 2)
    try:
        status = int(parts[1])
    except (IndexError, ValueError):
        status = 0
    reason = parts[2].strip() if len(parts) > 2 else ""  # noqa: PLR2004

    headers: dict[str, str] = {}
    for line in lines[1:]:
        colon = line.find(":")
        if colon <= 0:
            continue
        headers[line[:colon].strip().lower()] = line[colon + 1 :].strip()
    return ResponseHead(status, reason, types.MappingProxyType(headers))


def error_message(head: ResponseHead, body: bytes | None) -> str:
    """Pick the ``message`` field of a JSON error body, else the reason phrase."""
    looks_json = APPLICATION_JSON in head.headers.get("content-type", "").lower()
    if body and (looks_json or body.lstrip().startswith(b"{")):
        try:
            payload = json.loads(body.decode(head.charset, errors="replace"))
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
    return head.reason or f"HTTP {head.status}"


def error_for_status(head: ResponseHead, body: bytes | None) -> HTTPError:
    """Build the typed error for a response with status >= 400."""
    cls = _STATUS_ERRORS.get(head.status, HTTPError)
    return cls(head.status, error_message(head, body))


def _has_no_body(head: ResponseHead, method: str) -> bool:
    return method == "HEAD" or 100 <= head.status < 200 or head.status in (204, 304)  # noqa: PLR2004


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class ResponseReader:
    """State machine turning raw socket reads into one response outcome.

    Args:
        method: Request method; ``HEAD`` responses never carry a body.
        stream_body: Emit ``BodyChunk`` events instead of buffering the body.
            Error responses (status >= 400) are always buffered so their
            message can be extracted.
        strict_chunks: Reject malformed chunk sizes instead of treating them
            as the terminal chunk.
        close_delimited: For bodies with neither ``Content-Length`` nor
            chunked encoding, read until ``feed_eof()`` instead of completing
            right after the headers.
        max_buffer: Upper bound for every internal buffer.

    """

    def __init__(
        self,
        *,
        method: str = "GET",
        stream_body: bool = False,
        strict_chunks: bool = False,
        close_delimited: bool = False,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ) -> None:
        self._method = method.upper()
        self._stream_body = stream_body
        self._strict_chunks = strict_chunks
        self._close_delimited = close_delimited
        self._state = ParseState.AWAITING_HEADERS
        self._pending = BoundedBuffer(max_buffer)
        self._body = BoundedBuffer(max_buffer)
        self._scan_from = 0
        self._head: ResponseHead | None = None
        self._mode: BodyMode | None = None
        self._streaming = False
        self._dechunk_stream = False
        self._expected = 0
        self._received = 0
        self._chunk_needed = 0

    @property
    def state(self) -> ParseState:
        return self._state

    @property
    def head(self) -> ResponseHead | None:
        """Parsed status line and headers, once available."""
        return self._head

    @property
    def mode(self) -> BodyMode | None:
        """Body framing mode, selected right after the headers."""
        return self._mode

    # -- Inputs --

    def feed(self, data: bytes) -> list[Event]:
        """Consume one socket read and return the events it produced."""
        if self._state.terminal or not data:
            return []

        events: list[Event] = []
        try:
            if self._state is ParseState.UPGRADED:
                self._feed_stream(data, events)
                return events
            if self._state is ParseState.AWAITING_HEADERS:
                data = self._feed_headers(data, events)
                if data is None or self._state is not ParseState.STREAMING_BODY:
                    return events
            self._feed_body(data, events)
        except ProtocolError as exc:
            if self._state is ParseState.UPGRADED:
                # The response was already resolved; only the stream fails.
                self._release()
                self._state = ParseState.FAILED
                events.append(StreamFailed(exc))
            else:
                events.append(self._reject(exc))
        return events

    def feed_eof(self) -> list[Event]:
        """Signal that the peer closed the connection."""
        if self._state is ParseState.UPGRADED:
            self._state = ParseState.COMPLETE
            return []
        if self._state.terminal:
            return []
        if (
            self._state is ParseState.STREAMING_BODY
            and self._mode is BodyMode.UNBOUNDED
            and self._close_delimited
        ):
            events: list[Event] = []
            self._complete(events)
            return events
        return [self._reject(SocketCommunicationError("connection closed before response completed"))]

    def fail(self, error: Exception) -> list[Event]:
        """Abort the response (timeout, transport failure).

        A no-op once the response has been resolved or rejected.
        """
        if self._state.terminal:
            return []
        if self._state is ParseState.UPGRADED:
            # Already resolved; only the stream ends.
            self._state = ParseState.FAILED
            return []
        return [self._reject(error)]

    # -- Header phase --

    def _feed_headers(self, data: bytes, events: list[Event]) -> bytes | None:
        self._pending.extend(data)
        end = self._pending.find(_HEADER_END, self._scan_from)
        if end == -1:
            self._scan_from = max(len(self._pending) - len(_HEADER_END) + 1, 0)
            return None

        block = self._pending.consume(end + len(_HEADER_END))[:end]
        rest = self._pending.consume(len(self._pending))
        head = parse_head(block)
        self._head = head
        events.append(HeadersReceived(head))
        _log.debug("response head: %d %s", head.status, head.reason)

        if head.content_type in STREAM_MEDIA_TYPES:
            self._mode = BodyMode.UPGRADED
            self._state = ParseState.UPGRADED
            # Non-hijacked endpoints (logs) send the stream inside a chunked body.
            self._dechunk_stream = self._select_mode(head) is BodyMode.CHUNKED
            events.append(ResponseResolved(Response(head)))
            if rest:
                self._feed_stream(rest, events)
            return None

        self._state = ParseState.STREAMING_BODY
        self._streaming = self._stream_body and head.status < 400  # noqa: PLR2004
        self._mode = self._select_mode(head)
        if _has_no_body(head, self._method):
            self._complete(events)
            return None
        return rest

    def _select_mode(self, head: ResponseHead) -> BodyMode:
        encodings = [e.strip().lower() for e in head.headers.get("transfer-encoding", "").split(",")]
        if encodings[-1] == "chunked":
            return BodyMode.CHUNKED
        length = head.headers.get("content-length")
        if length is not None:
            try:
                self._expected = int(length)
            except ValueError:
                self._expected = -1
            if self._expected >= 0:
                return BodyMode.CONTENT_LENGTH
        return BodyMode.UNBOUNDED

    # -- Chunked framing --

    def _extract(self, data: bytes) -> ChunkExtraction | None:
        self._pending.extend(data)
        if len(self._pending) < self._chunk_needed:
            return None
        extraction = extract_chunks(self._pending.peek(), strict=self._strict_chunks)
        self._pending.replace(extraction.remainder)
        self._chunk_needed = extraction.needed
        return extraction

    # -- Stream phase --

    def _feed_stream(self, data: bytes, events: list[Event]) -> None:
        if not self._dechunk_stream:
            events.append(StreamData(bytes(data)))
            return
        extraction = self._extract(data)
        if extraction is None:
            return
        events.extend(StreamData(chunk) for chunk in extraction.chunks if chunk)
        if extraction.complete:
            self._release()
            self._state = ParseState.COMPLETE

    # -- Body phase --

    def _feed_body(self, data: bytes, events: list[Event]) -> None:
        if self._mode is BodyMode.CHUNKED:
            extraction = self._extract(data)
            if extraction is None:
                return
            for chunk in extraction.chunks:
                if chunk:
                    self._take(chunk, events)
            if extraction.complete:
                self._complete(events)
        elif self._mode is BodyMode.CONTENT_LENGTH:
            piece = data[: self._expected - self._received]
            self._received += len(piece)
            if piece:
                self._take(piece, events)
            if self._received >= self._expected:
                self._complete(events)
        else:
            if data:
                self._take(data, events)
            if not self._close_delimited:
                self._complete(events)

    def _take(self, data: bytes, events: list[Event]) -> None:
        if self._streaming:
            events.append(BodyChunk(data))
        else:
            self._body.extend(data)

    # -- Outcomes --

    def _complete(self, events: list[Event]) -> None:
        head = self._head
        assert head is not None  # noqa: S101
        body = None if self._streaming else bytes(self._body)
        self._release()
        if head.status >= 400:  # noqa: PLR2004
            self._state = ParseState.FAILED
            events.append(ResponseRejected(error_for_status(head, body)))
            return
        self._state = ParseState.COMPLETE
        events.append(ResponseResolved(Response(head, body)))

    def _reject(self, error: Exception) -> ResponseRejected:
        _log.debug("response rejected: %s", error)
        self._release()
        self._state = ParseState.FAILED
        return ResponseRejected(error)

    def _release(self) -> None:
        self._pending.clear()
        self._body.clear()
