# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

from __future__ import annotations


class DockStreamError(Exception):
    """Base exception for all dockstream errors."""


class SocketError(DockStreamError):
    """Error related to socket communication with the container engine."""


class SocketConnectionError(SocketError):
    """Cannot connect to the container engine socket."""

    def __init__(self, address: str, detail: str = "") -> None:
        self.address = address
        msg = f"Cannot connect to engine at {address}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class SocketCommunicationError(SocketError):
    """Error while reading a response from the socket."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Socket communication error"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class RequestWriteError(SocketError):
    """Error while writing a request onto the socket."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Request write error"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class EngineNotFound(SocketError):
    """No container engine socket found."""

    def __init__(self) -> None:
        super().__init__(
            "No container engine socket found. "
            "Is Podman or Docker running? "
            "Set DOCKSTREAM_HOST or DOCKER_HOST to point at the engine."
        )


class ProtocolError(DockStreamError):
    """The peer sent bytes that cannot be framed."""


class ChunkedEncodingError(ProtocolError):
    """Malformed chunk-size line in a chunked body (strict mode only)."""

    def __init__(self, size_line: bytes) -> None:
        self.size_line = size_line
        super().__init__(f"invalid chunk size line: {size_line!r}")


class BufferLimitExceeded(ProtocolError):
    """An internal reassembly buffer grew past its configured maximum."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"buffer limit of {limit} bytes exceeded")


class ResponseTimeout(DockStreamError, TimeoutError):
    """The response did not complete before the deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Timeout: incomplete HTTP response after {timeout:g}s")


class HTTPError(DockStreamError):
    """The engine answered with a status code >= 400."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(message)


class NotFound(HTTPError):
    """Resource does not exist (HTTP 404)."""


class Unauthorized(HTTPError):
    """Request was not authorised (HTTP 401)."""


class Conflict(HTTPError):
    """Request conflicts with the resource state (HTTP 409)."""
