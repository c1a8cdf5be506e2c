# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

from __future__ import annotations

import dataclasses
import enum
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dockstream._socket_client import UpgradedStream


class ParseState(enum.Enum):
    """Lifecycle of a single response inside ``ResponseReader``."""

    AWAITING_HEADERS = "awaiting_headers"
    STREAMING_BODY = "streaming_body"
    UPGRADED = "upgraded"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ParseState.COMPLETE, ParseState.FAILED)


class BodyMode(enum.Enum):
    """How the end of a response body is found, chosen once per response."""

    CONTENT_LENGTH = "content_length"
    CHUNKED = "chunked"
    UNBOUNDED = "unbounded"
    UPGRADED = "upgraded"


@dataclasses.dataclass(frozen=True)
class ResponseHead:
    """Status line and headers of a response, keyed by lower-cased name."""

    status: int
    reason: str = ""
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)

    @property
    def content_type(self) -> str:
        """Media type without parameters, lower-cased."""
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> str:
        """Charset parameter of the content type, ``utf-8`` when absent."""
        for param in self.headers.get("content-type", "").split(";")[1:]:
            key, _, value = param.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip().strip('"').lower()
        return "utf-8"


@dataclasses.dataclass(frozen=True)
class Response:
    """A resolved response.

    ``body`` is ``None`` when the body was streamed to a callback or when the
    connection was hijacked, in which case ``stream`` carries the raw stream.
    """

    head: ResponseHead
    body: bytes | None = None
    stream: UpgradedStream | None = None

    @property
    def status(self) -> int:
        return self.head.status

    @property
    def headers(self) -> Mapping[str, str]:
        return self.head.headers

    @property
    def upgraded(self) -> bool:
        return self.stream is not None

    def text(self) -> str:
        """Decode the body using the response charset."""
        if self.body is None:
            return ""
        return self.body.decode(self.head.charset, errors="replace")

    def json(self) -> Any:  # noqa: ANN401
        """Parse the body as JSON."""
        return json.loads(self.text())


@dataclasses.dataclass(frozen=True)
class ExecResult:
    """Result of executing a command inside a container."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0
    timed_out: bool = False
    truncated: bool = False

    @property
    def ok(self) -> bool:
        """Return True if the command exited successfully (exit code 0)."""
        return self.exit_code == 0
