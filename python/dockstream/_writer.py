# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""HTTP/1.1 request serialisation onto an ``asyncio.StreamWriter``."""

from __future__ import annotations

import json
import logging
import urllib.parse
from typing import TYPE_CHECKING, Any

from dockstream._chunked import TERMINAL_CHUNK, encode_chunk
from dockstream.errors import RequestWriteError

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterable, Iterable, Mapping

_log = logging.getLogger(__name__)


def build_query_string(params: Mapping[str, Any] | None) -> str:
    """Encode query parameters, returning ``""`` or ``"?k=v&..."``.

    ``None`` values are dropped, booleans become ``true``/``false``, dicts and
    lists (engine ``filters``) are JSON-encoded, and objects exposing
    ``to_url_parameter()`` are rendered through it.
    """
    if not params:
        return ""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        elif isinstance(value, (dict, list)):
            pairs.append((key, json.dumps(value, separators=(",", ":"))))
        elif callable(getattr(value, "to_url_parameter", None)):
            pairs.append((key, str(value.to_url_parameter())))
        else:
            pairs.append((key, str(value)))
    query = urllib.parse.urlencode(pairs)
    return f"?{query}" if query else ""


def build_request_head(
    method: str,
    target: str,
    headers: Mapping[str, str] | None = None,
) -> bytes:
    """Serialise the request line and headers, ending with the blank line."""
    lines = [f"{method} {target} HTTP/1.1"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    lines.append("")
    lines.append("")
    return "\r\n".join(lines).encode("latin-1")


def encode_body(body: Any, content_type: str | None = None) -> tuple[bytes, str]:  # noqa: ANN401
    """Encode a buffered body, returning ``(bytes, content_type)``.

    ``bytes`` pass through untouched, ``str`` is UTF-8 encoded and anything
    else is serialised as JSON.
    """
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body), content_type or "application/octet-stream"
    if isinstance(body, str):
        return body.encode("utf-8"), content_type or "text/plain; charset=utf-8"
    return json.dumps(body).encode("utf-8"), content_type or "application/json"


def is_streaming_body(body: object) -> bool:
    """True for iterables of bytes that should be sent chunked."""
    if body is None or isinstance(body, (bytes, bytearray, memoryview, str, dict, list, tuple)):
        return False
    return hasattr(body, "__aiter__") or hasattr(body, "__iter__")


async def _iter_source(body: Iterable[bytes] | AsyncIterable[bytes]) -> AsyncIterable[bytes]:
    if hasattr(body, "__aiter__"):
        async for chunk in body:  # type: ignore[union-attr]
            yield chunk
    else:
        for chunk in body:  # type: ignore[union-attr]
            yield chunk


async def write_request(  # noqa: PLR0913
    writer: asyncio.StreamWriter,
    method: str,
    target: str,
    *,
    headers: Mapping[str, str] | None = None,
    body: Any = None,  # noqa: ANN401
    content_type: str | None = None,
) -> None:
    """Write one complete request.

    A buffered body is sent with ``Content-Length`` in one shot; an iterable
    (sync or async) of ``bytes`` is sent with ``Transfer-Encoding: chunked``
    and terminated with the zero-size chunk.

    Raises:
        RequestWriteError: If the transport fails while writing.

    """
    all_headers = dict(headers or {})
    try:
        if body is None:
            writer.write(build_request_head(method, target, all_headers))
            await writer.drain()
        elif is_streaming_body(body):
            all_headers.setdefault("Content-Type", content_type or "application/octet-stream")
            all_headers["Transfer-Encoding"] = "chunked"
            writer.write(build_request_head(method, target, all_headers))
            async for chunk in _iter_source(body):
                if chunk:
                    writer.write(encode_chunk(bytes(chunk)))
                    await writer.drain()
            writer.write(TERMINAL_CHUNK)
            await writer.drain()
        else:
            payload, payload_type = encode_body(body, content_type)
            all_headers.setdefault("Content-Type", payload_type)
            all_headers["Content-Length"] = str(len(payload))
            writer.write(build_request_head(method, target, all_headers) + payload)
            await writer.drain()
    except OSError as exc:
        raise RequestWriteError(str(exc)) from exc
    _log.debug("sent %s %s", method, target)
