# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Async HTTP client for the Podman/Docker engine API.

Each request opens its own connection to the engine, writes the request,
feeds every socket read into a :class:`ResponseReader` and closes the
connection once the response is resolved.

Hijacked responses (attach, exec start, multiplexed logs) keep their
connection open and hand it to the caller as an :class:`UpgradedStream`.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import os
import pathlib
import ssl
import time
from importlib.metadata import version
from typing import TYPE_CHECKING, Any

from dockstream._buffer import DEFAULT_MAX_BUFFER
from dockstream._json_stream import JSONMessageDecoder
from dockstream._logger import HistoryLogger
from dockstream._parser import (
    APPLICATION_JSON,
    BodyChunk,
    ResponseReader,
    ResponseRejected,
    ResponseResolved,
    StreamData,
    StreamFailed,
)
from dockstream._stream import FrameDemultiplexer, OutputCollector, as_sink
from dockstream._writer import build_query_string, write_request
from dockstream.errors import (
    DockStreamError,
    EngineNotFound,
    HTTPError,
    RequestWriteError,
    ResponseTimeout,
    SocketCommunicationError,
    SocketConnectionError,
)
from dockstream.types import BodyMode, ExecResult, Response, ResponseHead

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from typing_extensions import Self

    from dockstream._config import ClientConfig
    from dockstream._stream import Sink

_log = logging.getLogger(__name__)

_READ_SIZE = 65536
_DEFAULT_TCP_PORT = 2375
_DEFAULT_TLS_PORT = 2376
_UNSET: Any = object()

# ---------------------------------------------------------------------------
# Engine address detection
# ---------------------------------------------------------------------------


def detect_socket() -> str | None:
    """Auto-detect an available container engine socket.

    Detection order:
    1. ``DOCKSTREAM_SOCKET`` env var
    2. Podman rootless: ``$XDG_RUNTIME_DIR/podman/podman.sock``
    3. Podman system: ``/run/podman/podman.sock``
    4. Docker: ``/var/run/docker.sock``

    Returns:
        The path to the first socket found, or ``None``.

    """
    explicit = os.environ.get("DOCKSTREAM_SOCKET")
    if explicit and pathlib.Path(explicit).exists():
        return explicit

    xdg = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    candidates = [
        pathlib.Path(xdg) / "podman" / "podman.sock",
        pathlib.Path("/run/podman/podman.sock"),
        pathlib.Path("/var/run/docker.sock"),
    ]
    for candidate in candidates:
        if candidate.exists():
            return str(candidate)
    return None


def parse_docker_host(value: str, default_port: int) -> tuple[str, int]:
    """Split ``tcp://host[:port]`` into ``(host, port)``.

    A missing or unparsable port falls back to *default_port*.

    Raises:
        ValueError: If no host is present.

    """
    address = value.split("://", 1)[-1].rstrip("/")
    host, _, port_str = address.partition(":")
    if not host:
        msg = f"Invalid Docker host: {value}"
        raise ValueError(msg)
    try:
        port = int(port_str)
    except ValueError:
        port = default_port
    return host, port


@dataclasses.dataclass(frozen=True)
class EngineAddress:
    """Where the engine listens: a Unix socket path or a TCP endpoint."""

    scheme: str
    path: str = ""
    host: str = "localhost"
    port: int = _DEFAULT_TCP_PORT
    tls: bool = False

    def __str__(self) -> str:
        if self.scheme == "unix":
            return f"unix://{self.path}"
        return f"{'https' if self.tls else 'tcp'}://{self.host}:{self.port}"


def resolve_address(host: str | None) -> EngineAddress:
    """Turn a ``DOCKER_HOST``-style string into an :class:`EngineAddress`.

    ``None`` auto-detects a local socket.

    Raises:
        EngineNotFound: If *host* is ``None`` and no socket is found.
        ValueError: For unsupported schemes (``ssh://`` transports are
            supplied by the caller, not opened here).

    """
    if not host:
        detected = detect_socket()
        if detected is None:
            raise EngineNotFound
        return EngineAddress("unix", path=detected)
    if host.startswith("unix://"):
        return EngineAddress("unix", path=host[len("unix://") :])
    if host.startswith("/"):
        return EngineAddress("unix", path=host)
    if host.startswith(("tcp://", "http://")):
        name, port = parse_docker_host(host, _DEFAULT_TCP_PORT)
        return EngineAddress("tcp", host=name, port=port)
    if host.startswith("https://"):
        name, port = parse_docker_host(host, _DEFAULT_TLS_PORT)
        return EngineAddress("tcp", host=name, port=port, tls=True)
    msg = f"unsupported engine address: {host}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Raw connection helpers
# ---------------------------------------------------------------------------


async def _open_connection(
    address: EngineAddress,
    ssl_context: ssl.SSLContext | None = None,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open an async connection to the engine."""
    try:
        if address.scheme == "unix":
            return await asyncio.open_unix_connection(address.path)
        if address.tls and ssl_context is None:
            ssl_context = ssl.create_default_context()
        return await asyncio.open_connection(address.host, address.port, ssl=ssl_context)
    except OSError as exc:
        raise SocketConnectionError(str(address), str(exc)) from exc


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()


async def _next_events(
    reader: asyncio.StreamReader,
    parser: ResponseReader,
    deadline: float | None,
    timeout: float | None,
) -> list[Any]:
    """Wait for one socket read (or the deadline) and run it through *parser*."""
    remaining = None if deadline is None else deadline - asyncio.get_running_loop().time()
    try:
        if remaining is not None and remaining <= 0:
            raise asyncio.TimeoutError
        data = await asyncio.wait_for(reader.read(_READ_SIZE), timeout=remaining)
    except (TimeoutError, asyncio.TimeoutError):
        return parser.fail(ResponseTimeout(timeout or 0.0))
    except OSError as exc:
        return parser.fail(SocketCommunicationError(str(exc)))
    return parser.feed(data) if data else parser.feed_eof()


async def read_response(
    reader: asyncio.StreamReader,
    parser: ResponseReader,
    *,
    timeout: float | None = None,
    on_chunk: Callable[[bytes], object] | None = None,
) -> tuple[Response, bytes]:
    """Pump socket reads into *parser* until the response is resolved.

    Args:
        reader: Stream positioned at the start of the response.
        parser: Fresh reader for this response.
        timeout: Seconds until the response must be resolved.
        on_chunk: Receives body chunks when *parser* streams the body.

    Returns:
        ``(response, leftover)`` where *leftover* holds stream bytes that
        arrived together with the headers of a hijacked connection.

    Raises:
        HTTPError: For status codes >= 400 (or a subclass).
        ResponseTimeout: If *timeout* elapses first.
        SocketCommunicationError: On transport failure or early EOF.

    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    leftover: list[bytes] = []
    while True:
        response: Response | None = None
        for event in await _next_events(reader, parser, deadline, timeout):
            if isinstance(event, BodyChunk):
                if on_chunk is not None:
                    on_chunk(event.data)
            elif isinstance(event, StreamData):
                leftover.append(event.data)
            elif isinstance(event, ResponseResolved):
                response = event.response
            elif isinstance(event, (ResponseRejected, StreamFailed)):
                raise event.error
        if response is not None:
            return response, b"".join(leftover)


# ---------------------------------------------------------------------------
# Hijacked connections
# ---------------------------------------------------------------------------


class UpgradedStream:
    """Raw byte stream left on a connection after a stream-typed response.

    Reading yields the bytes after the response headers, verbatim for a
    hijacked connection or de-chunked when the engine framed them as a
    chunked body.  Writing sends bytes to the container's stdin when the
    request attached it.
    """

    def __init__(
        self,
        head: ResponseHead,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        parser: ResponseReader,
        initial: bytes = b"",
    ) -> None:
        self._head = head
        self._reader = reader
        self._writer = writer
        self._parser = parser
        self._initial = initial
        self._eof = False
        self._closed = False
        self.forwarding: asyncio.Task[int] | None = None

    @property
    def head(self) -> ResponseHead:
        return self._head

    @property
    def multiplexed(self) -> bool:
        """True when the payload uses stdout/stderr frames."""
        return self._head.content_type == "application/vnd.docker.multiplexed-stream"

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self) -> bytes:
        """Return the next stream bytes, or ``b""`` at end of stream."""
        if self._initial:
            data, self._initial = self._initial, b""
            return data
        while not self._eof:
            try:
                raw = await self._reader.read(_READ_SIZE)
            except OSError as exc:
                self._parser.fail(exc)
                self._eof = True
                raise SocketCommunicationError(str(exc)) from exc
            if not raw:
                self._parser.feed_eof()
                self._eof = True
                break
            chunks: list[bytes] = []
            for event in self._parser.feed(raw):
                if isinstance(event, StreamFailed):
                    self._eof = True
                    raise event.error
                if isinstance(event, StreamData):
                    chunks.append(event.data)
            if self._parser.state.terminal:
                self._eof = True
            if chunks:
                return b"".join(chunks)
        return b""

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> bytes:
        data = await self.read()
        if not data:
            raise StopAsyncIteration
        return data

    async def write(self, data: bytes) -> None:
        """Send *data* over the hijacked connection."""
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as exc:
            raise RequestWriteError(str(exc)) from exc

    def close_write(self) -> None:
        """Half-close the connection so the container sees EOF on stdin."""
        if self._writer.can_write_eof():
            self._writer.write_eof()

    async def forward(self, sink: Sink) -> int:
        """Copy the stream into *sink* until EOF, returning the bytes copied."""
        write = as_sink(sink)
        assert write is not None  # noqa: S101
        total = 0
        async for data in self:
            write(data)
            total += len(data)
        return total

    async def demux(
        self,
        stdout: Sink | None = None,
        stderr: Sink | None = None,
        *,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ) -> int:
        """Demultiplex the stream into stdout/stderr sinks until EOF.

        A raw (TTY) stream is copied to *stdout* unchanged.
        """
        if not self.multiplexed:
            return await self.forward(stdout if stdout is not None else _discard)
        return await self.forward(FrameDemultiplexer(stdout, stderr, max_buffer=max_buffer))

    async def close(self) -> None:
        """Close the underlying connection."""
        if self._closed:
            return
        self._closed = True
        self._parser.fail(SocketCommunicationError("stream closed"))
        await _close_writer(self._writer)

    async def _forward_and_close(self, sink: Sink) -> int:
        try:
            return await self.forward(sink)
        finally:
            await self.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()


def _discard(_data: bytes) -> None:
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def _default_user_agent() -> str:
    return f"dockstream/{version('dockstream')}"


def _decode(response: Response) -> Any:  # noqa: ANN401
    """Return parsed JSON, text, or raw bytes according to the content type."""
    if response.body is None:
        return None
    content_type = response.head.content_type
    if content_type == APPLICATION_JSON:
        return response.json() if response.body else None
    if content_type.startswith("text/"):
        return response.text()
    return response.body


class Client:
    """Engine API client built on the streaming response reader.

    Args:
        host: Engine address (``unix:///path``, ``/path``, ``tcp://h:p``,
            ``https://h:p``).  ``None`` auto-detects a local socket.
        timeout: Default seconds until a response must be resolved.
            ``None`` waits forever.
        user_agent: ``User-Agent`` header value.
        ssl_context: TLS context for ``https://`` engines.
        max_buffer: Upper bound for reassembly buffers.
        strict_chunks: Reject malformed chunk sizes instead of ending the body.
        history: Optional request history logger.

    """

    def __init__(  # noqa: PLR0913
        self,
        host: str | None = None,
        *,
        timeout: float | None = 10.0,
        user_agent: str | None = None,
        ssl_context: ssl.SSLContext | None = None,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        strict_chunks: bool = False,
        history: HistoryLogger | None = None,
    ) -> None:
        self._address = resolve_address(host)
        self._timeout = timeout
        self._user_agent = user_agent or _default_user_agent()
        self._ssl_context = ssl_context
        self._max_buffer = max_buffer
        self._strict_chunks = strict_chunks
        self._history = history or HistoryLogger(None)
        self._tasks: set[asyncio.Task[int]] = set()

    @classmethod
    def from_config(cls, config: ClientConfig, *, ssl_context: ssl.SSLContext | None = None) -> Self:
        """Build a client from a resolved :class:`ClientConfig`."""
        history_path = pathlib.Path(config.history_path) if config.history_path else None
        return cls(
            config.host,
            timeout=config.timeout,
            user_agent=config.user_agent,
            ssl_context=ssl_context,
            max_buffer=config.max_buffer,
            strict_chunks=config.strict_chunks,
            history=HistoryLogger(history_path),
        )

    @property
    def address(self) -> EngineAddress:
        return self._address

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel background stream forwarding started by :meth:`request`."""
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # -- Raw requests --

    async def request(  # noqa: PLR0913
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,  # noqa: ANN401
        headers: Mapping[str, str] | None = None,
        accept: str = APPLICATION_JSON,
        content_type: str | None = None,
        timeout: float | None = _UNSET,
        on_chunk: Callable[[bytes], object] | None = None,
        upgrade: bool = False,
    ) -> Response:
        """Send one request and return its resolved response.

        Args:
            method: HTTP method.
            path: Request path (without query string).
            params: Query parameters, see :func:`build_query_string`.
            body: ``bytes``/``str``, a JSON-serialisable object, or an
                (async) iterable of ``bytes`` sent chunked.
            headers: Extra request headers.
            accept: ``Accept`` header value.
            content_type: Overrides the inferred ``Content-Type``.
            timeout: Seconds until resolution; defaults to the client timeout.
            on_chunk: Receives body chunks as they arrive instead of buffering
                them.  For stream-typed responses the stream is forwarded to
                it by a background task (``response.stream.forwarding``).
            upgrade: Ask the engine to hijack the connection.

        Returns:
            The response.  ``response.stream`` is set for stream-typed
            responses and owns the still-open connection.

        Raises:
            HTTPError: For status codes >= 400 (or a subclass).
            ResponseTimeout: If the timeout elapses first.
            SocketError: On connection or transport failure.

        """
        target = f"{path}{build_query_string(params)}"
        all_headers = {
            "Host": self._address.host if self._address.scheme == "tcp" else "localhost",
            "User-Agent": self._user_agent,
            "Accept": accept,
        }
        if upgrade:
            all_headers["Connection"] = "Upgrade"
            all_headers["Upgrade"] = "tcp"
        else:
            all_headers["Connection"] = "close"
        all_headers.update(headers or {})
        if timeout is _UNSET:
            timeout = self._timeout

        started_at = time.monotonic()
        reader, writer = await _open_connection(self._address, self._ssl_context)
        parser = ResponseReader(
            method=method,
            stream_body=on_chunk is not None,
            strict_chunks=self._strict_chunks,
            close_delimited=not upgrade,
            max_buffer=self._max_buffer,
        )
        keep_open = False
        try:
            await write_request(
                writer, method, target, headers=all_headers, body=body, content_type=content_type
            )
            response, leftover = await read_response(
                reader, parser, timeout=timeout, on_chunk=on_chunk
            )
            if parser.mode is BodyMode.UPGRADED:
                stream = UpgradedStream(response.head, reader, writer, parser, leftover)
                response = dataclasses.replace(response, stream=stream)
                keep_open = True
                if on_chunk is not None:
                    self._spawn_forwarding(stream, on_chunk)
        except DockStreamError as exc:
            self._record(method, path, started_at, exc)
            raise
        finally:
            if not keep_open:
                await _close_writer(writer)

        self._record(method, path, started_at, response)
        return response

    def _spawn_forwarding(self, stream: UpgradedStream, sink: Callable[[bytes], object]) -> None:
        task = asyncio.get_running_loop().create_task(stream._forward_and_close(sink))  # noqa: SLF001
        stream.forwarding = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _record(
        self,
        method: str,
        path: str,
        started_at: float,
        outcome: Response | DockStreamError,
    ) -> None:
        duration_ms = (time.monotonic() - started_at) * 1000
        if isinstance(outcome, Response):
            status: int | None = outcome.status
            label = "upgraded" if outcome.upgraded else "ok"
        else:
            status = outcome.status if isinstance(outcome, HTTPError) else None
            label = type(outcome).__name__
        _log.debug("%s %s -> %s (%s) in %.1fms", method, path, status, label, duration_ms)
        self._history.log_exchange(
            method, path, status=status, duration_ms=duration_ms, outcome=label
        )

    async def _result(self, response: Response) -> Any:  # noqa: ANN401
        stream = response.stream
        if stream is not None and stream.forwarding is None:
            # Nothing reads the hijacked connection; release it.
            await stream.close()
        return _decode(response)

    async def get(self, path: str, params: Mapping[str, Any] | None = None, **kwargs: Any) -> Any:  # noqa: ANN401
        """``GET`` *path* and decode the body by content type."""
        return await self._result(await self.request("GET", path, params=params, **kwargs))

    async def head(self, path: str, params: Mapping[str, Any] | None = None, **kwargs: Any) -> ResponseHead:
        """``HEAD`` *path* and return the response head."""
        response = await self.request("HEAD", path, params=params, **kwargs)
        return response.head

    async def post(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,  # noqa: ANN401
        **kwargs: Any,  # noqa: ANN401
    ) -> Any:  # noqa: ANN401
        """``POST`` *body* to *path* and decode the response."""
        response = await self.request("POST", path, params=params, body=body, **kwargs)
        return await self._result(response)

    async def put(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,  # noqa: ANN401
        **kwargs: Any,  # noqa: ANN401
    ) -> Any:  # noqa: ANN401
        """``PUT`` *body* to *path* and decode the response."""
        response = await self.request("PUT", path, params=params, body=body, **kwargs)
        return await self._result(response)

    async def delete(self, path: str, params: Mapping[str, Any] | None = None, **kwargs: Any) -> Any:  # noqa: ANN401
        """``DELETE`` *path* and decode the response."""
        return await self._result(await self.request("DELETE", path, params=params, **kwargs))

    async def upgrade(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,  # noqa: ANN401
    ) -> UpgradedStream:
        """``POST`` to a hijacking endpoint and return the raw stream.

        Raises:
            SocketCommunicationError: If the engine did not hijack the connection.

        """
        response = await self.request("POST", path, params=params, body=body, upgrade=True)
        if response.stream is None:
            msg = f"{path} did not return a stream (content-type {response.head.content_type!r})"
            raise SocketCommunicationError(msg)
        return response.stream

    # -- Engine operations --

    async def ping(self) -> str:
        """Ping the container engine.

        Returns:
            ``"OK"`` on success.

        """
        response = await self.request("GET", "/_ping", accept="text/plain")
        return response.text().strip()

    async def version(self) -> dict[str, Any]:
        """Return the engine's version information."""
        return await self.get("/version")  # type: ignore[no-any-return]

    async def container_logs(  # noqa: PLR0913
        self,
        container_id: str,
        stdout: Sink | None = None,
        stderr: Sink | None = None,
        *,
        follow: bool = False,
        tail: int | str | None = None,
        since: int | None = None,
        until: int | None = None,
        timestamps: bool = False,
        tty: bool = False,
    ) -> None:
        """Write a container's logs to *stdout*/*stderr* sinks.

        Non-TTY logs are demultiplexed; with ``tty=True`` everything goes to
        *stdout*.  With ``follow=True`` this returns when the container stops
        or the call is cancelled.
        """
        params = {
            "stdout": stdout is not None,
            "stderr": stderr is not None,
            "follow": follow,
            "tail": tail,
            "since": since,
            "until": until,
            "timestamps": timestamps,
        }
        sink: Callable[[bytes], object]
        if tty:
            sink = as_sink(stdout) or _discard
        else:
            sink = FrameDemultiplexer(stdout, stderr, max_buffer=self._max_buffer)
        response = await self.request(
            "GET",
            f"/containers/{container_id}/logs",
            params=params,
            timeout=None if follow else _UNSET,
            on_chunk=sink,
        )
        if response.stream is not None and response.stream.forwarding is not None:
            await response.stream.forwarding

    async def container_attach(
        self,
        container_id: str,
        *,
        logs: bool = False,
        stream: bool = True,
        stdin: bool = False,
    ) -> UpgradedStream:
        """Attach to a container's stdio over a hijacked connection.

        Use :meth:`UpgradedStream.demux` to split the output and
        :meth:`UpgradedStream.write` to feed stdin.
        """
        params = {
            "stream": stream,
            "logs": logs,
            "stdin": stdin,
            "stdout": True,
            "stderr": True,
        }
        return await self.upgrade(f"/containers/{container_id}/attach", params)

    async def exec_run(  # noqa: PLR0913
        self,
        container_id: str,
        command: list[str],
        *,
        timeout: float | None = None,
        max_output: int = 10 * 1024 * 1024,
        env: list[str] | None = None,
        workdir: str | None = None,
    ) -> ExecResult:
        """Execute a command inside a running container.

        This performs three HTTP calls:
        1. Create exec instance (``POST /containers/{id}/exec``)
        2. Start exec and demultiplex its stream (``POST /exec/{id}/start``)
        3. Inspect exec to get exit code (``GET /exec/{id}/json``)

        Args:
            container_id: Container to exec into.
            command: Command and arguments.
            timeout: Maximum seconds to wait for the command. ``None`` = no limit.
            max_output: Maximum bytes to accumulate.
            env: ``KEY=value`` environment entries.
            workdir: Working directory inside the container.

        Returns:
            ExecResult with exit code, stdout, stderr, and timing info.

        """
        start_time = time.monotonic()

        config: dict[str, Any] = {"AttachStdout": True, "AttachStderr": True, "Cmd": command}
        if env is not None:
            config["Env"] = env
        if workdir is not None:
            config["WorkingDir"] = workdir
        created = await self.post(f"/containers/{container_id}/exec", body=config)
        exec_id = str(created["Id"])

        collector = OutputCollector(max_output)
        timed_out = False
        try:
            await asyncio.wait_for(self._exec_start(exec_id, collector), timeout=timeout)
        except (TimeoutError, asyncio.TimeoutError):
            timed_out = True

        # Skip inspect if timed out: the exec may still be running
        if timed_out:
            exit_code = -1
        else:
            inspected = await self.get(f"/exec/{exec_id}/json")
            exit_code = int(inspected["ExitCode"])

        result = collector.result()
        return ExecResult(
            exit_code=exit_code,
            stdout=result.stdout_text(),
            stderr=result.stderr_text(),
            duration_ms=(time.monotonic() - start_time) * 1000,
            timed_out=timed_out,
            truncated=result.truncated,
        )

    async def _exec_start(self, exec_id: str, collector: OutputCollector) -> None:
        demux = FrameDemultiplexer(collector.stdout, collector.stderr, max_buffer=self._max_buffer)
        response = await self.request(
            "POST",
            f"/exec/{exec_id}/start",
            body={"Detach": False, "Tty": False},
            upgrade=True,
        )
        if response.stream is None:
            # Engine answered with a plain body instead of hijacking.
            demux.feed(response.body or b"")
            return
        async with response.stream as stream:
            await stream.forward(demux)

    async def system_events(
        self,
        on_event: Callable[[Any], object],
        *,
        since: int | None = None,
        until: int | None = None,
        filters: dict[str, list[str]] | None = None,
    ) -> None:
        """Stream engine events to *on_event* as parsed JSON objects.

        Without *until* this runs until cancelled.
        """
        decoder = JSONMessageDecoder()

        def _on_chunk(data: bytes) -> None:
            for message in decoder.feed(data):
                on_event(message)

        await self.request(
            "GET",
            "/events",
            params={"since": since, "until": until, "filters": filters},
            timeout=None,
            on_chunk=_on_chunk,
        )
        for message in decoder.flush():
            on_event(message)
