"""Tests for the async engine client.

Address parsing is tested directly; everything else runs against the
in-process ``FakeEngine`` Unix socket server from ``conftest.py``.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from dockstream._chunked import encode_chunk, encode_chunked
from dockstream._config import ClientConfig
from dockstream._logger import HistoryLogger
from dockstream._socket_client import (
    Client,
    EngineAddress,
    _decode,
    detect_socket,
    parse_docker_host,
    resolve_address,
)
from dockstream._stream import STREAM_STDERR, STREAM_STDOUT, make_frame
from dockstream.errors import (
    EngineNotFound,
    NotFound,
    ResponseTimeout,
    SocketCommunicationError,
    SocketConnectionError,
)

if TYPE_CHECKING:
    import pathlib

    from .conftest import FakeEngine

MULTIPLEXED = b"application/vnd.docker.multiplexed-stream"
RAW = b"application/vnd.docker.raw-stream"


def _json_response(payload: object, status: str = "200 OK") -> bytes:
    body = json.dumps(payload).encode()
    return (
        f"HTTP/1.1 {status}\r\nContent-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )


def _request_line(raw: bytes) -> str:
    return raw.split(b"\r\n", 1)[0].decode()


# -- detect_socket --


def test_detect_socket_with_env_var(tmp_path: pathlib.Path) -> None:
    sock = tmp_path / "test.sock"
    sock.touch()
    with patch.dict(os.environ, {"DOCKSTREAM_SOCKET": str(sock)}):
        assert detect_socket() == str(sock)


def test_detect_socket_finds_podman_rootless(tmp_path: pathlib.Path) -> None:
    sock = tmp_path / "podman" / "podman.sock"
    sock.parent.mkdir()
    sock.touch()
    with patch.dict(os.environ, {"DOCKSTREAM_SOCKET": "", "XDG_RUNTIME_DIR": str(tmp_path)}):
        assert detect_socket() == str(sock)


def test_detect_socket_none_found(tmp_path: pathlib.Path) -> None:
    with (
        patch.dict(os.environ, {"DOCKSTREAM_SOCKET": "", "XDG_RUNTIME_DIR": str(tmp_path)}),
        patch("dockstream._socket_client.pathlib.Path.exists", return_value=False),
    ):
        assert detect_socket() is None


# -- parse_docker_host / resolve_address --


def test_parse_docker_host_with_port() -> None:
    assert parse_docker_host("tcp://10.0.0.5:2380", 2375) == ("10.0.0.5", 2380)


def test_parse_docker_host_default_port() -> None:
    assert parse_docker_host("tcp://engine.local", 2375) == ("engine.local", 2375)


def test_parse_docker_host_bad_port_uses_default() -> None:
    assert parse_docker_host("tcp://engine:abc", 2375) == ("engine", 2375)


def test_parse_docker_host_missing_host() -> None:
    with pytest.raises(ValueError, match="Invalid Docker host"):
        parse_docker_host("tcp://:2375", 2375)


def test_resolve_unix_forms() -> None:
    assert resolve_address("unix:///var/run/docker.sock") == EngineAddress(
        "unix", path="/var/run/docker.sock"
    )
    assert resolve_address("/run/podman/podman.sock").path == "/run/podman/podman.sock"


def test_resolve_tcp_and_https() -> None:
    tcp = resolve_address("tcp://10.0.0.1")
    assert (tcp.scheme, tcp.host, tcp.port, tcp.tls) == ("tcp", "10.0.0.1", 2375, False)
    tls = resolve_address("https://engine:9000")
    assert (tls.host, tls.port, tls.tls) == ("engine", 9000, True)
    assert str(tls) == "https://engine:9000"


def test_resolve_ssh_unsupported() -> None:
    with pytest.raises(ValueError, match="unsupported"):
        resolve_address("ssh://user@host")


def test_resolve_none_without_socket() -> None:
    with (
        patch("dockstream._socket_client.detect_socket", return_value=None),
        pytest.raises(EngineNotFound),
    ):
        resolve_address(None)


def test_from_config() -> None:
    client = Client.from_config(ClientConfig(host="tcp://h:1", timeout=2.0, strict_chunks=True))
    assert client.address == EngineAddress("tcp", host="h", port=1)


# -- Plain requests --


async def test_ping(engine: FakeEngine) -> None:
    engine.reply("GET /_ping", b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\nContent-Length: 2\r\n\r\nOK")
    async with Client(engine.path) as client:
        assert await client.ping() == "OK"

    request = engine.requests[0]
    assert _request_line(request) == "GET /_ping HTTP/1.1"
    assert b"Host: localhost\r\n" in request
    assert b"Connection: close\r\n" in request
    assert b"User-Agent: dockstream/" in request


async def test_get_json_fragmented_chunked(engine: FakeEngine) -> None:
    body = json.dumps({"Version": "24.0.7", "ApiVersion": "1.43"}).encode()
    raw = (
        b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nTransfer-Encoding: chunked\r\n\r\n"
        + b"".join(encode_chunked([body[:10], body[10:]]))
    )
    engine.reply("GET /version", *[raw[i : i + 5] for i in range(0, len(raw), 5)])
    async with Client(engine.path) as client:
        assert await client.version() == {"Version": "24.0.7", "ApiVersion": "1.43"}


async def test_get_with_params(engine: FakeEngine) -> None:
    engine.reply("GET /containers/json", _json_response([]))
    async with Client(engine.path) as client:
        assert await client.get("/containers/json", {"all": True, "limit": None}) == []
    assert _request_line(engine.requests[0]) == "GET /containers/json?all=true HTTP/1.1"


async def test_close_delimited_body(engine: FakeEngine) -> None:
    engine.reply("GET /raw", b"HTTP/1.1 200 OK\r\nContent-Type: application/octet-stream\r\n\r\n", b"ab", b"cd")
    async with Client(engine.path) as client:
        assert await client.get("/raw") == b"abcd"


async def test_post_json_body(engine: FakeEngine) -> None:
    engine.reply("POST /containers/create", _json_response({"Id": "abc"}, "201 Created"))
    async with Client(engine.path) as client:
        created = await client.post("/containers/create", {"name": "web"}, {"Image": "alpine"})
    assert created == {"Id": "abc"}
    request = engine.requests[0]
    assert _request_line(request) == "POST /containers/create?name=web HTTP/1.1"
    assert request.endswith(b'{"Image": "alpine"}')


async def test_put_streaming_body(engine: FakeEngine) -> None:
    received: list[bytes] = []

    async def _handler(
        _request: bytes, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        received.append(await reader.readuntil(b"0\r\n\r\n"))
        writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")
        writer.close()

    engine.route("PUT /containers/abc/archive", _handler)
    async with Client(engine.path) as client:
        await client.put("/containers/abc/archive", {"path": "/tmp"}, iter([b"abc", b"de"]))
    assert b"Transfer-Encoding: chunked\r\n" in engine.requests[0]
    assert received == [b"3\r\nabc\r\n2\r\nde\r\n0\r\n\r\n"]


async def test_head_returns_headers(engine: FakeEngine) -> None:
    engine.reply("HEAD /_ping", b"HTTP/1.1 200 OK\r\nApi-Version: 1.43\r\nContent-Length: 2\r\n\r\n")
    async with Client(engine.path) as client:
        head = await client.head("/_ping")
    assert head.headers["api-version"] == "1.43"


# -- Failures --


async def test_not_found_raises_with_engine_message(engine: FakeEngine) -> None:
    engine.reply(
        "GET /containers/nope/json",
        _json_response({"message": "no such container: nope"}, "404 Not Found"),
    )
    async with Client(engine.path) as client:
        with pytest.raises(NotFound) as exc_info:
            await client.get("/containers/nope/json")
    assert exc_info.value.status == 404
    assert str(exc_info.value) == "no such container: nope"


async def test_timeout_on_incomplete_response(engine: FakeEngine) -> None:
    engine.reply("GET /slow", b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nabc", close=False)
    async with Client(engine.path, timeout=0.2) as client:
        with pytest.raises(ResponseTimeout) as exc_info:
            await client.get("/slow")
    assert str(exc_info.value) == "Timeout: incomplete HTTP response after 0.2s"


async def test_connection_closed_mid_body(engine: FakeEngine) -> None:
    engine.reply("GET /short", b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nabc")
    async with Client(engine.path) as client:
        with pytest.raises(SocketCommunicationError):
            await client.get("/short")


async def test_connection_refused(tmp_path: pathlib.Path) -> None:
    async with Client(str(tmp_path / "missing.sock")) as client:
        with pytest.raises(SocketConnectionError, match="Cannot connect"):
            await client.ping()


async def test_history_records_outcomes(engine: FakeEngine, tmp_path: pathlib.Path) -> None:
    engine.reply("GET /_ping", b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nOK")
    engine.reply("GET /missing", b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n")
    path = tmp_path / "history.jsonl"
    async with Client(engine.path, history=HistoryLogger(path)) as client:
        await client.ping()
        with pytest.raises(NotFound):
            await client.get("/missing")

    entries = [json.loads(line) for line in path.read_text().splitlines()]
    assert [(e["path"], e["status"], e["outcome"]) for e in entries] == [
        ("/_ping", 200, "ok"),
        ("/missing", 404, "NotFound"),
    ]


# -- Streaming bodies --


async def test_system_events_ndjson(engine: FakeEngine) -> None:
    lines = b'{"Type":"container","Action":"start"}\n{"Type":"container","Action":"die"}\n'
    engine.reply(
        "GET /events",
        b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nTransfer-Encoding: chunked\r\n\r\n",
        encode_chunk(lines[:20]),
        encode_chunk(lines[20:]),
        b"0\r\n\r\n",
    )
    events: list[object] = []
    async with Client(engine.path) as client:
        await client.system_events(events.append, until=1700000000)
    assert events == [
        {"Type": "container", "Action": "start"},
        {"Type": "container", "Action": "die"},
    ]
    assert _request_line(engine.requests[0]) == "GET /events?until=1700000000 HTTP/1.1"


async def test_container_logs_chunked_multiplexed(engine: FakeEngine) -> None:
    frames = make_frame(STREAM_STDOUT, b"Hello\n") + make_frame(STREAM_STDERR, b"oops\n")
    engine.reply(
        "GET /containers/c1/logs",
        b"HTTP/1.1 200 OK\r\nContent-Type: " + MULTIPLEXED + b"\r\nTransfer-Encoding: chunked\r\n\r\n",
        encode_chunk(frames[:10]),
        encode_chunk(frames[10:]),
        b"0\r\n\r\n",
    )
    out: list[bytes] = []
    err: list[bytes] = []
    async with Client(engine.path) as client:
        await client.container_logs("c1", out.append, err.append, tail=10)
    assert b"".join(out) == b"Hello\n"
    assert b"".join(err) == b"oops\n"
    assert "tail=10" in _request_line(engine.requests[0])


async def test_container_logs_octet_stream_body(engine: FakeEngine) -> None:
    frames = make_frame(STREAM_STDOUT, b"line\n")
    engine.reply(
        "GET /containers/c2/logs",
        b"HTTP/1.1 200 OK\r\nContent-Type: application/octet-stream\r\n"
        + f"Content-Length: {len(frames)}\r\n\r\n".encode(),
        frames[:3],
        frames[3:],
    )
    out: list[bytes] = []
    async with Client(engine.path) as client:
        await client.container_logs("c2", out.append)
    assert out == [b"line\n"]


async def test_close_cancels_background_forwarding(engine: FakeEngine) -> None:
    engine.reply(
        "GET /containers/c3/logs",
        b"HTTP/1.1 200 OK\r\nContent-Type: " + RAW + b"\r\n\r\nfirst",
        close=False,
    )
    out: list[bytes] = []
    client = Client(engine.path)
    response = await client.request("GET", "/containers/c3/logs", on_chunk=out.append)
    assert response.upgraded
    task = response.stream.forwarding  # type: ignore[union-attr]
    assert task is not None
    await asyncio.sleep(0.05)
    await client.close()
    assert task.cancelled()
    assert out == [b"first"]
    assert response.stream.closed  # type: ignore[union-attr]


async def test_get_on_stream_endpoint_closes_connection(engine: FakeEngine) -> None:
    engine.reply(
        "GET /containers/c4/logs",
        b"HTTP/1.1 200 OK\r\nContent-Type: " + RAW + b"\r\n\r\nignored",
        close=False,
    )
    async with Client(engine.path) as client:
        with patch("dockstream._socket_client._decode", wraps=_decode) as decode:
            result = await client.get("/containers/c4/logs")
    assert result is None
    (response,) = decode.call_args.args
    assert response.upgraded
    assert response.stream.closed


# -- Hijacked connections --


def _exec_routes(engine: FakeEngine, start_parts: tuple[bytes, ...], *, close: bool = True) -> None:
    engine.reply("POST /containers/box/exec", _json_response({"Id": "e1"}, "201 Created"))
    engine.reply(
        "POST /exec/e1/start",
        b"HTTP/1.1 101 UPGRADED\r\nContent-Type: " + MULTIPLEXED + b"\r\n"
        b"Connection: Upgrade\r\nUpgrade: tcp\r\n\r\n",
        *start_parts,
        close=close,
    )
    engine.reply("GET /exec/e1/json", _json_response({"ExitCode": 3, "Running": False}))


async def test_exec_run_demuxes_output(engine: FakeEngine) -> None:
    frames = make_frame(STREAM_STDOUT, b"hello\n") + make_frame(STREAM_STDERR, b"oops\n")
    _exec_routes(engine, (frames[:5], frames[5:]))
    async with Client(engine.path) as client:
        result = await client.exec_run("box", ["sh", "-c", "echo hello"], env=["A=1"])

    assert result.exit_code == 3
    assert result.stdout == "hello\n"
    assert result.stderr == "oops\n"
    assert result.timed_out is False
    assert not result.ok

    create = engine.requests[0]
    config = json.loads(create.split(b"\r\n\r\n", 1)[1])
    assert config["Cmd"] == ["sh", "-c", "echo hello"]
    assert config["Env"] == ["A=1"]
    start = engine.requests[1]
    assert b"Connection: Upgrade\r\n" in start
    assert b"Upgrade: tcp\r\n" in start


async def test_exec_run_truncates_output(engine: FakeEngine) -> None:
    _exec_routes(engine, (make_frame(STREAM_STDOUT, b"x" * 64),))
    async with Client(engine.path) as client:
        result = await client.exec_run("box", ["yes"], max_output=10)
    assert result.stdout == "x" * 10
    assert result.truncated is True


async def test_exec_run_timeout(engine: FakeEngine) -> None:
    _exec_routes(engine, (make_frame(STREAM_STDOUT, b"partial"),), close=False)
    async with Client(engine.path) as client:
        result = await client.exec_run("box", ["sleep", "60"], timeout=0.2)
    assert result.timed_out is True
    assert result.exit_code == -1
    assert result.stdout == "partial"
    # Inspect is skipped after a timeout
    assert all(not _request_line(r).startswith("GET /exec") for r in engine.requests)


async def test_attach_round_trip(engine: FakeEngine) -> None:
    async def _echo(
        _request: bytes, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: " + RAW + b"\r\n\r\n")
        await writer.drain()
        data = await reader.read(100)
        writer.write(data.upper())
        await writer.drain()
        writer.close()

    engine.route("POST /containers/box/attach", _echo)
    async with Client(engine.path) as client:
        stream = await client.container_attach("box", stdin=True)
        async with stream:
            assert not stream.multiplexed
            await stream.write(b"ping\n")
            chunks = [chunk async for chunk in stream]
        assert stream.closed

    assert b"".join(chunks) == b"PING\n"
    assert "stdin=true" in _request_line(engine.requests[0])


async def test_upgraded_stream_demux(engine: FakeEngine) -> None:
    frames = make_frame(STREAM_STDOUT, b"a") + make_frame(STREAM_STDERR, b"b")
    engine.reply(
        "POST /containers/box/attach",
        b"HTTP/1.1 200 OK\r\nContent-Type: " + MULTIPLEXED + b"\r\n\r\n" + frames[:9],
        frames[9:],
    )
    out: list[bytes] = []
    err: list[bytes] = []
    async with Client(engine.path) as client:
        async with await client.container_attach("box") as stream:
            total = await stream.demux(out.append, err.append)
    assert total == len(frames)
    assert (out, err) == ([b"a"], [b"b"])


async def test_upgrade_without_stream_response(engine: FakeEngine) -> None:
    engine.reply("POST /containers/box/attach", _json_response({}))
    async with Client(engine.path) as client:
        with pytest.raises(SocketCommunicationError, match="did not return a stream"):
            await client.container_attach("box")
