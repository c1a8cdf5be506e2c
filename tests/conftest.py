"""Shared fixtures for dockstream tests."""

from __future__ import annotations

import asyncio
import os
import pathlib
import tempfile
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable


def _path_exists(path: pathlib.Path) -> bool:
    """Check if *path* exists, returning ``False`` on ``PermissionError``."""
    try:
        return path.exists()
    except PermissionError:
        return False


def _find_socket() -> str | None:
    """Detect an available container engine socket."""
    explicit = os.environ.get("DOCKSTREAM_SOCKET")
    if explicit and _path_exists(pathlib.Path(explicit)):
        return explicit

    xdg = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    candidates = [
        pathlib.Path(xdg) / "podman" / "podman.sock",
        pathlib.Path("/run/podman/podman.sock"),
        pathlib.Path("/var/run/docker.sock"),
    ]
    for candidate in candidates:
        if _path_exists(candidate):
            return str(candidate)
    return None


SOCKET_PATH = _find_socket()
HAS_ENGINE = SOCKET_PATH is not None

requires_engine = pytest.mark.skipif(
    not HAS_ENGINE,
    reason="No container engine socket found (Podman or Docker)",
)


@pytest.fixture
def socket_path() -> str:
    """Return the detected socket path, or skip the test."""
    if SOCKET_PATH is None:
        pytest.skip("No container engine socket found")
    return SOCKET_PATH


# -- Fake engine --


class FakeEngine:
    """In-process Unix socket server replaying canned engine responses.

    Each accepted connection reads one request head (and body, when
    ``Content-Length`` is set), records it in ``requests`` and passes it to
    the handler registered for its request line prefix.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.requests: list[bytes] = []
        self._routes: list[tuple[str, Callable[..., Awaitable[None]]]] = []
        self._server: asyncio.AbstractServer | None = None
        self._writers: list[asyncio.StreamWriter] = []

    def route(self, prefix: str, handler: Callable[..., Awaitable[None]]) -> None:
        self._routes.append((prefix, handler))

    def reply(self, prefix: str, *parts: bytes, close: bool = True) -> None:
        """Register a handler writing *parts* one by one, then closing."""

        async def _handler(
            _request: bytes, _reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            for part in parts:
                writer.write(part)
                await writer.drain()
                await asyncio.sleep(0)
            if close:
                writer.close()

        self.route(prefix, _handler)

    async def start(self) -> None:
        self._server = await asyncio.start_unix_server(self._serve, path=self.path)

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        try:
            head = await reader.readuntil(b"\r\n\r\n")
        except asyncio.IncompleteReadError:
            writer.close()
            return
        request = head
        for line in head.split(b"\r\n"):
            if line.lower().startswith(b"content-length:"):
                request += await reader.readexactly(int(line.split(b":", 1)[1]))
        self.requests.append(request)
        request_line = head.split(b"\r\n", 1)[0].decode()
        for prefix, handler in self._routes:
            if request_line.startswith(prefix):
                await handler(request, reader, writer)
                return
        writer.write(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n")
        writer.close()


@pytest.fixture
async def engine() -> AsyncIterator[FakeEngine]:
    """Start a fake engine on a short-path Unix socket."""
    with tempfile.TemporaryDirectory(prefix="ds") as tmp:
        fake = FakeEngine(os.path.join(tmp, "engine.sock"))  # noqa: PTH118
        await fake.start()
        try:
            yield fake
        finally:
            await fake.stop()
