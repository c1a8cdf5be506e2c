# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

from __future__ import annotations

from importlib.metadata import version

from dockstream._buffer import DEFAULT_MAX_BUFFER, BoundedBuffer
from dockstream._chunked import ChunkExtraction, dechunk, encode_chunked, extract_chunks
from dockstream._config import ClientConfig, load_config
from dockstream._json_stream import JSONMessageDecoder
from dockstream._lines import LineWriter
from dockstream._logger import HistoryLogger
from dockstream._parser import (
    MULTIPLEXED_STREAM,
    RAW_STREAM,
    BodyChunk,
    HeadersReceived,
    ResponseReader,
    ResponseRejected,
    ResponseResolved,
    StreamData,
    StreamFailed,
)
from dockstream._socket_client import (
    Client,
    EngineAddress,
    UpgradedStream,
    detect_socket,
    parse_docker_host,
    read_response,
    resolve_address,
)
from dockstream._stream import (
    STREAM_STDERR,
    STREAM_STDIN,
    STREAM_STDOUT,
    DemuxResult,
    Frame,
    FrameDemultiplexer,
    demux_stream,
    demux_stream_iter,
    make_frame,
)
from dockstream._writer import build_query_string, write_request
from dockstream.errors import (
    BufferLimitExceeded,
    ChunkedEncodingError,
    Conflict,
    DockStreamError,
    EngineNotFound,
    HTTPError,
    NotFound,
    ProtocolError,
    RequestWriteError,
    ResponseTimeout,
    SocketCommunicationError,
    SocketConnectionError,
    SocketError,
    Unauthorized,
)
from dockstream.types import BodyMode, ExecResult, ParseState, Response, ResponseHead

__version__ = version("dockstream")


def get_version() -> str:
    """Return the dockstream package version string."""
    return __version__


__all__ = [
    "DEFAULT_MAX_BUFFER",
    "MULTIPLEXED_STREAM",
    "RAW_STREAM",
    "STREAM_STDERR",
    "STREAM_STDIN",
    "STREAM_STDOUT",
    "BodyChunk",
    "BodyMode",
    "BoundedBuffer",
    "BufferLimitExceeded",
    "ChunkExtraction",
    "ChunkedEncodingError",
    "Client",
    "ClientConfig",
    "Conflict",
    "DemuxResult",
    "DockStreamError",
    "EngineAddress",
    "EngineNotFound",
    "ExecResult",
    "Frame",
    "FrameDemultiplexer",
    "HTTPError",
    "HeadersReceived",
    "HistoryLogger",
    "JSONMessageDecoder",
    "LineWriter",
    "NotFound",
    "ParseState",
    "ProtocolError",
    "RequestWriteError",
    "Response",
    "ResponseHead",
    "ResponseReader",
    "ResponseRejected",
    "ResponseResolved",
    "ResponseTimeout",
    "SocketCommunicationError",
    "SocketConnectionError",
    "SocketError",
    "StreamData",
    "StreamFailed",
    "Unauthorized",
    "UpgradedStream",
    "__version__",
    "build_query_string",
    "dechunk",
    "demux_stream",
    "demux_stream_iter",
    "detect_socket",
    "encode_chunked",
    "extract_chunks",
    "get_version",
    "load_config",
    "make_frame",
    "parse_docker_host",
    "read_response",
    "resolve_address",
    "write_request",
]
