"""Unit tests for chunked transfer-encoding extraction."""

from __future__ import annotations

import pytest
from dockstream._chunked import (
    TERMINAL_CHUNK,
    dechunk,
    encode_chunk,
    encode_chunked,
    extract_chunks,
    parse_chunk_size,
)
from dockstream.errors import ChunkedEncodingError

# -- parse_chunk_size --


def test_parse_chunk_size_hex() -> None:
    assert parse_chunk_size(b"1a") == 26


def test_parse_chunk_size_uppercase_and_spaces() -> None:
    assert parse_chunk_size(b" FF ") == 255


def test_parse_chunk_size_ignores_extensions() -> None:
    assert parse_chunk_size(b"5;name=value") == 5


def test_parse_chunk_size_invalid_is_terminal() -> None:
    assert parse_chunk_size(b"zz") == 0


def test_parse_chunk_size_negative_is_terminal() -> None:
    assert parse_chunk_size(b"-5") == 0


def test_parse_chunk_size_invalid_strict_raises() -> None:
    with pytest.raises(ChunkedEncodingError) as exc_info:
        parse_chunk_size(b"zz", strict=True)
    assert exc_info.value.size_line == b"zz"


# -- extract_chunks --


def test_extract_two_chunks_and_terminal() -> None:
    extraction = extract_chunks(b"5\r\nhello\r\n6\r\n world\r\n0\r\n\r\n")
    assert extraction.chunks == [b"hello", b" world", b""]
    assert extraction.complete
    assert extraction.remainder.startswith(b"0\r\n")


def test_extract_terminal_without_trailing_crlf() -> None:
    extraction = extract_chunks(b"5\r\nhello\r\n0\r\n")
    assert extraction.chunks == [b"hello", b""]
    assert extraction.remainder == b"0\r\n"


def test_extract_incomplete_chunk_kept_in_remainder() -> None:
    extraction = extract_chunks(b"5\r\nhello\r\n5\r\nwor")
    assert extraction.chunks == [b"hello"]
    assert not extraction.complete
    assert extraction.remainder == b"5\r\nwor"
    assert extraction.needed == len(b"5\r\nworld\r\n")


def test_extract_needed_is_zero_when_nothing_pending() -> None:
    assert extract_chunks(b"5\r\nhello\r\n").needed == 0
    assert extract_chunks(b"5\r\nhello\r\n0\r\n\r\n").needed == 0


def test_extract_chunk_missing_trailing_crlf_waits() -> None:
    extraction = extract_chunks(b"5\r\nhello")
    assert extraction.chunks == []
    assert extraction.remainder == b"5\r\nhello"


def test_extract_incomplete_size_line() -> None:
    extraction = extract_chunks(b"1")
    assert extraction.chunks == []
    assert extraction.remainder == b"1"


def test_extract_empty_buffer() -> None:
    extraction = extract_chunks(b"")
    assert extraction.chunks == []
    assert extraction.remainder == b""
    assert not extraction.complete


def test_extract_only_terminal() -> None:
    extraction = extract_chunks(TERMINAL_CHUNK)
    assert extraction.chunks == [b""]
    assert extraction.complete


def test_extract_skips_blank_size_lines() -> None:
    extraction = extract_chunks(b"\r\n3\r\nabc\r\n")
    assert extraction.chunks == [b"abc"]
    assert extraction.remainder == b""


def test_extract_resumes_from_remainder() -> None:
    first = extract_chunks(b"5\r\nhel")
    second = extract_chunks(first.remainder + b"lo\r\n0\r\n\r\n")
    assert first.chunks == []
    assert second.chunks == [b"hello", b""]


def test_extract_payload_containing_crlf() -> None:
    extraction = extract_chunks(b"4\r\na\r\nb\r\n")
    assert extraction.chunks == [b"a\r\nb"]


def test_extract_malformed_size_lenient_ends_body() -> None:
    extraction = extract_chunks(b"xyz\r\nhello\r\n")
    assert extraction.chunks == [b""]
    assert extraction.complete


def test_extract_malformed_size_strict_raises() -> None:
    with pytest.raises(ChunkedEncodingError):
        extract_chunks(b"xyz\r\nhello\r\n", strict=True)


# -- Encoding --


def test_encode_chunk() -> None:
    assert encode_chunk(b"hello world!") == b"c\r\nhello world!\r\n"


def test_encode_chunked_skips_empty() -> None:
    encoded = b"".join(encode_chunked([b"ab", b"", b"cd"]))
    assert encoded == b"2\r\nab\r\n2\r\ncd\r\n0\r\n\r\n"


def test_dechunk_complete_body() -> None:
    body = b"".join(encode_chunked([b"foo", b"bar"]))
    assert dechunk(body) == b"foobar"
