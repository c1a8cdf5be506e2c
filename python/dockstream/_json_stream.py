# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Newline-delimited JSON decoding for event and progress streams."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

_log = logging.getLogger(__name__)


class JSONMessageDecoder:
    """Turn arbitrary byte fragments into parsed JSON messages.

    Incomplete trailing lines are kept until the next ``feed``; lines that are
    not valid JSON are logged and skipped.
    """

    def __init__(self, charset: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(charset)(errors="replace")
        self._partial = ""

    def feed(self, data: bytes) -> list[Any]:
        """Decode *data* and return every message it completes."""
        self._partial += self._decoder.decode(data)
        *lines, self._partial = self._partial.split("\n")
        return [msg for msg in map(_parse_line, lines) if msg is not _SKIP]

    def flush(self) -> list[Any]:
        """Return the final message if the stream did not end with a newline."""
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        msg = _parse_line(tail)
        return [] if msg is _SKIP else [msg]


_SKIP = object()


def _parse_line(line: str) -> Any:  # noqa: ANN401
    stripped = line.strip()
    if not stripped:
        return _SKIP
    try:
        return json.loads(stripped)
    except ValueError:
        _log.warning("Failed to parse JSON line: %r", stripped)
        return _SKIP
