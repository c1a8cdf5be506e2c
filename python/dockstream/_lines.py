# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Line-splitting sink for following container logs."""

from __future__ import annotations

import codecs
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class LineWriter:
    """Sink that calls *callback* once per complete text line (without ``\\n``)."""

    def __init__(self, callback: Callable[[str], object], charset: str = "utf-8") -> None:
        self._callback = callback
        self._decoder = codecs.getincrementaldecoder(charset)(errors="replace")
        self._buffer = ""

    def write(self, data: bytes) -> int:
        self._buffer += self._decoder.decode(data)
        while (newline := self._buffer.find("\n")) != -1:
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            self._callback(line)
        return len(data)

    def close(self) -> None:
        """Deliver the trailing partial line, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._callback(line)
