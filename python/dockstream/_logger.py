# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Fire-and-forget request history written to disk as JSONL.

All I/O is synchronous filesystem writes.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class HistoryLogger:
    """Appends one line per completed request to a ``history.jsonl`` file."""

    def __init__(self, history_path: Path | None) -> None:
        self._history_path = history_path

    @property
    def enabled(self) -> bool:
        """Whether a history file is configured."""
        return self._history_path is not None

    def log_exchange(  # noqa: PLR0913
        self,
        method: str,
        path: str,
        *,
        status: int | None,
        duration_ms: float,
        outcome: str,
        started_at: datetime | None = None,
    ) -> None:
        """Record a request and how it ended (``ok``, ``upgraded`` or an error name)."""
        if self._history_path is None:
            return
        ts = started_at or datetime.now(tz=timezone.utc)
        self.append_history(
            {
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 1),
                "outcome": outcome,
                "timestamp": ts.isoformat(),
            }
        )

    def append_history(self, entry: dict[str, object]) -> None:
        """Append one JSONL line to the history file."""
        if self._history_path is None:
            return
        self._history_path.parent.mkdir(parents=True, exist_ok=True)
        with self._history_path.open("a") as f:
            f.write(json.dumps(entry, default=str) + "\n")
