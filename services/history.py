"""Bounded, append-only record of recent readings."""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from models.records import HistoricalEntry

MAX_HISTORY = 500


class HistoryBuffer:
    """FIFO ring buffer of historical entries.

    Entries are kept in arrival order and never reordered; callers supply
    non-decreasing timestamps. An entry whose timestamp equals the most
    recent one replaces it instead of being appended.
    """

    def __init__(self, max_entries: int = MAX_HISTORY) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self.max_entries = max_entries
        self._entries: Deque[HistoricalEntry] = deque(maxlen=max_entries)

    def append(self, entry: HistoricalEntry) -> None:
        if self._entries and self._entries[-1].timestamp == entry.timestamp:
            self._entries[-1] = entry
            return
        self._entries.append(entry)

    def snapshot(self) -> List[HistoricalEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def latest(self) -> Optional[HistoricalEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)
