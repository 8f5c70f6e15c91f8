"""
history.py
Bounded undo/redo log of whole-collection snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from models import Visit, utc_now_iso

HISTORY_KINDS = ("add", "edit", "delete", "clear")


@dataclass(frozen=True)
class HistoryEntry:
    kind: str
    timestamp: str
    before: tuple[Visit, ...]
    after: tuple[Visit, ...]
    description: str


class HistoryLog:
    """
    Linear history with a cursor.

    ``index`` points at the last applied entry (-1 when everything has been
    undone). Recording truncates any redo tail first, and the oldest entry is
    evicted once ``limit`` is exceeded. Undo and redo hand the stored snapshot
    to ``apply``; they never record anything themselves.
    """

    def __init__(self, apply: Callable[[list[Visit]], object], limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._apply = apply
        self.limit = limit
        self._entries: list[HistoryEntry] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def can_undo(self) -> bool:
        return self._index >= 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def record(self, kind: str, before: Iterable[Visit], after: Iterable[Visit], description: str) -> HistoryEntry:
        if kind not in HISTORY_KINDS:
            raise ValueError(f"kind must be one of {HISTORY_KINDS}, got {kind!r}")
        # visits are frozen, so a tuple of them is a full snapshot
        entry = HistoryEntry(
            kind=kind,
            timestamp=utc_now_iso(),
            before=tuple(before),
            after=tuple(after),
            description=description,
        )
        del self._entries[self._index + 1:]
        self._entries.append(entry)
        if len(self._entries) > self.limit:
            self._entries.pop(0)
        self._index = len(self._entries) - 1
        return entry

    def undo(self) -> HistoryEntry | None:
        if self._index < 0:
            return None
        entry = self._entries[self._index]
        self._apply(list(entry.before))
        self._index -= 1
        return entry

    def redo(self) -> HistoryEntry | None:
        if self._index >= len(self._entries) - 1:
            return None
        entry = self._entries[self._index + 1]
        self._apply(list(entry.after))
        self._index += 1
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1
