"""Routing table from source chats/threads to destination bridges."""

from __future__ import annotations

from typing import Iterable, Optional

from core.models import Bridge, Origin


class BridgeTable:
    """Immutable, ordered collection of bridges.

    Resolution keeps configuration order so fan-out delivery is deterministic.
    A reload never edits a table; it builds a new one and swaps the reference
    held by ``BridgeTableRef``.
    """

    def __init__(self, bridges: Iterable[Bridge] = ()) -> None:
        self._bridges: tuple[Bridge, ...] = tuple(bridges)
        names = [bridge.name for bridge in self._bridges]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate bridge names: {', '.join(duplicates)}")

    def __iter__(self):
        return iter(self._bridges)

    def __len__(self) -> int:
        return len(self._bridges)

    def resolve(self, chat_id: int, thread_id: Optional[int], origin: Origin) -> list[Bridge]:
        """Return every bridge for this chat/thread whose direction permits ``origin``."""

        return [
            bridge
            for bridge in self._bridges
            if bridge.matches(chat_id, thread_id) and bridge.direction.permits(origin)
        ]


class BridgeTableRef:
    """Single-writer reference to the live table.

    Readers take ``current`` once and work with that table; ``swap`` is a
    single attribute assignment, so a reader sees the old or the new table,
    never a mixture.
    """

    def __init__(self, table: BridgeTable) -> None:
        self._table = table

    @property
    def current(self) -> BridgeTable:
        return self._table

    def swap(self, table: BridgeTable) -> BridgeTable:
        previous, self._table = self._table, table
        return previous
