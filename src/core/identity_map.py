"""In-memory correlation of source message ids with destination message ids."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional


class MessageIdentityMap:
    """LRU-bounded map of (bridge name, source id) -> destination id.

    Keys are scoped per bridge so the same source id relayed through two
    bridges keeps two independent destination ids.
    """

    def __init__(self, capacity: int = 10000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._records: OrderedDict[tuple[str, int], int] = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def record(self, bridge_name: str, source_id: int, dest_id: int) -> None:
        key = (bridge_name, source_id)
        self._records[key] = dest_id
        self._records.move_to_end(key)
        while len(self._records) > self._capacity:
            self._records.popitem(last=False)

    def lookup(self, bridge_name: str, source_id: int) -> Optional[int]:
        key = (bridge_name, source_id)
        dest_id = self._records.get(key)
        if dest_id is not None:
            self._records.move_to_end(key)
        return dest_id
