"""Cache of forum thread metadata, used by the thread lookup command."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from core.models import ThreadInfo


class ThreadIndex:
    def __init__(self, capacity: int = 1000) -> None:
        self._capacity = capacity
        self._entries: OrderedDict[tuple[int, int], ThreadInfo] = OrderedDict()

    def get(self, chat_id: int, thread_id: int) -> Optional[ThreadInfo]:
        key = (chat_id, thread_id)
        info = self._entries.get(key)
        if info is not None:
            self._entries.move_to_end(key)
        return info

    def put(self, chat_id: int, thread_id: int, info: ThreadInfo) -> None:
        key = (chat_id, thread_id)
        self._entries[key] = info
        self._entries.move_to_end(key)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
