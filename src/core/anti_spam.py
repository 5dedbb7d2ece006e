"""Rate limiting for the "this is a private bot" informational reply."""

from __future__ import annotations

import time
from typing import Callable


class AntiSpamGuard:
    """Allow at most one notification per chat within ``window`` seconds."""

    def __init__(self, window: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._window = window
        self._clock = clock
        self._notified_at: dict[int, float] = {}

    def should_notify(self, chat_id: int) -> bool:
        """Return True and mark the chat if no notification was sent within the window."""

        now = self._clock()
        self._prune(now)
        if chat_id in self._notified_at:
            return False
        self._notified_at[chat_id] = now
        return True

    def _prune(self, now: float) -> None:
        expired = [chat_id for chat_id, at in self._notified_at.items() if now - at >= self._window]
        for chat_id in expired:
            del self._notified_at[chat_id]
