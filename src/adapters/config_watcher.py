"""Bridge reload channel backed by the config file.

The watcher polls the file's modification time. When it changes, the
bridges are parsed again and every subscriber receives the new BridgeTable.
A config that fails to parse is logged and the current table stays in use.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Optional

from core.bridge_table import BridgeTable

LOGGER = logging.getLogger(__name__)


class ConfigWatcher:
    def __init__(
        self,
        path: str,
        loader: Callable[[str], BridgeTable],
        interval: float = 5.0,
    ) -> None:
        self._path = path
        self._loader = loader
        self._interval = interval
        self._subscribers: list[Callable[[BridgeTable], None]] = []
        self._mtime = self._stat()

    def _stat(self) -> Optional[float]:
        try:
            return os.stat(self._path).st_mtime
        except FileNotFoundError:
            return None

    def subscribe(self, callback: Callable[[BridgeTable], None]) -> None:
        self._subscribers.append(callback)

    def check(self) -> bool:
        """Emit a new table if the file changed; return True when one was emitted."""

        mtime = self._stat()
        if mtime is None or mtime == self._mtime:
            return False
        self._mtime = mtime
        try:
            table = self._loader(self._path)
        except (OSError, ValueError) as error:
            LOGGER.error("Ignoring invalid bridge config in %s: %s", self._path, error)
            return False
        except Exception:
            # A reload must never stop the relay.
            LOGGER.exception("Could not reload bridges from %s, keeping the current table", self._path)
            return False
        for callback in self._subscribers:
            callback(table)
        return True

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.check()
