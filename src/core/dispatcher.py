"""Routes raw updates to admin command handlers or the enrichment pipeline."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from core.pipeline import EnrichmentPipeline

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[[dict], Awaitable[None]]


class EventDispatcher:
    """Single entry point for updates coming from the polling loop.

    Admin commands bypass the pipeline entirely. Errors are logged and never
    raised, so one bad update cannot stop the polling loop.
    """

    def __init__(
        self,
        pipeline: EnrichmentPipeline,
        commands: dict[str, CommandHandler],
        command_of: Callable[[dict], Optional[str]],
    ) -> None:
        self._pipeline = pipeline
        self._commands = commands
        self._command_of = command_of

    async def handle(self, update: dict) -> None:
        try:
            name = self._command_of(update)
            handler = self._commands.get(name) if name else None
            if handler is not None:
                await handler(update)
                return
            await self._pipeline.process(update)
        except Exception:
            LOGGER.exception("Error while processing update %s", update.get("update_id"))
