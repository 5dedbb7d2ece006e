"""Startup sequencing for the source-platform relay.

Order matters here:
0) Subscribe to bridge reloads, so an edit made during startup is kept
1) Learn the bot's own identity while draining stale updates (or waiting)
2) Register admin commands and default admin rights in the background
3) Install the enrichment pipeline
4) Signal readiness, then start continuous polling

Polling never starts before step 1 completes, so stale and live updates are
never interleaved.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.bridge_table import BridgeTable, BridgeTableRef
from core.config import RelayConfig, StartupConfig
from core.errors import StartupError
from core.models import SelfIdentity
from core.ports import BridgeUpdatesPort, SourcePlatformPort, UpdateHandler
from core.supervisor import Supervisor

LOGGER = logging.getLogger(__name__)

BACKLOG_BATCH_LIMIT = 100

ADMIN_COMMANDS = [
    {"command": "chatinfo", "description": "Get info about the chat"},
    {"command": "threadinfo", "description": "Get info about the thread"},
]

DEFAULT_ADMIN_RIGHTS = {
    "can_manage_chat": True,
    "can_delete_messages": True,
    "can_change_info": True,
    "can_invite_users": True,
    "can_post_messages": True,
    "can_edit_messages": True,
    "can_pin_messages": True,
    "can_manage_topics": True,
    "is_anonymous": False,
    "can_manage_video_chats": False,
    "can_restrict_members": False,
    "can_promote_members": False,
}


async def drain_backlog(
    source: SourcePlatformPort,
    offset: int = -1,
    limit: int = BACKLOG_BATCH_LIMIT,
) -> tuple[int, int]:
    """Fetch and discard queued updates until the source returns an empty batch.

    Returns ``(next_offset, discarded)``. The next offset is one past the
    highest update id of the last batch; if a batch does not move the offset
    forward (duplicate or out-of-order ids) draining stops instead of looping.
    """

    discarded = 0
    while True:
        batch = await source.fetch_updates(offset, limit)
        if not batch:
            return offset, discarded
        discarded += len(batch)
        next_offset = max(int(update["update_id"]) for update in batch) + 1
        if next_offset <= offset:
            LOGGER.warning(
                "Backlog offset did not advance (%s -> %s), stopping drain", offset, next_offset
            )
            return offset, discarded
        offset = next_offset


def _command_pairs(commands: list[dict]) -> list[tuple[str, str]]:
    return sorted((str(c.get("command")), str(c.get("description", ""))) for c in commands)


class StartupSequencer:
    """Brings the relay online and then hands control to the polling loop."""

    def __init__(
        self,
        source: SourcePlatformPort,
        install: Callable[[SelfIdentity], UpdateHandler],
        table_ref: BridgeTableRef,
        supervisor: Supervisor,
        relay_config: RelayConfig,
        startup_config: StartupConfig,
        bridge_updates: Optional[BridgeUpdatesPort] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        commands: Optional[list[dict]] = None,
        admin_rights: Optional[dict] = None,
    ) -> None:
        self._source = source
        self._install = install
        self._table_ref = table_ref
        self._supervisor = supervisor
        self._relay_config = relay_config
        self._startup_config = startup_config
        self._bridge_updates = bridge_updates
        self._sleep = sleep
        self._commands = commands if commands is not None else list(ADMIN_COMMANDS)
        self._admin_rights = admin_rights if admin_rights is not None else dict(DEFAULT_ADMIN_RIGHTS)
        self.ready = asyncio.Event()
        self.me: Optional[SelfIdentity] = None

    async def prepare(self) -> UpdateHandler:
        """Run every startup step up to (not including) polling; return the update handler."""

        if self._bridge_updates is not None:
            self._bridge_updates.subscribe(self._on_bridge_update)

        if self._relay_config.skip_old_messages:
            settle = drain_backlog(self._source)
        else:
            settle = self._sleep(self._startup_config.delay_seconds)

        try:
            me, settled = await asyncio.gather(self._source.get_me(), settle)
        except Exception as error:
            raise StartupError(f"Telegram bot could not come online: {error}") from error

        self.me = me
        LOGGER.info("Telegram: %s (%s)", me.username, me.id)
        if settled is not None:
            _, discarded = settled
            LOGGER.info("Skipped %s old update(s)", discarded)

        self._supervisor.spawn(self._register_commands(), name="register-commands")
        self._supervisor.spawn(
            self._source.set_default_admin_rights(self._admin_rights, for_channels=False),
            name="admin-rights:groups",
        )
        self._supervisor.spawn(
            self._source.set_default_admin_rights(self._admin_rights, for_channels=True),
            name="admin-rights:channels",
        )

        handler = self._install(me)
        self.ready.set()
        return handler

    async def start(self) -> None:
        """Bring the relay online and poll until the process stops."""

        handler = await self.prepare()
        LOGGER.info("Relay ready. Listening for updates...")
        await self._source.start_polling(handler)

    def _on_bridge_update(self, table: BridgeTable) -> None:
        self._table_ref.swap(table)
        LOGGER.info("Bridge table reloaded (%s bridges)", len(table))

    async def _register_commands(self) -> None:
        await self._source.set_commands(self._commands)
        self._supervisor.spawn(self._verify_commands(), name="verify-commands")

    async def _verify_commands(self) -> None:
        await self._sleep(self._startup_config.verify_commands_delay_seconds)
        registered = await self._source.get_commands()
        LOGGER.info("Telegram commands: %s", [c.get("command") for c in registered])
        if _command_pairs(registered) != _command_pairs(self._commands):
            LOGGER.warning(
                "Telegram: expected %s commands, got %s", len(self._commands), len(registered)
            )
