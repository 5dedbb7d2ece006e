"""Hand-written fakes for the platform ports, shared by the tests."""

from __future__ import annotations

from typing import Optional

from adapters.discord_formatting import DiscordFormatter
from core.anti_spam import AntiSpamGuard
from core.bridge_table import BridgeTable, BridgeTableRef
from core.config import RelayConfig
from core.errors import DeliveryError, PlatformError
from core.identity_map import MessageIdentityMap
from core.models import Bridge, PreparedMessage, SelfIdentity
from core.pipeline import RelayServices
from core.supervisor import Supervisor
from core.thread_index import ThreadIndex

BOT_ID = 999


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeSource:
    def __init__(self, backlog: Optional[list[list[dict]]] = None) -> None:
        self.me = SelfIdentity(id=BOT_ID, username="skybridge_bot")
        self.backlog = list(backlog or [])
        self.fail_get_me = False
        self.fail_set_commands = False
        self.commands_reply: Optional[list[dict]] = None
        self.missing_files: set[str] = set()
        self.fetch_calls: list[tuple[int, int]] = []
        self.commands: list[dict] = []
        self.admin_rights_calls: list[bool] = []
        self.sent: list[tuple[int, str, Optional[int], Optional[int]]] = []
        self.edits: list[tuple[int, int, str]] = []
        self.file_link_calls: list[str] = []
        self.polling_handler = None

    async def get_me(self) -> SelfIdentity:
        if self.fail_get_me:
            raise PlatformError("getMe", "Unauthorized", 401)
        return self.me

    async def fetch_updates(self, offset: int, limit: int) -> list[dict]:
        self.fetch_calls.append((offset, limit))
        if not self.backlog:
            return []
        return self.backlog.pop(0)

    async def set_commands(self, commands: list[dict]) -> None:
        if self.fail_set_commands:
            raise PlatformError("setMyCommands", "Too Many Requests", 429)
        self.commands = list(commands)

    async def get_commands(self) -> list[dict]:
        if self.commands_reply is not None:
            return list(self.commands_reply)
        return list(self.commands)

    async def set_default_admin_rights(self, rights: dict, for_channels: bool) -> None:
        self.admin_rights_calls.append(for_channels)

    async def start_polling(self, handler) -> None:
        self.polling_handler = handler

    async def send_message(
        self,
        chat_id: int,
        text: str,
        thread_id: Optional[int] = None,
        reply_to: Optional[int] = None,
    ) -> int:
        self.sent.append((chat_id, text, thread_id, reply_to))
        return len(self.sent)

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        self.edits.append((chat_id, message_id, text))

    async def get_file_link(self, file_id: str) -> str:
        self.file_link_calls.append(file_id)
        if file_id in self.missing_files:
            raise PlatformError("getFile", "Bad Request: file is too big", 400)
        return f"https://files.example/{file_id}"


class FakeDestination:
    def __init__(self, failing_channels: tuple[int, ...] = ()) -> None:
        self.failing_channels = set(failing_channels)
        self.sent: list[tuple[int, PreparedMessage]] = []
        self.edits: list[tuple[int, int, PreparedMessage]] = []
        self._next_id = 5000

    async def send_message(self, channel_id: int, prepared: PreparedMessage) -> int:
        if channel_id in self.failing_channels:
            raise DeliveryError(f"channel {channel_id} is gone")
        self._next_id += 1
        self.sent.append((channel_id, prepared))
        return self._next_id

    async def edit_message(self, channel_id: int, message_id: int, prepared: PreparedMessage) -> None:
        self.edits.append((channel_id, message_id, prepared))


def make_services(
    bridges: list[Bridge],
    *,
    source: Optional[FakeSource] = None,
    destination: Optional[FakeDestination] = None,
    clock: Optional[FakeClock] = None,
    config: Optional[RelayConfig] = None,
) -> RelayServices:
    config = config or RelayConfig()
    source = source or FakeSource()
    return RelayServices(
        me=source.me,
        source=source,
        destination=destination or FakeDestination(),
        config=config,
        bridges=BridgeTableRef(BridgeTable(bridges)),
        identities=MessageIdentityMap(capacity=100),
        anti_spam=AntiSpamGuard(window=60.0, clock=clock or FakeClock()),
        threads=ThreadIndex(),
        formatter=DiscordFormatter(config),
        supervisor=Supervisor(),
    )


def make_message(
    message_id: int,
    text: Optional[str] = "hello",
    *,
    chat_id: int = 111,
    chat_type: str = "supergroup",
    user_id: int = 42,
    username: Optional[str] = "alice",
    **extra,
) -> dict:
    message = {
        "message_id": message_id,
        "date": 1700000000,
        "chat": {"id": chat_id, "type": chat_type, "title": "Team"},
        "from": {"id": user_id, "is_bot": False, "first_name": "Alice", "username": username},
    }
    if text is not None:
        message["text"] = text
    message.update(extra)
    return message


def make_update(update_id: int, message: dict, *, edited: bool = False) -> dict:
    key = "edited_message" if edited else "message"
    return {"update_id": update_id, key: message}
