"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the two chat platforms, the message
identity store and the payload formatter, so the core never imports a
platform SDK.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

from core.models import DeliveryContext, PreparedMessage, SelfIdentity

UpdateHandler = Callable[[dict], Awaitable[None]]


class SourcePlatformPort(Protocol):
    """Operations required from the platform events originate on."""

    async def get_me(self) -> SelfIdentity:
        ...

    async def fetch_updates(self, offset: int, limit: int) -> list[dict]:
        ...

    async def set_commands(self, commands: list[dict]) -> None:
        ...

    async def get_commands(self) -> list[dict]:
        ...

    async def set_default_admin_rights(self, rights: dict, for_channels: bool) -> None:
        ...

    async def start_polling(self, handler: UpdateHandler) -> None:
        ...

    async def send_message(
        self,
        chat_id: int,
        text: str,
        thread_id: Optional[int] = None,
        reply_to: Optional[int] = None,
    ) -> int:
        ...

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        ...

    async def get_file_link(self, file_id: str) -> str:
        ...


class DestinationPlatformPort(Protocol):
    """Operations required from the platform messages are relayed to."""

    async def send_message(self, channel_id: int, prepared: PreparedMessage) -> int:
        ...

    async def edit_message(self, channel_id: int, message_id: int, prepared: PreparedMessage) -> None:
        ...


class IdentityStorePort(Protocol):
    """Correlation of relayed messages, scoped per bridge."""

    def record(self, bridge_name: str, source_id: int, dest_id: int) -> None:
        ...

    def lookup(self, bridge_name: str, source_id: int) -> Optional[int]:
        ...


class FormatterPort(Protocol):
    """Renders accumulated context fields into a destination payload."""

    def prepare(self, context: DeliveryContext) -> PreparedMessage:
        ...

    def membership_notice(self, context: DeliveryContext) -> PreparedMessage:
        ...


class BridgeUpdatesPort(Protocol):
    """Observable source of fresh bridge tables on configuration change."""

    def subscribe(self, callback: Callable) -> None:
        ...
