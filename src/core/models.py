"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any platform-specific types. Everything here is frozen: the
pipeline builds new values instead of mutating shared ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class Origin(str, Enum):
    """Which side of a bridge an event came from."""

    SOURCE = "source"
    DESTINATION = "destination"


class Direction(str, Enum):
    """Which originating side(s) of a bridge may trigger a relay."""

    SOURCE_TO_DEST = "t2d"
    DEST_TO_SOURCE = "d2t"
    BOTH = "both"

    def permits(self, origin: Origin) -> bool:
        if self is Direction.BOTH:
            return True
        if origin is Origin.SOURCE:
            return self is Direction.SOURCE_TO_DEST
        return self is Direction.DEST_TO_SOURCE


class EventKind(str, Enum):
    MESSAGE = "message"
    EDIT = "edit"
    JOIN = "join"
    LEAVE = "leave"


@dataclass(frozen=True)
class BridgeOptions:
    """Per-bridge delivery options."""

    relay_join_messages: bool = True
    relay_leave_messages: bool = True
    ignore_commands: bool = False
    send_usernames: bool = True


@dataclass(frozen=True)
class Bridge:
    """A configured link between a source chat/thread and a destination channel."""

    name: str
    source_chat_id: int
    destination_channel_id: int
    direction: Direction = Direction.BOTH
    source_thread_id: Optional[int] = None
    options: BridgeOptions = field(default_factory=BridgeOptions)

    def matches(self, chat_id: int, thread_id: Optional[int]) -> bool:
        if self.source_chat_id != chat_id:
            return False
        # A bridge without a thread covers the whole chat.
        if self.source_thread_id is None:
            return True
        return self.source_thread_id == thread_id


@dataclass(frozen=True)
class SelfIdentity:
    id: int
    username: Optional[str]
    first_name: Optional[str] = None


@dataclass(frozen=True)
class ChatInfo:
    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None
    thread_id: Optional[int] = None
    is_forum: bool = False

    @property
    def is_private(self) -> bool:
        return self.type == "private"


@dataclass(frozen=True)
class SenderInfo:
    """Who sent a message. Channel posts carry a signature instead of a user."""

    id: Optional[int]
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    is_bot: bool = False
    signature: Optional[str] = None

    def display_name(self, prefer_first_name: bool = False) -> str:
        full_name = " ".join(part for part in [self.first_name, self.last_name] if part)
        if prefer_first_name or not self.username:
            return full_name or self.username or self.signature or "Unknown"
        return self.username


@dataclass(frozen=True)
class ReplyInfo:
    sender: Optional[SenderInfo]
    text: str
    is_reply_to_bot: bool = False


@dataclass(frozen=True)
class ForwardInfo:
    name: str
    kind: str


@dataclass(frozen=True)
class TextPayload:
    raw: str
    entities: tuple[dict, ...] = ()


@dataclass(frozen=True)
class Attachment:
    type: str
    file_id: str
    name: Optional[str] = None
    emoji: Optional[str] = None
    link: Optional[str] = None


@dataclass(frozen=True)
class PreparedMessage:
    """Final payload handed to the destination platform.

    The header names the sender; bridges that do not send usernames get the
    body alone (see ``for_bridge``).
    """

    body: str = ""
    header: str = ""
    file_url: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def content(self) -> str:
        if not self.header:
            return self.body
        if not self.body:
            return self.header
        return f"{self.header}\n{self.body}"

    @property
    def is_empty(self) -> bool:
        return not self.body.strip() and not self.file_url

    def for_bridge(self, bridge: Bridge) -> PreparedMessage:
        if bridge.options.send_usernames:
            return self
        return replace(self, header="")


@dataclass(frozen=True)
class ThreadInfo:
    thread_id: int
    name: Optional[str] = None


@dataclass(frozen=True)
class DeliveryContext:
    """Per-event accumulator built up by the enrichment pipeline.

    Stages never mutate a context; they return a copy with more fields set
    (see ``DeliveryContext.evolve``). Fields stay ``None`` until the stage
    that owns them has run, and an enrichment stage that finds nothing to add
    leaves its field ``None``.
    """

    event: dict
    services: Any = None
    kind: Optional[EventKind] = None
    chat: Optional[ChatInfo] = None
    message: Optional[dict] = None
    message_id: Optional[int] = None
    command: Optional[str] = None
    members: tuple[SenderInfo, ...] = ()
    bridges: tuple[Bridge, ...] = ()
    sender: Optional[SenderInfo] = None
    reply: Optional[ReplyInfo] = None
    forward: Optional[ForwardInfo] = None
    text: Optional[TextPayload] = None
    attachment: Optional[Attachment] = None
    prepared: Optional[PreparedMessage] = None

    def evolve(self, **changes: Any) -> DeliveryContext:
        return replace(self, **changes)
