"""Telegram-to-core mapping stages.

This keeps Bot API update shapes out of the core pipeline: every stage here
reads the raw Telegram message and fills one DeliveryContext field with a
core descriptor.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from core.errors import DeliveryError
from core.models import (
    Attachment,
    ChatInfo,
    DeliveryContext,
    EventKind,
    ForwardInfo,
    ReplyInfo,
    SenderInfo,
    TextPayload,
    ThreadInfo,
)
from core.pipeline import (
    RelayServices,
    Stage,
    attach_services,
    deliver,
    filter_bridges,
    filter_membership_bridges,
    inform_private_chat,
    prepare_membership_notice,
    prepare_payload,
    propagate_edit,
    resolve_bridges,
    stage,
)

LOGGER = logging.getLogger(__name__)

_MESSAGE_KEYS = (
    ("message", EventKind.MESSAGE),
    ("channel_post", EventKind.MESSAGE),
    ("edited_message", EventKind.EDIT),
    ("edited_channel_post", EventKind.EDIT),
)

_ALL_CONTENT_KINDS = [EventKind.MESSAGE, EventKind.EDIT]


def message_from_update(update: dict) -> tuple[Optional[dict], Optional[EventKind]]:
    for key, kind in _MESSAGE_KEYS:
        message = update.get(key)
        if message:
            return message, kind
    return None, None


def chat_from_message(message: dict) -> ChatInfo:
    chat = message.get("chat") or {}
    # message_thread_id is also set on reply chains in plain supergroups;
    # only forum topics count as threads.
    thread_id = message.get("message_thread_id") if message.get("is_topic_message") else None
    return ChatInfo(
        id=int(chat["id"]),
        type=chat.get("type", "private"),
        title=chat.get("title"),
        username=chat.get("username"),
        thread_id=thread_id,
        is_forum=bool(chat.get("is_forum", False)),
    )


def command_name(message: Optional[dict], bot_username: Optional[str] = None) -> Optional[str]:
    """Return the bot command a message starts with, without slash or @botname.

    With ``bot_username`` set, a command addressed to another bot
    (``/chatinfo@OtherBot``) yields None.
    """

    if not message:
        return None
    text = message.get("text") or ""
    if not text.startswith("/"):
        return None
    token = text.split(maxsplit=1)[0][1:]
    name, _, addressee = token.partition("@")
    if addressee and bot_username and addressee.lower() != bot_username.lower():
        return None
    return name.lower() or None


def update_command(update: dict, bot_username: Optional[str] = None) -> Optional[str]:
    """Command name for new messages only; edits of a command are ordinary edits."""

    message, kind = message_from_update(update)
    if kind is not EventKind.MESSAGE:
        return None
    return command_name(message, bot_username)


def sender_from_user(user: dict) -> SenderInfo:
    return SenderInfo(
        id=user.get("id"),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
        username=user.get("username"),
        is_bot=bool(user.get("is_bot", False)),
    )


def sender_from_message(message: dict) -> Optional[SenderInfo]:
    # Channel posts and anonymous admins speak as a chat, not a user.
    sender_chat = message.get("sender_chat")
    if sender_chat is None and message.get("chat", {}).get("type") == "channel":
        sender_chat = message.get("chat")
    if sender_chat is not None:
        return SenderInfo(
            id=sender_chat.get("id"),
            first_name=sender_chat.get("title"),
            username=sender_chat.get("username"),
            signature=message.get("author_signature"),
        )
    user = message.get("from")
    if user is None:
        return None
    return sender_from_user(user)


def _members_from_message(message: dict) -> tuple[tuple[SenderInfo, ...], Optional[EventKind]]:
    joined = message.get("new_chat_members")
    if joined:
        return tuple(sender_from_user(user) for user in joined), EventKind.JOIN
    left = message.get("left_chat_member")
    if left:
        return (sender_from_user(left),), EventKind.LEAVE
    return (), None


def _is_topic_root(message: dict, reply: dict) -> bool:
    if reply.get("forum_topic_created"):
        return True
    return bool(message.get("is_topic_message")) and reply.get("message_id") == message.get("message_thread_id")


def forward_from_message(message: dict) -> Optional[ForwardInfo]:
    origin = message.get("forward_origin")
    if origin:
        origin_type = origin.get("type")
        if origin_type == "user":
            return ForwardInfo(name=sender_from_user(origin.get("sender_user", {})).display_name(), kind="user")
        if origin_type == "hidden_user":
            return ForwardInfo(name=origin.get("sender_user_name") or "Unknown", kind="user")
        if origin_type == "chat":
            title = origin.get("sender_chat", {}).get("title") or "Unknown"
            return ForwardInfo(name=title, kind="chat")
        if origin_type == "channel":
            title = origin.get("chat", {}).get("title") or "Unknown"
            return ForwardInfo(name=title, kind="channel")
        return None

    # Older Bot API payloads
    if message.get("forward_from"):
        return ForwardInfo(name=sender_from_user(message["forward_from"]).display_name(), kind="user")
    if message.get("forward_from_chat"):
        chat = message["forward_from_chat"]
        kind = "channel" if chat.get("type") == "channel" else "chat"
        return ForwardInfo(name=chat.get("title") or "Unknown", kind=kind)
    if message.get("forward_sender_name"):
        return ForwardInfo(name=message["forward_sender_name"], kind="user")
    return None


def attachment_from_message(message: dict) -> Optional[Attachment]:
    photos = message.get("photo")
    if photos:
        largest = max(photos, key=lambda size: size.get("file_size", 0) or size.get("width", 0))
        return Attachment(type="photo", file_id=largest["file_id"], name="photo.jpg")

    sticker = message.get("sticker")
    if sticker:
        if sticker.get("is_animated"):
            name = "sticker.tgs"
        elif sticker.get("is_video"):
            name = "sticker.webm"
        else:
            name = "sticker.webp"
        return Attachment(type="sticker", file_id=sticker["file_id"], name=name, emoji=sticker.get("emoji"))

    defaults = {
        "animation": "animation.mp4",
        "video": "video.mp4",
        "video_note": "video_note.mp4",
        "voice": "voice.ogg",
        "audio": "audio.mp3",
        "document": "file",
    }
    for media_type, default_name in defaults.items():
        media = message.get(media_type)
        if not media:
            continue
        name = media.get("file_name")
        if not name and media_type == "audio" and media.get("title"):
            name = f"{media['title']}.mp3"
        return Attachment(type=media_type, file_id=media["file_id"], name=name or default_name)
    return None


def _text_from_message(message: dict) -> Optional[TextPayload]:
    if message.get("text") is not None:
        return TextPayload(raw=message["text"], entities=tuple(message.get("entities", [])))
    if message.get("caption") is not None:
        return TextPayload(raw=message["caption"], entities=tuple(message.get("caption_entities", [])))
    return None


# --- Stages ----------------------------------------------------------------


@stage("extract_message", provides=["kind", "chat", "message", "command", "members"])
async def extract_message(context: DeliveryContext) -> Optional[DeliveryContext]:
    message, kind = message_from_update(context.event)
    if message is None:
        return None
    members, membership_kind = _members_from_message(message)
    if membership_kind is not None and kind is EventKind.MESSAGE:
        kind = membership_kind
    return context.evolve(
        kind=kind,
        chat=chat_from_message(message),
        message=message,
        command=command_name(message),
        members=members,
    )


@stage("assign_message_id", requires=["message"], provides=["message_id"])
async def assign_message_id(context: DeliveryContext) -> DeliveryContext:
    return context.evolve(message_id=int(context.message["message_id"]))


@stage("index_thread", requires=["services", "chat", "message"])
async def index_thread(context: DeliveryContext) -> DeliveryContext:
    thread_id = context.chat.thread_id
    if thread_id is None:
        return context
    message = context.message
    topic = message.get("forum_topic_created") or message.get("forum_topic_edited")
    if not topic:
        topic = (message.get("reply_to_message") or {}).get("forum_topic_created")
    if topic and topic.get("name"):
        context.services.threads.put(context.chat.id, thread_id, ThreadInfo(thread_id, topic["name"]))
    return context


@stage("add_sender", requires=["message"], provides=["sender"], kinds=_ALL_CONTENT_KINDS)
async def add_sender(context: DeliveryContext) -> DeliveryContext:
    return context.evolve(sender=sender_from_message(context.message))


@stage("add_reply", requires=["services", "message"], provides=["reply"], kinds=_ALL_CONTENT_KINDS)
async def add_reply(context: DeliveryContext) -> DeliveryContext:
    reply = context.message.get("reply_to_message")
    if not reply or _is_topic_root(context.message, reply):
        return context
    sender = sender_from_message(reply)
    text = reply.get("text") or reply.get("caption") or ""
    is_reply_to_bot = sender is not None and sender.id == context.services.me.id
    return context.evolve(reply=ReplyInfo(sender=sender, text=text, is_reply_to_bot=is_reply_to_bot))


@stage("add_forward", requires=["message"], provides=["forward"], kinds=_ALL_CONTENT_KINDS)
async def add_forward(context: DeliveryContext) -> DeliveryContext:
    return context.evolve(forward=forward_from_message(context.message))


@stage("add_text", requires=["message"], provides=["text"], kinds=_ALL_CONTENT_KINDS)
async def add_text(context: DeliveryContext) -> DeliveryContext:
    return context.evolve(text=_text_from_message(context.message))


@stage("add_attachment", requires=["message"], provides=["attachment"], kinds=_ALL_CONTENT_KINDS)
async def add_attachment(context: DeliveryContext) -> DeliveryContext:
    return context.evolve(attachment=attachment_from_message(context.message))


@stage(
    "add_file_link",
    requires=["services", "attachment"],
    provides=["attachment"],
    kinds=[EventKind.MESSAGE],
)
async def add_file_link(context: DeliveryContext) -> DeliveryContext:
    attachment = context.attachment
    if attachment is None:
        return context
    services = context.services
    if attachment.type == "sticker" and attachment.emoji and services.config.send_emoji_with_stickers:
        return context
    try:
        link = await services.source.get_file_link(attachment.file_id)
    except DeliveryError as error:
        # Bot API refuses files above its download limit; relay the rest.
        LOGGER.warning("No download link for %s: %s", attachment.file_id, error)
        return context
    return context.evolve(attachment=replace(attachment, link=link))


def build_default_stages(services: RelayServices) -> list[Stage]:
    """Return the relay stages in their fixed order."""

    return [
        attach_services(services),
        extract_message,
        assign_message_id,
        index_thread,
        resolve_bridges,
        inform_private_chat,
        filter_bridges,
        filter_membership_bridges,
        prepare_membership_notice,
        add_sender,
        add_reply,
        add_forward,
        add_text,
        add_attachment,
        add_file_link,
        prepare_payload,
        deliver,
        propagate_edit,
    ]
