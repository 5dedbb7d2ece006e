from __future__ import annotations

import asyncio

from adapters.telegram_mapper import (
    add_reply,
    attachment_from_message,
    chat_from_message,
    command_name,
    extract_message,
    forward_from_message,
    index_thread,
    sender_from_message,
    update_command,
)
from core.models import DeliveryContext, EventKind, ThreadInfo
from fakes import BOT_ID, make_message, make_services, make_update


def _context(message: dict, edited: bool = False) -> DeliveryContext:
    services = make_services([])
    context = DeliveryContext(event=make_update(1, message, edited=edited), services=services)
    return asyncio.run(extract_message.func(context))


def test_topic_thread_id_only_for_topic_messages() -> None:
    in_topic = make_message(10, message_thread_id=555, is_topic_message=True)
    reply_chain = make_message(11, message_thread_id=555)

    assert chat_from_message(in_topic).thread_id == 555
    assert chat_from_message(reply_chain).thread_id is None


def test_extract_message_detects_kinds() -> None:
    assert _context(make_message(1, "hi")).kind is EventKind.MESSAGE
    assert _context(make_message(1, "hi"), edited=True).kind is EventKind.EDIT
    joined = _context(make_message(1, None, new_chat_members=[{"id": 5, "first_name": "Bob"}]))
    assert joined.kind is EventKind.JOIN
    assert joined.members[0].first_name == "Bob"
    left = _context(make_message(1, None, left_chat_member={"id": 5, "first_name": "Bob"}))
    assert left.kind is EventKind.LEAVE


def test_extract_message_drops_updates_without_message() -> None:
    context = DeliveryContext(event={"update_id": 1, "callback_query": {}})

    assert asyncio.run(extract_message.func(context)) is None


def test_command_name_strips_bot_mention() -> None:
    assert command_name(make_message(1, "/ChatInfo@skybridge_bot please")) == "chatinfo"
    assert command_name(make_message(1, "hello /chatinfo")) is None
    assert command_name(make_message(1, None)) is None


def test_command_for_another_bot_is_not_ours() -> None:
    ours = make_message(1, "/chatinfo@SkyBridge_Bot")
    theirs = make_message(1, "/chatinfo@OtherBot")

    assert command_name(ours, "skybridge_bot") == "chatinfo"
    assert command_name(theirs, "skybridge_bot") is None
    assert command_name(make_message(1, "/chatinfo"), "skybridge_bot") == "chatinfo"


def test_update_command_ignores_edits() -> None:
    message = make_message(1, "/chatinfo")

    assert update_command(make_update(1, message)) == "chatinfo"
    assert update_command(make_update(1, message, edited=True)) is None


def test_channel_post_sender_uses_chat_and_signature() -> None:
    post = {
        "message_id": 3,
        "chat": {"id": -100, "type": "channel", "title": "News"},
        "author_signature": "Editor",
        "text": "breaking",
    }

    sender = sender_from_message(post)

    assert sender.first_name == "News"
    assert sender.signature == "Editor"


def test_forward_origins() -> None:
    hidden = make_message(1, forward_origin={"type": "hidden_user", "sender_user_name": "Ghost"})
    channel = make_message(1, forward_origin={"type": "channel", "chat": {"title": "Daily"}})
    legacy = make_message(1, forward_from={"id": 3, "first_name": "Carol", "username": "carol"})

    assert forward_from_message(hidden).name == "Ghost"
    assert forward_from_message(channel).kind == "channel"
    assert forward_from_message(legacy).name == "carol"
    assert forward_from_message(make_message(1)) is None


def test_attachment_kinds() -> None:
    sticker = attachment_from_message(make_message(1, None, sticker={"file_id": "s", "emoji": "😀", "is_video": True}))
    audio = attachment_from_message(make_message(1, None, audio={"file_id": "a", "title": "Song"}))
    animation = attachment_from_message(
        make_message(1, None, animation={"file_id": "gif"}, document={"file_id": "gif"})
    )

    assert (sticker.type, sticker.emoji, sticker.name) == ("sticker", "😀", "sticker.webm")
    assert audio.name == "Song.mp3"
    assert animation.type == "animation"
    assert attachment_from_message(make_message(1, "plain")) is None


def test_reply_to_bot_is_flagged() -> None:
    original = make_message(4, "relayed", user_id=BOT_ID, username="skybridge_bot")
    context = _context(make_message(5, "answer", reply_to_message=original))

    context = asyncio.run(add_reply.func(context))

    assert context.reply.is_reply_to_bot is True
    assert context.reply.text == "relayed"


def test_topic_root_is_not_a_reply() -> None:
    root = make_message(555, None, forum_topic_created={"name": "Releases"})
    message = make_message(10, "hi", message_thread_id=555, is_topic_message=True, reply_to_message=root)
    context = _context(message)

    context = asyncio.run(add_reply.func(context))

    assert context.reply is None


def test_index_thread_caches_topic_names() -> None:
    root = make_message(555, None, forum_topic_created={"name": "Releases"})
    message = make_message(10, "hi", message_thread_id=555, is_topic_message=True, reply_to_message=root)
    context = _context(message)

    asyncio.run(index_thread.func(context))

    assert context.services.threads.get(111, 555) == ThreadInfo(thread_id=555, name="Releases")
