"""Admin lookup commands answered directly, outside the relay pipeline."""

from __future__ import annotations

import logging

from adapters.telegram_mapper import chat_from_message, message_from_update
from core.dispatcher import CommandHandler
from core.models import ThreadInfo
from core.ports import SourcePlatformPort
from core.thread_index import ThreadIndex

LOGGER = logging.getLogger(__name__)


class AdminCommands:
    """Handlers for /chatinfo and /threadinfo."""

    def __init__(self, source: SourcePlatformPort, threads: ThreadIndex) -> None:
        self._source = source
        self._threads = threads

    def handlers(self) -> dict[str, CommandHandler]:
        return {"chatinfo": self.chatinfo, "threadinfo": self.threadinfo}

    async def chatinfo(self, update: dict) -> None:
        message, _ = message_from_update(update)
        chat = chat_from_message(message)
        lines = [f"chatID: {chat.id}"]
        if chat.thread_id is not None:
            lines.append(f"threadID: {chat.thread_id}")
        await self._source.send_message(
            chat.id, "\n".join(lines), thread_id=chat.thread_id, reply_to=message["message_id"]
        )
        LOGGER.info("Answered chatinfo in %s", chat.id)

    async def threadinfo(self, update: dict) -> None:
        message, _ = message_from_update(update)
        chat = chat_from_message(message)
        if chat.thread_id is None:
            text = "This chat is not a forum topic"
        else:
            info = self._threads.get(chat.id, chat.thread_id)
            if info is None:
                info = self._thread_from_message(message, chat.thread_id)
                self._threads.put(chat.id, chat.thread_id, info)
            text = f"threadID: {info.thread_id}\ntopic: {info.name or 'unknown'}"
        await self._source.send_message(
            chat.id, text, thread_id=chat.thread_id, reply_to=message["message_id"]
        )

    @staticmethod
    def _thread_from_message(message: dict, thread_id: int) -> ThreadInfo:
        # Inside a topic, a plain message replies to the topic's creation message.
        created = (message.get("reply_to_message") or {}).get("forum_topic_created") or {}
        return ThreadInfo(thread_id=thread_id, name=created.get("name"))
