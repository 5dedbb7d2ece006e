"""Telegram Bot API adapter.

Implements the core SourcePlatformPort over HTTPS with aiohttp. Updates are
received by long polling ``getUpdates``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from core.errors import DeliveryError, PlatformError
from core.models import SelfIdentity
from core.ports import UpdateHandler

LOGGER = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"

ALLOWED_UPDATES = ["message", "edited_message", "channel_post", "edited_channel_post"]


class TelegramBotApi:
    """Bot API client that satisfies the SourcePlatformPort contract."""

    def __init__(
        self,
        bot_token: str,
        session: Optional[aiohttp.ClientSession] = None,
        poll_timeout: int = 30,
        poll_retry_delay: float = 5.0,
    ) -> None:
        self._bot_token = bot_token
        self._session = session
        self._poll_timeout = poll_timeout
        self._poll_retry_delay = poll_retry_delay

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"{API_BASE}/bot{self._bot_token}/{method}"

    def _session_or_new(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _call(self, method: str, payload: Optional[dict] = None, timeout: float = 10) -> Any:
        session = self._session_or_new()
        try:
            async with session.post(
                self._endpoint(method),
                json=payload or {},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise DeliveryError(f"{method} request failed: {error}") from error
        if not body.get("ok"):
            raise PlatformError(method, body.get("description", "unknown error"), body.get("error_code"))
        return body["result"]

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def get_me(self) -> SelfIdentity:
        result = await self._call("getMe")
        return SelfIdentity(id=result["id"], username=result.get("username"), first_name=result.get("first_name"))

    async def fetch_updates(self, offset: int, limit: int) -> list[dict]:
        return await self._call(
            "getUpdates",
            {"offset": offset, "limit": limit, "timeout": 0, "allowed_updates": []},
        )

    async def set_commands(self, commands: list[dict]) -> None:
        await self._call("setMyCommands", {"commands": commands, "scope": {"type": "default"}})

    async def get_commands(self) -> list[dict]:
        return await self._call("getMyCommands")

    async def set_default_admin_rights(self, rights: dict, for_channels: bool) -> None:
        await self._call("setMyDefaultAdministratorRights", {"rights": rights, "for_channels": for_channels})

    async def start_polling(self, handler: UpdateHandler) -> None:
        """Long-poll forever, handing updates to ``handler`` one at a time, in order."""

        offset: Optional[int] = None
        while True:
            payload: dict = {"timeout": self._poll_timeout, "allowed_updates": ALLOWED_UPDATES}
            if offset is not None:
                payload["offset"] = offset
            try:
                updates = await self._call("getUpdates", payload, timeout=self._poll_timeout + 10)
            except DeliveryError as error:
                LOGGER.warning("Polling failed (%s), polling again in %ss", error, self._poll_retry_delay)
                await asyncio.sleep(self._poll_retry_delay)
                continue
            for update in updates:
                offset = int(update["update_id"]) + 1
                await handler(update)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        thread_id: Optional[int] = None,
        reply_to: Optional[int] = None,
    ) -> int:
        payload: dict = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}
        if thread_id is not None:
            payload["message_thread_id"] = thread_id
        if reply_to is not None:
            payload["reply_parameters"] = {"message_id": reply_to, "allow_sending_without_reply": True}
        result = await self._call("sendMessage", payload)
        return int(result["message_id"])

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        await self._call("editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text})

    async def get_file_link(self, file_id: str) -> str:
        result = await self._call("getFile", {"file_id": file_id})
        return f"{API_BASE}/file/bot{self._bot_token}/{result['file_path']}"
