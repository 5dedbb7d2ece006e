"""Discord destination adapter.

Implements the core DestinationPlatformPort on top of a discord.py client.
Attachments are downloaded from the source platform with aiohttp and
re-uploaded, because Bot API file URLs embed the bot token.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

import aiohttp
import discord

from core.errors import DeliveryError
from core.models import PreparedMessage

LOGGER = logging.getLogger(__name__)

# Discord's default upload limit for bots.
MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class DiscordRelayClient:
    """Sends and edits relayed messages in Discord channels."""

    def __init__(self, client: discord.Client, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._client = client
        self._session = session

    def _session_or_new(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _channel(self, channel_id: int):
        await self._client.wait_until_ready()
        channel = self._client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self._client.fetch_channel(channel_id)
        except discord.HTTPException as error:
            raise DeliveryError(f"Discord channel {channel_id} is not reachable: {error}") from error

    async def _download(self, url: str, name: Optional[str]) -> Optional[discord.File]:
        session = self._session_or_new()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    LOGGER.warning("Attachment download failed: HTTP %s", response.status)
                    return None
                data = await response.read()
        except aiohttp.ClientError as error:
            LOGGER.warning("Attachment download failed: %s", error)
            return None
        if len(data) > MAX_UPLOAD_BYTES:
            LOGGER.warning("Attachment %s is too large for Discord (%s bytes)", name, len(data))
            return None
        return discord.File(io.BytesIO(data), filename=name or "file")

    async def send_message(self, channel_id: int, prepared: PreparedMessage) -> int:
        channel = await self._channel(channel_id)
        kwargs: dict = {}
        if prepared.file_url:
            attachment = await self._download(prepared.file_url, prepared.file_name)
            if attachment is not None:
                kwargs["file"] = attachment
        content = prepared.content or None
        if content is None and "file" not in kwargs:
            raise DeliveryError(f"Nothing left to send to {channel_id}")
        try:
            message = await channel.send(content=content, **kwargs)
        except discord.HTTPException as error:
            raise DeliveryError(f"Discord send to {channel_id} failed: {error}") from error
        return message.id

    async def edit_message(self, channel_id: int, message_id: int, prepared: PreparedMessage) -> None:
        channel = await self._channel(channel_id)
        try:
            await channel.get_partial_message(message_id).edit(content=prepared.content)
        except discord.HTTPException as error:
            raise DeliveryError(f"Discord edit of {message_id} in {channel_id} failed: {error}") from error
