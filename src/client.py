"""Platform client factory for skybridge.

Tokens are read from the environment (python-dotenv loads a local .env) to
keep secrets out of config.json and out of the repo.
"""

from __future__ import annotations

import logging
import os

import discord
from dotenv import load_dotenv

from adapters.discord_client import DiscordRelayClient
from adapters.telegram_bot_api import TelegramBotApi


def _require_env(name: str) -> str:
    value = os.getenv(name)
    # Fail fast on missing credentials instead of failing on the first API call.
    if not value:
        raise RuntimeError(f"Missing {name} in environment")
    return value


def build_telegram_client() -> TelegramBotApi:
    """Create the Bot API client from TELEGRAM_BOT_TOKEN."""

    load_dotenv()
    logging.getLogger(__name__).info("Initializing Telegram client")
    return TelegramBotApi(_require_env("TELEGRAM_BOT_TOKEN"))


def build_discord_client() -> tuple[discord.Client, DiscordRelayClient, str]:
    """Create the discord.py client, its relay adapter, and the login token.

    The caller owns the lifecycle: ``await client.start(token)`` runs the
    gateway connection alongside the Telegram polling loop.
    """

    load_dotenv()
    token = _require_env("DISCORD_BOT_TOKEN")
    logging.getLogger(__name__).info("Initializing Discord client")
    client = discord.Client(intents=discord.Intents.default())
    return client, DiscordRelayClient(client), token
