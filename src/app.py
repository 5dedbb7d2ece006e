"""Application entry point for the skybridge relay."""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.config_watcher import ConfigWatcher
from adapters.discord_formatting import DiscordFormatter
from adapters.sqlite_storage import SQLiteIdentityStore
from adapters.telegram_commands import AdminCommands
from adapters.telegram_mapper import build_default_stages, update_command
from client import build_discord_client, build_telegram_client
from core.anti_spam import AntiSpamGuard
from core.bridge_table import BridgeTableRef
from core.dispatcher import EventDispatcher
from core.errors import StartupError
from core.identity_map import MessageIdentityMap
from core.models import SelfIdentity
from core.pipeline import EnrichmentPipeline, RelayServices
from core.startup import StartupSequencer
from core.supervisor import Supervisor
from core.thread_index import ThreadIndex

NAME = "SKYBRIDGE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["TELEGRAM_BOT_TOKEN", "DISCORD_BOT_TOKEN"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict) -> None:
    config = config or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    # Bot API URLs embed the token, so redaction is on unless disabled.
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/skybridge.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # discord.py is chatty at INFO.
    logging.getLogger("discord").setLevel(max(level, logging.WARNING))


def _build_identity_store(config: settings.Settings):
    logger = logging.getLogger(__name__)
    if config.message_map.backend == "sqlite":
        store = SQLiteIdentityStore(settings.DB_PATH)
        store.init_db()
        removed = store.cleanup(config.message_map.ttl_days)
        logger.info("Message map cleanup removed %s entries", removed)
        return store
    return MessageIdentityMap(capacity=config.message_map.capacity)


async def _serve(config: settings.Settings, path: str) -> None:
    logger = logging.getLogger(__name__)

    telegram = build_telegram_client()
    discord_bot, discord_relay, discord_token = build_discord_client()

    supervisor = Supervisor()
    table_ref = BridgeTableRef(config.bridges)
    identities = _build_identity_store(config)
    anti_spam = AntiSpamGuard(window=config.relay.anti_info_spam_window)
    threads = ThreadIndex()
    formatter = DiscordFormatter(config.relay)

    watcher = None
    if config.reload.enabled:
        watcher = ConfigWatcher(path, settings.load_bridge_table, interval=config.reload.interval_seconds)

    def install(me: SelfIdentity):
        services = RelayServices(
            me=me,
            source=telegram,
            destination=discord_relay,
            config=config.relay,
            bridges=table_ref,
            identities=identities,
            anti_spam=anti_spam,
            threads=threads,
            formatter=formatter,
            supervisor=supervisor,
        )
        pipeline = EnrichmentPipeline(build_default_stages(services))
        commands = AdminCommands(telegram, threads)
        command_of = functools.partial(update_command, bot_username=me.username)
        dispatcher = EventDispatcher(pipeline, commands.handlers(), command_of)
        logger.info("Pipeline installed: %s", " -> ".join(pipeline.stage_names))
        return dispatcher.handle

    sequencer = StartupSequencer(
        telegram,
        install,
        table_ref,
        supervisor,
        config.relay,
        config.startup,
        bridge_updates=watcher,
    )

    jobs = [discord_bot.start(discord_token), sequencer.start()]
    if watcher is not None:
        jobs.append(watcher.run())
    try:
        await asyncio.gather(*jobs)
    finally:
        await telegram.close()
        await discord_relay.close()
        await discord_bot.close()


def _run() -> None:
    _print_banner()
    path = settings.config_path()
    config = settings.load_settings(path)
    _configure_logging(config.logging)
    logger = logging.getLogger(__name__)

    logger.info("Starting skybridge")
    logger.info("%s bridges are loaded", len(config.bridges))

    try:
        asyncio.run(_serve(config, path))
    except StartupError:
        logger.exception("Startup failed")
        raise SystemExit(1)
    except KeyboardInterrupt:
        logger.info("Stopped")


def _check_config() -> None:
    config = settings.load_settings()
    print(f"{len(config.bridges)} bridge(s) configured")
    for bridge in config.bridges:
        thread = f" thread {bridge.source_thread_id}" if bridge.source_thread_id is not None else ""
        print(
            f"- {bridge.name}: telegram {bridge.source_chat_id}{thread} "
            f"<{bridge.direction.value}> discord {bridge.destination_channel_id}"
        )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="skybridge")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the relay")
    subparsers.add_parser("check-config", help="Validate config.json and list the bridges")

    args = parser.parse_args(argv)
    if args.command == "check-config":
        _check_config()
        return
    _run()


if __name__ == "__main__":
    main()
