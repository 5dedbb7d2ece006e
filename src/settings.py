"""Configuration loading for skybridge.

All user-editable settings (bridges, relay behaviour, message map, logging)
live in a single JSON file for quick edits without touching Python. Secrets
(bot tokens) stay in the environment.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Optional

from core.bridge_table import BridgeTable
from core.config import MessageMapConfig, RelayConfig, ReloadConfig, StartupConfig
from core.models import Bridge, BridgeOptions, Direction

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database when message_map.backend is "sqlite".
DB_PATH = os.path.join(PROJECT_ROOT, "skybridge.db")

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


@dataclass(frozen=True)
class Settings:
    relay: RelayConfig
    startup: StartupConfig
    message_map: MessageMapConfig
    reload: ReloadConfig
    bridges: BridgeTable
    logging: dict = field(default_factory=dict)


def config_path() -> str:
    return os.getenv("SKYBRIDGE_CONFIG") or CONFIG_PATH


def load_json_config(path: str) -> dict:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        raw = json.load(handle)
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a JSON object")
    return raw


def _require_int(section: dict, key: str, bridge_name: str) -> int:
    value = section.get(key)
    if value is None:
        raise ValueError(f"Bridge {bridge_name}: missing {key}")
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"Bridge {bridge_name}: {key} must be an integer, got {value!r}")
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Bridge {bridge_name}: {key} must be an integer, got {value!r}") from None


def _section(entry: dict, key: str, bridge_name: str) -> dict:
    section = entry.get(key, {})
    if not isinstance(section, dict):
        raise ValueError(f"Bridge {bridge_name}: {key} must be an object, got {section!r}")
    return section


def parse_bridge(entry: dict) -> Bridge:
    """Build one Bridge from its config entry."""

    if not isinstance(entry, dict):
        raise ValueError(f"Every bridge must be an object, got {entry!r}")
    name = entry.get("name")
    if not name:
        raise ValueError("Every bridge needs a name")

    raw_direction = str(entry.get("direction", Direction.BOTH.value)).lower()
    try:
        direction = Direction(raw_direction)
    except ValueError:
        allowed = ", ".join(d.value for d in Direction)
        raise ValueError(f"Bridge {name}: direction must be one of {allowed}") from None

    telegram = _section(entry, "telegram", name)
    discord = _section(entry, "discord", name)
    thread_id = telegram.get("thread_id")
    options = BridgeOptions(
        relay_join_messages=bool(telegram.get("relay_join_messages", True)),
        relay_leave_messages=bool(telegram.get("relay_leave_messages", True)),
        ignore_commands=bool(telegram.get("ignore_commands", False)),
        send_usernames=bool(telegram.get("send_usernames", True)),
    )
    return Bridge(
        name=str(name),
        source_chat_id=_require_int(telegram, "chat_id", name),
        source_thread_id=_require_int(telegram, "thread_id", name) if thread_id is not None else None,
        destination_channel_id=_require_int(discord, "channel_id", name),
        direction=direction,
        options=options,
    )


def build_bridge_table(raw_bridges: list[dict]) -> BridgeTable:
    """Parse enabled bridges, keeping configuration order."""

    if not isinstance(raw_bridges, list):
        raise ValueError("bridges must be a list")
    return BridgeTable(
        parse_bridge(entry)
        for entry in raw_bridges
        if not isinstance(entry, dict) or entry.get("enabled", True)
    )


def build_settings(raw: dict) -> Settings:
    telegram = raw.get("telegram", {})
    startup = raw.get("startup", {})
    message_map = raw.get("message_map", {})
    reload_cfg = raw.get("reload", {})

    backend = message_map.get("backend", "memory")
    if backend not in {"memory", "sqlite"}:
        raise ValueError("message_map.backend must be 'memory' or 'sqlite'")

    return Settings(
        relay=RelayConfig(
            skip_old_messages=bool(telegram.get("skip_old_messages", True)),
            use_first_name_instead_of_username=bool(
                telegram.get("use_first_name_instead_of_username", False)
            ),
            send_emoji_with_stickers=bool(telegram.get("send_emoji_with_stickers", True)),
            anti_info_spam_window=float(telegram.get("anti_info_spam_window", 60)),
        ),
        startup=StartupConfig(
            delay_seconds=float(startup.get("delay_seconds", 1)),
            verify_commands_delay_seconds=float(startup.get("verify_commands_delay_seconds", 5)),
        ),
        message_map=MessageMapConfig(
            backend=backend,
            capacity=int(message_map.get("capacity", 10000)),
            ttl_days=int(message_map.get("ttl_days", 7)),
        ),
        reload=ReloadConfig(
            enabled=bool(reload_cfg.get("enabled", True)),
            interval_seconds=float(reload_cfg.get("interval_seconds", 5)),
        ),
        bridges=build_bridge_table(raw.get("bridges", [])),
        logging=raw.get("logging", {}),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    return build_settings(load_json_config(path or config_path()))


def load_bridge_table(path: Optional[str] = None) -> BridgeTable:
    return build_bridge_table(load_json_config(path or config_path()).get("bridges", []))
