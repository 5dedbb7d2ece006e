"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RelayConfig:
    """Behaviour switches for the source-side relay."""

    skip_old_messages: bool = True
    use_first_name_instead_of_username: bool = False
    send_emoji_with_stickers: bool = True
    anti_info_spam_window: float = 60.0


@dataclass(frozen=True)
class StartupConfig:
    """Delays used while bringing the relay online."""

    # Used instead of draining when old messages are kept, so that backlog
    # state settles before live polling starts.
    delay_seconds: float = 1.0
    verify_commands_delay_seconds: float = 5.0


@dataclass(frozen=True)
class MessageMapConfig:
    """Where and for how long source/destination message ids are kept."""

    backend: str = "memory"
    capacity: int = 10000
    ttl_days: int = 7


@dataclass(frozen=True)
class ReloadConfig:
    enabled: bool = True
    interval_seconds: float = 5.0
