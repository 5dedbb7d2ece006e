"""Discord payload formatting.

Keeping formatting here prevents drift between the relay and edit paths:
both render through ``DiscordFormatter.prepare``.
"""

from __future__ import annotations

import re

from core.config import RelayConfig
from core.models import DeliveryContext, EventKind, PreparedMessage, SenderInfo

DISCORD_MAX_LENGTH = 2000
REPLY_QUOTE_CHARS = 100
# Leaves the body at least half of a message.
HEADER_MAX_LENGTH = DISCORD_MAX_LENGTH // 2

_MARKDOWN_SPECIALS = re.compile(r"([\\*_~`|>])")


def escape_markdown(value: str) -> str:
    return _MARKDOWN_SPECIALS.sub(r"\\\1", value)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    return text[: limit - 1] + "…"


def _quote(text: str) -> str:
    clipped = text if len(text) <= REPLY_QUOTE_CHARS else text[:REPLY_QUOTE_CHARS].rstrip() + "…"
    return "\n".join(f"> {line}" for line in clipped.splitlines() or [""])


class DiscordFormatter:
    """Satisfies the core FormatterPort for Discord destinations."""

    def __init__(self, config: RelayConfig) -> None:
        self._config = config

    def _name(self, sender: SenderInfo) -> str:
        name = sender.display_name(self._config.use_first_name_instead_of_username)
        if sender.signature:
            name = f"{name} ({sender.signature})"
        return escape_markdown(name)

    def prepare(self, context: DeliveryContext) -> PreparedMessage:
        header = f"**{self._name(context.sender)}**" if context.sender else ""
        if context.forward is not None:
            header = f"{header} (forwarded from **{escape_markdown(context.forward.name)}**)".strip()

        lines: list[str] = []
        if context.reply is not None:
            who = "bridge" if context.reply.is_reply_to_bot else None
            if who is None and context.reply.sender is not None:
                who = self._name(context.reply.sender)
            lines.append(f"> In reply to **{who or 'Unknown'}**")
            lines.append(_quote(escape_markdown(context.reply.text)))

        attachment = context.attachment
        if attachment is not None and attachment.type == "sticker" and attachment.emoji and not attachment.link:
            lines.append(attachment.emoji)
        if context.text is not None and context.text.raw:
            lines.append(context.text.raw)

        body = "\n".join(lines)
        header = _truncate(header, HEADER_MAX_LENGTH)
        body = _truncate(body, DISCORD_MAX_LENGTH - len(header) - 1)

        # Quoting alone is not content worth relaying.
        has_content = (context.text is not None and context.text.raw) or attachment is not None
        if not has_content:
            body = ""

        return PreparedMessage(
            body=body,
            header=header,
            file_url=attachment.link if attachment is not None else None,
            file_name=attachment.name if attachment is not None else None,
        )

    def membership_notice(self, context: DeliveryContext) -> PreparedMessage:
        names = ", ".join(f"**{self._name(member)}**" for member in context.members)
        if context.kind is EventKind.JOIN:
            return PreparedMessage(body=f"{names} joined the Telegram side of the chat")
        return PreparedMessage(body=f"{names} left the Telegram side of the chat")
