"""Enrichment pipeline for incoming source-platform events.

Each event runs through a fixed sequence of stages. A stage receives the
current ``DeliveryContext`` and returns either a new context (with more fields
set, or with fewer candidate bridges) or ``None`` to drop the event.

Stages declare which context fields they read (``requires``) and which they
set (``provides``). ``EnrichmentPipeline`` checks the declared order once, when
it is built, so a stage can never run before the stage that feeds it.

The platform-specific extraction stages live in ``adapters.telegram_mapper``;
this module holds the engine plus the routing, filtering and delivery stages,
which only touch core models and ports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Awaitable, Callable, Iterable, Optional

from core.anti_spam import AntiSpamGuard
from core.bridge_table import BridgeTableRef
from core.config import RelayConfig
from core.errors import PipelineCompositionError
from core.models import (
    Bridge,
    DeliveryContext,
    EventKind,
    Origin,
    PreparedMessage,
    SelfIdentity,
)
from core.ports import (
    DestinationPlatformPort,
    FormatterPort,
    IdentityStorePort,
    SourcePlatformPort,
)
from core.supervisor import Supervisor
from core.thread_index import ThreadIndex

LOGGER = logging.getLogger(__name__)

PRIVATE_BOT_NOTICE = (
    "This is an instance of a skybridge bot, bridging a chat in Telegram with one in Discord. "
    "If you wish to use skybridge yourself, please download and run your own instance."
)

StageFunc = Callable[[DeliveryContext], Awaitable[Optional[DeliveryContext]]]

_CONTEXT_FIELDS = frozenset(f.name for f in fields(DeliveryContext))


@dataclass
class RelayServices:
    """Process-wide collaborators attached to every context."""

    me: SelfIdentity
    source: SourcePlatformPort
    destination: DestinationPlatformPort
    config: RelayConfig
    bridges: BridgeTableRef
    identities: IdentityStorePort
    anti_spam: AntiSpamGuard
    threads: ThreadIndex
    formatter: FormatterPort
    supervisor: Supervisor


@dataclass(frozen=True)
class Stage:
    name: str
    func: StageFunc
    requires: frozenset = frozenset()
    provides: frozenset = frozenset()
    # Empty means the stage runs for every event kind.
    kinds: frozenset = frozenset()

    def applies_to(self, kind: Optional[EventKind]) -> bool:
        if not self.kinds:
            return True
        return kind in self.kinds


def stage(
    name: str,
    *,
    requires: Iterable[str] = (),
    provides: Iterable[str] = (),
    kinds: Iterable[EventKind] = (),
) -> Callable[[StageFunc], Stage]:
    """Decorator turning an async function into a ``Stage``."""

    def wrap(func: StageFunc) -> Stage:
        return Stage(
            name=name,
            func=func,
            requires=frozenset(requires),
            provides=frozenset(provides),
            kinds=frozenset(kinds),
        )

    return wrap


def check_composition(stages: Iterable[Stage]) -> None:
    """Raise PipelineCompositionError if a stage reads a field nobody set before it."""

    available = {"event"}
    for item in stages:
        unknown = (item.requires | item.provides) - _CONTEXT_FIELDS
        if unknown:
            raise PipelineCompositionError(
                f"Stage {item.name} declares unknown fields: {', '.join(sorted(unknown))}"
            )
        missing = item.requires - available
        if missing:
            raise PipelineCompositionError(
                f"Stage {item.name} requires {', '.join(sorted(missing))} before it runs"
            )
        available |= item.provides


class EnrichmentPipeline:
    """Runs the fixed stage sequence, one event at a time."""

    def __init__(self, stages: Iterable[Stage]) -> None:
        self._stages = tuple(stages)
        check_composition(self._stages)

    @property
    def stage_names(self) -> list[str]:
        return [item.name for item in self._stages]

    async def process(self, event: dict) -> Optional[DeliveryContext]:
        """Run one event through the stages; return the final context or None if dropped."""

        context = DeliveryContext(event=event)
        for item in self._stages:
            if not item.applies_to(context.kind):
                continue
            try:
                result = await item.func(context)
            except Exception:
                LOGGER.exception("Stage %s failed, dropping update %s", item.name, event.get("update_id"))
                return None
            if result is None:
                LOGGER.debug("Update %s stopped at stage %s", event.get("update_id"), item.name)
                return None
            context = result
        return context


# --- Generic stages -------------------------------------------------------


def attach_services(services: RelayServices) -> Stage:
    @stage("attach_services", provides=["services"])
    async def _attach(context: DeliveryContext) -> DeliveryContext:
        return context.evolve(services=services)

    return _attach


@stage("resolve_bridges", requires=["services", "chat"], provides=["bridges"])
async def resolve_bridges(context: DeliveryContext) -> Optional[DeliveryContext]:
    # Read the table reference once so a concurrent reload cannot split this event.
    table = context.services.bridges.current
    bridges = table.resolve(context.chat.id, context.chat.thread_id, Origin.SOURCE)
    if not bridges and not context.chat.is_private:
        LOGGER.debug("No bridge for chat %s (thread %s)", context.chat.id, context.chat.thread_id)
        return None
    return context.evolve(bridges=tuple(bridges))


@stage("inform_private_chat", requires=["services", "chat", "bridges"])
async def inform_private_chat(context: DeliveryContext) -> Optional[DeliveryContext]:
    if context.bridges:
        return context
    # Private chats without a bridge are never relayed.
    services = context.services
    if services.anti_spam.should_notify(context.chat.id):
        await services.source.send_message(context.chat.id, PRIVATE_BOT_NOTICE)
    return None


@stage("filter_bridges", requires=["bridges", "command"])
async def filter_bridges(context: DeliveryContext) -> Optional[DeliveryContext]:
    bridges = tuple(
        bridge
        for bridge in context.bridges
        if bridge.direction.permits(Origin.SOURCE)
        and not (context.command and bridge.options.ignore_commands)
    )
    if not bridges:
        return None
    return context.evolve(bridges=bridges)


@stage(
    "filter_membership_bridges",
    requires=["bridges", "kind"],
    kinds=[EventKind.JOIN, EventKind.LEAVE],
)
async def filter_membership_bridges(context: DeliveryContext) -> Optional[DeliveryContext]:
    if context.kind is EventKind.JOIN:
        bridges = tuple(b for b in context.bridges if b.options.relay_join_messages)
    else:
        bridges = tuple(b for b in context.bridges if b.options.relay_leave_messages)
    if not bridges:
        return None
    return context.evolve(bridges=bridges)


@stage(
    "prepare_membership_notice",
    requires=["services", "members"],
    provides=["prepared"],
    kinds=[EventKind.JOIN, EventKind.LEAVE],
)
async def prepare_membership_notice(context: DeliveryContext) -> Optional[DeliveryContext]:
    if not context.members:
        return None
    return context.evolve(prepared=context.services.formatter.membership_notice(context))


@stage(
    "prepare_payload",
    requires=["services", "sender", "reply", "forward", "text", "attachment"],
    provides=["prepared"],
    kinds=[EventKind.MESSAGE, EventKind.EDIT],
)
async def prepare_payload(context: DeliveryContext) -> Optional[DeliveryContext]:
    prepared = context.services.formatter.prepare(context)
    if prepared.is_empty:
        return None
    return context.evolve(prepared=prepared)


@stage(
    "deliver",
    requires=["services", "bridges", "message_id", "prepared"],
    kinds=[EventKind.MESSAGE, EventKind.JOIN, EventKind.LEAVE],
)
async def deliver(context: DeliveryContext) -> DeliveryContext:
    services = context.services
    for bridge in context.bridges:
        prepared = context.prepared.for_bridge(bridge)
        services.supervisor.spawn(
            _deliver_to_bridge(services, bridge, context.message_id, prepared),
            name=f"deliver:{bridge.name}:{context.message_id}",
        )
    return context


@stage(
    "propagate_edit",
    requires=["services", "bridges", "message_id", "prepared"],
    kinds=[EventKind.EDIT],
)
async def propagate_edit(context: DeliveryContext) -> DeliveryContext:
    services = context.services
    for bridge in context.bridges:
        dest_id = services.identities.lookup(bridge.name, context.message_id)
        if dest_id is None:
            # Never relayed on this bridge; posting it now would duplicate content.
            LOGGER.debug("Edit of %s has no counterpart on bridge %s", context.message_id, bridge.name)
            continue
        prepared = context.prepared.for_bridge(bridge)
        services.supervisor.spawn(
            _edit_on_bridge(services, bridge, context.message_id, dest_id, prepared),
            name=f"edit:{bridge.name}:{context.message_id}",
        )
    return context


async def _deliver_to_bridge(
    services: RelayServices,
    bridge: Bridge,
    source_id: int,
    prepared: PreparedMessage,
) -> None:
    try:
        dest_id = await services.destination.send_message(bridge.destination_channel_id, prepared)
    except Exception:
        LOGGER.exception("Could not relay message %s on bridge %s", source_id, bridge.name)
        return
    services.identities.record(bridge.name, source_id, dest_id)
    LOGGER.debug("Relayed %s -> %s on bridge %s", source_id, dest_id, bridge.name)


async def _edit_on_bridge(
    services: RelayServices,
    bridge: Bridge,
    source_id: int,
    dest_id: int,
    prepared: PreparedMessage,
) -> None:
    try:
        await services.destination.edit_message(bridge.destination_channel_id, dest_id, prepared)
    except Exception:
        LOGGER.exception("Could not edit message %s on bridge %s", source_id, bridge.name)
