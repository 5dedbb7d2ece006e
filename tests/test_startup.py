from __future__ import annotations

import asyncio
import logging

import pytest

from core.bridge_table import BridgeTable, BridgeTableRef
from core.config import RelayConfig, StartupConfig
from core.errors import StartupError
from core.models import Bridge
from core.startup import ADMIN_COMMANDS, StartupSequencer, drain_backlog
from core.supervisor import Supervisor
from fakes import FakeSource


def _batch(first_id: int, size: int) -> list[dict]:
    return [{"update_id": update_id} for update_id in range(first_id, first_id + size)]


class FakeBridgeUpdates:
    def __init__(self) -> None:
        self.callbacks = []

    def subscribe(self, callback) -> None:
        self.callbacks.append(callback)


class Harness:
    def __init__(self, source: FakeSource, skip_old_messages: bool = True) -> None:
        self.source = source
        self.sleeps: list[float] = []
        self.installed_with = []
        self.supervisor = Supervisor()
        self.table_ref = BridgeTableRef(BridgeTable())
        self.updates = FakeBridgeUpdates()
        self.sequencer = StartupSequencer(
            source,
            self.install,
            self.table_ref,
            self.supervisor,
            RelayConfig(skip_old_messages=skip_old_messages),
            StartupConfig(delay_seconds=1.0, verify_commands_delay_seconds=5.0),
            bridge_updates=self.updates,
            sleep=self.sleep,
        )

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def install(self, me):
        self.installed_with.append(me)

        async def handler(update: dict) -> None:
            return None

        return handler

    async def prepare(self):
        handler = await self.sequencer.prepare()
        await self.supervisor.wait_idle()
        return handler


def test_drain_fetches_until_empty_batch() -> None:
    source = FakeSource(backlog=[_batch(10, 100), _batch(110, 100), []])

    offset, discarded = asyncio.run(drain_backlog(source, limit=100))

    # Two full batches plus the empty one.
    assert source.fetch_calls == [(-1, 100), (110, 100), (210, 100)]
    assert offset == 210
    assert discarded == 200


def test_drain_with_empty_backlog_fetches_once() -> None:
    source = FakeSource()

    offset, discarded = asyncio.run(drain_backlog(source))

    assert source.fetch_calls == [(-1, 100)]
    assert (offset, discarded) == (-1, 0)


def test_drain_stops_when_offset_does_not_advance() -> None:
    source = FakeSource(backlog=[[{"update_id": 5}], [{"update_id": 3}], _batch(50, 1)])

    offset, discarded = asyncio.run(drain_backlog(source))

    assert source.fetch_calls == [(-1, 100), (6, 100)]
    assert offset == 6
    assert discarded == 2


def test_prepare_drains_registers_and_signals_ready() -> None:
    source = FakeSource(backlog=[_batch(1, 3)])
    harness = Harness(source)

    handler = asyncio.run(harness.prepare())

    assert callable(handler)
    assert harness.sequencer.ready.is_set()
    assert harness.sequencer.me == source.me
    assert harness.installed_with == [source.me]
    assert source.fetch_calls == [(-1, 100), (4, 100)]
    assert source.commands == ADMIN_COMMANDS
    assert sorted(source.admin_rights_calls) == [False, True]
    # Only the command verification delay was slept.
    assert harness.sleeps == [5.0]


def test_prepare_waits_instead_of_draining_when_keeping_old_messages() -> None:
    source = FakeSource(backlog=[_batch(1, 3)])
    harness = Harness(source, skip_old_messages=False)

    asyncio.run(harness.prepare())

    assert source.fetch_calls == []
    assert harness.sleeps[0] == 1.0
    assert harness.sequencer.ready.is_set()


def test_identity_failure_is_fatal() -> None:
    source = FakeSource()
    source.fail_get_me = True
    harness = Harness(source)

    with pytest.raises(StartupError):
        asyncio.run(harness.prepare())

    assert not harness.sequencer.ready.is_set()
    assert harness.installed_with == []


def test_command_registration_failure_does_not_block_startup(caplog) -> None:
    source = FakeSource()
    source.fail_set_commands = True
    harness = Harness(source)

    with caplog.at_level(logging.ERROR, logger="core.supervisor"):
        asyncio.run(harness.prepare())

    assert harness.sequencer.ready.is_set()
    assert any("register-commands" in record.getMessage() for record in caplog.records)


def test_command_mismatch_is_only_logged(caplog) -> None:
    source = FakeSource()
    source.commands_reply = [ADMIN_COMMANDS[0]]
    harness = Harness(source)

    with caplog.at_level(logging.WARNING, logger="core.startup"):
        asyncio.run(harness.prepare())

    assert harness.sequencer.ready.is_set()
    assert any("expected 2 commands, got 1" in record.getMessage() for record in caplog.records)


def test_bridge_update_swaps_the_live_table() -> None:
    harness = Harness(FakeSource())
    asyncio.run(harness.prepare())
    new_table = BridgeTable([Bridge(name="new", source_chat_id=1, destination_channel_id=2)])

    assert len(harness.updates.callbacks) == 1
    harness.updates.callbacks[0](new_table)

    assert harness.table_ref.current is new_table


def test_start_hands_the_handler_to_polling() -> None:
    source = FakeSource()
    harness = Harness(source)

    asyncio.run(harness.sequencer.start())

    assert source.polling_handler is not None
    assert harness.sequencer.ready.is_set()


def test_bridge_update_during_startup_reaches_the_live_table() -> None:
    source = FakeSource()
    harness = Harness(source)
    edited = BridgeTable([Bridge(name="edited", source_chat_id=1, destination_channel_id=2)])
    get_me = source.get_me

    async def get_me_while_config_changes():
        for callback in harness.updates.callbacks:
            callback(edited)
        return await get_me()

    source.get_me = get_me_while_config_changes

    asyncio.run(harness.prepare())

    assert harness.table_ref.current is edited
    assert len(harness.updates.callbacks) == 1


def test_subscription_is_registered_before_identity_is_known() -> None:
    source = FakeSource()
    source.fail_get_me = True
    harness = Harness(source)

    with pytest.raises(StartupError):
        asyncio.run(harness.prepare())

    assert len(harness.updates.callbacks) == 1
