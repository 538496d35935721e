from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from conftest import FakeClock, FakeTelegram
from telegram_alarm_bot.commands import INVALID_COMMAND, CommandDispatcher, discover_chat_ids
from telegram_alarm_bot.state import SensorStateStore, SharedState
from telegram_alarm_bot.telegram_client import IncomingMessage


def _dispatcher(telegram: FakeTelegram, shared: SharedState) -> CommandDispatcher:
    return CommandDispatcher(telegram, shared, [111, 999])  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_enable_and_disable_toggle_the_flag(telegram: FakeTelegram) -> None:
    shared = SharedState()
    dispatcher = _dispatcher(telegram, shared)

    await dispatcher.handle(IncomingMessage(chat_id=111, text="/enable"))
    assert shared.notifications_enabled is True

    await dispatcher.handle(IncomingMessage(chat_id=999, text="/disable"))
    assert shared.notifications_enabled is False

    assert telegram.sent == [(111, "Notifications enabled"), (999, "Notifications disabled")]


@pytest.mark.asyncio
async def test_status_and_battery(telegram: FakeTelegram, clock: FakeClock) -> None:
    shared = SharedState(store=SensorStateStore(clock=clock))
    shared.store.touch("zigbee2mqtt/Door opening sensor", "Door opening sensor")
    shared.store.update_battery("zigbee2mqtt/Door opening sensor", 64)
    clock.advance(5)
    dispatcher = _dispatcher(telegram, shared)

    assert await dispatcher.execute("/status") == (
        "Notifications are disabled\n\nDoor opening sensor: last seen 5s ago"
    )
    assert await dispatcher.execute("/battery") == (
        "Door opening sensor: 64%, unknown voltage, last update 5s ago"
    )


@pytest.mark.asyncio
async def test_help_lists_commands(telegram: FakeTelegram) -> None:
    reply = await _dispatcher(telegram, SharedState()).execute("/help")

    for command in ("/battery", "/status", "/enable", "/disable", "/help"):
        assert command in reply


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["/Status", "status", "/status now", "hello", ""])
async def test_unknown_commands_get_a_reply(telegram: FakeTelegram, text: str) -> None:
    shared = SharedState()
    await _dispatcher(telegram, shared).handle(IncomingMessage(chat_id=111, text=text))

    assert telegram.sent == [(111, INVALID_COMMAND)]
    assert shared.notifications_enabled is False


@pytest.mark.asyncio
async def test_unauthorized_chat_is_ignored(telegram: FakeTelegram) -> None:
    shared = SharedState()
    await _dispatcher(telegram, shared).handle(IncomingMessage(chat_id=42, text="/enable"))

    assert shared.notifications_enabled is False
    assert telegram.sent == []


@pytest.mark.asyncio
async def test_failing_command_still_replies(telegram: FakeTelegram, monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(_store: SensorStateStore) -> str:
        raise RuntimeError("boom")

    monkeypatch.setattr("telegram_alarm_bot.commands.battery_report", _boom)
    await _dispatcher(telegram, SharedState()).handle(IncomingMessage(chat_id=111, text="/battery"))

    assert len(telegram.sent) == 1
    assert telegram.sent[0][0] == 111
    assert "failed" in telegram.sent[0][1]


class _ScriptedTelegram(FakeTelegram):
    def __init__(self, messages: list[IncomingMessage]) -> None:
        super().__init__()
        self._messages = messages

    async def messages(self) -> AsyncIterator[IncomingMessage]:
        for message in self._messages:
            yield message


@pytest.mark.asyncio
async def test_run_handles_each_message(clock: FakeClock) -> None:
    telegram = _ScriptedTelegram(
        [IncomingMessage(chat_id=111, text="/enable"), IncomingMessage(chat_id=999, text="/status")]
    )
    shared = SharedState(store=SensorStateStore(clock=clock))

    await _dispatcher(telegram, shared).run()
    # Commands run as separate tasks
    for _ in range(10):
        await asyncio.sleep(0)

    assert shared.notifications_enabled is True
    assert sorted(chat for chat, _ in telegram.sent) == [111, 999]


@pytest.mark.asyncio
async def test_chat_id_discovery_replies_with_chat_id() -> None:
    telegram = _ScriptedTelegram([IncomingMessage(chat_id=-688154163, text="hi")])

    await discover_chat_ids(telegram)  # type: ignore[arg-type]

    assert telegram.sent == [(-688154163, "Chat ID: -688154163")]
