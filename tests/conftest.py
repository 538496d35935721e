from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from telegram_alarm_bot.config import BotConfig, parse_config

MOTION_REGEX = r"^(?:(?P<location>\w+) )?[Mm]otion sensor \((?P<id>\d+)\)$"


def raw_config(**overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "telegram": {
            "token": "123:abc",
            "notification_chat_ids": [111],
            "admin_chat_ids": [999],
        },
        "sensors": {
            "zigbee2mqtt": {
                "Door opening sensor": {
                    "contact": {"false": "opened", "true": "closed"},
                },
                MOTION_REGEX: {
                    "occupancy": {"true": "Motion in {location} (#{id})"},
                },
            },
        },
    }
    raw.update(overrides)
    return raw


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTelegram:
    """Records messages instead of calling the Bot API."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[int, str]] = []
        self.fail = fail

    async def send_message(self, chat_id: int, text: str) -> bool:
        if self.fail:
            return False
        self.sent.append((chat_id, text))
        return True


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TELEGRAM_BOT_TOKEN", "MQTT_HOST", "MQTT_PORT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> BotConfig:
    return parse_config(raw_config())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def telegram() -> FakeTelegram:
    return FakeTelegram()
