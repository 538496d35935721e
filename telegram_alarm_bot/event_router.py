"""Event router — turns MQTT sensor messages into Telegram notifications."""

import logging
import math
import re
from typing import Any

from pydantic import ValidationError

from .matcher import SensorMatch, TopicMatcher
from .models import SensorPayload
from .notifier import Notification, evaluate, watched_values
from .state import SharedState
from .telegram_client import TelegramClient

logger = logging.getLogger(__name__)

# Strip control characters (except newline/tab) to prevent log injection
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

# zigbee2mqtt reports voltage in millivolts
_MILLIVOLTS_PER_VOLT = 1000.0


class EventRouter:
    """Routes MQTT sensor payloads to the decision engine and the state store."""

    def __init__(
        self,
        telegram: TelegramClient,
        shared: SharedState,
        matcher: TopicMatcher,
        notification_chat_ids: list[int],
    ):
        self._telegram = telegram
        self._shared = shared
        self._matcher = matcher
        self._chat_ids = notification_chat_ids
        self.rejected_payloads = 0

    async def handle_message(self, topic: str, payload: bytes) -> list[Notification]:
        """Process one MQTT message and deliver any notifications it triggers.

        This is the callback passed to MqttListener. Returns the notifications
        that were sent.
        """
        match = self._matcher.match(topic)
        if match is None:
            return []

        try:
            data = SensorPayload.model_validate_json(payload)
        except ValidationError:
            self.rejected_payloads += 1
            preview = _CONTROL_CHARS.sub("", payload[:200].decode("utf-8", errors="replace"))
            logger.error("%s: payload is not a JSON object: %s", topic, preview)
            return []

        # Decide and record under the lock, deliver after releasing it
        async with self._shared.lock:
            notifications = evaluate(
                match,
                data,
                self._shared.store.trigger_states(topic),
                self._shared.notifications_enabled,
            )
            self._record(topic, match, data)

        for notification in notifications:
            logger.info("%s: %s=%s — notifying: %s", match.sensor_name, notification.field, notification.value, notification.text)
            for chat_id in self._chat_ids:
                await self._telegram.send_message(chat_id, notification.text)

        return notifications

    def _record(self, topic: str, match: SensorMatch, data: SensorPayload) -> None:
        # Parse readings first so a bad metric never leaves the record half-updated
        battery = _parse_battery(match.sensor_name, data.get("battery"))
        voltage = _parse_voltage(match.sensor_name, data.get("voltage"))

        store = self._shared.store
        store.touch(topic, match.sensor_name)

        for field_name, value in watched_values(match, data).items():
            store.update_trigger_state(topic, field_name, value)

        if battery is not None:
            store.update_battery(topic, battery)
        if voltage is not None:
            store.update_voltage(topic, voltage)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_battery(sensor_name: str, value: Any) -> int | None:
    if value is None:
        return None
    if not _is_number(value) or (isinstance(value, float) and not value.is_integer()):
        logger.error("%s: invalid battery value type: %r", sensor_name, value)
        return None
    if not 0 <= value <= 100:
        logger.error("%s: battery value out of range: %r", sensor_name, value)
        return None
    return int(value)


def _parse_voltage(sensor_name: str, value: Any) -> float | None:
    if value is None:
        return None
    if not _is_number(value):
        logger.error("%s: invalid voltage value type: %r", sensor_name, value)
        return None
    try:
        volts = value / _MILLIVOLTS_PER_VOLT
    except OverflowError:
        volts = math.inf
    if not math.isfinite(volts):
        logger.error("%s: voltage value is not a finite number", sensor_name)
        return None
    return volts
