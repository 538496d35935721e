"""Pydantic models for sensor payloads and the persisted sensor snapshot."""

import json
from datetime import datetime, timedelta
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, RootModel


class SensorPayload(RootModel[dict[str, Any]]):
    """A decoded zigbee2mqtt-style payload: a flat JSON object of field values.

    Nested values (e.g. ``update`` objects) are tolerated; they simply never
    match a state-message table.
    """

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.root.get(field_name, default)

    def __contains__(self, field_name: str) -> bool:
        return field_name in self.root


def stringify_value(value: Any) -> str | None:
    """Canonical string form used as the lookup key into state-message tables.

    Booleans become ``"true"``/``"false"``, numbers use their JSON form and
    strings are used verbatim. Anything else has no predictable form and
    returns None.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        try:
            return json.dumps(value, allow_nan=False)
        except ValueError:
            return None
    return None


def same_value(a: Any, b: Any) -> bool:
    """Strict equality that does not consider ``True == 1`` or ``1 == 1.0``."""
    return type(a) is type(b) and a == b


def _non_negative(delta: timedelta) -> timedelta:
    return max(delta, timedelta(0))


class BatteryReading(BaseModel):
    model_config = ConfigDict(extra="forbid")

    update_timestamp: AwareDatetime
    value: int = Field(ge=0, le=100)

    def time_since_last_update(self, now: datetime) -> timedelta:
        return _non_negative(now - self.update_timestamp)


class VoltageReading(BaseModel):
    model_config = ConfigDict(extra="forbid")

    update_timestamp: AwareDatetime
    value: float = Field(allow_inf_nan=False)

    def time_since_last_update(self, now: datetime) -> timedelta:
        return _non_negative(now - self.update_timestamp)


class SensorRecord(BaseModel):
    """Everything remembered about one sensor topic.

    ``trigger_states`` holds the last evaluated value of each watched field and
    is deliberately left out of the persisted form: after a restart every
    field is treated as a first observation.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    last_seen: AwareDatetime
    battery: BatteryReading | None = None
    voltage: VoltageReading | None = None
    trigger_states: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def _update_ages(self, now: datetime) -> list[timedelta]:
        return [r.time_since_last_update(now) for r in (self.battery, self.voltage) if r is not None]

    def time_max_since_last_update(self, now: datetime) -> timedelta | None:
        ages = self._update_ages(now)
        return max(ages) if ages else None

    def time_min_since_last_update(self, now: datetime) -> timedelta | None:
        ages = self._update_ages(now)
        return min(ages) if ages else None

    def time_since_last_seen(self, now: datetime) -> timedelta:
        return _non_negative(now - self.last_seen)


class SensorsSnapshot(RootModel[dict[str, SensorRecord]]):
    """Persisted form of the state store, keyed by MQTT topic."""
