"""Notification decisions — edge-triggered messages from payload field values."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .matcher import SensorMatch
from .models import SensorPayload, same_value, stringify_value

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class Notification:
    field: str
    value: Any
    text: str


def render_template(template: str, captures: Mapping[str, str | None]) -> str:
    """Replace ``{name}`` placeholders with capture values.

    Placeholders are expanded in one pass, so capture values are never
    expanded again. Captures that did not participate in the match leave
    their placeholder as is.
    """

    def _substitute(m: re.Match[str]) -> str:
        value = captures.get(m.group(1))
        return m.group(0) if value is None else value

    return _PLACEHOLDER.sub(_substitute, template)


def watched_values(match: SensorMatch, payload: SensorPayload) -> dict[str, Any]:
    """Payload values for the fields this sensor has state messages for."""
    return {name: payload.get(name) for name in match.fields if name in payload}


def evaluate(
    match: SensorMatch,
    payload: SensorPayload,
    previous: Mapping[str, Any],
    notifications_enabled: bool,
) -> list[Notification]:
    """Decide which fields fire for this event.

    A field fires when its stringified value has a configured message and it
    differs from the previously observed value (or there is none yet).
    ``previous`` is the sensor's trigger-state mapping; it is only read here.
    """
    notifications = []
    for field_name, value in watched_values(match, payload).items():
        key = stringify_value(value)
        if key is None:
            logger.debug("%s: field %s has no comparable value (%r)", match.sensor_name, field_name, value)
            continue

        template = match.fields[field_name].get(key)
        if template is None:
            continue

        changed = field_name not in previous or not same_value(previous[field_name], value)
        if not changed:
            logger.debug("%s: %s still %s — not notifying", match.sensor_name, field_name, key)
            continue
        if not notifications_enabled:
            logger.info("%s: %s changed to %s but notifications are disabled", match.sensor_name, field_name, key)
            continue

        notifications.append(Notification(field=field_name, value=value, text=render_template(template, match.captures)))

    return notifications
