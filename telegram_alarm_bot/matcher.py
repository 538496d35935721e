"""Topic matcher — resolves an MQTT topic to a configured sensor."""

import logging
from dataclasses import dataclass

from .config import FieldTable, TopicConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorMatch:
    """Result of resolving a topic against the sensor configuration."""

    topic_base: str
    sensor_name: str
    captures: dict[str, str | None]
    fields: FieldTable


class TopicMatcher:
    """Two-stage lookup: literal topic base first, then sensor-name regexes.

    Both stages scan in configuration order and the first hit wins.
    """

    def __init__(self, topics: list[TopicConfig]):
        self._topics = topics
        self.unmatched_sensor_names = 0

    def match(self, topic: str) -> SensorMatch | None:
        topic_config = next((t for t in self._topics if topic.startswith(f"{t.base}/")), None)
        if topic_config is None:
            return None

        sensor_name = topic[len(topic_config.base) + 1 :]

        for sensor in topic_config.sensors:
            m = sensor.pattern.search(sensor_name)
            if m is None:
                continue
            return SensorMatch(
                topic_base=topic_config.base,
                sensor_name=m.group(0),
                # groupdict() yields None for named groups that did not participate
                captures=m.groupdict(),
                fields=sensor.fields,
            )

        self.unmatched_sensor_names += 1
        logger.debug("No sensor pattern under %s matches %r", topic_config.base, sensor_name)
        return None
