"""Sensor state store and the state shared between ingestion and commands."""

import asyncio
import logging
import os
import tempfile
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import BatteryReading, SensorRecord, SensorsSnapshot, VoltageReading

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _without_trigger_states(record: SensorRecord) -> SensorRecord:
    return record.model_copy(update={"trigger_states": {}}, deep=True)


class SensorStateStore:
    """Per-topic sensor metadata.

    Not synchronized by itself: callers hold ``SharedState.lock`` around every
    read-decide-write sequence.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._records: dict[str, SensorRecord] = {}

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, topic: str) -> bool:
        return topic in self._records

    def items(self) -> Iterator[tuple[str, SensorRecord]]:
        return iter(self._records.items())

    def get(self, topic: str) -> SensorRecord | None:
        return self._records.get(topic)

    def touch(self, topic: str, sensor_name: str) -> SensorRecord:
        """Create the entry on first sight and refresh its last-seen time."""
        now = self._clock()
        record = self._records.get(topic)
        if record is None:
            record = SensorRecord(name=sensor_name, last_seen=now)
            self._records[topic] = record
            logger.info("Tracking new sensor %s (%s)", sensor_name, topic)
        else:
            record.name = sensor_name
            record.last_seen = now
        return record

    def trigger_states(self, topic: str) -> Mapping[str, Any]:
        record = self._records.get(topic)
        return record.trigger_states if record is not None else {}

    def update_trigger_state(self, topic: str, field_name: str, value: Any) -> None:
        self._records[topic].trigger_states[field_name] = value

    def update_battery(self, topic: str, percent: int) -> None:
        self._records[topic].battery = BatteryReading(update_timestamp=self._clock(), value=percent)

    def update_voltage(self, topic: str, volts: float) -> None:
        self._records[topic].voltage = VoltageReading(update_timestamp=self._clock(), value=volts)

    def snapshot(self) -> SensorsSnapshot:
        return SensorsSnapshot({topic: _without_trigger_states(record) for topic, record in self._records.items()})

    def restore_snapshot(self, snapshot: SensorsSnapshot) -> None:
        # Trigger states are not part of the snapshot, so every field starts fresh
        self._records = {topic: _without_trigger_states(record) for topic, record in snapshot.root.items()}

    def save(self, path: str | os.PathLike[str]) -> None:
        """Write the snapshot as JSON, atomically replacing any previous file."""
        target = Path(path)
        data = self.snapshot().model_dump_json(indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Saved %d sensor record(s) to %s", len(self._records), target)

    def restore(self, path: str | os.PathLike[str]) -> bool:
        """Load a snapshot file. Returns False when starting from an empty store.

        A missing file is a normal fresh start; an unreadable or corrupt one is
        logged and ignored.
        """
        source = Path(path)
        try:
            raw = source.read_text()
        except FileNotFoundError:
            logger.info("Sensors data file %s does not exist — starting fresh", source)
            return False
        except (OSError, UnicodeDecodeError):
            logger.exception("Cannot read sensors data file %s", source)
            self._records = {}
            return False

        try:
            snapshot = SensorsSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Sensors data file %s is corrupt, starting with an empty store: %s", source, e)
            self._records = {}
            return False

        self.restore_snapshot(snapshot)
        logger.info("Loaded %d sensor record(s) from %s", len(self._records), source)
        return True


@dataclass
class SharedState:
    """The only mutable state shared by the MQTT ingestion loop and chat commands."""

    store: SensorStateStore = field(default_factory=SensorStateStore)
    notifications_enabled: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
