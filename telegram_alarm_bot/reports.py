"""Human-readable reports over the sensor state store."""

from datetime import datetime, timedelta

from .models import SensorRecord
from .state import SensorStateStore

NO_DATA = "No data"

HELP_TEXT = "\n".join(
    [
        "/battery - battery level and voltage of every sensor",
        "/status - notification status and when each sensor was last seen",
        "/enable - enable notifications",
        "/disable - disable notifications",
        "/help - this message",
    ]
)

_UNITS = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))


def format_duration(delta: timedelta) -> str:
    """Compact duration, largest units first, zero units omitted (``1d2h5s``)."""
    remaining = max(int(delta.total_seconds()), 0)
    parts = []
    for suffix, size in _UNITS:
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount}{suffix}")
    return "".join(parts) or "0s"


def battery_value_str(record: SensorRecord) -> str:
    return f"{record.battery.value}%" if record.battery is not None else "unknown percent"


def voltage_value_str(record: SensorRecord) -> str:
    return f"{record.voltage.value:.3f}v" if record.voltage is not None else "unknown voltage"


def last_update_str(record: SensorRecord, now: datetime) -> str:
    age = record.time_max_since_last_update(now)
    return f"last update {format_duration(age)} ago" if age is not None else "no data"


def _sorted_records(store: SensorStateStore) -> list[SensorRecord]:
    return sorted((record for _, record in store.items()), key=lambda r: r.name.lower())


def battery_report(store: SensorStateStore) -> str:
    now = store.now()
    lines = [
        f"{r.name}: {battery_value_str(r)}, {voltage_value_str(r)}, {last_update_str(r, now)}"
        for r in _sorted_records(store)
    ]
    return "\n".join(lines) or NO_DATA


def liveness_report(store: SensorStateStore) -> str:
    now = store.now()
    lines = [f"{r.name}: last seen {format_duration(r.time_since_last_seen(now))} ago" for r in _sorted_records(store)]
    return "\n".join(lines) or NO_DATA


def notifications_status_line(enabled: bool) -> str:
    return f"Notifications are {'enabled' if enabled else 'disabled'}"


def status_report(store: SensorStateStore, notifications_enabled: bool) -> str:
    return f"{notifications_status_line(notifications_enabled)}\n\n{liveness_report(store)}"
