"""Configuration loader for the Telegram alarm bot."""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_SENSORS_DATA_FILE = "sensors_data.json"

LOG_LEVELS = ("off", "error", "warn", "info", "debug", "trace")

# Stringified payload value -> message template
StateMessages = dict[str, str]
# Payload field name -> state messages
FieldTable = dict[str, StateMessages]


@dataclass
class MqttBrokerConfig:
    hostname: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    keepalive: int = 5
    client_id: str = "telegram-alarm-bot"


@dataclass
class TelegramConfig:
    token: str
    notification_chat_ids: list[int]
    admin_chat_ids: list[int] | None = None

    def valid_chat_ids(self) -> list[int]:
        """Chats allowed to send commands: notification chats plus admin chats."""
        return self.notification_chat_ids + (self.admin_chat_ids or [])


@dataclass
class SensorPattern:
    """One sensor-name regex and the payload fields it watches."""

    regex: str
    fields: FieldTable
    pattern: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            self.pattern = re.compile(self.regex)
        except re.error as e:
            raise ValueError(f"Invalid sensor name regex {self.regex!r}: {e}") from e


@dataclass
class TopicConfig:
    """A literal topic base and its sensors, in configuration order."""

    base: str
    sensors: list[SensorPattern]

    @property
    def subscribe_pattern(self) -> str:
        return f"{self.base}/+"


@dataclass
class BotConfig:
    telegram: TelegramConfig
    topics: list[TopicConfig]
    mqtt_broker: MqttBrokerConfig = field(default_factory=MqttBrokerConfig)
    log_level: str = "info"
    sensors_data_file: str = DEFAULT_SENSORS_DATA_FILE

    def validate(self) -> None:
        if not self.telegram.token:
            raise ValueError("telegram.token is required")
        if not self.telegram.notification_chat_ids:
            raise ValueError("At least one notification chat ID is required")
        if not self.topics:
            raise ValueError("At least one sensor topic is required")
        for topic in self.topics:
            if not topic.base or topic.base.endswith("/") or any(c in topic.base for c in "+#"):
                raise ValueError(f"Invalid topic base (must be a literal prefix without wildcards): {topic.base!r}")
            if not topic.sensors:
                raise ValueError(f"Topic {topic.base!r} has no sensors")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level {self.log_level!r} (expected one of {', '.join(LOG_LEVELS)})")
        if not 0 < self.mqtt_broker.port < 65536:
            raise ValueError(f"Invalid MQTT broker port: {self.mqtt_broker.port}")

    def subscribe_patterns(self) -> list[str]:
        return [topic.subscribe_pattern for topic in self.topics]


def _require_mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be a JSON object")
    return value


def _parse_chat_ids(value: Any, where: str) -> list[int]:
    if not isinstance(value, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        raise ValueError(f"{where} must be a list of integer chat IDs")
    return list(value)


def _parse_field_table(raw: Any, where: str) -> FieldTable:
    fields: FieldTable = {}
    for field_name, states in _require_mapping(raw, where).items():
        states = _require_mapping(states, f"{where}.{field_name}")
        for state, message in states.items():
            if not isinstance(message, str):
                raise ValueError(f"{where}.{field_name}.{state} must be a message string")
        fields[field_name] = dict(states)
    return fields


def _parse_topics(raw: Any) -> list[TopicConfig]:
    # JSON object order is the configuration order: first base / first regex wins
    topics = []
    for base, sensors in _require_mapping(raw, "sensors").items():
        patterns = [
            SensorPattern(regex=regex, fields=_parse_field_table(fields, f"sensors.{base}.{regex}"))
            for regex, fields in _require_mapping(sensors, f"sensors.{base}").items()
        ]
        topics.append(TopicConfig(base=base, sensors=patterns))
    return topics


def parse_config(raw: dict[str, Any]) -> BotConfig:
    """Build and validate a BotConfig from a decoded JSON document."""
    raw = _require_mapping(raw, "config")

    try:
        telegram_raw = _require_mapping(raw["telegram"], "telegram")
        telegram = TelegramConfig(
            token=telegram_raw.get("token", ""),
            notification_chat_ids=_parse_chat_ids(
                telegram_raw["notification_chat_ids"], "telegram.notification_chat_ids"
            ),
            admin_chat_ids=(
                _parse_chat_ids(telegram_raw["admin_chat_ids"], "telegram.admin_chat_ids")
                if telegram_raw.get("admin_chat_ids") is not None
                else None
            ),
        )
        topics = _parse_topics(raw["sensors"])
    except KeyError as e:
        raise ValueError(f"Missing required config key: {e.args[0]}") from e

    broker = MqttBrokerConfig()
    if raw.get("mqtt_broker") is not None:
        broker_raw = _require_mapping(raw["mqtt_broker"], "mqtt_broker")
        broker = MqttBrokerConfig(
            hostname=broker_raw.get("hostname", broker.hostname),
            port=int(broker_raw.get("port", broker.port)),
            username=broker_raw.get("username"),
            password=broker_raw.get("password"),
            keepalive=int(broker_raw.get("keepalive", broker.keepalive)),
            client_id=broker_raw.get("client_id", broker.client_id),
        )

    config = BotConfig(
        telegram=telegram,
        topics=topics,
        mqtt_broker=broker,
        log_level=raw.get("log_level", "info"),
        sensors_data_file=raw.get("sensors_data_file", DEFAULT_SENSORS_DATA_FILE),
    )

    # Environment overrides the file
    config.telegram.token = os.environ.get("TELEGRAM_BOT_TOKEN", config.telegram.token)
    config.mqtt_broker.hostname = os.environ.get("MQTT_HOST", config.mqtt_broker.hostname)
    if os.environ.get("MQTT_PORT"):
        config.mqtt_broker.port = int(os.environ["MQTT_PORT"])

    config.validate()
    return config


def load_config(path: str = DEFAULT_CONFIG_PATH) -> BotConfig:
    """Load and validate the bot configuration from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"No config file found at {config_path}")

    with open(config_path, "r") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {config_path} is not valid JSON: {e}") from e

    logger.debug("Loaded config file %s", config_path)
    return parse_config(raw)
