"""MQTT listener — subscribes to sensor topics and feeds messages to a callback."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiomqtt import Client, MqttError

from .config import MqttBrokerConfig

logger = logging.getLogger(__name__)

# Type alias for the callback that receives (topic, raw payload)
MessageCallback = Callable[[str, bytes], Awaitable[Any]]


def _payload_bytes(payload: Any) -> bytes:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if payload is None:
        return b""
    return str(payload).encode()


class MqttListener:
    """Keeps a broker connection alive and processes messages one at a time.

    Messages are awaited sequentially so per-sensor updates keep arrival order.
    """

    def __init__(
        self,
        broker: MqttBrokerConfig,
        subscribe_patterns: list[str],
        callback: MessageCallback,
        reconnect_delay: float = 5.0,
    ):
        self._broker = broker
        self._patterns = subscribe_patterns
        self._callback = callback
        self._reconnect_delay = reconnect_delay

    async def run(self) -> None:
        """Connect, subscribe and dispatch messages until cancelled."""
        while True:
            try:
                logger.info("Connecting to MQTT broker %s:%s", self._broker.hostname, self._broker.port)
                async with Client(
                    self._broker.hostname,
                    port=self._broker.port,
                    username=self._broker.username,
                    password=self._broker.password,
                    keepalive=self._broker.keepalive,
                    identifier=self._broker.client_id,
                ) as client:
                    for pattern in self._patterns:
                        await client.subscribe(pattern)
                        logger.info("Subscribed to %s", pattern)
                    async for message in client.messages:
                        await self.dispatch(message.topic.value, _payload_bytes(message.payload))
            except MqttError as e:
                logger.warning("MQTT connection error: %s — reconnecting in %.0fs", e, self._reconnect_delay)
                await asyncio.sleep(self._reconnect_delay)

    async def dispatch(self, topic: str, payload: bytes) -> None:
        """Hand one message to the callback; failures stay with that message."""
        logger.debug("Received %s: %r", topic, payload[:200])
        try:
            await self._callback(topic, payload)
        except Exception:
            logger.exception("Error processing message on %s", topic)
