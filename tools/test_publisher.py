#!/usr/bin/env python3
"""
Test publisher — publishes sample zigbee2mqtt-style sensor events for end-to-end testing.

Usage:
    python test_publisher.py [--host localhost] [--port 1883] [--topic-base zigbee2mqtt]

Send /enable to the bot first, otherwise state changes are recorded but not notified.
"""

import argparse
import asyncio
import json
import random

from aiomqtt import Client


def build_contact_payload() -> tuple[str, dict]:
    return "Door opening sensor", {
        "contact": random.choice([True, False]),
        "battery": random.randint(50, 100),
        "voltage": random.randint(2800, 3100),
        "linkquality": random.randint(0, 255),
    }


def build_motion_payload() -> tuple[str, dict]:
    location = random.choice(["Kitchen ", "Garage ", ""])
    sensor_id = random.randint(1, 3)
    return f"{location}Motion sensor ({sensor_id})", {
        "occupancy": random.choice([True, False]),
        "battery": random.randint(10, 100),
        "voltage": random.randint(2500, 3100),
        "illuminance_above_threshold": False,
    }


PAYLOAD_BUILDERS = [
    build_contact_payload,
    build_motion_payload,
]


async def publish_events(host: str, port: int, topic_base: str, count: int, interval: float) -> None:
    async with Client(host, port=port) as client:
        print(f"Connected to {host}:{port}")
        print(f"Publishing {count} events every {interval}s...\n")

        for i in range(count):
            builder = random.choice(PAYLOAD_BUILDERS)
            sensor_name, payload = builder()
            topic = f"{topic_base}/{sensor_name}"

            await client.publish(topic, json.dumps(payload))
            print(f"[{i+1}/{count}] Published {topic:40s} | {json.dumps(payload)}")

            if i < count - 1:
                await asyncio.sleep(interval)

    print("\nDone!")


def main() -> None:
    parser = argparse.ArgumentParser(description="Telegram alarm bot test publisher")
    parser.add_argument("--host", default="localhost", help="MQTT broker host")
    parser.add_argument("--port", type=int, default=1883, help="MQTT broker port")
    parser.add_argument("--topic-base", default="zigbee2mqtt", help="Topic base configured in the bot")
    parser.add_argument("--count", type=int, default=5, help="Number of events to publish")
    parser.add_argument("--interval", type=float, default=3.0, help="Seconds between events")
    args = parser.parse_args()

    asyncio.run(publish_events(
        host=args.host,
        port=args.port,
        topic_base=args.topic_base,
        count=args.count,
        interval=args.interval,
    ))


if __name__ == "__main__":
    main()
