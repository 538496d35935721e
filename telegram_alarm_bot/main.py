"""Telegram alarm bot — Main entry point."""

import argparse
import asyncio
import logging
import signal
import sys

from .commands import CommandDispatcher, discover_chat_ids
from .config import DEFAULT_CONFIG_PATH, LOG_LEVELS, BotConfig, load_config
from .event_router import EventRouter
from .matcher import TopicMatcher
from .mqtt_listener import MqttListener
from .state import SharedState
from .telegram_client import TelegramClient

logger = logging.getLogger("telegram_alarm_bot")

_LOG_LEVELS = {
    "off": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forward MQTT sensor events to Telegram chats")
    parser.add_argument("config_file", nargs="?", default=DEFAULT_CONFIG_PATH, help="JSON config file")
    parser.add_argument("-c", "--check-only", action="store_true", help="Do not run the bot, only check the config file")
    parser.add_argument("-i", "--chat-id-discovery", action="store_true", help="Start in Telegram chat ID discovery mode")
    parser.add_argument(
        "-t",
        "--test-mode",
        action="store_true",
        help="Send notifications to the admin chats instead of the notification chats",
    )
    parser.add_argument("-l", "--log-level", choices=LOG_LEVELS, help="Overrides log_level from the config file")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS.get(level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    def _signal_handler(sig: signal.Signals) -> None:
        logger.info("Received %s, terminating", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler, sig)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def _log_task_exit(task: asyncio.Task) -> None:
    """Done-callback for long-lived tasks: they only end by cancellation."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Task %s failed", task.get_name(), exc_info=exc)
    else:
        logger.error("Task %s stopped unexpectedly", task.get_name())


async def save_state(shared: SharedState, path: str) -> bool:
    """Persist the sensor store; a failure is logged and never blocks exit."""
    async with shared.lock:
        try:
            shared.store.save(path)
        except OSError:
            logger.exception("Failed to save sensors data to %s", path)
            return False
    return True


async def run(config: BotConfig, shutdown_event: asyncio.Event | None = None) -> None:
    logger.info("Telegram alarm bot starting up")
    logger.info("Topics: %s", ", ".join(config.subscribe_patterns()))

    # ── Initialize components ───────────────────────────────────────────
    shared = SharedState()
    shared.store.restore(config.sensors_data_file)

    telegram = TelegramClient(config.telegram.token)
    await telegram.start()

    router = EventRouter(
        telegram,
        shared,
        TopicMatcher(config.topics),
        config.telegram.notification_chat_ids,
    )
    dispatcher = CommandDispatcher(telegram, shared, config.telegram.valid_chat_ids())
    listener = MqttListener(config.mqtt_broker, config.subscribe_patterns(), router.handle_message)

    # ── Graceful shutdown ───────────────────────────────────────────────
    if shutdown_event is None:
        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

    # ── Start MQTT ingestion + command polling ──────────────────────────
    tasks = [
        asyncio.create_task(listener.run(), name="mqtt_listener"),
        asyncio.create_task(dispatcher.run(), name="telegram_commands"),
    ]
    for task in tasks:
        task.add_done_callback(_log_task_exit)

    for chat_id in config.telegram.notification_chat_ids:
        await telegram.send_message(chat_id, "Started")
    logger.info("Telegram alarm bot is running (notifications disabled until /enable)")

    # ── Wait for shutdown ───────────────────────────────────────────────
    await shutdown_event.wait()

    logger.info("Shutting down...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

    await save_state(shared, config.sensors_data_file)
    await telegram.stop()
    logger.info("Telegram alarm bot stopped")


async def run_chat_id_discovery(config: BotConfig) -> None:
    telegram = TelegramClient(config.telegram.token)
    await telegram.start()

    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    task = asyncio.create_task(discover_chat_ids(telegram), name="chat_id_discovery")
    await shutdown_event.wait()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    await telegram.stop()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if args.check_only:
        print("Checking config...")
    try:
        config = load_config(args.config_file)
    except (FileNotFoundError, ValueError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)
    if args.check_only:
        print("OK")
        return

    if args.chat_id_discovery:
        configure_logging("info")
        logger.info("Started bot in chat ID discovery mode")
        asyncio.run(run_chat_id_discovery(config))
        return

    if args.log_level:
        config.log_level = args.log_level

    if args.test_mode:
        if not config.telegram.admin_chat_ids:
            print("Error: admin chat IDs have not been defined", file=sys.stderr)
            sys.exit(1)
        config.telegram.notification_chat_ids = list(config.telegram.admin_chat_ids)

    configure_logging(config.log_level)
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
