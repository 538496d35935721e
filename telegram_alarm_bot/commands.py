"""Chat command handling — /battery, /status, /enable, /disable, /help."""

import asyncio
import logging

from .reports import HELP_TEXT, battery_report, notifications_status_line, status_report
from .state import SharedState
from .telegram_client import IncomingMessage, TelegramClient

logger = logging.getLogger(__name__)

INVALID_COMMAND = "Invalid command"
COMMAND_FAILED = "Command failed, see the bot logs"


class CommandDispatcher:
    """Answers chat commands from authorized chats, one task per command."""

    def __init__(self, telegram: TelegramClient, shared: SharedState, valid_chat_ids: list[int]):
        self._telegram = telegram
        self._shared = shared
        self._valid_chat_ids = set(valid_chat_ids)
        self._tasks: set[asyncio.Task[None]] = set()

    async def execute(self, command: str) -> str:
        """Run a command against the shared state and return the reply text."""
        async with self._shared.lock:
            match command:
                case "/battery":
                    return battery_report(self._shared.store)
                case "/enable":
                    self._shared.notifications_enabled = True
                    logger.info("Notifications enabled")
                    return "Notifications enabled"
                case "/disable":
                    self._shared.notifications_enabled = False
                    logger.info("Notifications disabled")
                    return "Notifications disabled"
                case "/status":
                    return status_report(self._shared.store, self._shared.notifications_enabled)
                case "/help":
                    return f"{notifications_status_line(self._shared.notifications_enabled)}\n\n{HELP_TEXT}"
                case _:
                    return INVALID_COMMAND

    async def handle(self, message: IncomingMessage) -> None:
        if message.chat_id not in self._valid_chat_ids:
            logger.warning("Ignoring message from unauthorized chat %s", message.chat_id)
            return

        logger.info("Command %r from chat %s", message.text, message.chat_id)
        try:
            reply = await self.execute(message.text)
        except Exception:
            logger.exception("Command %r failed", message.text)
            reply = COMMAND_FAILED

        # Lock is released before the network round trip
        await self._telegram.send_message(message.chat_id, reply)

    async def run(self) -> None:
        """Consume incoming messages for the lifetime of the process."""
        async for message in self._telegram.messages():
            task = asyncio.create_task(self.handle(message), name=f"command_{message.chat_id}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


async def discover_chat_ids(telegram: TelegramClient) -> None:
    """Reply to every message with its chat ID, to help fill in the config."""
    logger.info("Chat ID discovery mode: send any message to the bot")
    async for message in telegram.messages():
        logger.info("Message from chat ID %s: %r", message.chat_id, message.text)
        await telegram.send_message(message.chat_id, f"Chat ID: {message.chat_id}")
