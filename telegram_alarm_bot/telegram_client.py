"""Telegram Bot API client for sending notifications and polling commands."""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


@dataclass(frozen=True)
class IncomingMessage:
    chat_id: int
    text: str


class TelegramClient:
    """Talks to the Telegram Bot API over HTTPS."""

    def __init__(self, token: str, base_url: str = TELEGRAM_API_URL, poll_timeout: int = 30):
        self._base_url = f"{base_url.rstrip('/')}/bot{token}"
        self._poll_timeout = poll_timeout
        self._session: aiohttp.ClientSession | None = None
        self._offset: int | None = None

    async def start(self) -> None:
        self._session = aiohttp.ClientSession(headers={"Content-Type": "application/json"})

        # Verify the token
        try:
            async with self._session.get(f"{self._base_url}/getMe") as resp:
                if resp.status == 200:
                    data = await resp.json()
                    logger.info("Connected to Telegram as @%s", data.get("result", {}).get("username", "?"))
                else:
                    logger.warning("Telegram API returned status %d — check the bot token", resp.status)
        except aiohttp.ClientError:
            logger.warning("Cannot reach the Telegram API — will retry on first request")

    async def stop(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def send_message(self, chat_id: int, text: str) -> bool:
        """Send a text message. Failures are logged, never raised."""
        if not self._session:
            logger.error("Telegram client not started — cannot send message to %s", chat_id)
            return False

        try:
            async with self._session.post(
                f"{self._base_url}/sendMessage", json={"chat_id": chat_id, "text": text}
            ) as resp:
                if resp.status == 200:
                    return True
                body = await resp.text()
                logger.error("Failed to send message to %s: HTTP %d — %s", chat_id, resp.status, body)
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError):
            logger.exception("Network error sending message to %s", chat_id)
            return False

    async def get_updates(self) -> list[dict[str, Any]] | None:
        """Long-poll for new updates and advance the offset past them.

        Returns None when the API answered with an error or an unusable body.
        Raises ValueError when the body is not valid JSON.
        """
        if not self._session:
            logger.error("Telegram client not started — cannot poll updates")
            return None

        params: dict[str, Any] = {"timeout": self._poll_timeout, "allowed_updates": ["message"]}
        if self._offset is not None:
            params["offset"] = self._offset

        timeout = aiohttp.ClientTimeout(total=self._poll_timeout + 10)
        async with self._session.post(f"{self._base_url}/getUpdates", json=params, timeout=timeout) as resp:
            if resp.status != 200:
                body = await resp.text()
                logger.error("getUpdates failed: HTTP %d — %s", resp.status, body)
                return None
            data = await resp.json()

        updates = data.get("result") if isinstance(data, dict) else None
        if not isinstance(updates, list):
            logger.error("getUpdates returned an unexpected body: %.200r", data)
            return None

        updates = [u for u in updates if isinstance(u, dict)]
        update_ids = [u["update_id"] for u in updates if isinstance(u.get("update_id"), int)]
        if update_ids:
            self._offset = max(update_ids) + 1
        return updates

    async def messages(self, retry_delay: float = 5.0) -> AsyncIterator[IncomingMessage]:
        """Yield incoming text messages forever, retrying after errors."""
        while True:
            try:
                updates = await self.get_updates()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning("Telegram polling error: %s — retrying in %.0fs", e, retry_delay)
                await asyncio.sleep(retry_delay)
                continue
            if updates is None:
                await asyncio.sleep(retry_delay)
                continue

            for update in updates:
                message = update.get("message")
                if not isinstance(message, dict):
                    continue
                text = message.get("text")
                chat = message.get("chat")
                chat_id = chat.get("id") if isinstance(chat, dict) else None
                if not isinstance(text, str) or not isinstance(chat_id, int):
                    continue
                yield IncomingMessage(chat_id=chat_id, text=text)
