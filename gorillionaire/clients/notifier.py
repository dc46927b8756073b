"""Outbound notifications: Telegram channel posts and the Discord XP webhook."""

from typing import Optional
import httpx
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("Notifier")


class TelegramNotifier:
    def __init__(self, token: str = None, chat_id: str = None):
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID
        self._bot: Optional[Bot] = None

    def is_configured(self) -> bool:
        return bool(self.token and self.chat_id)

    def _get_bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(token=self.token)
        return self._bot

    async def send(self, text: str) -> bool:
        """Post ``text`` to the signals chat. Returns False when not sent."""
        if not self.is_configured():
            logger.debug("Telegram not configured, skipping notification")
            return False
        try:
            await self._get_bot().send_message(int(self.chat_id), text, disable_web_page_preview=True)
            return True
        except (TelegramAPIError, ValueError) as e:
            logger.warn(f"Failed to send Telegram notification: {e}")
            return False

    async def close(self):
        if self._bot:
            await self._bot.session.close()
            self._bot = None


class DiscordXPWebhook:
    """Reports point awards to the community Discord so XP roles stay in sync."""

    def __init__(self, url: str = None, transport: httpx.AsyncBaseTransport = None):
        self.url = url if url is not None else settings.DISCORD_XP_WEBHOOK_URL
        self._transport = transport

    async def report_points(self, address: str, points: int, reason: str) -> bool:
        if not self.url or points <= 0:
            return False
        payload = {
            "username": "Gorillionaire",
            "content": f"🦍 `{address}` earned **{points} XP** ({reason})",
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warn(f"Discord XP webhook failed for {address}: {e}")
            return False


telegram_notifier = TelegramNotifier()
discord_xp_webhook = DiscordXPWebhook()
