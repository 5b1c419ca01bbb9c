"""
Telegram Bot API transport for tier channels.
"""
import logging
from typing import Dict, Iterable, List, Optional

import httpx

logger = logging.getLogger("signal_swarm.services.telegram")

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096


class TelegramClient:
    """Sends messages to the chat configured for each tier."""

    def __init__(
        self,
        bot_token: str,
        chat_ids: Dict[str, str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_ids = chat_ids
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_ids)

    async def send_message(self, chat_id: str, text: str) -> None:
        """Raises httpx.HTTPError when Telegram rejects or cannot be reached."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{TELEGRAM_API_BASE}/bot{self.bot_token}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": text[:MAX_MESSAGE_LENGTH],
                    "disable_web_page_preview": True,
                },
            )
            response.raise_for_status()

    async def send_to_tiers(self, text: str, tiers: Iterable[str]) -> List[str]:
        """Send to every configured tier; returns the tiers that received it.

        A failing tier is logged and skipped so it never blocks the others.
        """
        delivered = []
        for tier in tiers:
            chat_id = self.chat_ids.get(tier)
            if not chat_id:
                logger.warning(f"No Telegram chat configured for tier {tier}, skipping")
                continue
            try:
                await self.send_message(chat_id, text)
            except httpx.HTTPError as e:
                logger.error(f"Telegram delivery to {tier} failed: {e}")
                continue
            delivered.append(tier)
        return delivered
