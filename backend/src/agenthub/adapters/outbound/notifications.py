"""Telegram notification channel.

Fire-and-forget: ``send`` reports success as a bool and never raises, so a
broken bot token or network outage cannot fail a credit or AI flow.
"""

from __future__ import annotations

import httpx
import structlog

from agenthub.ports.outbound import NotificationPort

logger = structlog.get_logger(__name__)


class TelegramNotifier(NotificationPort):
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def send(self, text: str) -> bool:
        if not self.enabled:
            logger.debug("telegram_disabled")
            return False
        try:
            response = await self._client.post(
                f"{self._api_base}/bot{self._bot_token}/sendMessage",
                json={"chat_id": self._chat_id, "text": text, "parse_mode": "HTML"},
            )
        except httpx.HTTPError as exc:
            logger.warning("telegram_send_failed", error=str(exc))
            return False

        if response.status_code >= 400:
            logger.warning(
                "telegram_api_error",
                status=response.status_code,
                body=response.text[:200],
            )
            return False
        logger.info("telegram_message_sent", text_length=len(text))
        return True

    async def close(self) -> None:
        await self._client.aclose()
