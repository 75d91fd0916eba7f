"""
White Guard - Telegram Bot API Client
Long polling source and message sender over plain HTTPS.
"""

import logging
from typing import Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class TelegramAPIError(Exception):
    """A Bot API call failed (transport error or ok=false)."""


class TelegramAPI:
    """Thin async wrapper around the Telegram Bot API methods the bot needs."""

    def __init__(self, token: str, api_url: str = "https://api.telegram.org",
                 poll_timeout: int = 60, client: Optional[httpx.AsyncClient] = None):
        self.base_url = f"{api_url.rstrip('/')}/bot{token}"
        self.poll_timeout = poll_timeout
        # Read timeout must outlast the long poll
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(poll_timeout + 15.0, connect=10.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5)
        )

    async def _call(self, method: str, payload: Optional[Dict] = None) -> Dict:
        url = f"{self.base_url}/{method}"
        try:
            response = await self.client.post(url, json=payload or {})
            data = response.json()
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"{method} request failed: {e!r}") from e
        except ValueError as e:
            raise TelegramAPIError(f"{method} HTTP {response.status_code}: invalid JSON") from e

        if not isinstance(data, dict) or not data.get('ok'):
            raise TelegramAPIError(f"{method} HTTP {response.status_code}: {data}")
        return data

    async def get_me(self) -> Dict:
        """Get bot information"""
        data = await self._call("getMe")
        return data.get('result') or {}

    async def delete_webhook(self) -> None:
        """Remove any webhook so getUpdates long polling works."""
        await self._call("deleteWebhook", {'drop_pending_updates': False})

    async def get_updates(self, offset: int) -> List[Dict]:
        payload = {
            'offset': offset,
            'timeout': self.poll_timeout,
            'allowed_updates': ['message'],
        }
        data = await self._call("getUpdates", payload)
        result = data.get('result')
        if not isinstance(result, list):
            raise TelegramAPIError(f"getUpdates returned unexpected result: {result!r}")
        return result

    async def send_message(self, chat_id: int, text: str,
                           reply_to_message_id: Optional[int] = None) -> bool:
        """
        Send a message, optionally as a reply.

        Returns False instead of raising when delivery fails; callers decide
        whether the failure matters.
        """
        payload = {
            'chat_id': chat_id,
            'text': text,
            'parse_mode': 'HTML',
        }
        if reply_to_message_id is not None:
            payload['reply_to_message_id'] = reply_to_message_id
            payload['allow_sending_without_reply'] = True

        try:
            await self._call("sendMessage", payload)
        except TelegramAPIError as e:
            logger.error(f"Error sending message to {chat_id}: {e}")
            return False
        return True

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
