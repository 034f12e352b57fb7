"""
Telegram Bot API Client

Thin requests-based wrapper around the Telegram Bot HTTP API. Every call is
a JSON POST to {base}/bot{token}/{method}; successful calls return the
"result" member of the response.
"""

from typing import Optional, List, Dict, Any

import requests

from config import settings
from utils.exceptions import ConfigurationError, TelegramAPIError, TelegramTransportError
from utils.logger import get_logger

logger = get_logger(__name__)


class TelegramService:
    """Client for the Telegram Bot API."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            bot_token: Bot token, defaults to settings.TELEGRAM_BOT_TOKEN.
            api_base: API root, defaults to settings.TELEGRAM_API_BASE.
            timeout: Per-request timeout in seconds.
            session: Optional requests session (tests inject a mock).

        Raises:
            ConfigurationError: If no bot token is available.
        """
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        if not self.bot_token:
            raise ConfigurationError("Telegram bot token is not configured")
        self.api_base = (api_base or settings.TELEGRAM_API_BASE).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_base}/bot{self.bot_token}/{method}"
        body = {k: v for k, v in (payload or {}).items() if v is not None}

        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Telegram {method} request failed: {e}")
            raise TelegramTransportError(f"Telegram {method} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TelegramTransportError(
                f"Telegram {method} returned non-JSON response (HTTP {response.status_code})"
            ) from e

        if not data.get("ok"):
            description = data.get("description") or f"HTTP {response.status_code}"
            logger.debug(f"Telegram {method} failed: {description}")
            raise TelegramAPIError(description, error_code=data.get("error_code"), method=method)

        return data.get("result")

    def get_me(self) -> Dict[str, Any]:
        return self._call("getMe")

    def get_chat(self, chat_id: str) -> Dict[str, Any]:
        return self._call("getChat", {"chat_id": chat_id})

    def get_chat_member(self, chat_id: str, user_id: int) -> Dict[str, Any]:
        return self._call("getChatMember", {"chat_id": chat_id, "user_id": user_id})

    def get_chat_member_count(self, chat_id: str) -> int:
        return int(self._call("getChatMemberCount", {"chat_id": chat_id}))

    def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self._call("sendMessage", {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "reply_markup": reply_markup,
        })

    def send_photo(
        self,
        chat_id: str,
        photo: str,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self._call("sendPhoto", {
            "chat_id": chat_id,
            "photo": photo,
            "caption": caption,
            "parse_mode": parse_mode,
            "reply_markup": reply_markup,
        })

    def send_video(
        self,
        chat_id: str,
        video: str,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self._call("sendVideo", {
            "chat_id": chat_id,
            "video": video,
            "caption": caption,
            "parse_mode": parse_mode,
            "reply_markup": reply_markup,
        })

    def send_media_group(self, chat_id: str, media: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._call("sendMediaGroup", {"chat_id": chat_id, "media": media})

    def set_my_commands(self, commands: List[Dict[str, str]]) -> bool:
        return bool(self._call("setMyCommands", {"commands": commands}))

    def set_webhook(self, url: str, allowed_updates: Optional[List[str]] = None) -> bool:
        return bool(self._call("setWebhook", {"url": url, "allowed_updates": allowed_updates}))
