"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for the external collaborators
of the marketplace services. These protocols enable loose coupling, dependency
injection, and easier testing.

Protocols defined:
- AIScoringClient: AI content scoring and rewriting
- TelegramClient: the subset of the Telegram Bot API the services call
- PaymentGateway: hosted checkout sessions
"""

from typing import Protocol, Optional, List, Dict, Any

from data.models import CheckoutSession


class AIScoringClient(Protocol):
    """Protocol defining the interface for AI-powered content operations."""

    def score(self, title: str, content: str) -> Dict[str, Any]:
        """Score an announcement.

        Returns:
            Dict with isValid, score, issues and optionally feedback,
            factors and suggestions.

        Raises:
            AIServiceError: If the model call or response parsing fails.
        """
        ...

    def enhance(self, title: str, content: str) -> Dict[str, Any]:
        """Rewrite an announcement.

        Returns:
            Dict with enhancedTitle, enhancedContent and improvements.

        Raises:
            AIServiceError: If the model call or response parsing fails.
        """
        ...


class TelegramClient(Protocol):
    """Protocol for the Telegram Bot API methods used by the services.

    Every method returns the "result" member of a successful response and
    raises TelegramAPIError for ok=false or TelegramTransportError when the
    API cannot be reached.
    """

    def get_me(self) -> Dict[str, Any]:
        ...

    def get_chat(self, chat_id: str) -> Dict[str, Any]:
        ...

    def get_chat_member(self, chat_id: str, user_id: int) -> Dict[str, Any]:
        ...

    def get_chat_member_count(self, chat_id: str) -> int:
        ...

    def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        ...

    def send_photo(
        self,
        chat_id: str,
        photo: str,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        ...

    def send_video(
        self,
        chat_id: str,
        video: str,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        ...

    def send_media_group(self, chat_id: str, media: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def set_my_commands(self, commands: List[Dict[str, str]]) -> bool:
        ...

    def set_webhook(self, url: str, allowed_updates: Optional[List[str]] = None) -> bool:
        ...


class PaymentGateway(Protocol):
    """Protocol for a hosted checkout provider."""

    name: str

    def create_checkout_session(
        self,
        amount,
        currency: str,
        success_url: str,
        cancel_url: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> CheckoutSession:
        """Raises PaymentGatewayError on failure."""
        ...

    def get_checkout_session(self, session_id: str) -> CheckoutSession:
        """Raises PaymentGatewayError on failure."""
        ...
