"""
Distribution Dispatcher

Delivers a published announcement to each target community's chat and
records the outcome on the announcement-community link. Only Telegram is
wired; other platforms are skipped without error.
"""

import html
import os
from typing import Optional, List, Dict, Any, Iterable
from urllib.parse import urlparse

from config import settings
from data.models import Announcement, Community, DeliveryResult, DispatchSummary, Platform
from data.protocols import AnnouncementStorage
from services.protocols import TelegramClient
from utils.exceptions import PlatformError, TelegramAPIError
from utils.helpers import truncate_text
from utils.logger import get_logger

logger = get_logger(__name__)

PARSE_MODE = "HTML"


def render_message(announcement: Announcement, max_length: Optional[int] = None) -> str:
    """
    Render the announcement body as Telegram HTML.

    Content is shortened with an ellipsis so the escaped message fits in
    max_length (settings.TELEGRAM_MESSAGE_LIMIT by default).
    """
    max_length = max_length or settings.TELEGRAM_MESSAGE_LIMIT
    header = f"📢 <b>{html.escape(announcement.title.strip())}</b>\n\n"
    budget = max_length - len(header)

    raw = announcement.content.strip()
    content = html.escape(raw)
    while content and len(content) > budget:
        keep = len(raw) - (len(content) - budget)
        if keep <= 3:
            raw = ""
        else:
            raw = truncate_text(raw, keep)
        content = html.escape(raw)
    return header + content


def render_cta(announcement: Announcement) -> Optional[Dict[str, Any]]:
    """Inline keyboard with a single URL button, or None without a CTA URL."""
    if not announcement.cta_url:
        return None
    label = (announcement.cta_text or "").strip() or settings.DEFAULT_CTA_LABEL
    return {"inline_keyboard": [[{"text": label, "url": announcement.cta_url}]]}


def is_video(url: str) -> bool:
    path = urlparse(url).path.lower()
    return os.path.splitext(path)[1] in settings.VIDEO_EXTENSIONS


class DistributionDispatcher:
    """Sends announcements to community chats."""

    def __init__(
        self,
        telegram: TelegramClient,
        announcement_storage: Optional[AnnouncementStorage] = None,
        caption_limit: Optional[int] = None
    ):
        """
        Args:
            telegram: Bot API client built with the current platform bot token.
            announcement_storage: Receives delivery outcomes; None disables recording.
            caption_limit: Defaults to settings.TELEGRAM_CAPTION_LIMIT.
        """
        self.telegram = telegram
        self.announcement_storage = announcement_storage
        self.caption_limit = caption_limit or settings.TELEGRAM_CAPTION_LIMIT

    def _send(self, chat_id: str, announcement: Announcement, text: str,
              reply_markup: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Send one announcement to one chat and return the primary message."""
        primary = announcement.primary_media
        if not primary:
            return self.telegram.send_message(chat_id, text, parse_mode=PARSE_MODE, reply_markup=reply_markup)

        send_media = self.telegram.send_video if is_video(primary) else self.telegram.send_photo
        if len(text) <= self.caption_limit:
            result = send_media(chat_id, primary, caption=text, parse_mode=PARSE_MODE, reply_markup=reply_markup)
        else:
            send_media(chat_id, primary)
            result = self.telegram.send_message(chat_id, text, parse_mode=PARSE_MODE, reply_markup=reply_markup)

        extra = announcement.media_urls[1:]
        if extra:
            media = [{"type": "video" if is_video(url) else "photo", "media": url} for url in extra]
            try:
                if len(media) == 1:
                    # sendMediaGroup needs at least two items
                    item = media[0]
                    if item["type"] == "video":
                        self.telegram.send_video(chat_id, item["media"])
                    else:
                        self.telegram.send_photo(chat_id, item["media"])
                else:
                    self.telegram.send_media_group(chat_id, media)
            except PlatformError as e:
                logger.warning(f"Additional media for announcement {announcement.id} not sent to {chat_id}: {e}")

        return result

    def _record(self, announcement_id: str, community_id: str, delivered: bool, log: Dict[str, Any]) -> None:
        if self.announcement_storage is None:
            return
        if not self.announcement_storage.update_delivery(announcement_id, community_id, delivered, log):
            logger.error(f"Could not record delivery outcome for community {community_id}")

    def dispatch(self, announcement: Announcement, communities: Iterable[Community]) -> DispatchSummary:
        """
        Deliver an announcement to the Telegram communities among the targets.

        Args:
            announcement: The announcement to send.
            communities: Target communities; non-Telegram ones are skipped.

        Returns:
            DispatchSummary: One result per Telegram community.
        """
        text = render_message(announcement)
        reply_markup = render_cta(announcement)
        summary = DispatchSummary()

        for community in communities:
            if community.platform.value not in settings.SUPPORTED_DISPATCH_PLATFORMS:
                logger.info(f"Skipping community '{community.name}': {community.platform.value} delivery is not supported")
                continue

            if not community.platform_id:
                error = "Missing platform ID"
                self._record(announcement.id, community.id, False, {"error": error})
                summary.results.append(DeliveryResult(community_id=community.id, success=False, error=error))
                continue

            try:
                message = self._send(community.platform_id, announcement, text, reply_markup)
            except TelegramAPIError as e:
                error = e.description
            except PlatformError as e:
                error = str(e)
            else:
                self._record(announcement.id, community.id, True, message)
                summary.results.append(DeliveryResult(
                    community_id=community.id,
                    success=True,
                    message_id=message.get("message_id")
                ))
                logger.info(f"Delivered announcement {announcement.id} to '{community.name}'")
                continue

            logger.warning(f"Delivery to '{community.name}' failed: {error}")
            self._record(announcement.id, community.id, False, {"error": error})
            summary.results.append(DeliveryResult(community_id=community.id, success=False, error=error))

        logger.info(f"Dispatch of announcement {announcement.id}: {summary.describe()}")
        return summary

    def broadcast(self, text: str, communities: Iterable[Community]) -> DispatchSummary:
        """
        Send a free-text admin message to Telegram communities.

        Args:
            text: HTML-formatted message.
            communities: Target communities; non-Telegram ones are skipped.

        Returns:
            DispatchSummary: One result per Telegram community.
        """
        summary = DispatchSummary()
        for community in communities:
            if community.platform != Platform.TELEGRAM:
                continue
            if not community.platform_id:
                summary.results.append(DeliveryResult(community.id, False, error="Missing platform ID"))
                continue
            try:
                message = self.telegram.send_message(community.platform_id, text, parse_mode=PARSE_MODE)
                summary.results.append(DeliveryResult(community.id, True, message_id=message.get("message_id")))
            except TelegramAPIError as e:
                summary.results.append(DeliveryResult(community.id, False, error=e.description))
            except PlatformError as e:
                summary.results.append(DeliveryResult(community.id, False, error=str(e)))

        logger.info(f"Broadcast: {summary.describe()}")
        return summary


def failed_results(summary: DispatchSummary) -> List[DeliveryResult]:
    return [r for r in summary.results if not r.success]
