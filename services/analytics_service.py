"""
Analytics Service

Tracks views and clicks per announcement-community link and builds campaign
reports with pandas. Community statistics come straight from Telegram;
nothing is estimated.
"""

from typing import Optional, Dict, Any

import pandas as pd

from data.models import Community, Platform
from data.protocols import AnalyticsStorage, CommunityStorage
from services.protocols import TelegramClient
from utils.exceptions import InputValidationError, TelegramAPIError
from utils.logger import get_logger

logger = get_logger(__name__)

REPORT_COLUMNS = ["community_id", "name", "platform", "reach", "delivered", "views", "clicks", "ctr"]


class AnalyticsService:
    """Engagement tracking and reporting."""

    def __init__(
        self,
        storage: AnalyticsStorage,
        community_storage: Optional[CommunityStorage] = None,
        telegram: Optional[TelegramClient] = None
    ):
        self.storage = storage
        self.community_storage = community_storage
        self.telegram = telegram

    def record_view(self, announcement_id: str, community_id: str) -> bool:
        return self.storage.increment_link_counter(announcement_id, community_id, "views")

    def record_click(self, announcement_id: str, community_id: str) -> bool:
        return self.storage.increment_link_counter(announcement_id, community_id, "clicks")

    def campaign_report(self, announcement_id: str) -> pd.DataFrame:
        """
        Per-community delivery and engagement for one announcement.

        Returns:
            pd.DataFrame: One row per linked community with a click-through rate
            column; empty with the report columns if nothing is linked.
        """
        stats = self.storage.get_campaign_stats(announcement_id)
        if stats is None or stats.empty:
            return pd.DataFrame(columns=REPORT_COLUMNS)

        report = stats.copy()
        report["views"] = report["views"].fillna(0).astype(int)
        report["clicks"] = report["clicks"].fillna(0).astype(int)
        report["ctr"] = (report["clicks"] / report["views"].where(report["views"] > 0)).fillna(0.0).round(4)
        return report[[c for c in REPORT_COLUMNS if c in report.columns]]

    def user_summary(self, user_id: str) -> Dict[str, Any]:
        row = self.storage.get_user_summary(user_id) or {}
        views = int(row.get("views") or 0)
        clicks = int(row.get("clicks") or 0)
        return {
            "announcements": int(row.get("announcements") or 0),
            "published": int(row.get("published") or 0),
            "views": views,
            "clicks": clicks,
            "ctr": round(clicks / views, 4) if views else 0.0,
            "spend": float(row.get("spend") or 0),
        }

    def community_analytics(self, community: Community) -> Dict[str, Any]:
        """
        Live member count and chat details for a Telegram community.

        Writes the member count back to the community's reach when positive.

        Raises:
            InputValidationError: If the community is not a Telegram community with a platform ID.
        """
        if community.platform != Platform.TELEGRAM or not community.platform_id:
            raise InputValidationError("Analytics are only available for Telegram communities with a platform ID")
        if self.telegram is None:
            raise InputValidationError("No Telegram client configured")

        result = {"community_id": community.id, "member_count": None, "title": None, "type": None}
        try:
            count = self.telegram.get_chat_member_count(community.platform_id)
            result["member_count"] = count
            if count > 0 and self.community_storage is not None:
                self.community_storage.update_community_reach(community.id, count)
        except TelegramAPIError as e:
            logger.warning(f"Member count unavailable for '{community.name}': {e.description}")

        try:
            chat = self.telegram.get_chat(community.platform_id)
            result["title"] = chat.get("title")
            result["type"] = chat.get("type")
            result["description"] = chat.get("description")
        except TelegramAPIError as e:
            logger.warning(f"Chat info unavailable for '{community.name}': {e.description}")

        return result
