"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for data layer operations.
These protocols enable dependency injection for database operations,
making services testable without real database connections.

Protocols defined:
- AnnouncementStorage: announcements and their community links
- CommunityStorage: community lookup and self-healing updates
- PaymentStorage: payments, earnings and the transaction boundary
- SettingsStorage: the platform settings singleton
- ProfileStorage: user profiles and linked wallets
- BotCommandStorage: the bot command registry
- AnalyticsStorage: view/click counters and reporting queries
"""

from typing import Protocol, Optional, List, Dict, Any, ContextManager, Iterable

import pandas as pd

from data.models import (
    Announcement, AnnouncementCommunity, AnnouncementStatus, ApprovalStatus,
    BotCommand, Community, CommunityEarning, Payment, PaymentStatus,
    Platform, PlatformSettings, Profile
)


class AnnouncementStorage(Protocol):
    """Protocol defining the interface for announcement persistence."""

    def insert_announcement(self, announcement: Announcement) -> bool:
        ...

    def get_announcement(self, announcement_id: str) -> Optional[Announcement]:
        ...

    def update_announcement(self, announcement: Announcement) -> bool:
        """Persist every mutable column of the announcement (last write wins)."""
        ...

    def list_announcements_for_review(
        self,
        status: AnnouncementStatus = AnnouncementStatus.PENDING_APPROVAL
    ) -> List[Dict[str, Any]]:
        """Announcements in a status, joined with the owner's profile name."""
        ...

    def link_communities(self, announcement_id: str, community_ids: Iterable[str]) -> int:
        """Create links that do not exist yet.

        Returns:
            Number of links created.
        """
        ...

    def replace_communities(self, announcement_id: str, community_ids: Iterable[str]) -> int:
        """Drop links outside the selection, then create the missing ones."""
        ...

    def get_announcement_communities(self, announcement_id: str) -> List[AnnouncementCommunity]:
        ...

    def update_delivery(
        self,
        announcement_id: str,
        community_id: str,
        delivered: bool,
        delivery_log: Dict[str, Any]
    ) -> bool:
        ...


class CommunityStorage(Protocol):
    """Protocol defining the interface for community persistence."""

    def get_community(self, community_id: str) -> Optional[Community]:
        ...

    def get_communities(self, community_ids: Iterable[str]) -> List[Community]:
        ...

    def list_communities(
        self,
        approval_status: Optional[ApprovalStatus] = None,
        platform: Optional[Platform] = None
    ) -> List[Community]:
        ...

    def find_community_by_platform_id(
        self,
        platform: Platform,
        platform_ids: Iterable[str]
    ) -> Optional[Community]:
        ...

    def update_community_platform_id(self, community_id: str, platform_id: str) -> bool:
        ...

    def update_community_reach(self, community_id: str, reach: int) -> bool:
        ...


class PaymentStorage(Protocol):
    """Protocol defining the interface for payment persistence.

    transaction() groups the calls made inside it: all of them commit
    together on normal exit and all roll back if the block raises.
    """

    def transaction(self) -> ContextManager[Any]:
        ...

    def insert_payment(self, payment: Payment) -> bool:
        ...

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        ...

    def get_payment_by_session(self, session_id: str) -> Optional[Payment]:
        ...

    def get_pending_payment(self, announcement_id: str) -> Optional[Payment]:
        ...

    def update_payment_session(self, payment_id: str, session_id: str, gateway: str) -> bool:
        ...

    def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        transaction_hash: Optional[str] = None
    ) -> bool:
        ...

    def insert_earning(self, earning: CommunityEarning) -> bool:
        ...

    def earnings_exist_for_payment(self, payment_id: str) -> bool:
        ...


class SettingsStorage(Protocol):
    """Protocol for the platform settings singleton (id = 1)."""

    def get_platform_settings(self) -> PlatformSettings:
        ...

    def update_bot_username(self, username: str) -> bool:
        ...


class ProfileStorage(Protocol):

    def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    def update_profile_wallet(self, user_id: str, wallet_address: str) -> bool:
        ...


class BotCommandStorage(Protocol):

    def upsert_bot_command(self, command: BotCommand) -> bool:
        ...

    def list_bot_commands(self) -> List[BotCommand]:
        ...


class AnalyticsStorage(Protocol):

    def increment_link_counter(self, announcement_id: str, community_id: str, counter: str) -> bool:
        """Atomically add one to the link's 'views' or 'clicks' column."""
        ...

    def get_campaign_stats(self, announcement_id: str) -> Optional[pd.DataFrame]:
        ...

    def get_user_summary(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...
