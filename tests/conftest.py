"""
Shared Test Fixtures for the Announcement Marketplace

This module provides common fixtures used across all test modules.
Fixtures include mocks for settings, database connections, logging,
HTTP responses, data factories, and an in-memory storage backend that
implements the storage protocols.
"""

import copy
import pytest
from contextlib import contextmanager
from decimal import Decimal
from unittest.mock import MagicMock, patch
from typing import Optional, Dict, Any, List
import sys
import os

import pandas as pd

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import (
    Announcement, AnnouncementCommunity, AnnouncementStatus, ApprovalStatus,
    BotCommand, CheckoutSession, Community, CommunityEarning, Payment,
    PaymentStatus, Platform, PlatformSettings, Profile
)
from utils.exceptions import QueryError


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def mock_settings():
    """
    Mock the settings module with test configuration values.

    This fixture patches the config.settings module with safe test values,
    preventing tests from accessing real API keys or database credentials.

    Returns:
        MagicMock: A mock settings object with default test values.
    """
    import config.settings  # patch target must be loaded

    with patch('config.settings') as mock_settings_module:
        mock_settings_module.GOOGLE_AI_API_KEY = "test-google-api-key"
        mock_settings_module.TELEGRAM_BOT_TOKEN = "123:test-token"
        mock_settings_module.TELEGRAM_BOT_USERNAME = "test_bot"
        mock_settings_module.TELEGRAM_API_BASE = "https://api.telegram.test"
        mock_settings_module.COPPERX_API_KEY = "test-copperx-key"
        mock_settings_module.COPPERX_API_BASE = "https://copperx.test/api/v1"
        mock_settings_module.PAYMENT_DEMO_MODE = False

        # Database Settings
        mock_settings_module.DB_SERVER = "test-server"
        mock_settings_module.DB_NAME = "test-db"
        mock_settings_module.DB_USER = "test-user"
        mock_settings_module.DB_PASSWORD = "test-password"
        mock_settings_module.DB_CONNECTION_STRING = "DRIVER={Test};SERVER=test-server;DATABASE=test-db;"

        # Validation Settings
        mock_settings_module.MIN_TITLE_LENGTH = 10
        mock_settings_module.MIN_CONTENT_LENGTH = 50
        mock_settings_module.LOCAL_REJECTION_SCORE = 0.4
        mock_settings_module.DEFAULT_AI_SCORE = 0.65
        mock_settings_module.AI_SCORE_WEIGHT = 0.7
        mock_settings_module.FACTOR_SCORE_WEIGHT = 0.3
        mock_settings_module.FACTOR_WEIGHTS = {
            "length": 0.15, "clarity": 0.25, "relevance": 0.20,
            "engagement": 0.25, "compliance": 0.15,
        }
        mock_settings_module.BANNED_TERMS = ["scam", "guaranteed profit"]

        # Payment and HTTP Settings
        mock_settings_module.DEFAULT_PLATFORM_FEE = 1.0
        mock_settings_module.DEFAULT_CURRENCY = "USDT"
        mock_settings_module.TELEGRAM_CAPTION_LIMIT = 1024
        mock_settings_module.HTTP_TIMEOUT_SECONDS = 5.0
        mock_settings_module.DEFAULT_AI_MODELS = ['gemini-2.0-flash', 'gemini-2.0-flash-lite']

        yield mock_settings_module


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def mock_db_connection():
    """
    Mock pyodbc database connection and cursor.

    Usage:
        def test_database(mock_db_connection):
            conn, cursor = mock_db_connection
            cursor.fetchall.return_value = [('row1',), ('row2',)]

    Returns:
        tuple: A tuple of (mock_connection, mock_cursor).
    """
    mock_cursor = MagicMock()
    mock_cursor.description = [('column1',), ('column2',)]
    mock_cursor.fetchall.return_value = []
    mock_cursor.fetchone.return_value = None
    mock_cursor.rowcount = 0

    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    mock_conn.commit.return_value = None
    mock_conn.rollback.return_value = None
    mock_conn.close.return_value = None

    with patch('pyodbc.connect', return_value=mock_conn):
        yield mock_conn, mock_cursor


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler.records

    root_logger.removeHandler(handler)
    root_logger.setLevel(original_level)


# =============================================================================
# HTTP Response Fixtures
# =============================================================================

@pytest.fixture
def mock_http_response():
    """
    Factory fixture for creating mock HTTP responses.

    Usage:
        def test_http_request(mock_http_response):
            response = mock_http_response(status_code=200, json_data={'ok': True})

    Returns:
        callable: A factory function for creating mock responses.
    """
    def _create_response(
        status_code: int = 200,
        json_data: Optional[Dict[str, Any]] = None,
        text: str = '',
        raise_for_status: bool = False
    ) -> MagicMock:
        import json

        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.ok = 200 <= status_code < 300
        mock_response.text = text or (json.dumps(json_data) if json_data is not None else '')

        if json_data is not None:
            mock_response.json.return_value = json_data
        else:
            mock_response.json.side_effect = ValueError("No JSON data")

        if raise_for_status or status_code >= 400:
            from requests.exceptions import HTTPError
            mock_response.raise_for_status.side_effect = HTTPError(
                f"{status_code} Error",
                response=mock_response
            )
        else:
            mock_response.raise_for_status.return_value = None

        return mock_response

    return _create_response


@pytest.fixture
def telegram_ok(mock_http_response):
    """Factory for successful Bot API responses."""
    def _ok(result: Any = True):
        return mock_http_response(json_data={"ok": True, "result": result})
    return _ok


@pytest.fixture
def telegram_error(mock_http_response):
    """Factory for failed Bot API responses."""
    def _error(description: str = "Bad Request: chat not found", error_code: int = 400):
        return mock_http_response(
            status_code=error_code,
            json_data={"ok": False, "error_code": error_code, "description": description}
        )
    return _error


# =============================================================================
# Data Model Factories
# =============================================================================

@pytest.fixture
def announcement_factory():
    """
    Factory fixture for creating Announcement test objects.

    Returns:
        callable: A factory function for creating Announcement objects.
    """
    counter = {"n": 0}

    def _create_announcement(
        id: Optional[str] = None,
        user_id: str = "user-1",
        title: str = "Join our DeFi Trading Community Today",
        content: str = ("We provide real-time trading signals and educational resources "
                        "for new and experienced traders alike."),
        status: AnnouncementStatus = AnnouncementStatus.DRAFT,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        **kwargs
    ) -> Announcement:
        counter["n"] += 1
        return Announcement(
            id=id or f"ann-{counter['n']}",
            user_id=user_id,
            title=title,
            content=content,
            status=status,
            payment_status=payment_status,
            **kwargs
        )

    return _create_announcement


@pytest.fixture
def community_factory():
    """
    Factory fixture for creating Community test objects.

    Returns:
        callable: A factory function for creating Community objects.
    """
    counter = {"n": 0}

    def _create_community(
        id: Optional[str] = None,
        name: Optional[str] = None,
        platform: Platform = Platform.TELEGRAM,
        price: str = "30.00",
        platform_id: Optional[str] = "@testgroup",
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
        **kwargs
    ) -> Community:
        counter["n"] += 1
        return Community(
            id=id or f"com-{counter['n']}",
            name=name or f"Community {counter['n']}",
            platform=platform,
            owner_id="owner-1",
            price_per_announcement=Decimal(price),
            platform_id=platform_id,
            approval_status=approval_status,
            **kwargs
        )

    return _create_community


# =============================================================================
# Dependency Injection Fixtures
# =============================================================================

class InMemoryStorage:
    """In-memory implementation of every storage protocol.

    transaction() snapshots all tables and restores them if the block
    raises, so rollback behavior can be asserted. Setting fail_on to a
    method name makes that method report failure (return False).
    """

    def __init__(self):
        self.announcements: Dict[str, Announcement] = {}
        self.communities: Dict[str, Community] = {}
        self.links: List[AnnouncementCommunity] = []
        self.payments: Dict[str, Payment] = {}
        self.earnings: List[CommunityEarning] = []
        self.profiles: Dict[str, Profile] = {}
        self.bot_commands: Dict[str, BotCommand] = {}
        self.platform = PlatformSettings(
            platform_fee=Decimal("1.00"),
            telegram_bot_token="123:test-token",
            telegram_bot_username="test_bot",
        )
        self.fail_on = set()
        self.transactions = 0
        self.rollbacks = 0
        self._next_link = 1

    _TABLES = ("announcements", "communities", "links", "payments", "earnings", "profiles", "bot_commands")

    @contextmanager
    def transaction(self):
        snapshot = {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}
        self.transactions += 1
        try:
            yield self
        except Exception:
            self.rollbacks += 1
            for name, value in snapshot.items():
                setattr(self, name, value)
            raise

    def _ok(self, method: str) -> bool:
        return method not in self.fail_on

    # Announcements
    def insert_announcement(self, announcement):
        if not self._ok("insert_announcement"):
            return False
        self.announcements[announcement.id] = copy.deepcopy(announcement)
        return True

    def get_announcement(self, announcement_id):
        found = self.announcements.get(announcement_id)
        return copy.deepcopy(found) if found else None

    def update_announcement(self, announcement):
        if not self._ok("update_announcement"):
            return False
        self.announcements[announcement.id] = copy.deepcopy(announcement)
        return True

    def list_announcements_for_review(self, status=AnnouncementStatus.PENDING_APPROVAL):
        rows = []
        for a in self.announcements.values():
            if a.status == status:
                profile = self.profiles.get(a.user_id)
                rows.append({"id": a.id, "title": a.title, "user_id": a.user_id,
                             "owner_name": profile.name if profile else None})
        return rows

    def link_communities(self, announcement_id, community_ids):
        existing = {l.community_id for l in self.links if l.announcement_id == announcement_id}
        created = 0
        for community_id in community_ids:
            if community_id in existing:
                continue
            self.links.append(AnnouncementCommunity(
                id=f"link-{self._next_link}", announcement_id=announcement_id, community_id=community_id
            ))
            self._next_link += 1
            existing.add(community_id)
            created += 1
        return created

    def replace_communities(self, announcement_id, community_ids):
        ids = list(dict.fromkeys(community_ids))
        self.links = [
            l for l in self.links
            if l.announcement_id != announcement_id or l.community_id in ids
        ]
        return self.link_communities(announcement_id, ids)

    def get_announcement_communities(self, announcement_id):
        return [copy.deepcopy(l) for l in self.links if l.announcement_id == announcement_id]

    def update_delivery(self, announcement_id, community_id, delivered, delivery_log):
        for link in self.links:
            if link.announcement_id == announcement_id and link.community_id == community_id:
                link.delivered = delivered
                link.delivery_log = delivery_log
                return True
        return False

    def link(self, announcement_id, community_id):
        return next(l for l in self.links if l.announcement_id == announcement_id and l.community_id == community_id)

    # Communities
    def add_community(self, community):
        self.communities[community.id] = community
        return community

    def get_community(self, community_id):
        return self.communities.get(community_id)

    def get_communities(self, community_ids):
        return [self.communities[i] for i in dict.fromkeys(community_ids) if i in self.communities]

    def list_communities(self, approval_status=None, platform=None):
        return [
            c for c in self.communities.values()
            if (approval_status is None or c.approval_status == approval_status)
            and (platform is None or c.platform == platform)
        ]

    def find_community_by_platform_id(self, platform, platform_ids):
        ids = set(platform_ids)
        for c in self.communities.values():
            if c.platform == platform and c.platform_id in ids:
                return c
        return None

    def update_community_platform_id(self, community_id, platform_id):
        self.communities[community_id].platform_id = platform_id
        return True

    def update_community_reach(self, community_id, reach):
        self.communities[community_id].reach = reach
        return True

    # Payments
    def insert_payment(self, payment):
        if not self._ok("insert_payment"):
            return False
        self.payments[payment.id] = copy.deepcopy(payment)
        return True

    def get_payment(self, payment_id):
        found = self.payments.get(payment_id)
        return copy.deepcopy(found) if found else None

    def get_payment_by_session(self, session_id):
        for p in self.payments.values():
            if p.payment_session_id == session_id:
                return copy.deepcopy(p)
        return None

    def get_pending_payment(self, announcement_id):
        for p in self.payments.values():
            if p.announcement_id == announcement_id and p.status == PaymentStatus.PENDING:
                return copy.deepcopy(p)
        return None

    def update_payment_session(self, payment_id, session_id, gateway):
        self.payments[payment_id].payment_session_id = session_id
        self.payments[payment_id].payment_gateway = gateway
        return True

    def update_payment_status(self, payment_id, status, transaction_hash=None):
        if not self._ok("update_payment_status"):
            return False
        self.payments[payment_id].status = status
        if transaction_hash:
            self.payments[payment_id].transaction_hash = transaction_hash
        return True

    def insert_earning(self, earning):
        if "insert_earning" in self.fail_on:
            raise QueryError("simulated insert failure")
        self.earnings.append(earning)
        return True

    def earnings_exist_for_payment(self, payment_id):
        return any(e.payment_id == payment_id for e in self.earnings)

    # Settings, profiles, commands
    def get_platform_settings(self):
        return copy.deepcopy(self.platform)

    def update_bot_username(self, username):
        self.platform.telegram_bot_username = username
        return True

    def get_profile(self, user_id):
        return self.profiles.get(user_id)

    def update_profile_wallet(self, user_id, wallet_address):
        profile = self.profiles.setdefault(user_id, Profile(id=user_id))
        profile.wallet_address = wallet_address
        return True

    def upsert_bot_command(self, command):
        self.bot_commands[command.command] = command
        return True

    def list_bot_commands(self):
        return list(self.bot_commands.values())

    # Analytics
    def increment_link_counter(self, announcement_id, community_id, counter):
        link = self.link(announcement_id, community_id)
        setattr(link, counter, getattr(link, counter) + 1)
        return True

    def get_campaign_stats(self, announcement_id):
        rows = []
        for link in self.links:
            if link.announcement_id != announcement_id:
                continue
            c = self.communities[link.community_id]
            rows.append({"community_id": c.id, "name": c.name, "platform": c.platform.value,
                         "reach": c.reach, "delivered": link.delivered,
                         "views": link.views, "clicks": link.clicks})
        return pd.DataFrame(rows)

    def get_user_summary(self, user_id):
        mine = [a for a in self.announcements.values() if a.user_id == user_id]
        ids = {a.id for a in mine}
        return {
            "announcements": len(mine),
            "published": sum(1 for a in mine if a.status == AnnouncementStatus.PUBLISHED),
            "views": sum(l.views for l in self.links if l.announcement_id in ids),
            "clicks": sum(l.clicks for l in self.links if l.announcement_id in ids),
            "spend": sum(p.amount for p in self.payments.values()
                         if p.user_id == user_id and p.status == PaymentStatus.PAID),
        }


@pytest.fixture
def storage():
    """Provide an empty InMemoryStorage."""
    return InMemoryStorage()


class FakeGateway:
    """Checkout gateway double that records sessions."""

    name = "FAKE"

    def __init__(self):
        self.created = []
        self.statuses: Dict[str, str] = {}
        self.fail = False
        self.tx_hash = "0xabc123"

    def create_checkout_session(self, amount, currency, success_url, cancel_url=None, metadata=None):
        from utils.exceptions import PaymentGatewayError
        if self.fail:
            raise PaymentGatewayError("gateway down")
        session_id = f"sess-{len(self.created) + 1}"
        self.created.append({"amount": amount, "currency": currency, "success_url": success_url,
                             "metadata": metadata, "session_id": session_id})
        self.statuses[session_id] = "open"
        return CheckoutSession(session_id=session_id, url=f"https://checkout.test/{session_id}", status="open")

    def get_checkout_session(self, session_id):
        return CheckoutSession(session_id=session_id, status=self.statuses.get(session_id),
                               transaction_hash=self.tx_hash)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mock_telegram():
    """
    MagicMock standing in for a TelegramClient.

    Sends succeed with incrementing message ids; getMe returns a bot user.
    """
    telegram = MagicMock()
    counter = {"n": 100}

    def _message(*args, **kwargs):
        counter["n"] += 1
        return {"message_id": counter["n"], "chat": {"id": args[0] if args else None}}

    telegram.get_me.return_value = {"id": 999, "is_bot": True, "username": "test_bot"}
    telegram.send_message.side_effect = _message
    telegram.send_photo.side_effect = _message
    telegram.send_video.side_effect = _message
    telegram.send_media_group.return_value = [{"message_id": 1}, {"message_id": 2}]
    return telegram
