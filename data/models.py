"""
Data Models for the Announcement Marketplace

This module contains data classes and enums used throughout the application.
Row-mapping helpers (from_row) accept the dictionaries returned by
DatabaseConnection.execute_query.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any

from utils.helpers import load_json, to_money


class AnnouncementStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"


ALLOWED_TRANSITIONS = {
    AnnouncementStatus.DRAFT: {AnnouncementStatus.PENDING_VALIDATION},
    AnnouncementStatus.PENDING_VALIDATION: {
        AnnouncementStatus.VALIDATION_FAILED,
        AnnouncementStatus.PENDING_APPROVAL,
    },
    AnnouncementStatus.VALIDATION_FAILED: {
        AnnouncementStatus.DRAFT,
        AnnouncementStatus.PENDING_VALIDATION,
    },
    AnnouncementStatus.PENDING_APPROVAL: {
        AnnouncementStatus.PUBLISHED,
        AnnouncementStatus.REJECTED,
    },
    AnnouncementStatus.PUBLISHED: set(),
    AnnouncementStatus.REJECTED: set(),
}


def can_transition(current: AnnouncementStatus, target: AnnouncementStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class Platform(str, Enum):
    TELEGRAM = "TELEGRAM"
    DISCORD = "DISCORD"
    WHATSAPP = "WHATSAPP"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass
class FactorScore:
    """One weighted factor of the content score."""
    weight: float
    score: float

    def to_dict(self) -> Dict[str, float]:
        return {"weight": self.weight, "score": self.score}


@dataclass
class ValidationVerdict:
    """Outcome of content validation, persisted as JSON on the announcement."""
    is_valid: bool
    score: float                                   # 0..1
    issues: List[str] = field(default_factory=list)
    feedback: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    factors: Optional[Dict[str, FactorScore]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "isValid": self.is_valid,
            "score": self.score,
            "issues": list(self.issues),
            "feedback": self.feedback,
            "suggestions": list(self.suggestions),
        }
        if self.factors:
            data["factors"] = {name: f.to_dict() for name, f in self.factors.items()}
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ValidationVerdict"]:
        if not data:
            return None
        factors = None
        if isinstance(data.get("factors"), dict):
            factors = {
                name: FactorScore(weight=float(f.get("weight", 0)), score=float(f.get("score", 0)))
                for name, f in data["factors"].items()
                if isinstance(f, dict)
            }
        return cls(
            is_valid=bool(data.get("isValid", False)),
            score=float(data.get("score", 0.0)),
            issues=list(data.get("issues") or []),
            feedback=data.get("feedback"),
            suggestions=list(data.get("suggestions") or []),
            factors=factors,
        )


@dataclass
class Announcement:
    """A paid broadcast message and its lifecycle state."""
    id: str
    user_id: str
    title: str
    content: str
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None
    media_urls: List[str] = field(default_factory=list)  # first item is primary
    status: AnnouncementStatus = AnnouncementStatus.DRAFT
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_waived: bool = False
    validation_result: Optional[ValidationVerdict] = None
    impressions: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def primary_media(self) -> Optional[str]:
        return self.media_urls[0] if self.media_urls else None

    @property
    def has_cta(self) -> bool:
        return bool(self.cta_url)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Announcement":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row.get("title") or "",
            content=row.get("content") or "",
            cta_text=row.get("cta_text"),
            cta_url=row.get("cta_url"),
            media_urls=load_json(row.get("media_urls"), []),
            status=AnnouncementStatus(row.get("status") or "DRAFT"),
            payment_status=PaymentStatus(row.get("payment_status") or "PENDING"),
            payment_waived=bool(row.get("payment_waived")),
            validation_result=ValidationVerdict.from_dict(load_json(row.get("validation_result"))),
            impressions=row.get("impressions") or 0,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class Community:
    """A chat group that can receive announcements."""
    id: str
    name: str
    platform: Platform
    owner_id: str
    price_per_announcement: Decimal = Decimal("0.00")
    platform_id: Optional[str] = None
    reach: Optional[int] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    wallet_address: Optional[str] = None
    region: List[str] = field(default_factory=list)
    focus_areas: List[str] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def is_selectable(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Community":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            platform=Platform(row.get("platform") or "TELEGRAM"),
            owner_id=row.get("owner_id"),
            price_per_announcement=to_money(row.get("price_per_announcement")),
            platform_id=row.get("platform_id"),
            reach=row.get("reach"),
            approval_status=ApprovalStatus(row.get("approval_status") or "PENDING"),
            wallet_address=row.get("wallet_address"),
            region=load_json(row.get("region"), []),
            focus_areas=load_json(row.get("focus_areas"), []),
            description=row.get("description"),
        )


@dataclass
class AnnouncementCommunity:
    """Link between an announcement and a target community, with delivery outcome."""
    id: str
    announcement_id: str
    community_id: str
    delivered: Optional[bool] = None
    delivery_log: Optional[Dict[str, Any]] = None
    views: int = 0
    clicks: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AnnouncementCommunity":
        delivered = row.get("delivered")
        return cls(
            id=row["id"],
            announcement_id=row["announcement_id"],
            community_id=row["community_id"],
            delivered=None if delivered is None else bool(delivered),
            delivery_log=load_json(row.get("delivery_log")),
            views=row.get("views") or 0,
            clicks=row.get("clicks") or 0,
        )


@dataclass
class Payment:
    id: str
    amount: Decimal
    currency: str
    user_id: str
    announcement_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_hash: Optional[str] = None
    payment_session_id: Optional[str] = None
    payment_gateway: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Payment":
        return cls(
            id=row["id"],
            amount=to_money(row.get("amount")),
            currency=row.get("currency") or "USDT",
            user_id=row.get("user_id"),
            announcement_id=row.get("announcement_id"),
            status=PaymentStatus(row.get("status") or "PENDING"),
            transaction_hash=row.get("transaction_hash"),
            payment_session_id=row.get("payment_session_id"),
            payment_gateway=row.get("payment_gateway"),
        )


@dataclass
class CommunityEarning:
    id: str
    amount: Decimal
    currency: str
    community_id: str
    payment_id: str


@dataclass
class PlatformSettings:
    """Singleton row of marketplace-wide settings."""
    platform_fee: Optional[Decimal] = None
    telegram_bot_token: Optional[str] = None
    telegram_bot_username: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> "PlatformSettings":
        if not row:
            return cls()
        fee = row.get("platform_fee")
        return cls(
            platform_fee=None if fee is None else to_money(fee),
            telegram_bot_token=row.get("telegram_bot_token"),
            telegram_bot_username=row.get("telegram_bot_username"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class Profile:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    wallet_address: Optional[str] = None
    is_admin: bool = False


@dataclass
class BotCommand:
    """A slash command the bot advertises and answers."""
    command: str                       # with leading "/"
    description: str
    response_template: str
    is_admin_only: bool = False


# =============================================================================
# Service result records
# =============================================================================

@dataclass
class BotStatus:
    """Result of probing whether the bot can post into a community."""
    bot_added: bool
    is_admin: bool = False
    member_count: Optional[int] = None
    invite_link: Optional[str] = None
    error: Optional[str] = None
    chat_id: Optional[str] = None       # identifier that worked
    status: Optional[str] = None        # raw chat member status


@dataclass
class DeliveryResult:
    community_id: str
    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class DispatchSummary:
    results: List[DeliveryResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def describe(self) -> str:
        return f"{self.succeeded} of {len(self.results)} succeeded"


@dataclass
class EnhancedAnnouncement:
    title: str
    content: str
    improvements: List[str] = field(default_factory=list)


@dataclass
class CheckoutSession:
    session_id: str
    url: Optional[str] = None
    status: Optional[str] = None
    transaction_hash: Optional[str] = None


@dataclass
class PaymentRef:
    payment_id: str
    amount: Decimal
    currency: str
    session_id: Optional[str] = None
    checkout_url: Optional[str] = None
