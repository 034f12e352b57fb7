"""
Announcement Lifecycle Orchestrator

Drives an announcement from draft through validation, community selection,
payment and distribution, enforcing the legal status transitions. Platform
settings (fee, bot token) are read once per operation and handed to the
collaborators built for that operation.
"""

from typing import Optional, List, Dict, Any, Callable, Iterable

from config import settings
from data.models import (
    Announcement, AnnouncementStatus, ApprovalStatus, Community, DispatchSummary,
    EnhancedAnnouncement, PaymentRef, PaymentStatus, PlatformSettings,
    ValidationVerdict, can_transition
)
from services.distribution_service import DistributionDispatcher
from services.payment_service import PaymentService
from services.protocols import PaymentGateway, TelegramClient
from services.telegram_service import TelegramService
from services.validation_service import ContentValidator
from utils.exceptions import (
    InputValidationError, InvalidTransitionError, PaymentError, QueryError, RecordNotFoundError
)
from utils.helpers import is_valid_url, new_id
from utils.logger import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = ("title", "content", "cta_text", "cta_url", "media_urls")
EDITABLE_STATUSES = (AnnouncementStatus.DRAFT, AnnouncementStatus.VALIDATION_FAILED)


def default_telegram_factory(platform: PlatformSettings) -> TelegramClient:
    return TelegramService(bot_token=platform.telegram_bot_token)


class AnnouncementLifecycle:
    """Orchestrates the announcement lifecycle."""

    def __init__(
        self,
        storage,
        validator: ContentValidator,
        gateway: Optional[PaymentGateway] = None,
        telegram_factory: Optional[Callable[[PlatformSettings], TelegramClient]] = None
    ):
        """
        Args:
            storage: Implements every storage protocol in data.protocols
                (DatabaseConnection in production).
            validator: Content validator.
            gateway: Checkout provider for start_payment and gateway confirmation.
            telegram_factory: Builds a Bot API client from the platform settings
                of the current operation.
        """
        self.storage = storage
        self.validator = validator
        self.gateway = gateway
        self.telegram_factory = telegram_factory or default_telegram_factory

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load(self, announcement_id: str) -> Announcement:
        announcement = self.storage.get_announcement(announcement_id)
        if announcement is None:
            raise RecordNotFoundError(f"Announcement {announcement_id} not found")
        return announcement

    def _save(self, announcement: Announcement) -> None:
        if not self.storage.update_announcement(announcement):
            raise QueryError(f"Failed to save announcement {announcement.id}")

    def _transition(self, announcement: Announcement, target: AnnouncementStatus) -> None:
        if not can_transition(announcement.status, target):
            raise InvalidTransitionError(announcement.status.value, target.value)
        logger.info(f"Announcement {announcement.id}: {announcement.status.value} -> {target.value}")
        announcement.status = target
        self._save(announcement)

    def _platform_settings(self) -> PlatformSettings:
        return self.storage.get_platform_settings()

    def _payment_service(self, platform: PlatformSettings) -> PaymentService:
        return PaymentService(
            payment_storage=self.storage,
            announcement_storage=self.storage,
            gateway=self.gateway,
            platform_fee=platform.platform_fee,
        )

    def _linked_communities(self, announcement_id: str) -> List[Community]:
        links = self.storage.get_announcement_communities(announcement_id)
        return self.storage.get_communities([link.community_id for link in links])

    def _dispatch(self, announcement: Announcement, platform: PlatformSettings) -> DispatchSummary:
        communities = self._linked_communities(announcement.id)
        dispatcher = DistributionDispatcher(self.telegram_factory(platform), self.storage)
        return dispatcher.dispatch(announcement, communities)

    @staticmethod
    def _check_fields(fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise InputValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if "title" in fields and not (fields["title"] or "").strip():
            raise InputValidationError("Title is required")
        if "content" in fields and not (fields["content"] or "").strip():
            raise InputValidationError("Content is required")
        if fields.get("cta_url") and not is_valid_url(fields["cta_url"]):
            raise InputValidationError(f"Invalid call-to-action URL: {fields['cta_url']}")
        for url in fields.get("media_urls") or []:
            if not is_valid_url(url):
                raise InputValidationError(f"Invalid media URL: {url}")

    # =========================================================================
    # Drafting and validation
    # =========================================================================

    def create_draft(
        self,
        user_id: str,
        title: str,
        content: str,
        cta_text: Optional[str] = None,
        cta_url: Optional[str] = None,
        media_urls: Optional[List[str]] = None
    ) -> Announcement:
        """
        Create a new announcement in DRAFT.

        Raises:
            InputValidationError: If required fields are missing or URLs are malformed.
        """
        if not user_id:
            raise InputValidationError("User is required")
        fields = {"title": title, "content": content, "cta_text": cta_text,
                  "cta_url": cta_url, "media_urls": media_urls or []}
        self._check_fields(fields)

        announcement = Announcement(
            id=new_id(),
            user_id=user_id,
            title=title.strip(),
            content=content.strip(),
            cta_text=cta_text,
            cta_url=cta_url,
            media_urls=list(media_urls or []),
        )
        if not self.storage.insert_announcement(announcement):
            raise QueryError("Failed to store new announcement")
        return announcement

    def update_draft(self, announcement_id: str, **fields) -> Announcement:
        """
        Edit a draft. Editing a failed announcement returns it to DRAFT.

        Raises:
            InvalidTransitionError: If the announcement is past validation.
        """
        announcement = self._load(announcement_id)
        if announcement.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                announcement.status.value, AnnouncementStatus.DRAFT.value,
                f"Announcement in {announcement.status.value} can no longer be edited"
            )
        self._check_fields(fields)

        for name, value in fields.items():
            if name in ("title", "content"):
                value = value.strip()
            setattr(announcement, name, value)
        announcement.validation_result = None

        if announcement.status == AnnouncementStatus.VALIDATION_FAILED:
            self._transition(announcement, AnnouncementStatus.DRAFT)
        else:
            self._save(announcement)
        return announcement

    def validate(self, announcement_id: str) -> ValidationVerdict:
        """
        Run content validation and move to PENDING_APPROVAL or VALIDATION_FAILED.
        """
        announcement = self._load(announcement_id)
        previous = announcement.status
        self._transition(announcement, AnnouncementStatus.PENDING_VALIDATION)

        try:
            verdict = self.validator.validate(announcement.title, announcement.content)
        except Exception:
            logger.error(f"Validation of {announcement_id} failed, restoring {previous.value}")
            announcement.status = previous
            self._save(announcement)
            raise
        announcement.validation_result = verdict

        target = AnnouncementStatus.PENDING_APPROVAL if verdict.is_valid else AnnouncementStatus.VALIDATION_FAILED
        self._transition(announcement, target)
        logger.info(f"Announcement {announcement_id} validated: valid={verdict.is_valid} score={verdict.score}")
        return verdict

    def enhance(self, announcement_id: str, apply: bool = False) -> EnhancedAnnouncement:
        """
        Get an AI rewrite; with apply=True it replaces the draft text.

        Raises:
            EnhancementError: If the rewrite fails.
        """
        announcement = self._load(announcement_id)
        enhanced = self.validator.enhance(announcement.title, announcement.content)
        if apply:
            self.update_draft(announcement_id, title=enhanced.title, content=enhanced.content)
        return enhanced

    def suggestions(self, announcement_id: str) -> List[str]:
        announcement = self._load(announcement_id)
        verdict = announcement.validation_result or ValidationVerdict(is_valid=False, score=0.0)
        return self.validator.suggestions_from(verdict)

    # =========================================================================
    # Selection and payment
    # =========================================================================

    def list_selectable_communities(self) -> List[Community]:
        return self.storage.list_communities(approval_status=ApprovalStatus.APPROVED)

    def start_payment(
        self,
        announcement_id: str,
        community_ids: Iterable[str],
        currency: str = settings.DEFAULT_CURRENCY,
        success_url: Optional[str] = None
    ) -> PaymentRef:
        """
        Make the selected communities the campaign's targets and open a checkout.

        Links from an earlier selection that are not selected again are removed.

        Raises:
            InvalidTransitionError: If the announcement has not passed validation.
            InputValidationError: If the selection is empty or contains unapproved communities.
            PaymentGatewayError: If the checkout cannot be created.
        """
        announcement = self._load(announcement_id)
        if announcement.status != AnnouncementStatus.PENDING_APPROVAL:
            raise InvalidTransitionError(
                announcement.status.value, AnnouncementStatus.PUBLISHED.value,
                "Only validated announcements can be paid for"
            )

        ids = list(dict.fromkeys(community_ids))
        if not ids:
            raise InputValidationError("Select at least one community")

        communities = self.storage.get_communities(ids)
        found = {c.id for c in communities}
        missing = [i for i in ids if i not in found]
        if missing:
            raise InputValidationError(f"Unknown communities: {', '.join(missing)}")
        unapproved = [c.name for c in communities if not c.is_selectable]
        if unapproved:
            raise InputValidationError(f"Communities are not approved: {', '.join(unapproved)}")

        self.storage.replace_communities(announcement_id, ids)

        platform = self._platform_settings()
        payments = self._payment_service(platform)
        total = payments.total_for(communities)
        logger.info(f"Campaign for {announcement_id}: {len(communities)} communities, total {total} {currency}")
        return payments.create_intent(announcement_id, announcement.user_id, total, currency, success_url)

    def confirm_payment(self, payment_id: str, transaction_hash: str) -> Optional[DispatchSummary]:
        """
        Settle a payment, then distribute the announcement.

        Returns:
            Optional[DispatchSummary]: None if the payment was already settled.
        """
        platform = self._platform_settings()
        if not self._payment_service(platform).confirm(payment_id, transaction_hash):
            return None
        return self._dispatch_paid(payment_id, platform)

    def confirm_gateway_payment(self, session_id: str) -> Optional[DispatchSummary]:
        """Settle from a completed checkout session, then distribute."""
        platform = self._platform_settings()
        payments = self._payment_service(platform)
        payment = self.storage.get_payment_by_session(session_id)
        already_paid = payment is not None and payment.status == PaymentStatus.PAID

        payment = payments.confirm_from_gateway(session_id)
        if payment is None or already_paid:
            return None
        return self._dispatch_paid(payment.id, platform)

    def confirm_demo_payment(self, payment_id: str) -> Optional[DispatchSummary]:
        platform = self._platform_settings()
        if not self._payment_service(platform).confirm_demo(payment_id):
            return None
        return self._dispatch_paid(payment_id, platform)

    def _dispatch_paid(self, payment_id: str, platform: PlatformSettings) -> DispatchSummary:
        payment = self.storage.get_payment(payment_id)
        announcement = self._load(payment.announcement_id)
        return self._dispatch(announcement, platform)

    # =========================================================================
    # Moderation and distribution
    # =========================================================================

    def pending_review(self) -> List[Dict[str, Any]]:
        return self.storage.list_announcements_for_review(AnnouncementStatus.PENDING_APPROVAL)

    def admin_approve(self, announcement_id: str, waive_payment: bool = True) -> DispatchSummary:
        """
        Publish without waiting for payment, then distribute.

        An unpaid announcement is flagged payment_waived.

        Raises:
            InvalidTransitionError: If not awaiting approval.
            InputValidationError: If no community is linked.
            PaymentError: If unpaid and waive_payment is False.
        """
        announcement = self._load(announcement_id)
        if not can_transition(announcement.status, AnnouncementStatus.PUBLISHED):
            raise InvalidTransitionError(announcement.status.value, AnnouncementStatus.PUBLISHED.value)
        if not self.storage.get_announcement_communities(announcement_id):
            raise InputValidationError("Announcement has no target communities")

        if announcement.payment_status != PaymentStatus.PAID:
            if not waive_payment:
                raise PaymentError(f"Announcement {announcement_id} is unpaid")
            announcement.payment_waived = True
            logger.warning(f"Publishing unpaid announcement {announcement_id} with payment waived")

        self._transition(announcement, AnnouncementStatus.PUBLISHED)
        return self._dispatch(announcement, self._platform_settings())

    def admin_reject(self, announcement_id: str, reason: Optional[str] = None) -> Announcement:
        announcement = self._load(announcement_id)
        self._transition(announcement, AnnouncementStatus.REJECTED)
        logger.info(f"Announcement {announcement_id} rejected: {reason or 'no reason given'}")
        return announcement

    def redispatch(self, announcement_id: str) -> DispatchSummary:
        """
        Send a published announcement again; each community's delivery log is overwritten.
        """
        announcement = self._load(announcement_id)
        if announcement.status != AnnouncementStatus.PUBLISHED:
            raise InputValidationError("Only published announcements can be distributed")
        if not PaymentService.is_publishable(announcement):
            raise PaymentError(f"Announcement {announcement_id} is neither paid nor waived")
        return self._dispatch(announcement, self._platform_settings())

    def link_wallet(self, user_id: str, wallet_address: str) -> bool:
        if not wallet_address or not wallet_address.strip():
            raise InputValidationError("Wallet address is required")
        return self.storage.update_profile_wallet(user_id, wallet_address.strip())
