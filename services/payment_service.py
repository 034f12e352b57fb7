"""
Payment Settlement Service

Prices a campaign, opens a checkout session for it, and on confirmation
marks the payment paid, publishes the announcement and credits each
linked community's share in a single transaction.
"""

from decimal import Decimal
from typing import Optional, List, Iterable

from config import settings
from data.models import (
    Announcement, AnnouncementStatus, Community, CommunityEarning, Payment,
    PaymentRef, PaymentStatus, can_transition
)
from data.protocols import AnnouncementStorage, PaymentStorage
from services.copperx_service import COMPLETE_STATUS, demo_transaction_hash
from services.protocols import PaymentGateway
from utils.exceptions import (
    DatabaseError, InputValidationError, InvalidTransitionError, PaymentError,
    PaymentGatewayError, RecordNotFoundError
)
from utils.helpers import new_id, split_evenly, to_money
from utils.logger import get_logger

logger = get_logger(__name__)


def compute_total(communities: Iterable[Community], platform_fee=None) -> Decimal:
    """
    Campaign price: sum of community prices plus the platform fee.

    Args:
        communities: Selected communities.
        platform_fee: Fee from platform settings; None means the default fee.

    Returns:
        Decimal: Total rounded to cents.
    """
    fee = to_money(settings.DEFAULT_PLATFORM_FEE if platform_fee is None else platform_fee)
    return to_money(sum((to_money(c.price_per_announcement) for c in communities), Decimal("0")) + fee)


class PaymentService:
    """Creates and settles announcement payments."""

    def __init__(
        self,
        payment_storage: PaymentStorage,
        announcement_storage: AnnouncementStorage,
        gateway: Optional[PaymentGateway] = None,
        platform_fee=None
    ):
        """
        Args:
            payment_storage: Payments, earnings and the transaction boundary.
            announcement_storage: Announcements and their community links.
            gateway: Checkout provider; required for create_intent and gateway confirmation.
            platform_fee: Fee for this operation, from the platform settings row.
        """
        self.payment_storage = payment_storage
        self.announcement_storage = announcement_storage
        self.gateway = gateway
        self.platform_fee = to_money(settings.DEFAULT_PLATFORM_FEE if platform_fee is None else platform_fee)

    def create_intent(
        self,
        announcement_id: str,
        user_id: str,
        amount: Decimal,
        currency: str = settings.DEFAULT_CURRENCY,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None
    ) -> PaymentRef:
        """
        Record a pending payment and open a checkout session for it.

        An existing pending payment for the announcement is reused.

        Raises:
            PaymentGatewayError: If the checkout session cannot be created.
            PaymentError: If the payment row cannot be stored.
        """
        if self.gateway is None:
            raise PaymentGatewayError("No payment gateway configured")

        amount = to_money(amount)
        payment = self.payment_storage.get_pending_payment(announcement_id)
        if payment is not None and (payment.amount != amount or payment.currency != currency):
            logger.info(f"Pending payment {payment.id} is stale, creating a new one")
            self.payment_storage.update_payment_status(payment.id, PaymentStatus.FAILED)
            payment = None

        if payment is None:
            payment = Payment(
                id=new_id(),
                amount=amount,
                currency=currency,
                user_id=user_id,
                announcement_id=announcement_id,
            )
            if not self.payment_storage.insert_payment(payment):
                raise PaymentError(f"Could not store payment for announcement {announcement_id}")

        success_url = success_url or (
            f"{settings.APP_BASE_URL}/payment-success"
            f"?session_id={{CHECKOUT_SESSION_ID}}&announcement_id={announcement_id}"
        )
        session = self.gateway.create_checkout_session(
            amount, currency, success_url, cancel_url,
            metadata={"payment_id": payment.id, "announcement_id": announcement_id}
        )
        self.payment_storage.update_payment_session(payment.id, session.session_id, self.gateway.name)

        logger.info(f"Payment {payment.id} awaiting checkout {session.session_id} ({amount} {currency})")
        return PaymentRef(
            payment_id=payment.id,
            amount=amount,
            currency=currency,
            session_id=session.session_id,
            checkout_url=session.url,
        )

    def confirm(self, payment_id: str, transaction_hash: str) -> bool:
        """
        Settle a payment atomically.

        Marks the payment paid, publishes the announcement and inserts one
        earning per linked community. Confirming an already paid payment
        changes nothing.

        Args:
            payment_id: Payment to settle; also the idempotency key.
            transaction_hash: Proof of payment from the gateway or chain.

        Returns:
            bool: True if this call settled the payment, False if it was already settled.

        Raises:
            PaymentError: If settlement fails, no partial writes remain. Also raised
                for failed or superseded payments and for announcements another
                payment already settled.
        """
        try:
            with self.payment_storage.transaction():
                payment = self.payment_storage.get_payment(payment_id)
                if payment is None:
                    raise RecordNotFoundError(f"Payment {payment_id} not found")

                if payment.status == PaymentStatus.PAID or self.payment_storage.earnings_exist_for_payment(payment_id):
                    logger.info(f"Payment {payment_id} already settled, skipping")
                    return False
                if payment.status == PaymentStatus.FAILED:
                    raise PaymentError(f"Payment {payment_id} was failed or superseded and cannot be settled")

                announcement = self.announcement_storage.get_announcement(payment.announcement_id)
                if announcement is None:
                    raise RecordNotFoundError(f"Announcement {payment.announcement_id} not found")
                if announcement.payment_status == PaymentStatus.PAID:
                    raise PaymentError(
                        f"Announcement {announcement.id} was already paid by another payment"
                    )

                if announcement.status != AnnouncementStatus.PUBLISHED and \
                        not can_transition(announcement.status, AnnouncementStatus.PUBLISHED):
                    raise InvalidTransitionError(announcement.status.value, AnnouncementStatus.PUBLISHED.value)

                links = self.announcement_storage.get_announcement_communities(announcement.id)
                if not links:
                    raise PaymentError(f"Announcement {announcement.id} has no linked communities")

                self._require(self.payment_storage.update_payment_status(
                    payment_id, PaymentStatus.PAID, transaction_hash
                ), "mark payment paid")

                announcement.payment_status = PaymentStatus.PAID
                announcement.status = AnnouncementStatus.PUBLISHED
                self._require(self.announcement_storage.update_announcement(announcement), "publish announcement")

                for earning in self.split_earnings(payment, [link.community_id for link in links]):
                    self._require(self.payment_storage.insert_earning(earning), "insert earning")

        except PaymentError:
            raise
        except DatabaseError as e:
            logger.error(f"Payment {payment_id} settlement rolled back: {e}", exc_info=True)
            raise PaymentError(f"Could not settle payment {payment_id}: {e}") from e

        logger.info(f"Payment {payment_id} settled with transaction {transaction_hash}")
        return True

    @staticmethod
    def _require(ok: bool, action: str) -> None:
        if not ok:
            raise PaymentError(f"Failed to {action}")

    def split_earnings(self, payment: Payment, community_ids: List[str]) -> List[CommunityEarning]:
        """Split the payment minus the platform fee evenly across communities."""
        pool = max(payment.amount - self.platform_fee, Decimal("0.00"))
        shares = split_evenly(pool, len(community_ids))
        return [
            CommunityEarning(
                id=new_id(),
                amount=share,
                currency=payment.currency,
                community_id=community_id,
                payment_id=payment.id,
            )
            for community_id, share in zip(community_ids, shares)
        ]

    def confirm_from_gateway(self, session_id: str) -> Optional[Payment]:
        """
        Settle the payment behind a checkout session if the gateway reports it complete.

        Returns:
            Optional[Payment]: The payment if the session is complete (settled now or
            earlier), None if it is still open.

        Raises:
            InputValidationError: If no payment belongs to the session.
            PaymentGatewayError: If the gateway cannot be queried.
        """
        if self.gateway is None:
            raise PaymentGatewayError("No payment gateway configured")

        payment = self.payment_storage.get_payment_by_session(session_id)
        if payment is None:
            raise InputValidationError(f"No payment found for checkout session {session_id}")

        session = self.gateway.get_checkout_session(session_id)
        if session.status != COMPLETE_STATUS:
            logger.info(f"Checkout session {session_id} is '{session.status}', not settling yet")
            return None

        self.confirm(payment.id, session.transaction_hash or session_id)
        return payment

    def confirm_demo(self, payment_id: str) -> bool:
        """Settle a payment with a generated transaction hash (demo deployments)."""
        return self.confirm(payment_id, demo_transaction_hash())

    def mark_failed(self, payment_id: str, reason: Optional[str] = None) -> bool:
        payment = self.payment_storage.get_payment(payment_id)
        if payment is None:
            raise InputValidationError(f"Payment {payment_id} not found")
        if payment.status == PaymentStatus.PAID:
            logger.warning(f"Refusing to mark paid payment {payment_id} as failed")
            return False
        logger.info(f"Marking payment {payment_id} failed: {reason or 'no reason given'}")
        return self.payment_storage.update_payment_status(payment_id, PaymentStatus.FAILED)

    def total_for(self, communities: Iterable[Community]) -> Decimal:
        return compute_total(communities, self.platform_fee)

    @staticmethod
    def is_publishable(announcement: Announcement) -> bool:
        return announcement.payment_status == PaymentStatus.PAID or announcement.payment_waived
