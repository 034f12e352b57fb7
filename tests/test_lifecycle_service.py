"""
Tests for AnnouncementLifecycle Class

Tests for the status machine, draft editing, community selection,
payment-triggered publishing, admin moderation and redistribution.
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import (
    AnnouncementStatus, ApprovalStatus, PaymentStatus, ValidationVerdict, can_transition
)
from services.lifecycle_service import AnnouncementLifecycle
from services.validation_service import ContentValidator
from utils.exceptions import (
    InputValidationError, InvalidTransitionError, PaymentError, RecordNotFoundError
)

GOOD_TITLE = "Join our DeFi Trading Community Today"
GOOD_CONTENT = ("We provide real-time trading signals and educational resources "
                "for new and experienced traders alike.")


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.score.return_value = {"isValid": True, "score": 0.8, "issues": [], "feedback": "Good"}
    return client


@pytest.fixture
def lifecycle(storage, gateway, mock_telegram, ai_client):
    """Lifecycle wired to in-memory storage, a fake gateway and a mock bot."""
    factory = MagicMock(return_value=mock_telegram)
    return AnnouncementLifecycle(
        storage=storage,
        validator=ContentValidator(ai_client=ai_client),
        gateway=gateway,
        telegram_factory=factory,
    )


@pytest.fixture
def communities(storage, community_factory):
    return [
        storage.add_community(community_factory(price="30.00", platform_id="@alpha")),
        storage.add_community(community_factory(price="45.00", platform_id="@beta")),
    ]


def validated(lifecycle):
    announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
    lifecycle.validate(announcement.id)
    return announcement


class TestTransitionTable:
    """Tests for the allowed status transitions."""

    @pytest.mark.parametrize("current,target", [
        (AnnouncementStatus.DRAFT, AnnouncementStatus.PENDING_VALIDATION),
        (AnnouncementStatus.PENDING_VALIDATION, AnnouncementStatus.PENDING_APPROVAL),
        (AnnouncementStatus.PENDING_VALIDATION, AnnouncementStatus.VALIDATION_FAILED),
        (AnnouncementStatus.VALIDATION_FAILED, AnnouncementStatus.DRAFT),
        (AnnouncementStatus.PENDING_APPROVAL, AnnouncementStatus.PUBLISHED),
        (AnnouncementStatus.PENDING_APPROVAL, AnnouncementStatus.REJECTED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (AnnouncementStatus.DRAFT, AnnouncementStatus.PUBLISHED),
        (AnnouncementStatus.PUBLISHED, AnnouncementStatus.DRAFT),
        (AnnouncementStatus.REJECTED, AnnouncementStatus.PUBLISHED),
        (AnnouncementStatus.VALIDATION_FAILED, AnnouncementStatus.PUBLISHED),
    ])
    def test_forbidden(self, current, target):
        assert can_transition(current, target) is False


class TestDrafts:
    """Tests for draft creation and editing."""

    def test_create_draft(self, lifecycle, storage):
        announcement = lifecycle.create_draft("user-1", f"  {GOOD_TITLE}  ", GOOD_CONTENT,
                                              cta_url="https://example.com")

        stored = storage.get_announcement(announcement.id)
        assert stored.status == AnnouncementStatus.DRAFT
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.title == GOOD_TITLE

    @pytest.mark.parametrize("kwargs", [
        {"title": "", "content": GOOD_CONTENT},
        {"title": GOOD_TITLE, "content": "   "},
        {"title": GOOD_TITLE, "content": GOOD_CONTENT, "cta_url": "javascript:alert(1)"},
        {"title": GOOD_TITLE, "content": GOOD_CONTENT, "media_urls": ["not-a-url"]},
    ])
    def test_create_draft_rejects_bad_input(self, lifecycle, kwargs):
        with pytest.raises(InputValidationError):
            lifecycle.create_draft("user-1", **kwargs)

    def test_edit_failed_returns_to_draft(self, lifecycle, storage):
        """Test that editing a failed announcement moves it back to DRAFT and clears the verdict."""
        announcement = lifecycle.create_draft("user-1", "Too short", "Nope")
        lifecycle.validate(announcement.id)
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.VALIDATION_FAILED

        updated = lifecycle.update_draft(announcement.id, title=GOOD_TITLE, content=GOOD_CONTENT)

        assert updated.status == AnnouncementStatus.DRAFT
        assert storage.get_announcement(announcement.id).validation_result is None

    def test_cannot_edit_after_validation(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InvalidTransitionError):
            lifecycle.update_draft(announcement.id, title="Another title here")

    def test_unknown_field_rejected(self, lifecycle):
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
        with pytest.raises(InputValidationError):
            lifecycle.update_draft(announcement.id, status="PUBLISHED")

    def test_missing_announcement(self, lifecycle):
        with pytest.raises(RecordNotFoundError):
            lifecycle.validate("missing")


class TestValidate:
    """Tests for validate."""

    def test_valid_moves_to_pending_approval(self, lifecycle, storage):
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)

        verdict = lifecycle.validate(announcement.id)

        stored = storage.get_announcement(announcement.id)
        assert verdict.is_valid is True
        assert stored.status == AnnouncementStatus.PENDING_APPROVAL
        assert stored.validation_result.score == 0.8

    def test_invalid_moves_to_validation_failed(self, lifecycle, storage, ai_client):
        """Test that local rejection stores the verdict and skips AI."""
        announcement = lifecycle.create_draft("user-1", "Hi there", "Buy now")

        verdict = lifecycle.validate(announcement.id)

        assert verdict.is_valid is False
        assert verdict.score == 0.4
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.VALIDATION_FAILED
        ai_client.score.assert_not_called()

    def test_failed_announcement_can_be_revalidated(self, lifecycle, storage, ai_client):
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
        ai_client.score.return_value = {"isValid": False, "score": 0.3, "issues": ["Vague"]}
        lifecycle.validate(announcement.id)

        ai_client.score.return_value = {"isValid": True, "score": 0.9}
        lifecycle.validate(announcement.id)

        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.PENDING_APPROVAL

    def test_validate_twice_from_pending_approval_is_illegal(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InvalidTransitionError):
            lifecycle.validate(announcement.id)

    def test_malformed_factor_scores_still_validate(self, lifecycle, storage, ai_client):
        """Test that null or non-numeric factor scores are dropped, not fatal."""
        ai_client.score.return_value = {
            "isValid": True,
            "score": 0.8,
            "factors": {
                "clarity": {"weight": 0.25, "score": None},
                "length": {"weight": 0.15, "score": "high"},
                "engagement": {"weight": 0.25, "score": 0.9},
            },
        }
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)

        verdict = lifecycle.validate(announcement.id)

        assert verdict.is_valid is True
        assert set(verdict.factors) == {"engagement"}
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.PENDING_APPROVAL

    def test_validator_crash_restores_status(self, lifecycle, storage):
        """Test that a validator error leaves the announcement retryable."""
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
        lifecycle.validator = MagicMock()
        lifecycle.validator.validate.side_effect = [
            RuntimeError("boom"),
            ValidationVerdict(is_valid=True, score=0.9),
        ]

        with pytest.raises(RuntimeError):
            lifecycle.validate(announcement.id)
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.DRAFT

        lifecycle.validate(announcement.id)
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.PENDING_APPROVAL

    def test_suggestions_never_empty(self, lifecycle):
        announcement = validated(lifecycle)
        assert lifecycle.suggestions(announcement.id)

    def test_enhance_apply_updates_draft(self, lifecycle, storage, ai_client):
        ai_client.enhance.return_value = {
            "enhancedTitle": "An even better announcement title",
            "enhancedContent": GOOD_CONTENT + " Now with more detail.",
            "improvements": ["More detail"],
        }
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)

        lifecycle.enhance(announcement.id, apply=True)

        assert storage.get_announcement(announcement.id).title == "An even better announcement title"


class TestStartPayment:
    """Tests for community selection and checkout."""

    def test_links_and_prices_campaign(self, lifecycle, storage, communities):
        """Test that the selection is linked and priced at prices plus fee."""
        announcement = validated(lifecycle)

        ref = lifecycle.start_payment(announcement.id, [c.id for c in communities])

        assert ref.amount == Decimal("76.00")
        assert {l.community_id for l in storage.get_announcement_communities(announcement.id)} == \
            {c.id for c in communities}

    def test_reselection_replaces_targets(self, lifecycle, storage, communities, mock_telegram):
        """
        Test that choosing a different selection drops the earlier links.

        Verifies the charge, earnings and deliveries cover only the final selection.
        """
        alpha, beta = communities
        announcement = validated(lifecycle)
        lifecycle.start_payment(announcement.id, [alpha.id])

        ref = lifecycle.start_payment(announcement.id, [beta.id])
        summary = lifecycle.confirm_payment(ref.payment_id, "0xfeed")

        assert ref.amount == Decimal("46.00")
        assert [l.community_id for l in storage.get_announcement_communities(announcement.id)] == [beta.id]
        assert [(e.community_id, e.amount) for e in storage.earnings] == [(beta.id, Decimal("45.00"))]
        assert len(summary.results) == 1
        mock_telegram.send_message.assert_called_once()
        assert mock_telegram.send_message.call_args[0][0] == "@beta"

    def test_uses_platform_fee_from_settings(self, lifecycle, storage, communities):
        storage.platform.platform_fee = Decimal("5.00")
        announcement = validated(lifecycle)

        ref = lifecycle.start_payment(announcement.id, [communities[0].id])

        assert ref.amount == Decimal("35.00")

    def test_requires_pending_approval(self, lifecycle, communities):
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
        with pytest.raises(InvalidTransitionError):
            lifecycle.start_payment(announcement.id, [communities[0].id])

    def test_empty_selection(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InputValidationError):
            lifecycle.start_payment(announcement.id, [])

    def test_unknown_community(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InputValidationError):
            lifecycle.start_payment(announcement.id, ["nope"])

    def test_unapproved_community(self, lifecycle, storage, community_factory):
        pending = storage.add_community(community_factory(approval_status=ApprovalStatus.PENDING))
        announcement = validated(lifecycle)

        with pytest.raises(InputValidationError):
            lifecycle.start_payment(announcement.id, [pending.id])
        assert storage.get_announcement_communities(announcement.id) == []

    def test_selectable_communities(self, lifecycle, storage, communities, community_factory):
        storage.add_community(community_factory(approval_status=ApprovalStatus.REJECTED))
        assert {c.id for c in lifecycle.list_selectable_communities()} == {c.id for c in communities}


class TestConfirmPayment:
    """Tests for payment confirmation followed by dispatch."""

    def test_confirm_publishes_and_dispatches(self, lifecycle, storage, communities, mock_telegram):
        """
        Test the paid path end to end.

        Verifies the announcement is published, earnings are split and each
        linked community receives the message.
        """
        announcement = validated(lifecycle)
        ref = lifecycle.start_payment(announcement.id, [c.id for c in communities])

        summary = lifecycle.confirm_payment(ref.payment_id, "0xfeed")

        assert summary.describe() == "2 of 2 succeeded"
        stored = storage.get_announcement(announcement.id)
        assert stored.status == AnnouncementStatus.PUBLISHED
        assert stored.payment_status == PaymentStatus.PAID
        assert sorted(e.amount for e in storage.earnings) == [Decimal("37.50"), Decimal("37.50")]
        assert mock_telegram.send_message.call_count == 2

    def test_duplicate_confirmation_does_not_resend(self, lifecycle, communities, mock_telegram):
        announcement = validated(lifecycle)
        ref = lifecycle.start_payment(announcement.id, [c.id for c in communities])
        lifecycle.confirm_payment(ref.payment_id, "0xfeed")

        assert lifecycle.confirm_payment(ref.payment_id, "0xfeed") is None
        assert mock_telegram.send_message.call_count == 2

    def test_gateway_confirmation(self, lifecycle, gateway, communities, mock_telegram):
        announcement = validated(lifecycle)
        ref = lifecycle.start_payment(announcement.id, [c.id for c in communities])

        assert lifecycle.confirm_gateway_payment(ref.session_id) is None

        gateway.statuses[ref.session_id] = "complete"
        summary = lifecycle.confirm_gateway_payment(ref.session_id)
        assert summary.succeeded == 2

        assert lifecycle.confirm_gateway_payment(ref.session_id) is None
        assert mock_telegram.send_message.call_count == 2

    def test_demo_confirmation(self, lifecycle, storage, communities):
        announcement = validated(lifecycle)
        ref = lifecycle.start_payment(announcement.id, [communities[0].id])

        summary = lifecycle.confirm_demo_payment(ref.payment_id)

        assert summary.succeeded == 1
        assert storage.get_payment(ref.payment_id).transaction_hash.startswith("0x")

    def test_bot_token_comes_from_platform_settings(self, lifecycle, storage, communities):
        storage.platform.telegram_bot_token = "777:rotated"
        announcement = validated(lifecycle)
        ref = lifecycle.start_payment(announcement.id, [communities[0].id])

        lifecycle.confirm_payment(ref.payment_id, "0x1")

        platform = lifecycle.telegram_factory.call_args[0][0]
        assert platform.telegram_bot_token == "777:rotated"


class TestAdminModeration:
    """Tests for admin approve, reject and redispatch."""

    def _linked(self, lifecycle, storage, communities):
        announcement = validated(lifecycle)
        storage.link_communities(announcement.id, [c.id for c in communities])
        return announcement

    def test_approve_unpaid_sets_waiver(self, lifecycle, storage, communities):
        """Test that the admin override publishes unpaid announcements with the waiver flag."""
        announcement = self._linked(lifecycle, storage, communities)

        summary = lifecycle.admin_approve(announcement.id)

        stored = storage.get_announcement(announcement.id)
        assert stored.status == AnnouncementStatus.PUBLISHED
        assert stored.payment_waived is True
        assert stored.payment_status == PaymentStatus.PENDING
        assert summary.succeeded == 2
        assert storage.earnings == []

    def test_approve_without_waiver_refuses_unpaid(self, lifecycle, storage, communities):
        announcement = self._linked(lifecycle, storage, communities)

        with pytest.raises(PaymentError):
            lifecycle.admin_approve(announcement.id, waive_payment=False)
        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.PENDING_APPROVAL

    def test_approve_requires_targets(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InputValidationError):
            lifecycle.admin_approve(announcement.id)

    def test_approve_from_draft_is_illegal(self, lifecycle):
        announcement = lifecycle.create_draft("user-1", GOOD_TITLE, GOOD_CONTENT)
        with pytest.raises(InvalidTransitionError):
            lifecycle.admin_approve(announcement.id)

    def test_reject(self, lifecycle, storage):
        announcement = validated(lifecycle)

        lifecycle.admin_reject(announcement.id, reason="Off topic")

        assert storage.get_announcement(announcement.id).status == AnnouncementStatus.REJECTED
        assert [r["id"] for r in lifecycle.pending_review()] == []

    def test_pending_review_lists_awaiting(self, lifecycle):
        announcement = validated(lifecycle)
        assert [r["id"] for r in lifecycle.pending_review()] == [announcement.id]

    def test_redispatch_published(self, lifecycle, storage, communities, mock_telegram):
        announcement = self._linked(lifecycle, storage, communities)
        lifecycle.admin_approve(announcement.id)

        summary = lifecycle.redispatch(announcement.id)

        assert summary.succeeded == 2
        assert mock_telegram.send_message.call_count == 4

    def test_redispatch_requires_published(self, lifecycle):
        announcement = validated(lifecycle)
        with pytest.raises(InputValidationError):
            lifecycle.redispatch(announcement.id)

    def test_redispatch_refuses_unpaid_unwaived(self, lifecycle, storage, announcement_factory):
        announcement = announcement_factory(status=AnnouncementStatus.PUBLISHED)
        storage.insert_announcement(announcement)

        with pytest.raises(PaymentError):
            lifecycle.redispatch(announcement.id)


class TestWallet:
    def test_link_wallet(self, lifecycle, storage):
        assert lifecycle.link_wallet("user-1", "  0xABC  ") is True
        assert storage.profiles["user-1"].wallet_address == "0xABC"

    def test_link_wallet_requires_address(self, lifecycle):
        with pytest.raises(InputValidationError):
            lifecycle.link_wallet("user-1", " ")
