"""
Announcement Marketplace Admin CLI

This is the main entry point for the marketplace backend. It wires the
services together and exposes the lifecycle operations an operator runs
by hand or from a scheduler: validation, moderation, payment confirmation,
distribution, bot maintenance and reporting.
"""

import sys
import argparse
import logging
from typing import Optional, List

from config import settings
from config.validators import validate_settings, get_config_summary
from data.database import DatabaseConnection
from data.models import ApprovalStatus, DispatchSummary, Platform
from services.ai_service import AIService
from services.analytics_service import AnalyticsService
from services.bot_command_service import BotCommandService
from services.bot_status_service import BotStatusChecker
from services.copperx_service import CopperXService, DemoGateway
from services.distribution_service import DistributionDispatcher, failed_results
from services.lifecycle_service import AnnouncementLifecycle
from services.validation_service import ContentValidator
from utils.exceptions import (
    MarketplaceError, AIServiceError, PlatformError, PaymentError, DatabaseError,
    InputValidationError, InvalidTransitionError
)
from utils.logger import get_logger, setup_file_logging

logger = get_logger(__name__)


def create_marketplace(storage=None, ai_client=None, gateway=None, validate: bool = True) -> AnnouncementLifecycle:
    """
    Factory that wires the lifecycle orchestrator with its collaborators.

    Args:
        storage: Storage backend, defaults to a new DatabaseConnection.
        ai_client: Scoring backend, defaults to AIService (Gemini).
        gateway: Checkout provider, defaults to CopperX or the demo gateway.
        validate: Run validate_settings() first.

    Returns:
        AnnouncementLifecycle: Ready to use.
    """
    if validate:
        validate_settings()

    if storage is None:
        storage = DatabaseConnection()
    if ai_client is None:
        ai_client = AIService()
    if gateway is None:
        gateway = DemoGateway() if settings.PAYMENT_DEMO_MODE or not settings.COPPERX_API_KEY else CopperXService()

    return AnnouncementLifecycle(
        storage=storage,
        validator=ContentValidator(ai_client=ai_client),
        gateway=gateway,
    )


def _print_summary(summary: Optional[DispatchSummary]) -> None:
    if summary is None:
        print("Nothing dispatched (payment was already settled or is still open)")
        return
    print(f"Dispatch: {summary.describe()}")
    for result in failed_results(summary):
        print(f"  failed {result.community_id}: {result.error}")


def _telegram(lifecycle: AnnouncementLifecycle):
    platform = lifecycle.storage.get_platform_settings()
    return lifecycle.telegram_factory(platform), platform


def run_command(args, lifecycle: AnnouncementLifecycle) -> bool:
    """
    Execute one CLI command.

    Returns:
        bool: True if the command completed, False if it failed in a handled way.
    """
    try:
        if args.command == "validate":
            verdict = lifecycle.validate(args.announcement_id)
            print(f"valid={verdict.is_valid} score={verdict.score:.2f}")
            for issue in verdict.issues:
                print(f"  issue: {issue}")
            for suggestion in lifecycle.suggestions(args.announcement_id):
                print(f"  suggestion: {suggestion}")
            return True

        if args.command == "enhance":
            enhanced = lifecycle.enhance(args.announcement_id, apply=args.apply)
            print(enhanced.title)
            print()
            print(enhanced.content)
            for improvement in enhanced.improvements:
                print(f"  - {improvement}")
            return True

        if args.command == "pending":
            for row in lifecycle.pending_review():
                print(f"{row['id']}  {row.get('owner_name') or row['user_id']}  {row['title']}")
            return True

        if args.command == "approve":
            _print_summary(lifecycle.admin_approve(args.announcement_id, waive_payment=not args.no_waive))
            return True

        if args.command == "reject":
            lifecycle.admin_reject(args.announcement_id, reason=args.reason)
            print(f"Rejected {args.announcement_id}")
            return True

        if args.command == "dispatch":
            summary = lifecycle.redispatch(args.announcement_id)
            _print_summary(summary)
            return summary.failed == 0

        if args.command == "confirm-payment":
            if args.session_id:
                summary = lifecycle.confirm_gateway_payment(args.session_id)
            elif args.demo:
                summary = lifecycle.confirm_demo_payment(args.payment_id)
            else:
                summary = lifecycle.confirm_payment(args.payment_id, args.tx_hash)
            _print_summary(summary)
            return True

        if args.command == "check-bots":
            telegram, platform = _telegram(lifecycle)
            checker = BotStatusChecker(telegram, lifecycle.storage, platform.telegram_bot_username)
            if args.community_id:
                communities = lifecycle.storage.get_communities(args.community_id)
            else:
                communities = lifecycle.storage.list_communities(platform=Platform.TELEGRAM)
            for community_id, status in checker.check_all(communities).items():
                state = "admin" if status.is_admin else ("member" if status.bot_added else "missing")
                print(f"{community_id}  {state}  members={status.member_count}  {status.error or ''}")
            return True

        if args.command == "broadcast":
            telegram, _ = _telegram(lifecycle)
            if args.community_id:
                communities = lifecycle.storage.get_communities(args.community_id)
            else:
                communities = lifecycle.storage.list_communities(approval_status=ApprovalStatus.APPROVED)
            summary = DistributionDispatcher(telegram).broadcast(args.message, communities)
            _print_summary(summary)
            return summary.failed == 0

        if args.command == "register-commands":
            telegram, _ = _telegram(lifecycle)
            count = BotCommandService(telegram, lifecycle.storage).register_default_commands()
            print(f"Registered {count} commands")
            return True

        if args.command == "set-webhook":
            telegram, _ = _telegram(lifecycle)
            service = BotCommandService(telegram, lifecycle.storage, lifecycle.storage, lifecycle.storage)
            username = service.configure_webhook(args.url)
            print(f"Webhook set for @{username}")
            return True

        if args.command == "report":
            report = AnalyticsService(lifecycle.storage).campaign_report(args.announcement_id)
            print(report.to_string(index=False) if not report.empty else "No communities linked")
            return True

        logger.error(f"Unknown command: {args.command}")
        return False

    except InputValidationError as e:
        logger.error(f"Invalid input: {e}")
        return False
    except InvalidTransitionError as e:
        logger.error(f"Operation not allowed: {e}")
        return False
    except AIServiceError as e:
        logger.error(f"AI service error: {e}", exc_info=True)
        return False
    except PlatformError as e:
        logger.error(f"Messaging platform error: {e}", exc_info=True)
        return False
    except PaymentError as e:
        logger.error(f"Payment error: {e}", exc_info=True)
        return False
    except DatabaseError as e:
        logger.error(f"Database error: {e}", exc_info=True)
        return False
    except MarketplaceError as e:
        logger.error(f"Marketplace error: {e}", exc_info=True)
        return False


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Crypto Announcement Marketplace')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='INFO', help='Logging level')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('validate', help='Validate an announcement')
    p.add_argument('announcement_id')

    p = sub.add_parser('enhance', help='Get an AI rewrite of an announcement')
    p.add_argument('announcement_id')
    p.add_argument('--apply', action='store_true', help='Save the rewrite as the draft')

    sub.add_parser('pending', help='List announcements awaiting approval')

    p = sub.add_parser('approve', help='Publish an announcement (admin override)')
    p.add_argument('announcement_id')
    p.add_argument('--no-waive', action='store_true', help='Refuse to publish if unpaid')

    p = sub.add_parser('reject', help='Reject an announcement')
    p.add_argument('announcement_id')
    p.add_argument('--reason', default=None)

    p = sub.add_parser('dispatch', help='Send a published announcement again')
    p.add_argument('announcement_id')

    p = sub.add_parser('confirm-payment', help='Settle a payment and distribute')
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument('--session-id', help='Checkout session to verify with the gateway')
    group.add_argument('--payment-id', help='Payment to settle directly')
    p.add_argument('--tx-hash', help='Transaction hash (with --payment-id)')
    p.add_argument('--demo', action='store_true', help='Generate a demo transaction hash')

    p = sub.add_parser('check-bots', help='Check bot presence in Telegram communities')
    p.add_argument('--community-id', action='append', default=None)

    p = sub.add_parser('broadcast', help='Send a message to approved Telegram communities')
    p.add_argument('--message', required=True)
    p.add_argument('--community-id', action='append', default=None)

    sub.add_parser('register-commands', help='Register the bot command list')

    p = sub.add_parser('set-webhook', help='Point the bot webhook at a URL')
    p.add_argument('url')

    p = sub.add_parser('report', help='Print campaign statistics')
    p.add_argument('announcement_id')

    args = parser.parse_args(argv)
    if args.command == 'confirm-payment' and args.payment_id and not (args.tx_hash or args.demo):
        parser.error('--payment-id needs --tx-hash or --demo')
    return args


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_file_logging(args.log_file, log_level)

    logger.info(f"Starting marketplace command '{args.command}'")
    lifecycle = None

    try:
        lifecycle = create_marketplace()
        logger.debug(f"Configuration: {get_config_summary()}")
        success = run_command(args, lifecycle)

        if success:
            logger.info("Command completed successfully")
            exit_code = 0
        else:
            logger.warning("Command completed with warnings or errors")
            exit_code = 1

    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        exit_code = 2
    finally:
        if lifecycle is not None and hasattr(lifecycle.storage, "close"):
            lifecycle.storage.close()

    logger.info(f"Marketplace command finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
