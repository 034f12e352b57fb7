"""
Bot Reachability Checker

Answers "can our bot post into this community?" by probing the Telegram
chat behind a community's stored identifier. Identifiers entered by owners
are often in the wrong shape, so the checker tries each plausible form in
turn and writes the one that works back to the community.
"""

from typing import Optional, Dict, Iterable

from data.models import BotStatus, Community, Platform
from data.protocols import CommunityStorage
from services.protocols import TelegramClient
from utils.chat_ids import chat_id_candidates
from utils.exceptions import TelegramAPIError
from utils.logger import get_logger

logger = get_logger(__name__)

ADMIN_STATUSES = ("administrator", "creator")
ABSENT_STATUSES = ("left", "kicked")


class BotStatusChecker:
    """Checks bot membership and permissions for communities."""

    def __init__(
        self,
        telegram: TelegramClient,
        community_storage: Optional[CommunityStorage] = None,
        bot_username: Optional[str] = None
    ):
        """
        Args:
            telegram: Bot API client built with the current platform bot token.
            community_storage: Where corrected identifiers and reach are written;
                None disables write-back.
            bot_username: Used for the add-to-group invite link.
        """
        self.telegram = telegram
        self.community_storage = community_storage
        self.bot_username = bot_username.lstrip("@") if bot_username else None
        self._bot_id = None

    def invite_link(self) -> Optional[str]:
        """Link that opens Telegram's add-bot-to-group flow."""
        if not self.bot_username:
            return None
        return f"https://t.me/{self.bot_username}?startgroup=true"

    def _get_bot_id(self) -> int:
        if self._bot_id is None:
            me = self.telegram.get_me()
            self._bot_id = me["id"]
            if not self.bot_username and me.get("username"):
                self.bot_username = me["username"]
        return self._bot_id

    def resolve_chat(self, raw_id: str):
        """
        Find the first identifier form that getChat accepts.

        Returns:
            Tuple of (working identifier, chat dict), or (None, last error description).

        Raises:
            TelegramTransportError: If the API is unreachable.
        """
        last_error = "Chat not found"
        for candidate in chat_id_candidates(raw_id):
            try:
                chat = self.telegram.get_chat(candidate)
                logger.debug(f"getChat succeeded for '{candidate}'")
                return candidate, chat
            except TelegramAPIError as e:
                logger.debug(f"getChat failed for '{candidate}': {e.description}")
                last_error = e.description
        return None, last_error

    def check_status(self, community: Community) -> BotStatus:
        """
        Probe the bot's presence in a community's chat.

        Args:
            community: Community to check.

        Returns:
            BotStatus: Expected negatives are reported through bot_added/error.

        Raises:
            TelegramTransportError: If the API is unreachable.
        """
        if community.platform != Platform.TELEGRAM:
            return BotStatus(bot_added=False, error=f"Bot checks are not supported for {community.platform.value}")
        if not community.platform_id:
            return BotStatus(bot_added=False, error="Community has no platform ID", invite_link=self.invite_link())

        chat_id, chat_or_error = self.resolve_chat(community.platform_id)
        if chat_id is None:
            logger.info(f"Bot cannot see chat for community '{community.name}': {chat_or_error}")
            return BotStatus(bot_added=False, error=chat_or_error, invite_link=self.invite_link())

        chat = chat_or_error
        if chat_id != community.platform_id:
            logger.info(f"Correcting platform ID for '{community.name}': '{community.platform_id}' -> '{chat_id}'")
            if self.community_storage is not None:
                self.community_storage.update_community_platform_id(community.id, chat_id)
            community.platform_id = chat_id

        invite = chat.get("invite_link") or self.invite_link()

        try:
            member = self.telegram.get_chat_member(chat_id, self._get_bot_id())
        except TelegramAPIError as e:
            logger.info(f"Bot membership lookup failed for '{community.name}': {e.description}")
            return BotStatus(bot_added=False, error=e.description, invite_link=invite, chat_id=chat_id)

        member_status = member.get("status")
        bot_added = member_status not in ABSENT_STATUSES
        is_admin = member_status in ADMIN_STATUSES

        member_count = self._member_count(community, chat_id)

        return BotStatus(
            bot_added=bot_added,
            is_admin=is_admin,
            member_count=member_count,
            invite_link=invite,
            error=None if bot_added else f"Bot status in chat is '{member_status}'",
            chat_id=chat_id,
            status=member_status,
        )

    def _member_count(self, community: Community, chat_id: str) -> Optional[int]:
        try:
            count = self.telegram.get_chat_member_count(chat_id)
        except TelegramAPIError as e:
            logger.warning(f"Could not count members for '{community.name}': {e.description}")
            return None

        if count and count > 0 and count != community.reach:
            if self.community_storage is not None:
                self.community_storage.update_community_reach(community.id, count)
            community.reach = count
        return count

    def check_all(self, communities: Iterable[Community]) -> Dict[str, BotStatus]:
        """Check every Telegram community that has a platform ID, one after another."""
        results = {}
        for community in communities:
            if community.platform != Platform.TELEGRAM or not community.platform_id:
                continue
            results[community.id] = self.check_status(community)
        ready = sum(1 for s in results.values() if s.bot_added)
        logger.info(f"Bot present in {ready} of {len(results)} communities")
        return results
