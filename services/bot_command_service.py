"""
Bot Command Registry

Registers the bot's slash commands, points Telegram's webhook at the
marketplace, and answers incoming webhook updates.
"""

from typing import Optional, List, Dict, Any

from config import settings
from data.models import BotCommand, Platform
from data.protocols import BotCommandStorage, CommunityStorage, SettingsStorage
from services.protocols import TelegramClient
from utils.chat_ids import chat_id_candidates
from utils.exceptions import TelegramAPIError
from utils.helpers import safe_get
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COMMANDS = [
    BotCommand(
        command="/my_communities",
        description="List your registered communities",
        response_template="Here are your registered communities:\n{communities}",
        is_admin_only=True,
    ),
    BotCommand(
        command="/generate_invite",
        description="Generate an invite link for this community",
        response_template="Invite link for this community: {invite_link}",
    ),
    BotCommand(
        command="/community_stats",
        description="Show statistics for this community",
        response_template="Community statistics:\nMembers: {member_count}",
    ),
    BotCommand(
        command="/member_count",
        description="Show the current member count",
        response_template="This community has {member_count} members.",
    ),
]

GROUP_CHAT_TYPES = ("group", "supergroup")
ADMIN_STATUSES = ("administrator", "creator")


class _SafeDict(dict):
    def __missing__(self, key):
        return "n/a"


class BotCommandService:
    """Manages bot commands, the webhook and incoming updates."""

    def __init__(
        self,
        telegram: TelegramClient,
        command_storage: BotCommandStorage,
        community_storage: Optional[CommunityStorage] = None,
        settings_storage: Optional[SettingsStorage] = None
    ):
        self.telegram = telegram
        self.command_storage = command_storage
        self.community_storage = community_storage
        self.settings_storage = settings_storage

    def register_default_commands(self, commands: Optional[List[BotCommand]] = None) -> int:
        """
        Store the commands and publish them to Telegram.

        Returns:
            int: Number of commands registered.

        Raises:
            TelegramAPIError: If Telegram rejects the command list.
        """
        commands = commands or DEFAULT_COMMANDS
        for command in commands:
            if not self.command_storage.upsert_bot_command(command):
                logger.warning(f"Could not store bot command {command.command}")

        self.telegram.set_my_commands([
            {"command": c.command.lstrip("/"), "description": c.description}
            for c in commands
        ])
        logger.info(f"Registered {len(commands)} bot commands")
        return len(commands)

    def configure_webhook(self, webhook_url: str) -> str:
        """
        Point the bot's webhook at webhook_url and remember the bot's username.

        Returns:
            str: The bot username reported by getMe.
        """
        me = self.telegram.get_me()
        username = me.get("username")
        if username and self.settings_storage is not None:
            self.settings_storage.update_bot_username(username)

        self.telegram.set_webhook(webhook_url, allowed_updates=settings.TELEGRAM_WEBHOOK_UPDATES)
        logger.info(f"Webhook for @{username} set to {webhook_url}")
        return username

    def handle_update(self, update: Dict[str, Any]) -> bool:
        """
        React to a webhook update.

        Group messages from a chat registered as a Telegram community get the
        welcome message; slash commands matching a stored command get its
        response template.

        Returns:
            bool: True if the bot replied.
        """
        message = update.get("message") or {}
        chat = message.get("chat") or {}
        chat_id = chat.get("id")
        if chat_id is None:
            return False

        text = (message.get("text") or "").strip()
        if text.startswith("/"):
            return self._answer_command(message, text)

        if chat.get("type") not in GROUP_CHAT_TYPES or self.community_storage is None:
            return False

        identifiers = chat_id_candidates(str(chat_id))
        if chat.get("username"):
            identifiers.extend(chat_id_candidates(chat["username"]))
        community = self.community_storage.find_community_by_platform_id(Platform.TELEGRAM, identifiers)
        if community is None:
            return False

        try:
            self.telegram.send_message(str(chat_id), settings.BOT_WELCOME_MESSAGE)
        except TelegramAPIError as e:
            logger.warning(f"Welcome message to '{community.name}' failed: {e.description}")
            return False
        logger.info(f"Sent welcome message to community '{community.name}'")
        return True

    def _answer_command(self, message: Dict[str, Any], text: str) -> bool:
        chat_id = str(message["chat"]["id"])
        name = text.split()[0].split("@")[0].lower()
        command = next((c for c in self.command_storage.list_bot_commands() if c.command.lower() == name), None)
        if command is None:
            return False

        if command.is_admin_only:
            user_id = safe_get(message, "from", "id")
            try:
                member = self.telegram.get_chat_member(chat_id, user_id)
            except TelegramAPIError as e:
                logger.debug(f"Could not verify admin rights of {user_id}: {e.description}")
                return False
            if member.get("status") not in ADMIN_STATUSES:
                logger.debug(f"Ignoring admin command {name} from non-admin {user_id}")
                return False

        values = _SafeDict()
        try:
            values["member_count"] = self.telegram.get_chat_member_count(chat_id)
        except TelegramAPIError as e:
            logger.debug(f"Member count unavailable for {chat_id}: {e.description}")
        invite = safe_get(message, "chat", "invite_link")
        if invite:
            values["invite_link"] = invite

        try:
            reply = command.response_template.format_map(values)
        except (ValueError, AttributeError, TypeError, IndexError, KeyError) as e:
            logger.error(f"Response template of {name} cannot be rendered: {e}")
            return False

        try:
            self.telegram.send_message(chat_id, reply)
        except TelegramAPIError as e:
            logger.warning(f"Reply to {name} in {chat_id} failed: {e.description}")
            return False
        return True
