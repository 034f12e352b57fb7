"""
Database Module for the Announcement Marketplace

This module handles all database connections and operations.
It provides the connection manager, a transaction boundary for
multi-step writes, and the CRUD operations behind every storage
Protocol in data.protocols.
"""

import pyodbc
import pandas as pd
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Iterable

from config import settings
from data.models import (
    Announcement, AnnouncementCommunity, AnnouncementStatus, ApprovalStatus,
    BotCommand, Community, CommunityEarning, Payment, PaymentStatus,
    Platform, PlatformSettings, Profile
)
from utils.exceptions import DatabaseError, QueryError
from utils.exceptions import ConnectionError as DatabaseConnectionError
from utils.helpers import dump_json, new_id
from utils.logger import get_logger

logger = get_logger(__name__)

LINK_COUNTERS = ("views", "clicks")


class DatabaseConnection:
    """Database connection manager for the marketplace."""

    def __init__(self, connection_string: Optional[str] = None):
        """Initialize the database connection."""
        self.conn = None
        self.connection_string = connection_string
        self._in_transaction = False
        pyodbc.pooling = False

    def connect(self) -> bool:
        """
        Establish a connection to the database.

        Returns:
            bool: True if connection was successful, False otherwise.
        """
        try:
            self.conn = pyodbc.connect(self.connection_string or settings.DB_CONNECTION_STRING)
            self.conn.setdecoding(pyodbc.SQL_CHAR, encoding='utf-8')
            logger.info("Successfully connected to database")
            return True
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            self.conn = None
            return False

    def close(self) -> None:
        """Close the database connection."""
        try:
            if self.conn:
                self.conn.close()
                logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database connection: {e}")
        finally:
            self.conn = None

    @contextmanager
    def transaction(self):
        """
        Group several writes into one commit.

        Inside the block, failed queries raise QueryError instead of
        returning None. Any exception rolls back every write made in the
        block and is re-raised.

        Raises:
            DatabaseConnectionError: If no connection can be established.
        """
        if not self.conn and not self.connect():
            raise DatabaseConnectionError("Could not connect to database for transaction")
        if self._in_transaction:
            # Nested blocks join the outer transaction
            yield self
            return

        self._in_transaction = True
        try:
            yield self
            self.conn.commit()
        except Exception:
            logger.warning("Transaction failed, rolling back")
            try:
                self.conn.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise
        finally:
            self._in_transaction = False

    def execute_query(self, query: str, params: Optional[tuple] = None) -> Optional[List[Dict]]:
        """
        Execute a SQL query and return the results.

        Args:
            query: The SQL query to execute.
            params: Query parameters (optional).

        Returns:
            Optional[List[Dict]]: Query results as a list of dictionaries, an empty
            list for statements without a result set, or None if an error occurred.

        Raises:
            DatabaseError: Re-raised as is.
            QueryError: If the query fails inside a transaction.
        """
        if not self.conn and not self.connect():
            return None

        try:
            cursor = self.conn.cursor()
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            # Check if this is a SELECT query with results
            if cursor.description:
                columns = [column[0] for column in cursor.description]
                results = [dict(zip(columns, row)) for row in cursor.fetchall()]
                return results

            if not self._in_transaction:
                self.conn.commit()
            return []

        except DatabaseError:
            raise
        except Exception as e:
            if self._in_transaction:
                raise QueryError(f"Query failed inside transaction: {e}") from e
            logger.error(f"Error executing query: {e}")
            try:
                self.conn.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            return None

    def _execute_write(self, query: str, params: tuple, description: str) -> bool:
        result = self.execute_query(query, params)
        if result is None:
            logger.error(f"Failed to {description}")
            return False
        return True

    def _fetch_one(self, query: str, params: tuple) -> Optional[Dict]:
        rows = self.execute_query(query, params)
        if not rows:
            return None
        return rows[0]

    # =========================================================================
    # Announcements
    # =========================================================================

    def insert_announcement(self, announcement: Announcement) -> bool:
        query = """
        INSERT INTO [dbo].[announcements]
            ([id], [user_id], [title], [content], [cta_text], [cta_url], [media_urls],
             [status], [payment_status], [payment_waived], [validation_result], [impressions],
             [created_at], [updated_at])
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, SYSUTCDATETIME(), SYSUTCDATETIME())
        """
        params = (
            announcement.id,
            announcement.user_id,
            announcement.title,
            announcement.content,
            announcement.cta_text,
            announcement.cta_url,
            dump_json(announcement.media_urls),
            announcement.status.value,
            announcement.payment_status.value,
            1 if announcement.payment_waived else 0,
            dump_json(announcement.validation_result.to_dict()) if announcement.validation_result else None,
            announcement.impressions,
        )
        ok = self._execute_write(query, params, f"insert announcement {announcement.id}")
        if ok:
            logger.info(f"Inserted announcement {announcement.id}")
        return ok

    def get_announcement(self, announcement_id: str) -> Optional[Announcement]:
        row = self._fetch_one("SELECT * FROM [dbo].[announcements] WHERE [id] = ?", (announcement_id,))
        return Announcement.from_row(row) if row else None

    def update_announcement(self, announcement: Announcement) -> bool:
        query = """
        UPDATE [dbo].[announcements]
        SET [title] = ?,
            [content] = ?,
            [cta_text] = ?,
            [cta_url] = ?,
            [media_urls] = ?,
            [status] = ?,
            [payment_status] = ?,
            [payment_waived] = ?,
            [validation_result] = ?,
            [updated_at] = SYSUTCDATETIME()
        WHERE [id] = ?
        """
        params = (
            announcement.title,
            announcement.content,
            announcement.cta_text,
            announcement.cta_url,
            dump_json(announcement.media_urls),
            announcement.status.value,
            announcement.payment_status.value,
            1 if announcement.payment_waived else 0,
            dump_json(announcement.validation_result.to_dict()) if announcement.validation_result else None,
            announcement.id,
        )
        return self._execute_write(query, params, f"update announcement {announcement.id}")

    def list_announcements_for_review(
        self,
        status: AnnouncementStatus = AnnouncementStatus.PENDING_APPROVAL
    ) -> List[Dict[str, Any]]:
        query = """
        SELECT a.[id], a.[title], a.[content], a.[status], a.[payment_status],
               a.[created_at], a.[user_id], p.[name] AS [owner_name]
        FROM [dbo].[announcements] a
        LEFT JOIN [dbo].[profiles] p ON p.[id] = a.[user_id]
        WHERE a.[status] = ?
        ORDER BY a.[created_at] DESC
        """
        return self.execute_query(query, (status.value,)) or []

    def link_communities(self, announcement_id: str, community_ids: Iterable[str]) -> int:
        query = """
        IF NOT EXISTS (
            SELECT 1 FROM [dbo].[announcement_communities]
            WHERE [announcement_id] = ? AND [community_id] = ?
        )
        INSERT INTO [dbo].[announcement_communities]
            ([id], [announcement_id], [community_id], [views], [clicks], [created_at])
        VALUES (?, ?, ?, 0, 0, SYSUTCDATETIME())
        """
        existing = {link.community_id for link in self.get_announcement_communities(announcement_id)}
        created = 0
        for community_id in community_ids:
            if community_id in existing:
                continue
            params = (announcement_id, community_id, new_id(), announcement_id, community_id)
            if self._execute_write(query, params, f"link community {community_id}"):
                existing.add(community_id)
                created += 1
        return created

    def replace_communities(self, announcement_id: str, community_ids: Iterable[str]) -> int:
        """
        Make the given communities the announcement's only targets.

        Links outside the selection are deleted and missing ones created in a
        single transaction.

        Returns:
            int: Number of links created.

        Raises:
            QueryError: If any statement fails; nothing is changed.
        """
        ids = list(dict.fromkeys(community_ids))
        with self.transaction():
            if ids:
                placeholders = ", ".join("?" for _ in ids)
                query = f"""
                DELETE FROM [dbo].[announcement_communities]
                WHERE [announcement_id] = ? AND [community_id] NOT IN ({placeholders})
                """
                self.execute_query(query, (announcement_id, *ids))
            else:
                self.execute_query(
                    "DELETE FROM [dbo].[announcement_communities] WHERE [announcement_id] = ?",
                    (announcement_id,)
                )
            return self.link_communities(announcement_id, ids)

    def get_announcement_communities(self, announcement_id: str) -> List[AnnouncementCommunity]:
        rows = self.execute_query(
            "SELECT * FROM [dbo].[announcement_communities] WHERE [announcement_id] = ? ORDER BY [created_at]",
            (announcement_id,)
        )
        return [AnnouncementCommunity.from_row(row) for row in rows or []]

    def update_delivery(
        self,
        announcement_id: str,
        community_id: str,
        delivered: bool,
        delivery_log: Dict[str, Any]
    ) -> bool:
        query = """
        UPDATE [dbo].[announcement_communities]
        SET [delivered] = ?,
            [delivery_log] = ?
        WHERE [announcement_id] = ? AND [community_id] = ?
        """
        params = (1 if delivered else 0, dump_json(delivery_log), announcement_id, community_id)
        return self._execute_write(query, params, f"record delivery for community {community_id}")

    # =========================================================================
    # Communities
    # =========================================================================

    def get_community(self, community_id: str) -> Optional[Community]:
        row = self._fetch_one("SELECT * FROM [dbo].[communities] WHERE [id] = ?", (community_id,))
        return Community.from_row(row) if row else None

    def get_communities(self, community_ids: Iterable[str]) -> List[Community]:
        ids = list(dict.fromkeys(community_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self.execute_query(
            f"SELECT * FROM [dbo].[communities] WHERE [id] IN ({placeholders})",
            tuple(ids)
        )
        by_id = {row["id"]: Community.from_row(row) for row in rows or []}
        return [by_id[i] for i in ids if i in by_id]

    def list_communities(
        self,
        approval_status: Optional[ApprovalStatus] = None,
        platform: Optional[Platform] = None
    ) -> List[Community]:
        query = "SELECT * FROM [dbo].[communities] WHERE 1 = 1"
        params = []
        if approval_status is not None:
            query += " AND [approval_status] = ?"
            params.append(approval_status.value)
        if platform is not None:
            query += " AND [platform] = ?"
            params.append(platform.value)
        query += " ORDER BY [name]"
        rows = self.execute_query(query, tuple(params) if params else None)
        return [Community.from_row(row) for row in rows or []]

    def find_community_by_platform_id(
        self,
        platform: Platform,
        platform_ids: Iterable[str]
    ) -> Optional[Community]:
        ids = [str(i) for i in platform_ids if i]
        if not ids:
            return None
        placeholders = ", ".join("?" for _ in ids)
        row = self._fetch_one(
            f"SELECT TOP 1 * FROM [dbo].[communities] WHERE [platform] = ? AND [platform_id] IN ({placeholders})",
            (platform.value, *ids)
        )
        return Community.from_row(row) if row else None

    def update_community_platform_id(self, community_id: str, platform_id: str) -> bool:
        return self._execute_write(
            "UPDATE [dbo].[communities] SET [platform_id] = ? WHERE [id] = ?",
            (platform_id, community_id),
            f"update platform id for community {community_id}"
        )

    def update_community_reach(self, community_id: str, reach: int) -> bool:
        return self._execute_write(
            "UPDATE [dbo].[communities] SET [reach] = ? WHERE [id] = ?",
            (reach, community_id),
            f"update reach for community {community_id}"
        )

    # =========================================================================
    # Payments and earnings
    # =========================================================================

    def insert_payment(self, payment: Payment) -> bool:
        query = """
        INSERT INTO [dbo].[payments]
            ([id], [amount], [currency], [user_id], [announcement_id], [status],
             [transaction_hash], [payment_session_id], [payment_gateway], [created_at])
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, SYSUTCDATETIME())
        """
        params = (
            payment.id,
            payment.amount,
            payment.currency,
            payment.user_id,
            payment.announcement_id,
            payment.status.value,
            payment.transaction_hash,
            payment.payment_session_id,
            payment.payment_gateway,
        )
        return self._execute_write(query, params, f"insert payment {payment.id}")

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        row = self._fetch_one("SELECT * FROM [dbo].[payments] WHERE [id] = ?", (payment_id,))
        return Payment.from_row(row) if row else None

    def get_payment_by_session(self, session_id: str) -> Optional[Payment]:
        row = self._fetch_one("SELECT * FROM [dbo].[payments] WHERE [payment_session_id] = ?", (session_id,))
        return Payment.from_row(row) if row else None

    def get_pending_payment(self, announcement_id: str) -> Optional[Payment]:
        row = self._fetch_one(
            "SELECT TOP 1 * FROM [dbo].[payments] WHERE [announcement_id] = ? AND [status] = ? ORDER BY [created_at] DESC",
            (announcement_id, PaymentStatus.PENDING.value)
        )
        return Payment.from_row(row) if row else None

    def update_payment_session(self, payment_id: str, session_id: str, gateway: str) -> bool:
        return self._execute_write(
            "UPDATE [dbo].[payments] SET [payment_session_id] = ?, [payment_gateway] = ? WHERE [id] = ?",
            (session_id, gateway, payment_id),
            f"store checkout session for payment {payment_id}"
        )

    def update_payment_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        transaction_hash: Optional[str] = None
    ) -> bool:
        return self._execute_write(
            """
            UPDATE [dbo].[payments]
            SET [status] = ?,
                [transaction_hash] = COALESCE(?, [transaction_hash])
            WHERE [id] = ?
            """,
            (status.value, transaction_hash, payment_id),
            f"update status of payment {payment_id}"
        )

    def insert_earning(self, earning: CommunityEarning) -> bool:
        return self._execute_write(
            """
            INSERT INTO [dbo].[community_earnings]
                ([id], [amount], [currency], [community_id], [payment_id], [created_at])
            VALUES (?, ?, ?, ?, ?, SYSUTCDATETIME())
            """,
            (earning.id, earning.amount, earning.currency, earning.community_id, earning.payment_id),
            f"insert earning for community {earning.community_id}"
        )

    def earnings_exist_for_payment(self, payment_id: str) -> bool:
        row = self._fetch_one(
            "SELECT COUNT(*) AS [n] FROM [dbo].[community_earnings] WHERE [payment_id] = ?",
            (payment_id,)
        )
        return bool(row and row.get("n"))

    # =========================================================================
    # Settings, profiles and bot commands
    # =========================================================================

    def get_platform_settings(self) -> PlatformSettings:
        row = self._fetch_one("SELECT * FROM [dbo].[platform_settings] WHERE [id] = ?", (1,))
        return PlatformSettings.from_row(row)

    def update_bot_username(self, username: str) -> bool:
        return self._execute_write(
            "UPDATE [dbo].[platform_settings] SET [telegram_bot_username] = ?, [updated_at] = SYSUTCDATETIME() WHERE [id] = ?",
            (username, 1),
            "store bot username"
        )

    def get_profile(self, user_id: str) -> Optional[Profile]:
        row = self._fetch_one("SELECT * FROM [dbo].[profiles] WHERE [id] = ?", (user_id,))
        if not row:
            return None
        return Profile(
            id=row["id"],
            name=row.get("name"),
            email=row.get("email"),
            wallet_address=row.get("wallet_address"),
            is_admin=bool(row.get("is_admin")),
        )

    def update_profile_wallet(self, user_id: str, wallet_address: str) -> bool:
        return self._execute_write(
            "UPDATE [dbo].[profiles] SET [wallet_address] = ? WHERE [id] = ?",
            (wallet_address, user_id),
            f"link wallet for user {user_id}"
        )

    def upsert_bot_command(self, command: BotCommand) -> bool:
        query = """
        MERGE [dbo].[bot_commands] AS target
        USING (SELECT ? AS [command]) AS source
        ON target.[command] = source.[command]
        WHEN MATCHED THEN
            UPDATE SET [description] = ?, [response_template] = ?, [is_admin_only] = ?
        WHEN NOT MATCHED THEN
            INSERT ([id], [command], [description], [response_template], [is_admin_only])
            VALUES (?, ?, ?, ?, ?);
        """
        admin_flag = 1 if command.is_admin_only else 0
        params = (
            command.command,
            command.description, command.response_template, admin_flag,
            new_id(), command.command, command.description, command.response_template, admin_flag,
        )
        return self._execute_write(query, params, f"upsert bot command {command.command}")

    def list_bot_commands(self) -> List[BotCommand]:
        rows = self.execute_query("SELECT * FROM [dbo].[bot_commands] ORDER BY [command]")
        return [
            BotCommand(
                command=row["command"],
                description=row.get("description") or "",
                response_template=row.get("response_template") or "",
                is_admin_only=bool(row.get("is_admin_only")),
            )
            for row in rows or []
        ]

    # =========================================================================
    # Analytics
    # =========================================================================

    def increment_link_counter(self, announcement_id: str, community_id: str, counter: str) -> bool:
        if counter not in LINK_COUNTERS:
            raise QueryError(f"Unknown counter column: {counter}")
        return self._execute_write(
            f"""
            UPDATE [dbo].[announcement_communities]
            SET [{counter}] = [{counter}] + 1
            WHERE [announcement_id] = ? AND [community_id] = ?
            """,
            (announcement_id, community_id),
            f"increment {counter} for community {community_id}"
        )

    def get_campaign_stats(self, announcement_id: str) -> Optional[pd.DataFrame]:
        """
        Retrieve per-community delivery and engagement numbers for one announcement.

        Returns:
            Optional[pd.DataFrame]: One row per linked community, or None if an error occurred.
        """
        query = """
        SELECT c.[id] AS [community_id], c.[name], c.[platform], c.[reach],
               ac.[delivered], ac.[views], ac.[clicks]
        FROM [dbo].[announcement_communities] ac
        JOIN [dbo].[communities] c ON c.[id] = ac.[community_id]
        WHERE ac.[announcement_id] = ?
        ORDER BY c.[name]
        """
        try:
            if not self.conn and not self.connect():
                return None
            return pd.read_sql(query, self.conn, params=[announcement_id])
        except DatabaseError:
            raise
        except Exception as e:
            logger.error(f"Error retrieving campaign stats: {e}")
            return None

    def get_user_summary(self, user_id: str) -> Optional[Dict[str, Any]]:
        query = """
        SELECT
            (SELECT COUNT(*) FROM [dbo].[announcements] WHERE [user_id] = ?) AS [announcements],
            (SELECT COUNT(*) FROM [dbo].[announcements] WHERE [user_id] = ? AND [status] = ?) AS [published],
            (SELECT COALESCE(SUM(ac.[views]), 0) FROM [dbo].[announcement_communities] ac
                JOIN [dbo].[announcements] a ON a.[id] = ac.[announcement_id] WHERE a.[user_id] = ?) AS [views],
            (SELECT COALESCE(SUM(ac.[clicks]), 0) FROM [dbo].[announcement_communities] ac
                JOIN [dbo].[announcements] a ON a.[id] = ac.[announcement_id] WHERE a.[user_id] = ?) AS [clicks],
            (SELECT COALESCE(SUM([amount]), 0) FROM [dbo].[payments] WHERE [user_id] = ? AND [status] = ?) AS [spend]
        """
        params = (
            user_id,
            user_id, AnnouncementStatus.PUBLISHED.value,
            user_id,
            user_id,
            user_id, PaymentStatus.PAID.value,
        )
        return self._fetch_one(query, params)


# Create a default database instance for use throughout the application
db = DatabaseConnection()
