"""
Database repository for canonical mail items.

Provides PostgreSQL operations for storing and retrieving mail items.
Calls are blocking; async callers run them with asyncio.to_thread().
"""

from contextlib import contextmanager
from typing import Any, Generator

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from mailroom.config import settings
from mailroom.core.logging import get_logger
from mailroom.core.models import MailItem, NormalizedMail

log = get_logger(__name__)


class Database:
    """PostgreSQL database operations for mail storage."""

    def __init__(self, connection_string: str | None = None):
        """
        Initialize database connection.

        Args:
            connection_string: PostgreSQL connection URL. Uses settings if not provided.
        """
        self.connection_string = connection_string or settings.database_url

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        schema_sql = """
        -- mail_items: canonical mail records, one row per external_id
        CREATE TABLE IF NOT EXISTS mail_items (
            external_id VARCHAR(64) PRIMARY KEY,
            session_id VARCHAR(255) NOT NULL,
            item_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL,
            content_version VARCHAR(32) NOT NULL,
            received_at TIMESTAMPTZ,
            expires_at TIMESTAMPTZ,
            opened_at TIMESTAMPTZ,

            -- Postal forwarding requested by the recipient
            forward_address JSONB,
            forward_requested_at TIMESTAMPTZ,

            -- Re-classification tracking
            needs_reclassification BOOLEAN DEFAULT FALSE,
            reclassify_attempts INTEGER DEFAULT 0,
            last_reclassify_at TIMESTAMPTZ,

            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_mail_items_session_item
            ON mail_items(session_id, item_id);
        CREATE INDEX IF NOT EXISTS idx_mail_items_received
            ON mail_items(session_id, received_at DESC);
        CREATE INDEX IF NOT EXISTS idx_mail_items_reclassify
            ON mail_items(needs_reclassification) WHERE needs_reclassification;
        """

        with self.get_connection() as conn:
            conn.execute(schema_sql)
            conn.commit()
            log.info("database_schema_initialized")

    def upsert_mail_item(self, normalized: NormalizedMail) -> None:
        """
        Insert or replace a mail item.

        A later record with the same external_id supersedes the earlier one.
        """
        sql = """
        INSERT INTO mail_items (
            external_id, session_id, item_id, payload, content_version,
            received_at, expires_at, needs_reclassification
        ) VALUES (
            %(external_id)s, %(session_id)s, %(item_id)s, %(payload)s,
            %(content_version)s, %(received_at)s, %(expires_at)s,
            %(needs_reclassification)s
        )
        ON CONFLICT (external_id) DO UPDATE SET
            payload = EXCLUDED.payload,
            content_version = EXCLUDED.content_version,
            received_at = EXCLUDED.received_at,
            expires_at = EXCLUDED.expires_at,
            needs_reclassification = EXCLUDED.needs_reclassification,
            updated_at = NOW()
        """

        item = normalized.item
        params = {
            "external_id": item.external_id,
            "session_id": normalized.session_id,
            "item_id": str(item.id),
            "payload": Json(item.to_dict()),
            "content_version": item.content_version(),
            "received_at": normalized.raw.received_at,
            "expires_at": normalized.raw.expires_at,
            "needs_reclassification": normalized.needs_reclassification,
        }

        with self.get_connection() as conn:
            conn.execute(sql, params)
            conn.commit()
            log.info(
                "mail_item_stored",
                session_id=normalized.session_id,
                external_id=item.external_id,
                needs_reclassification=normalized.needs_reclassification,
            )

    def list_mail_items(self, session_id: str, include_expired: bool = False) -> list[MailItem]:
        """Get a session's mail items, newest first."""
        sql = """
            SELECT payload FROM mail_items
            WHERE session_id = %s
        """
        if not include_expired:
            sql += " AND (expires_at IS NULL OR expires_at > NOW())"
        sql += " ORDER BY received_at DESC"

        with self.get_connection() as conn:
            rows = conn.execute(sql, (session_id,)).fetchall()
            return [MailItem.from_dict(row["payload"]) for row in rows]

    def get_mail_item(self, session_id: str, item_id: str) -> MailItem | None:
        """Get a single mail item by its provider id."""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT payload FROM mail_items WHERE session_id = %s AND item_id = %s",
                (session_id, item_id),
            ).fetchone()
            return MailItem.from_dict(row["payload"]) if row else None

    def mark_opened(self, session_id: str, item_id: str) -> bool:
        """Mark a mail item as opened. Returns False if it does not exist."""
        sql = """
        UPDATE mail_items
        SET opened_at = COALESCE(opened_at, NOW()), updated_at = NOW()
        WHERE session_id = %s AND item_id = %s
        RETURNING external_id
        """
        with self.get_connection() as conn:
            row = conn.execute(sql, (session_id, item_id)).fetchone()
            conn.commit()
            if row:
                log.info("mail_item_opened", session_id=session_id, item_id=item_id)
            return row is not None

    def request_forward(self, session_id: str, item_id: str, address: dict[str, Any]) -> bool:
        """
        Record a request to forward a mail item to a postal address.

        A later request replaces the address of an earlier one.

        Returns:
            False if the item does not exist
        """
        sql = """
        UPDATE mail_items
        SET forward_address = %(address)s,
            forward_requested_at = NOW(),
            updated_at = NOW()
        WHERE session_id = %(session_id)s AND item_id = %(item_id)s
        RETURNING external_id
        """
        params = {"session_id": session_id, "item_id": item_id, "address": Json(address)}
        with self.get_connection() as conn:
            row = conn.execute(sql, params).fetchone()
            conn.commit()
            if row:
                log.info("mail_forward_requested", session_id=session_id, item_id=item_id)
            return row is not None

    def get_unread_counts(self, session_id: str) -> dict[str, int]:
        """Count unopened items and the urgent ones among them."""
        sql = """
        SELECT
            COUNT(*) AS unread,
            COUNT(*) FILTER (
                WHERE lower(payload->>'category') = ANY(%(urgent)s)
            ) AS urgent
        FROM mail_items
        WHERE session_id = %(session_id)s
          AND opened_at IS NULL
          AND (expires_at IS NULL OR expires_at > NOW())
        """
        params = {
            "session_id": session_id,
            "urgent": [c.lower() for c in settings.urgent_categories],
        }
        with self.get_connection() as conn:
            row = conn.execute(sql, params).fetchone()
            return {"unread": row["unread"] or 0, "urgent": row["urgent"] or 0}

    def get_pending_reclassification(
        self,
        limit: int = 50,
        max_attempts: int | None = None,
    ) -> list[tuple[str, MailItem]]:
        """
        Get items whose classification failed and should be retried.

        Returns:
            List of (session_id, item), oldest first
        """
        max_attempts = max_attempts if max_attempts is not None else settings.reclassify_max_attempts
        sql = """
            SELECT session_id, payload FROM mail_items
            WHERE needs_reclassification = TRUE
              AND reclassify_attempts < %s
            ORDER BY received_at ASC
            LIMIT %s
        """
        with self.get_connection() as conn:
            rows = conn.execute(sql, (max_attempts, limit)).fetchall()
            return [(row["session_id"], MailItem.from_dict(row["payload"])) for row in rows]

    def record_reclassification(self, item: MailItem, success: bool) -> None:
        """Store the outcome of a re-classification attempt."""
        if success:
            sql = """
            UPDATE mail_items
            SET payload = %(payload)s,
                content_version = %(content_version)s,
                needs_reclassification = FALSE,
                reclassify_attempts = reclassify_attempts + 1,
                last_reclassify_at = NOW(),
                updated_at = NOW()
            WHERE external_id = %(external_id)s
            """
        else:
            sql = """
            UPDATE mail_items
            SET reclassify_attempts = reclassify_attempts + 1,
                last_reclassify_at = NOW()
            WHERE external_id = %(external_id)s
            """

        params = {
            "external_id": item.external_id,
            "payload": Json(item.to_dict()),
            "content_version": item.content_version(),
        }
        with self.get_connection() as conn:
            conn.execute(sql, params)
            conn.commit()

    def get_stats(self) -> dict[str, Any]:
        """Get storage statistics."""
        sql = """
        SELECT
            COUNT(*) AS total,
            COUNT(*) FILTER (WHERE opened_at IS NULL) AS unread,
            COUNT(*) FILTER (WHERE needs_reclassification) AS pending_reclassification,
            COUNT(*) FILTER (WHERE forward_requested_at IS NOT NULL) AS forward_requests,
            COUNT(DISTINCT session_id) AS sessions
        FROM mail_items
        """
        with self.get_connection() as conn:
            row = conn.execute(sql).fetchone()
            return dict(row) if row else {}
