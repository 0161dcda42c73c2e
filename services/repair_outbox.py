"""
Outbox of in-flight mutual pair operations.

Before RelationshipManager touches the two edges of a mutual pair it records an
intent here; once both edges are written (or deleted) the intent is marked
completed. An intent left pending means the pair operation was interrupted
between its two writes, and ConsistencyRepair.process_pending() finishes it.

Pending delete intents also act as tombstones: the repair sweep must not
recreate the reciprocal of a pair that is in the middle of being deleted.
"""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from models.relationships import PairKey

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS repair_outbox (
    outbox_id TEXT PRIMARY KEY,
    action TEXT NOT NULL,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    attempts INTEGER DEFAULT 0,
    last_attempt TEXT,
    error_message TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_repair_outbox_status ON repair_outbox(status, action);
CREATE INDEX IF NOT EXISTS idx_repair_outbox_pair ON repair_outbox(source_id, target_id, type);
"""


@dataclass
class OutboxItem:
    """Represents a pair-operation intent in the outbox"""

    outbox_id: str
    action: str
    source_id: str
    target_id: str
    type: str
    status: str
    attempts: int
    last_attempt: datetime | None
    error_message: str | None
    created_at: datetime

    @property
    def pair_key(self) -> PairKey:
        return PairKey.of(self.source_id, self.target_id, self.type)


class RepairOutboxError(Exception):
    """Base exception for outbox errors"""

    pass


class RepairOutbox:
    """
    SQLite-backed outbox of mutual pair intents.

    Uses a persistent connection; every statement runs under a lock so the
    outbox can be shared by concurrent requests and the repair worker.
    """

    # Intent actions
    ACTION_CREATE_PAIR = "create_pair"
    ACTION_DELETE_PAIR = "delete_pair"

    # Outbox statuses
    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    # Retry configuration
    MAX_ATTEMPTS = 3

    def __init__(self, db_path: str = "./data/contacts.db"):
        """
        Initialize RepairOutbox

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get the persistent connection, creating it (and the table) lazily.

        Callers must hold _lock.
        """
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
            logger.debug("RepairOutbox: Created persistent connection to %s", self.db_path)
        return self._conn

    def close(self) -> None:
        """Close the persistent database connection."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                    logger.debug("RepairOutbox: Closed persistent connection")
                except sqlite3.Error as exc:
                    logger.warning("RepairOutbox: Error closing connection: %s", exc)
                finally:
                    self._conn = None

    def add_intent(self, action: str, source_id: str, target_id: str, rel_type: str) -> str:
        """
        Record an in-flight pair operation

        Returns:
            Outbox ID

        Raises:
            RepairOutboxError: If failed to add to outbox
        """
        if action not in (self.ACTION_CREATE_PAIR, self.ACTION_DELETE_PAIR):
            raise ValueError(f"Unknown outbox action: {action}")

        outbox_id = str(uuid.uuid4())
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """INSERT INTO repair_outbox
                       (outbox_id, action, source_id, target_id, type, status, attempts, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        outbox_id,
                        action,
                        source_id,
                        target_id,
                        rel_type,
                        self.STATUS_PENDING,
                        0,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Error adding to outbox: {e}")
                raise RepairOutboxError(f"Failed to add to outbox: {e}") from e

        logger.debug(f"Recorded {action} intent {outbox_id}: {source_id} -{rel_type}-> {target_id}")
        return outbox_id

    def get_pending(self, action: str | None = None, limit: int | None = None) -> list[OutboxItem]:
        """
        Get pending outbox items, oldest first

        Raises:
            ValueError: If limit is negative
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        query = "SELECT * FROM repair_outbox WHERE status = ? AND attempts < ?"
        params: list = [self.STATUS_PENDING, self.MAX_ATTEMPTS]

        if action:
            query += " AND action = ?"
            params.append(action)

        query += " ORDER BY created_at ASC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._lock:
            rows = self._get_connection().execute(query, params).fetchall()
        return [self._row_to_outbox_item(row) for row in rows]

    def has_pending_delete(self, pair_key: PairKey, edge_created_at: Optional[datetime] = None) -> bool:
        """
        Return True if an unfinished delete of this pair (either direction) covers the edge.

        Deletes that exhausted their attempts still count until retried or
        resolved by hand; the sweep must not resurrect a pair the user removed.
        A delete only covers edges that already existed when it was recorded:
        with edge_created_at given, intents older than the edge are ignored.
        """
        with self._lock:
            rows = self._get_connection().execute(
                """SELECT created_at FROM repair_outbox
                   WHERE action = ? AND status IN (?, ?) AND type = ?
                     AND ((source_id = ? AND target_id = ?) OR (source_id = ? AND target_id = ?))""",
                (
                    self.ACTION_DELETE_PAIR,
                    self.STATUS_PENDING,
                    self.STATUS_FAILED,
                    pair_key.type,
                    pair_key.low,
                    pair_key.high,
                    pair_key.high,
                    pair_key.low,
                ),
            ).fetchall()
        if edge_created_at is None:
            return bool(rows)
        return any(datetime.fromisoformat(row["created_at"]) >= edge_created_at for row in rows)

    def _update(self, sql: str, params: tuple, action: str) -> bool:
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Error {action}: {e}")
                return False

    def mark_processed(self, outbox_id: str) -> bool:
        """Mark outbox item as successfully processed"""
        done = self._update(
            "UPDATE repair_outbox SET status = ? WHERE outbox_id = ?",
            (self.STATUS_COMPLETED, outbox_id),
            "marking as processed",
        )
        if done:
            logger.debug(f"Marked outbox item {outbox_id} as completed")
        return done

    def mark_failed(self, outbox_id: str, error_message: str) -> bool:
        """
        Record a failed attempt; the item stays pending until MAX_ATTEMPTS is reached.
        """
        done = self._update(
            """UPDATE repair_outbox
               SET attempts = attempts + 1,
                   last_attempt = ?,
                   error_message = ?,
                   status = CASE
                     WHEN attempts + 1 >= ? THEN ?
                     ELSE ?
                   END
               WHERE outbox_id = ?""",
            (
                datetime.now(timezone.utc).isoformat(),
                error_message,
                self.MAX_ATTEMPTS,
                self.STATUS_FAILED,
                self.STATUS_PENDING,
                outbox_id,
            ),
            "marking as failed",
        )
        if done:
            logger.warning(f"Marked outbox item {outbox_id} as failed: {error_message}")
        return done

    def get_failed_items(self, action: Optional[str] = None) -> List[OutboxItem]:
        """Get all outbox items that exhausted their attempts"""
        query = "SELECT * FROM repair_outbox WHERE status = ?"
        params: list = [self.STATUS_FAILED]

        if action:
            query += " AND action = ?"
            params.append(action)

        query += " ORDER BY created_at DESC"

        with self._lock:
            rows = self._get_connection().execute(query, params).fetchall()
        return [self._row_to_outbox_item(row) for row in rows]

    def retry_failed(self, outbox_id: str) -> bool:
        """Reset a failed item to pending for retry"""
        done = self._update(
            """UPDATE repair_outbox
               SET status = ?, attempts = 0, error_message = NULL
               WHERE outbox_id = ? AND status = ?""",
            (self.STATUS_PENDING, outbox_id, self.STATUS_FAILED),
            "retrying failed item",
        )
        if done:
            logger.info(f"Reset outbox item {outbox_id} for retry")
        return done

    def count_by_status(self) -> Dict[str, int]:
        """Count outbox items by status"""
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT status, COUNT(*) AS count FROM repair_outbox GROUP BY status"
            ).fetchall()
        return {row["status"]: row["count"] for row in rows}

    def _row_to_outbox_item(self, row: sqlite3.Row) -> OutboxItem:
        """Convert database row to OutboxItem"""
        return OutboxItem(
            outbox_id=row["outbox_id"],
            action=row["action"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            type=row["type"],
            status=row["status"],
            attempts=row["attempts"],
            last_attempt=(
                datetime.fromisoformat(row["last_attempt"]) if row["last_attempt"] else None
            ),
            error_message=row["error_message"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
