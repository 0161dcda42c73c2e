"""
SQLite-backed EdgeStore

Each relationship row is one directed edge. The UNIQUE(source_id, target_id, type)
constraint enforces the no-duplicate-edges invariant at the storage level, so a
racing create surfaces as EdgeAlreadyExistsError rather than a second row.

Blocking sqlite3 calls run on worker threads behind a semaphore so the event
loop is never blocked and concurrent operations are bounded.
"""

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from models.relationships import Edge
from services.edge_store import EdgeStore
from services.errors import (
    EdgeAlreadyExistsError,
    EdgeNotFoundError,
    EdgeStoreError,
    TransientStoreError,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS relationships (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    type TEXT NOT NULL,
    is_mutual INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (source_id, target_id, type)
);
CREATE INDEX IF NOT EXISTS idx_rel_source ON relationships(source_id);
CREATE INDEX IF NOT EXISTS idx_rel_target ON relationships(target_id);
"""

_COLUMNS = "id, source_id, target_id, type, is_mutual, created_at"


class SqliteEdgeStore(EdgeStore):
    """EdgeStore persisted in the `relationships` table of a SQLite database."""

    def __init__(self, db_path: str = "./data/contacts.db", max_concurrency: int = 10):
        """
        Initialize SqliteEdgeStore

        Args:
            db_path: Path to SQLite database file (":memory:" for a private in-memory DB)
            max_concurrency: Maximum number of concurrent store operations
        """
        self.db_path = db_path
        self.max_concurrency = max_concurrency
        self._conn: Optional[sqlite3.Connection] = None
        self._conn_lock = threading.Lock()
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def semaphore(self) -> asyncio.Semaphore:
        """Lazy-initialize semaphore to limit concurrent DB operations"""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get the persistent connection, creating it and the schema on first use.

        Callers must hold _conn_lock.
        """
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            # check_same_thread=False allows connection reuse across worker threads
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=5.0)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA)
            self._conn.commit()
            logger.debug("SqliteEdgeStore: Created persistent connection to %s", self.db_path)
        return self._conn

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        async with self.semaphore:
            return await asyncio.to_thread(self._call, func)

    def _call(self, func: Callable[[sqlite3.Connection], T]) -> T:
        with self._conn_lock:
            conn = self._get_connection()
            try:
                return func(conn)
            except sqlite3.OperationalError as e:
                conn.rollback()
                message = str(e).lower()
                if "locked" in message or "busy" in message:
                    raise TransientStoreError(f"SQLite busy: {e}") from e
                raise EdgeStoreError(f"SQLite error: {e}") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise EdgeStoreError(f"SQLite error: {e}") from e

    @staticmethod
    def _row_to_edge(row: sqlite3.Row) -> Edge:
        return Edge(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            type=row["type"],
            is_mutual=bool(row["is_mutual"]),
            created_at=row["created_at"],
        )

    async def find(self, source_id: str, target_id: str, rel_type: str) -> Optional[Edge]:
        def op(conn: sqlite3.Connection) -> Optional[Edge]:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM relationships "
                "WHERE source_id = ? AND target_id = ? AND type = ?",
                (source_id, target_id, rel_type),
            ).fetchone()
            return self._row_to_edge(row) if row else None

        return await self._run(op)

    async def find_all_by_source(self, contact_id: str) -> List[Edge]:
        def op(conn: sqlite3.Connection) -> List[Edge]:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM relationships WHERE source_id = ? ORDER BY rowid",
                (contact_id,),
            ).fetchall()
            return [self._row_to_edge(r) for r in rows]

        return await self._run(op)

    async def find_all_by_target(self, contact_id: str) -> List[Edge]:
        def op(conn: sqlite3.Connection) -> List[Edge]:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM relationships WHERE target_id = ? ORDER BY rowid",
                (contact_id,),
            ).fetchall()
            return [self._row_to_edge(r) for r in rows]

        return await self._run(op)

    async def create(self, edge: Edge) -> Edge:
        def op(conn: sqlite3.Connection) -> Edge:
            try:
                conn.execute(
                    f"INSERT INTO relationships ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        edge.id,
                        edge.source_id,
                        edge.target_id,
                        edge.type,
                        int(edge.is_mutual),
                        edge.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise EdgeAlreadyExistsError(edge.source_id, edge.target_id, edge.type) from e
            conn.commit()
            return edge

        created = await self._run(op)
        logger.debug(f"Created edge {edge.id}: {edge.source_id} -{edge.type}-> {edge.target_id}")
        return created

    async def delete(self, edge_id: str) -> None:
        def op(conn: sqlite3.Connection) -> int:
            cursor = conn.execute("DELETE FROM relationships WHERE id = ?", (edge_id,))
            conn.commit()
            return cursor.rowcount

        if await self._run(op) == 0:
            raise EdgeNotFoundError(edge_id)
        logger.debug(f"Deleted edge {edge_id}")

    async def set_mutual(self, edge_id: str, is_mutual: bool) -> Edge:
        def op(conn: sqlite3.Connection) -> Optional[Edge]:
            cursor = conn.execute(
                "UPDATE relationships SET is_mutual = ? WHERE id = ?",
                (int(is_mutual), edge_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM relationships WHERE id = ?", (edge_id,)
            ).fetchone()
            return self._row_to_edge(row) if row else None

        updated = await self._run(op)
        if updated is None:
            raise EdgeNotFoundError(edge_id)
        return updated

    async def scan(self, after_id: Optional[str] = None, limit: int = 200) -> List[Edge]:
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        def op(conn: sqlite3.Connection) -> List[Edge]:
            if after_id is None:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM relationships ORDER BY id LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM relationships WHERE id > ? ORDER BY id LIMIT ?",
                    (after_id, limit),
                ).fetchall()
            return [self._row_to_edge(r) for r in rows]

        return await self._run(op)

    async def count(self) -> int:
        def op(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM relationships").fetchone()[0]

        return await self._run(op)

    async def close(self) -> None:
        """Close the persistent database connection."""
        with self._conn_lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                    logger.debug("SqliteEdgeStore: Closed persistent connection")
                except sqlite3.Error as exc:
                    logger.warning("SqliteEdgeStore: Error closing connection: %s", exc)
                finally:
                    self._conn = None
