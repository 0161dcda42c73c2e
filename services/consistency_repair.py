"""
Consistency repair for mutual relationship pairs.

Finds mutual edges whose reciprocal is missing (dangling mutual edges) and
heals them, and finishes pair operations left unfinished in the RepairOutbox.
"""

import asyncio
import logging
import sqlite3
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from models.relationships import Edge
from services.edge_store import EdgeStore
from services.errors import EdgeAlreadyExistsError, EdgeNotFoundError, RepairError
from services.repair_outbox import OutboxItem, RepairOutbox


logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA = """
CREATE TABLE IF NOT EXISTS repair_snapshots (
    snapshot_id TEXT PRIMARY KEY,
    scope TEXT NOT NULL,
    scanned_count INTEGER NOT NULL,
    inconsistency_count INTEGER NOT NULL,
    healed_count INTEGER NOT NULL,
    error_count INTEGER NOT NULL,
    checked_at TEXT NOT NULL,
    status TEXT NOT NULL
)
"""


class RepairPolicy(str, Enum):
    """How a dangling mutual edge is healed."""

    RECREATE = "recreate"  # write the missing reciprocal
    DOWNGRADE = "downgrade"  # clear is_mutual on the surviving edge


@dataclass
class RepairFinding:
    """One detected inconsistency and what was done about it."""

    edge_id: str
    source_id: str
    target_id: str
    type: str
    problem: str
    action: str = "none"
    healed: bool = False

    @classmethod
    def for_edge(cls, edge: Edge, problem: str) -> "RepairFinding":
        return cls(
            edge_id=edge.id,
            source_id=edge.source_id,
            target_id=edge.target_id,
            type=edge.type,
            problem=problem,
        )


@dataclass
class RepairReport:
    """Report of a repair run."""

    scope: str
    scanned_count: int = 0
    inconsistencies: List[RepairFinding] = field(default_factory=list)
    healed_count: int = 0
    writes: int = 0
    skipped_count: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_consistent(self) -> bool:
        return not self.errors and all(f.healed for f in self.inconsistencies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "scanned_count": self.scanned_count,
            "inconsistencies": [asdict(f) for f in self.inconsistencies],
            "inconsistency_count": len(self.inconsistencies),
            "healed_count": self.healed_count,
            "writes": self.writes,
            "skipped_count": self.skipped_count,
            "errors": list(self.errors),
            "is_consistent": self.is_consistent,
            "checked_at": self.checked_at.isoformat(),
        }

    def __str__(self) -> str:
        """Human-readable report."""
        lines = [
            "=== Relationship Repair Report ===",
            f"Scope: {self.scope}",
            f"Checked at: {self.checked_at.isoformat()}",
            f"Edges scanned: {self.scanned_count}",
            f"Inconsistencies: {len(self.inconsistencies)}",
            f"Healed: {self.healed_count} ({self.writes} writes)",
            "",
            f"Status: {'✅ CONSISTENT' if self.is_consistent else '❌ INCONSISTENT'}",
        ]

        if self.skipped_count:
            lines.append(f"\nSkipped (delete in progress): {self.skipped_count}")

        unhealed = [f.edge_id for f in self.inconsistencies if not f.healed]
        if unhealed:
            lines.append(f"\nUnhealed ({len(unhealed)}): {unhealed[:5]}")

        if self.errors:
            lines.append(f"\nErrors ({len(self.errors)}): {[e['edge_id'] for e in self.errors[:5]]}")

        return "\n".join(lines)


class ConsistencyRepair:
    """
    Detects and heals dangling mutual edges.

    Safe to run alongside normal traffic: the sweep only adds a reciprocal or
    flips a mutual flag, and skips any pair whose delete is still in flight.

    Example:
        ```python
        repair = ConsistencyRepair(edge_store, outbox, db_path)
        report = await repair.scan("alice")
        if not report.is_consistent:
            print(report)
        ```
    """

    def __init__(
        self,
        edge_store: EdgeStore,
        outbox: Optional[RepairOutbox] = None,
        db_path: Optional[str] = None,
        policy: RepairPolicy | str = RepairPolicy.RECREATE,
        batch_size: int = 200,
    ) -> None:
        """
        Initialize ConsistencyRepair.

        Args:
            edge_store: Edge persistence to check and heal
            outbox: Optional intent queue (tombstones and unfinished pair operations)
            db_path: Optional path to SQLite database for storing snapshots
            policy: Healing policy for dangling mutual edges
            batch_size: Page size of the unscoped sweep
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self.edge_store = edge_store
        self.outbox = outbox
        self.db_path = db_path
        self.policy = RepairPolicy(policy)
        self.batch_size = batch_size

        logger.info(f"ConsistencyRepair initialized (policy={self.policy.value})")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def _iter_edges(self, contact_id: Optional[str]) -> AsyncIterator[Edge]:
        if contact_id is not None:
            seen = set()
            edges = await self.edge_store.find_all_by_source(contact_id)
            edges += await self.edge_store.find_all_by_target(contact_id)
            for edge in edges:
                if edge.id not in seen:
                    seen.add(edge.id)
                    yield edge
            return

        after_id = None
        while True:
            page = await self.edge_store.scan(after_id, self.batch_size)
            for edge in page:
                yield edge
            if len(page) < self.batch_size:
                return
            after_id = page[-1].id

    async def scan(self, contact_id: Optional[str] = None, save_snapshot: bool = False) -> RepairReport:
        """
        Check mutual edges and heal the dangling ones.

        Args:
            contact_id: Only edges touching this contact; None sweeps the whole store
            save_snapshot: Whether to save a summary to the repair_snapshots table

        Returns:
            RepairReport; failures on single edges are listed in report.errors
        """
        report = RepairReport(scope=contact_id or "all")
        logger.info(f"Starting repair scan (scope={report.scope})")

        async for edge in self._iter_edges(contact_id):
            report.scanned_count += 1
            if not edge.is_mutual:
                continue
            try:
                await self._check_edge(edge, report)
            except Exception as e:
                self._record_error(report, edge.id, e)

        if report.inconsistencies or report.errors:
            logger.warning(
                f"Repair scan found {len(report.inconsistencies)} inconsistencies, "
                f"healed {report.healed_count}, {len(report.errors)} errors",
                extra={"operation": "repair_scan", "scope": report.scope},
            )
        else:
            logger.info(f"Repair scan complete: {report.scanned_count} edges consistent")

        if save_snapshot and self.db_path:
            self.save_snapshot(report)

        return report

    def _record_error(self, report: RepairReport, edge_id: str, exc: Exception) -> None:
        error = exc if isinstance(exc, RepairError) else RepairError(edge_id, str(exc))
        logger.warning(str(error), exc_info=True, extra={"operation": "repair", "edge_id": edge_id})
        report.errors.append({"edge_id": edge_id, "message": str(error)})

    async def _delete_in_progress(self, edge: Edge) -> bool:
        if self.outbox is None:
            return False
        return await asyncio.to_thread(
            self.outbox.has_pending_delete, edge.pair_key, edge.created_at
        )

    async def _check_edge(self, edge: Edge, report: RepairReport) -> None:
        reciprocal = await self.edge_store.find(edge.target_id, edge.source_id, edge.type)
        if reciprocal is not None and reciprocal.is_mutual:
            return

        if await self._delete_in_progress(edge):
            report.skipped_count += 1
            logger.debug(f"Skipping edge {edge.id}: pair delete in progress")
            return

        # The edge may have been deleted or downgraded since it was listed
        current = await self.edge_store.find(edge.source_id, edge.target_id, edge.type)
        if current is None or current.id != edge.id or not current.is_mutual:
            return

        problem = "missing_reciprocal" if reciprocal is None else "reciprocal_not_mutual"
        finding = RepairFinding.for_edge(edge, problem)
        report.inconsistencies.append(finding)
        await self._heal(current, reciprocal, finding, report, self.policy)

    async def _heal(
        self,
        edge: Edge,
        reciprocal: Optional[Edge],
        finding: RepairFinding,
        report: RepairReport,
        policy: RepairPolicy,
    ) -> None:
        try:
            if policy is RepairPolicy.DOWNGRADE:
                await self.edge_store.set_mutual(edge.id, False)
                report.writes += 1
                finding.action = "downgraded"
            elif reciprocal is not None:
                await self.edge_store.set_mutual(reciprocal.id, True)
                report.writes += 1
                finding.action = "promoted"
            else:
                await self._recreate(edge, finding, report)
        except RepairError:
            finding.action = "failed"
            raise
        except Exception as e:
            finding.action = "failed"
            raise RepairError(edge.id, str(e)) from e

        finding.healed = True
        report.healed_count += 1
        logger.info(
            f"Healed edge {edge.id} ({finding.problem} -> {finding.action})",
            extra={"operation": "repair", "edge_id": edge.id},
        )

    async def _recreate(self, edge: Edge, finding: RepairFinding, report: RepairReport) -> None:
        try:
            await self.edge_store.create(edge.reciprocal())
            report.writes += 1
            finding.action = "recreated"
            return
        except EdgeAlreadyExistsError:
            pass

        # Lost a race with another writer; re-check what is there now
        existing = await self.edge_store.find(edge.target_id, edge.source_id, edge.type)
        if existing is None:
            raise RepairError(edge.id, "reciprocal reported as existing but not found")
        if existing.is_mutual:
            finding.action = "already_healed"
            return
        await self.edge_store.set_mutual(existing.id, True)
        report.writes += 1
        finding.action = "promoted"

    # ------------------------------------------------------------------
    # Outbox drain
    # ------------------------------------------------------------------

    async def process_pending(self, limit: Optional[int] = None) -> RepairReport:
        """
        Finish pair operations recorded in the outbox and never completed.

        A create_pair intent whose pair is covered by an unfinished delete is
        left pending and picked up again once the delete is resolved.

        Args:
            limit: Maximum number of intents to process

        Returns:
            RepairReport with scope "outbox"; scanned_count is the number of intents
        """
        report = RepairReport(scope="outbox")
        if self.outbox is None:
            return report

        for item in await asyncio.to_thread(self.outbox.get_pending, limit=limit):
            report.scanned_count += 1
            try:
                if item.action == RepairOutbox.ACTION_CREATE_PAIR:
                    finished = await self._finish_create(item, report)
                else:
                    finished = await self._finish_delete(item, report)
            except Exception as e:
                await asyncio.to_thread(self.outbox.mark_failed, item.outbox_id, str(e))
                self._record_error(report, item.outbox_id, e)
                continue
            if finished:
                await asyncio.to_thread(self.outbox.mark_processed, item.outbox_id)

        if report.scanned_count:
            logger.info(
                f"Processed {report.scanned_count} outbox intents: "
                f"{report.healed_count} healed, {report.skipped_count} deferred, "
                f"{len(report.errors)} errors"
            )
        return report

    async def _finish_create(self, item: OutboxItem, report: RepairReport) -> bool:
        primary = await self.edge_store.find(item.source_id, item.target_id, item.type)
        if primary is None or not primary.is_mutual:
            return True

        reciprocal = await self.edge_store.find(item.target_id, item.source_id, item.type)
        if reciprocal is not None and reciprocal.is_mutual:
            return True

        if await self._delete_in_progress(primary):
            report.skipped_count += 1
            return False

        problem = "missing_reciprocal" if reciprocal is None else "reciprocal_not_mutual"
        finding = RepairFinding.for_edge(primary, problem)
        report.inconsistencies.append(finding)
        await self._heal(primary, reciprocal, finding, report, RepairPolicy.RECREATE)
        return True

    async def _finish_delete(self, item: OutboxItem, report: RepairReport) -> bool:
        edges = [
            await self.edge_store.find(item.source_id, item.target_id, item.type),
            await self.edge_store.find(item.target_id, item.source_id, item.type),
        ]
        # A pair edge created after the delete started means the relationship was
        # re-created, possibly adopting the old reciprocal; the whole pair stays.
        if any(edge is not None and edge.created_at > item.created_at for edge in edges):
            logger.info(
                f"Pair {item.source_id} <-{item.type}-> {item.target_id} re-created "
                f"since delete intent {item.outbox_id}; leaving it in place"
            )
            return True

        for edge in edges:
            if edge is None or not edge.is_mutual:
                continue

            finding = RepairFinding.for_edge(edge, "unfinished_delete")
            report.inconsistencies.append(finding)
            try:
                await self.edge_store.delete(edge.id)
                report.writes += 1
            except EdgeNotFoundError:
                pass
            finding.action = "deleted"
            finding.healed = True
            report.healed_count += 1
        return True

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute(SNAPSHOT_SCHEMA)
        return conn

    def save_snapshot(self, report: RepairReport) -> str:
        """
        Save repair report summary to database.

        Returns:
            Snapshot ID, or "" if it could not be saved
        """
        if not self.db_path:
            logger.warning("No database path configured, cannot save snapshot")
            return ""

        snapshot_id = str(uuid.uuid4())
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO repair_snapshots
                        (snapshot_id, scope, scanned_count, inconsistency_count,
                         healed_count, error_count, checked_at, status)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                        (
                            snapshot_id,
                            report.scope,
                            report.scanned_count,
                            len(report.inconsistencies),
                            report.healed_count,
                            len(report.errors),
                            report.checked_at.isoformat(),
                            "consistent" if report.is_consistent else "inconsistent",
                        ),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Database error saving repair snapshot: {e}", exc_info=True)
            return ""

        logger.info(f"Saved repair snapshot: {snapshot_id}")
        return snapshot_id

    def get_latest_snapshot(self) -> dict[str, Any] | None:
        """
        Get the most recent repair snapshot.

        Returns:
            Dictionary with snapshot data, or None if no snapshots exist
        """
        if not self.db_path:
            return None

        try:
            conn = self._connect()
            try:
                conn.row_factory = sqlite3.Row
                row = conn.execute(
                    """
                    SELECT snapshot_id, scope, scanned_count, inconsistency_count,
                           healed_count, error_count, checked_at, status
                    FROM repair_snapshots
                    ORDER BY checked_at DESC
                    LIMIT 1
                """
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Database error getting latest snapshot: {e}", exc_info=True)
            return None

        return dict(row) if row else None
