#!/usr/bin/env python3
"""
Run relationship repair from the command line.

Drains the repair outbox, then scans for mutual relationships that are
missing one direction and heals them with the configured policy.

Usage:
    python scripts/run_repair.py

Options:
    --contact ID    Only check relationships of this contact
    --policy P      recreate (default from settings) or downgrade
    --skip-queue    Do not process queued pair operations first
    --limit N       Maximum queued operations to process (default: 1000)
"""

import argparse
import asyncio
import sys
from pathlib import Path


# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import get_settings
from services.consistency_repair import ConsistencyRepair
from services.edge_store import EdgeStore
from services.neo4j_edge_store import Neo4jEdgeStore
from services.neo4j_service import create_neo4j_service_from_env
from services.repair_outbox import RepairOutbox
from services.sqlite_edge_store import SqliteEdgeStore


def _open_edge_store() -> EdgeStore:
    settings = get_settings()
    if settings.edge_store_backend == "neo4j":
        service = create_neo4j_service_from_env()
        if not service.connect():
            raise RuntimeError(f"Failed to connect to Neo4j at {settings.neo4j.uri}")
        return Neo4jEdgeStore(service)
    if settings.edge_store_backend == "memory":
        raise RuntimeError("Nothing to repair: EDGE_STORE_BACKEND=memory is not persistent")
    return SqliteEdgeStore(db_path=settings.database_path)


async def run_repair(
    contact_id: str | None = None,
    policy: str | None = None,
    skip_queue: bool = False,
    limit: int = 1000,
) -> bool:
    """Run repair and print the reports."""
    settings = get_settings()
    edge_store = _open_edge_store()
    outbox = RepairOutbox(db_path=settings.database_path)

    repair = ConsistencyRepair(
        edge_store,
        outbox=outbox,
        db_path=settings.database_path,
        policy=policy or settings.relationships.repair_policy,
        batch_size=settings.relationships.repair_batch_size,
    )

    print("=" * 60)
    print("Relationship repair")
    print("=" * 60)

    try:
        ok = True
        if not skip_queue:
            pending = await repair.process_pending(limit=limit)
            print(f"\n📬 Queued operations processed: {pending.scanned_count}")
            print(f"   Healed: {pending.healed_count}, errors: {len(pending.errors)}")
            ok = ok and not pending.errors

        report = await repair.scan(contact_id, save_snapshot=True)
        print()
        print(report)
        return ok and report.is_consistent
    finally:
        await edge_store.close()
        outbox.close()


def main():
    parser = argparse.ArgumentParser(
        description="Heal mutual relationships that are missing one direction"
    )
    parser.add_argument("--contact", default=None, help="Only check this contact's relationships")
    parser.add_argument(
        "--policy",
        choices=["recreate", "downgrade"],
        default=None,
        help="Healing policy (default: RELATIONSHIP_REPAIR_POLICY)",
    )
    parser.add_argument(
        "--skip-queue", action="store_true", help="Do not process queued pair operations"
    )
    parser.add_argument("--limit", type=int, default=1000, help="Max queued operations to process")

    args = parser.parse_args()

    success = asyncio.run(
        run_repair(
            contact_id=args.contact,
            policy=args.policy,
            skip_queue=args.skip_queue,
            limit=args.limit,
        )
    )

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
