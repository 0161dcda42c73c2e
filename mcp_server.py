"""
MCP Contact Relationship Server
Main entry point for the FastMCP server
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastmcp import FastMCP

from config import AppSettings, get_settings
from services.consistency_repair import ConsistencyRepair
from services.contact_lookup import SqliteContactLookup
from services.container import get_container
from services.edge_store import EdgeStore, InMemoryEdgeStore
from services.neo4j_edge_store import Neo4jEdgeStore
from services.neo4j_service import Neo4jService, create_neo4j_service_from_env
from services.relationship_manager import RelationshipManager
from services.repair_outbox import RepairOutbox
from services.sqlite_edge_store import SqliteEdgeStore

# Import tools
from tools import relationship_tools, repair_tools
from tools.responses import internal_error
from tools.service_utils import get_available_tools, requires_services

settings = get_settings()

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_repair_worker(
    repair: ConsistencyRepair,
    *,
    interval_seconds: float = 300.0,
    queue_limit: int = 100,
) -> None:
    """
    Background task that finishes queued pair operations and sweeps for dangling edges.

    Args:
        repair: ConsistencyRepair to run
        interval_seconds: Delay between runs
        queue_limit: Maximum outbox intents processed per run
    """
    while True:
        try:
            pending = await repair.process_pending(limit=queue_limit)
            report = await repair.scan(save_snapshot=True)
            if pending.scanned_count or report.inconsistencies:
                logger.info(
                    "Repair worker: %d queued operations, %d inconsistencies, %d healed",
                    pending.scanned_count,
                    len(report.inconsistencies),
                    pending.healed_count + report.healed_count,
                )
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except Exception as exc:
            logger.error("Repair worker error: %s", exc, exc_info=True)
        await asyncio.sleep(interval_seconds)


async def _connect_neo4j(app_settings: AppSettings) -> Neo4jService:
    """Connect to Neo4j with exponential backoff retry."""
    service = create_neo4j_service_from_env()

    max_retries = 3
    retry_delays = [2, 4, 8]  # seconds

    for attempt in range(max_retries):
        logger.info(f"Connecting to Neo4j (attempt {attempt + 1}/{max_retries})...")
        if service.connect():
            logger.info("✅ Neo4j service connected")
            return service
        if attempt < max_retries - 1:
            delay = retry_delays[attempt]
            logger.warning(f"⚠️  Neo4j connection failed, retrying in {delay}s...")
            await asyncio.sleep(delay)

    raise RuntimeError(
        f"Failed to connect to Neo4j after {max_retries} attempts. "
        "Please ensure Neo4j is running and credentials are correct. "
        f"Connection URI: {app_settings.neo4j.uri}"
    )


async def _build_edge_store(app_settings: AppSettings) -> EdgeStore:
    container = get_container()
    backend = app_settings.edge_store_backend

    if backend == "memory":
        logger.warning("⚠️  Using in-memory edge store; relationships are lost on restart")
        return InMemoryEdgeStore()

    if backend == "neo4j":
        container.neo4j_service = await _connect_neo4j(app_settings)
        health = container.neo4j_service.health_check()
        if health.get("status") != "healthy":
            raise RuntimeError(
                f"Neo4j service is unhealthy: {health.get('error', 'Unknown error')}"
            )
        return Neo4jEdgeStore(
            container.neo4j_service, max_concurrency=app_settings.max_concurrent_operations
        )

    return SqliteEdgeStore(
        db_path=app_settings.database_path,
        max_concurrency=app_settings.max_concurrent_operations,
    )


async def initialize():
    """
    Initialize all server services and configure tools.
    This function can be called standalone (for testing) or via the lifespan handler.
    """
    app_settings = get_settings()
    container = get_container()

    logger.info(f"Initializing {app_settings.server_name}...")

    try:
        app_settings.validate_production()

        container.edge_store = await _build_edge_store(app_settings)
        logger.info(f"✅ Edge store initialized ({app_settings.edge_store_backend})")

        container.contact_lookup = SqliteContactLookup(app_settings.database_path)
        container.repair_outbox = RepairOutbox(db_path=app_settings.database_path)
        logger.info("✅ Contact lookup and repair outbox initialized")

        rel_settings = app_settings.relationships
        container.relationship_manager = RelationshipManager(
            container.edge_store,
            container.contact_lookup,
            outbox=container.repair_outbox,
            settings=rel_settings,
        )
        container.consistency_repair = ConsistencyRepair(
            container.edge_store,
            outbox=container.repair_outbox,
            db_path=app_settings.database_path,
            policy=rel_settings.repair_policy,
            batch_size=rel_settings.repair_batch_size,
        )
        logger.info("✅ Relationship manager and repair initialized")

        if container.repair_worker_task:
            container.repair_worker_task.cancel()
            try:
                await container.repair_worker_task
            except asyncio.CancelledError:
                pass
            container.repair_worker_task = None

        if rel_settings.enable_repair_worker:
            container.repair_worker_task = asyncio.create_task(
                _run_repair_worker(
                    container.consistency_repair,
                    interval_seconds=rel_settings.repair_interval_seconds,
                    queue_limit=rel_settings.repair_queue_limit,
                )
            )
            logger.info(
                f"✅ Repair worker started (every {rel_settings.repair_interval_seconds}s)"
            )
        else:
            logger.warning("Repair worker disabled; run repair_relationships manually")

        logger.info(f"🚀 {app_settings.server_name} ready!")
        logger.info(f"   • Backend: {app_settings.edge_store_backend}")
        logger.info(f"   • Database: {app_settings.database_path}")
        logger.info(f"   • Repair policy: {rel_settings.repair_policy}")

    except Exception as e:
        logger.error(f"❌ Failed to initialize server: {e}", exc_info=True)
        raise


@asynccontextmanager
async def lifespan(server: FastMCP):
    """
    FastMCP lifespan handler - initializes services on startup and cleans up on shutdown.
    This context manager is called automatically by FastMCP when the server starts.
    """
    await initialize()

    yield

    logger.info(f"Shutting down {get_settings().server_name}...")

    container = get_container()
    await container.shutdown()

    logger.info("✅ Server shutdown complete")


# Initialize FastMCP server with lifespan handler
mcp = FastMCP(settings.server_name, lifespan=lifespan)


@mcp.tool()
async def ping() -> dict[str, Any]:
    """
    Simple ping tool to test MCP server connectivity

    Returns:
        Dictionary with server status and timestamp
    """
    return {
        "status": "ok",
        "message": "MCP Contact Relationship Server is running",
        "server_name": get_settings().server_name,
        "timestamp": datetime.now().isoformat(),
    }


@mcp.tool()
@requires_services("edge_store", "repair_outbox")
async def get_server_stats() -> dict[str, Any]:
    """
    Get server statistics

    Returns:
        Dictionary with edge store and repair outbox statistics
    """
    try:
        container = get_container()

        return {
            "success": True,
            "edge_store": {
                "backend": get_settings().edge_store_backend,
                "total_edges": await container.edge_store.count(),
            },
            "repair_outbox": container.repair_outbox.count_by_status(),
            "services": container.get_service_status(),
            "status": "healthy",
        }
    except Exception as e:
        logger.error(f"Error getting server stats: {e}", exc_info=True, extra={
            "operation": "get_server_stats"
        })
        err_response = internal_error("Failed to get server stats")
        err_response["status"] = "error"
        return err_response


@mcp.tool()
async def get_tool_availability() -> dict[str, Any]:
    """
    Check which MCP tools are currently available based on service initialization status.

    Returns:
        {
            "success": True,
            "available": [...],
            "unavailable": [...],
            "total_tools": int,
            "service_status": {...}
        }
    """
    try:
        tool_status = get_available_tools()
        return {"success": True, **tool_status}
    except Exception as e:
        logger.error(f"Error checking tool availability: {e}", exc_info=True, extra={
            "operation": "get_tool_availability"
        })
        return internal_error(str(e))


# =============================================================================
# Relationship Tools
# =============================================================================


@mcp.tool()
async def create_relationship(
    source_id: str,
    target_id: str,
    relationship_type: str,
    is_mutual: bool = False,
    actor_id: str | None = None,
) -> dict[str, Any]:
    """
    Create a relationship between two contacts.

    Args:
        source_id: ID of the source contact (required)
        target_id: ID of the target contact (required)
        relationship_type: Relationship type, e.g. "friend", "sibling", "manager_of" (required)
        is_mutual: True if the relationship holds both ways (default: False)
        actor_id: Identity of the acting user, for the audit log

    Returns:
        {"success": bool, "message": str, "data": {"relationship": {...}}, "warning": {...}?}
    """
    return await relationship_tools.create_relationship(
        source_id=source_id,
        target_id=target_id,
        relationship_type=relationship_type,
        is_mutual=is_mutual,
        actor_id=actor_id,
    )


@mcp.tool()
async def delete_relationship(
    source_id: str,
    target_id: str,
    relationship_type: str,
    actor_id: str | None = None,
) -> dict[str, Any]:
    """
    Delete a relationship between two contacts (both directions if mutual).

    Args:
        source_id: ID of the source contact (required)
        target_id: ID of the target contact (required)
        relationship_type: Type of relationship to delete (required)
        actor_id: Identity of the acting user, for the audit log

    Returns:
        {"success": bool, "message": str}
    """
    return await relationship_tools.delete_relationship(
        source_id=source_id,
        target_id=target_id,
        relationship_type=relationship_type,
        actor_id=actor_id,
    )


@mcp.tool()
async def list_relationships(contact_id: str) -> dict[str, Any]:
    """
    List all relationships of a contact, one entry per relationship.

    Args:
        contact_id: ID of the contact (required)

    Returns:
        {"success": bool, "message": str, "data": {"relationships": [...], "total": int}}
    """
    return await relationship_tools.list_relationships(contact_id=contact_id)


@mcp.tool()
async def detach_contact(contact_id: str, actor_id: str | None = None) -> dict[str, Any]:
    """
    Remove all relationships of a contact. Call before deleting the contact.

    Args:
        contact_id: ID of the contact (required)
        actor_id: Identity of the acting user, for the audit log

    Returns:
        {"success": bool, "message": str, "data": {"edges_removed": int}}
    """
    return await relationship_tools.detach_contact(contact_id=contact_id, actor_id=actor_id)


# =============================================================================
# Repair Tools
# =============================================================================


@mcp.tool()
async def repair_relationships(contact_id: str | None = None) -> dict[str, Any]:
    """
    Find and heal mutual relationships missing one direction.

    Args:
        contact_id: Limit the check to one contact (optional; default checks all)

    Returns:
        {"success": bool, "message": str, "data": {"report": {...}}}
    """
    return await repair_tools.repair_relationships(contact_id=contact_id)


@mcp.tool()
async def process_repair_queue(limit: int = 100) -> dict[str, Any]:
    """
    Finish relationship writes and deletes that were interrupted midway.

    Args:
        limit: Maximum number of queued operations to process (default: 100)

    Returns:
        {"success": bool, "message": str, "data": {"report": {...}, "outbox": {...}}}
    """
    return await repair_tools.process_repair_queue(limit=limit)


@mcp.tool()
async def get_repair_status() -> dict[str, Any]:
    """
    Show queued repair work and the result of the last repair scan.

    Returns:
        {"success": bool, "message": str, "data": {"outbox": {...}, "failed": [...], "latest_snapshot": {...}}}
    """
    return await repair_tools.get_repair_status()


# =============================================================================
# MCP Resources
# =============================================================================


@mcp.resource("relationships://{contact_id}")
async def get_relationships_resource(contact_id: str) -> str:
    """
    Relationships of a contact as an MCP resource.

    Args:
        contact_id: ID of the contact

    Returns:
        JSON string with the contact's relationships
    """
    result = await relationship_tools.list_relationships(contact_id=contact_id)

    return json.dumps(result, indent=2)


def main():
    """Main entry point"""
    logger.info(f"Starting {get_settings().server_name}...")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise


if __name__ == "__main__":
    main()
