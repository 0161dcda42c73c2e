"""
MCP Tools for Relationship Repair

Administrative entry points for ConsistencyRepair: run a repair scan, drain
the outbox of unfinished pair operations and report repair status.
"""

import logging
from typing import Any, Optional

from services.container import get_container, ServiceContainer
from services.errors import EdgeStoreError
from .responses import (
    ErrorType,
    database_error,
    error_response,
    internal_error,
    success_response,
    validation_error,
)
from .service_utils import requires_services


logger = logging.getLogger(__name__)


def _get_repair(container: Optional[ServiceContainer] = None):
    """Get consistency repair from container."""
    if container is not None and container.consistency_repair is not None:
        return container.consistency_repair
    return get_container().consistency_repair


def _get_outbox(container: Optional[ServiceContainer] = None):
    """Get repair outbox from container."""
    if container is not None and container.repair_outbox is not None:
        return container.repair_outbox
    return get_container().repair_outbox


@requires_services("consistency_repair")
async def repair_relationships(
    contact_id: str | None = None,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Find and heal mutual relationships that are missing one direction.

    Args:
        contact_id: Only check relationships of this contact; omit to check all

    Returns:
        {"success": bool, "message": str, "data": {"report": {...}}}
    """
    if contact_id is not None and not contact_id:
        return validation_error("contact_id cannot be empty", field="contact_id", invalid_value=contact_id)

    try:
        repair = _get_repair(container)
        report = await repair.scan(contact_id, save_snapshot=True)

        if report.errors:
            return error_response(
                ErrorType.REPAIR_ERROR,
                f"{len(report.errors)} edges could not be repaired",
                details={"report": report.to_dict()},
            )

        return success_response(
            f"Repair complete: {report.healed_count} of "
            f"{len(report.inconsistencies)} inconsistencies healed",
            report=report.to_dict(),
        )

    except EdgeStoreError as e:
        logger.error(f"Edge store error in repair_relationships: {e}", exc_info=True, extra={
            "operation": "repair_relationships",
            "contact_id": contact_id,
        })
        return database_error(operation="repair_relationships")
    except Exception as e:
        logger.error(f"Unexpected error in repair_relationships: {e}", exc_info=True, extra={
            "operation": "repair_relationships",
            "contact_id": contact_id,
        })
        return internal_error(str(e))


@requires_services("consistency_repair", "repair_outbox")
async def process_repair_queue(
    limit: int = 100,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Finish pair operations that were interrupted between their two writes.

    Args:
        limit: Maximum number of queued intents to process (1-1000)

    Returns:
        {"success": bool, "message": str, "data": {"report": {...}, "outbox": {...}}}
    """
    if not isinstance(limit, int) or limit < 1 or limit > 1000:
        return validation_error("limit must be between 1 and 1000", field="limit", invalid_value=limit)

    try:
        repair = _get_repair(container)
        report = await repair.process_pending(limit=limit)
        return success_response(
            f"Processed {report.scanned_count} queued operations",
            report=report.to_dict(),
            outbox=_get_outbox(container).count_by_status(),
        )

    except Exception as e:
        logger.error(f"Unexpected error in process_repair_queue: {e}", exc_info=True, extra={
            "operation": "process_repair_queue",
        })
        return internal_error(str(e))


@requires_services("consistency_repair")
async def get_repair_status(
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Report the outbox backlog and the most recent repair snapshot.

    Returns:
        {
            "success": bool,
            "message": str,
            "data": {"outbox": {...}, "failed": [...], "latest_snapshot": {...} | None}
        }
    """
    try:
        repair = _get_repair(container)
        outbox = _get_outbox(container)

        outbox_counts = outbox.count_by_status() if outbox is not None else {}
        failed = [
            {
                "outbox_id": item.outbox_id,
                "action": item.action,
                "source_id": item.source_id,
                "target_id": item.target_id,
                "type": item.type,
                "error_message": item.error_message,
            }
            for item in (outbox.get_failed_items() if outbox is not None else [])
        ]

        return success_response(
            "Repair status",
            outbox=outbox_counts,
            failed=failed,
            latest_snapshot=repair.get_latest_snapshot(),
        )

    except Exception as e:
        logger.error(f"Unexpected error in get_repair_status: {e}", exc_info=True, extra={
            "operation": "get_repair_status",
        })
        return internal_error(str(e))
