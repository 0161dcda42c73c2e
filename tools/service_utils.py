"""
Service Utilities for MCP Tools

Provides decorators and utilities for service availability checking and error handling.
"""

import functools
import logging
from typing import Any, Callable, Dict, Optional

from services.container import get_container, ServiceContainer
from .responses import ErrorType, error_response


logger = logging.getLogger(__name__)


def requires_services(*service_names: str) -> Callable:
    """
    Decorator to check service availability before executing a tool function.

    Service lookup order:
    1. 'container' kwarg if provided (for explicit dependency injection)
    2. Global container via get_container()

    Args:
        *service_names: Names of required ServiceContainer attributes
            Valid service names:
            - 'edge_store': Directed edge persistence
            - 'contact_lookup': Contact existence and resolution
            - 'repair_outbox': Intent queue for unfinished pair operations
            - 'relationship_manager': Paired writes and listing
            - 'consistency_repair': Dangling edge repair

    Returns:
        Decorated function that validates service availability

    Usage:
        @requires_services('relationship_manager')
        async def create_relationship(...):
            # relationship_manager is guaranteed to be non-None here
            ...

    Error Response:
        If any service is None, returns:
        {
            "success": false,
            "message": "Required service not initialized. ...",
            "error": {"type": "service_unavailable", "message": "<service_name> not initialized"}
        }
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Dict[str, Any]:
            # Prefer container kwarg if provided, otherwise use global container
            container: Optional[ServiceContainer] = kwargs.get('container') or get_container()

            # Check each required service
            for service_name in service_names:
                service = getattr(container, service_name, None)

                if service is None:
                    logger.warning(
                        f"Tool '{func.__name__}' called but {service_name} not initialized",
                        extra={
                            "tool": func.__name__,
                            "missing_service": service_name,
                            "required_services": list(service_names),
                        },
                    )
                    return error_response(
                        ErrorType.SERVICE_UNAVAILABLE,
                        f"{service_name} not initialized"
                    )

            # All services available - execute the tool
            return await func(*args, **kwargs)

        return wrapper

    return decorator


def get_service_status() -> dict[str, dict[str, bool]]:
    """
    Check the initialization status of all services, grouped by tool module.

    Example:
        {
            "server_tools": {"edge_store": True, "repair_outbox": True},
            "relationship_tools": {"relationship_manager": True},
            "repair_tools": {"consistency_repair": True, "repair_outbox": False},
        }
    """
    container = get_container()

    return {
        "server_tools": {
            "edge_store": container.edge_store is not None,
            "repair_outbox": container.repair_outbox is not None,
        },
        "relationship_tools": {
            "relationship_manager": container.relationship_manager is not None,
        },
        "repair_tools": {
            "consistency_repair": container.consistency_repair is not None,
            "repair_outbox": container.repair_outbox is not None,
        },
    }


def get_available_tools() -> dict[str, Any]:
    """
    Determine which tools are currently available based on service status.

    Returns:
        Dict with 'available' and 'unavailable' lists of tool names
    """
    status = get_service_status()

    # Define tool-to-service dependencies
    tool_dependencies = {
        # Relationship tools
        "create_relationship": ["relationship_tools.relationship_manager"],
        "delete_relationship": ["relationship_tools.relationship_manager"],
        "list_relationships": ["relationship_tools.relationship_manager"],
        "detach_contact": ["relationship_tools.relationship_manager"],
        # Repair tools
        "repair_relationships": ["repair_tools.consistency_repair"],
        "process_repair_queue": [
            "repair_tools.consistency_repair",
            "repair_tools.repair_outbox",
        ],
        "get_repair_status": ["repair_tools.consistency_repair"],
        # Server tools (no dependencies)
        "ping": [],
        "get_server_stats": ["server_tools.edge_store", "server_tools.repair_outbox"],
        "get_tool_availability": [],
    }

    available = []
    unavailable = []

    for tool_name, dependencies in tool_dependencies.items():
        all_satisfied = True
        for dep in dependencies:
            module_name, service_name = dep.split(".")
            if not status.get(module_name, {}).get(service_name, False):
                all_satisfied = False
                break

        if all_satisfied:
            available.append(tool_name)
        else:
            unavailable.append(tool_name)

    return {
        "available": sorted(available),
        "unavailable": sorted(unavailable),
        "total_tools": len(tool_dependencies),
        "service_status": status,
    }
