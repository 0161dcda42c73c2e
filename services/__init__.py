"""Services package for the contact relationship graph."""

from services.container import (
    ServiceContainer,
    get_container,
    reset_container,
    set_container,
)

__all__ = [
    "ServiceContainer",
    "get_container",
    "reset_container",
    "set_container",
]
