"""Configuration package.

Usage:
    from config import get_settings
    settings = get_settings()
    print(settings.relationships.reciprocal_max_attempts)
"""

from config.settings import (
    AppSettings,
    Neo4jSettings,
    RelationshipSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "AppSettings",
    "Neo4jSettings",
    "RelationshipSettings",
    "get_settings",
    "reset_settings",
]
