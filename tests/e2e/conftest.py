"""
Pytest fixtures for end-to-end relationship tests.

Builds the full server stack on a temporary SQLite database through the same
initialize() path the MCP lifespan uses.
"""

import sqlite3

import pytest

import mcp_server
from config.testing import override_settings
from services.container import get_container


CONTACTS = [("alice", "Alice", "owner-1"), ("bob", "Bob", "owner-1"), ("carol", "Carol", "owner-1")]


@pytest.fixture
def e2e_db_path(tmp_path):
    """Temporary database pre-populated with the contacts table."""
    db_path = str(tmp_path / "e2e_contacts.db")
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "CREATE TABLE contacts (id TEXT PRIMARY KEY, display_name TEXT, owner_id TEXT)"
        )
        conn.executemany("INSERT INTO contacts VALUES (?, ?, ?)", CONTACTS)
        conn.commit()
    finally:
        conn.close()
    return db_path


@pytest.fixture
def start_server(e2e_db_path):
    """Return a coroutine function that (re)initializes the server stack."""

    async def _start():
        with override_settings(
            EDGE_STORE_BACKEND="sqlite",
            DATABASE_PATH=e2e_db_path,
            RELATIONSHIP_ENABLE_REPAIR_WORKER="false",
            RELATIONSHIP_RECIPROCAL_RETRY_DELAY_SECONDS="0",
        ):
            await mcp_server.initialize()
        return get_container()

    return _start


@pytest.fixture
async def server(start_server):
    """Initialized server stack, shut down after the test."""
    container = await start_server()
    yield container
    await get_container().shutdown()
