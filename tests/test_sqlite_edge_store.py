"""
Tests for SqliteEdgeStore specifics: persistence, schema and error mapping
"""

import sqlite3

import pytest

from models.relationships import Edge
from services.errors import EdgeStoreError, TransientStoreError
from services.sqlite_edge_store import SqliteEdgeStore


@pytest.fixture
async def sqlite_store(db_path):
    store = SqliteEdgeStore(db_path=db_path)
    yield store
    await store.close()


async def test_edges_persist_across_instances(db_path):
    """Edges written by one store instance are visible to the next"""
    first = SqliteEdgeStore(db_path=db_path)
    edge = await first.create(Edge(source_id="alice", target_id="bob", type="friend", is_mutual=True))
    await first.close()

    second = SqliteEdgeStore(db_path=db_path)
    try:
        found = await second.find("alice", "bob", "friend")
    finally:
        await second.close()

    assert found == edge


async def test_creates_parent_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "contacts.db"
    store = SqliteEdgeStore(db_path=str(db_path))
    try:
        assert await store.count() == 0
    finally:
        await store.close()

    assert db_path.exists()


async def test_in_memory_database():
    store = SqliteEdgeStore(db_path=":memory:")
    try:
        await store.create(Edge(source_id="alice", target_id="bob", type="friend"))
        assert await store.count() == 1
    finally:
        await store.close()


async def test_unique_constraint_in_schema(sqlite_store, db_path):
    """Duplicate rows are rejected by the table itself, not only by the store"""
    await sqlite_store.count()

    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "INSERT INTO relationships VALUES ('edge-1', 'alice', 'bob', 'friend', 0, '2024-01-01T00:00:00+00:00')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO relationships VALUES ('edge-2', 'alice', 'bob', 'friend', 1, '2024-01-01T00:00:00+00:00')"
            )
    finally:
        conn.close()


async def test_locked_database_is_transient(sqlite_store):
    def locked(conn):
        raise sqlite3.OperationalError("database is locked")

    with pytest.raises(TransientStoreError):
        await sqlite_store._run(locked)


async def test_other_sqlite_errors_are_permanent(sqlite_store):
    def broken(conn):
        raise sqlite3.OperationalError("no such column: nope")

    with pytest.raises(EdgeStoreError) as exc_info:
        await sqlite_store._run(broken)

    assert not isinstance(exc_info.value, TransientStoreError)


async def test_close_is_idempotent(sqlite_store):
    await sqlite_store.count()
    await sqlite_store.close()
    await sqlite_store.close()

    # Reopens lazily on next use
    assert await sqlite_store.count() == 0
