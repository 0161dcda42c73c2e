#!/usr/bin/env python3
"""
Neo4j Schema Initialization Script

Creates the schema used by the Neo4j edge store:
- UNIQUE constraint on Contact.contact_id
- Index on RELATED.edge_id (lookups by edge id, keyset repair scan)
- Verification of schema creation

Usage:
    python scripts/init_neo4j.py

Environment variables:
    NEO4J_URI: Neo4j connection URI (default: bolt://localhost:7687)
    NEO4J_USER: Neo4j username (default: neo4j)
    NEO4J_PASSWORD: Neo4j password
    NEO4J_DATABASE: Database name (default: neo4j)
"""

import sys
from pathlib import Path

from neo4j.exceptions import Neo4jError


# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.neo4j_service import Neo4jService, create_neo4j_service_from_env


CONSTRAINTS = [
    (
        "contact_id_unique",
        "CREATE CONSTRAINT contact_id_unique IF NOT EXISTS "
        "FOR (c:Contact) REQUIRE c.contact_id IS UNIQUE",
    ),
]

INDEXES = [
    (
        "related_edge_id_idx",
        "CREATE INDEX related_edge_id_idx IF NOT EXISTS FOR ()-[r:RELATED]-() ON (r.edge_id)",
    ),
    (
        "related_type_idx",
        "CREATE INDEX related_type_idx IF NOT EXISTS FOR ()-[r:RELATED]-() ON (r.type)",
    ),
]


class Neo4jSchemaInitializer:
    """Initialize Neo4j database schema with constraints and indexes."""

    def __init__(self, service: Neo4jService):
        self.service = service

    def _run_all(self, statements: list[tuple[str, str]], kind: str) -> bool:
        print(f"\n📋 Creating {kind}...")
        with self.service.session() as session:
            for name, query in statements:
                try:
                    session.run(query).consume()
                    print(f"  ✅ Created: {name}")
                except Neo4jError as e:
                    print(f"  ❌ Failed to create {name}: {e}")
                    return False
        return True

    def verify_schema(self) -> bool:
        """
        Verify that the constraint and indexes exist.

        Returns:
            True if schema is complete, False otherwise
        """
        print("\n🔍 Verifying schema...")

        expected = {name for name, _ in CONSTRAINTS + INDEXES}
        try:
            records = self.service.execute_read("SHOW INDEXES YIELD name RETURN name")
        except Neo4jError as e:
            print(f"  ❌ Failed to list indexes: {e}")
            return False

        # Constraint-backed indexes share the constraint name
        found = {record["name"] for record in records}
        missing = expected - found
        if missing:
            print(f"  ⚠️  Missing: {sorted(missing)}")
            return False

        print("\n✅ Schema verification complete!")
        return True

    def initialize(self) -> bool:
        """
        Initialize complete Neo4j schema.

        Returns:
            True if successful, False otherwise
        """
        print("🚀 Starting Neo4j schema initialization...\n")

        if not self.service.connect():
            print(f"❌ Failed to connect to Neo4j at {self.service.config.uri}")
            return False

        try:
            return (
                self._run_all(CONSTRAINTS, "constraints")
                and self._run_all(INDEXES, "indexes")
                and self.verify_schema()
            )
        finally:
            self.service.close()


def main():
    """Main entry point for schema initialization."""
    initializer = Neo4jSchemaInitializer(create_neo4j_service_from_env())
    success = initializer.initialize()

    # Exit with appropriate code
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
