"""
Initialize SQLite Relationship Database
Creates the relationships, repair_outbox and repair_snapshots tables, plus
a minimal contacts table when the contact-CRUD service has not created one.
"""

import sqlite3
import sys
from pathlib import Path


# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import get_settings
from services.consistency_repair import SNAPSHOT_SCHEMA
from services.repair_outbox import SCHEMA as OUTBOX_SCHEMA
from services.sqlite_edge_store import SCHEMA as RELATIONSHIPS_SCHEMA


CONTACTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    id TEXT PRIMARY KEY,
    display_name TEXT,
    owner_id TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""


def init_database(db_path: str | None = None) -> bool:
    """Initialize the relationship database with schema"""
    db_path = db_path or get_settings().database_path
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    print(f"Initializing relationship database at: {db_path}")

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(CONTACTS_SCHEMA)
        cursor.executescript(RELATIONSHIPS_SCHEMA)
        cursor.executescript(OUTBOX_SCHEMA)
        cursor.execute(SNAPSHOT_SCHEMA)
        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_snapshot_checked_at
            ON repair_snapshots(checked_at)
        """
        )

        conn.commit()

        print("✅ Relationship database initialized successfully!")
        print("   - contacts table ensured")
        print("   - relationships table created")
        print("   - repair_outbox table created")
        print("   - repair_snapshots table created")
        print("   - Indexes created")

        # Verify schema
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = cursor.fetchall()
        print(f"\n📋 Tables in database: {[t[0] for t in tables]}")

        return True

    except sqlite3.Error as e:
        print(f"❌ Error initializing database: {e}")
        conn.rollback()
        return False

    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(0 if init_database() else 1)
