"""
Contact lookup capability.

Contacts are owned by the external contact-CRUD service. This layer only needs
to know whether a contact exists and how to display it next to a relationship.
"""

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from models.relationships import Contact


logger = logging.getLogger(__name__)


class ContactLookup(ABC):
    """Read-only access to contacts."""

    @abstractmethod
    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        """Return the contact, or None if it does not exist."""


class StaticContactLookup(ContactLookup):
    """Dict-backed lookup, for tests and for embedding callers that already hold contacts."""

    def __init__(self, contacts: Iterable[Contact] = ()):
        self._contacts: Dict[str, Contact] = {c.id: c for c in contacts}

    def add(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact

    def remove(self, contact_id: str) -> None:
        self._contacts.pop(contact_id, None)

    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        return self._contacts.get(contact_id)


class SqliteContactLookup(ContactLookup):
    """
    Reads the `contacts` table maintained by the contact-CRUD service.

    Expected columns: id, display_name, owner_id.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _fetch(self, contact_id: str) -> Optional[Contact]:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT id, display_name, owner_id FROM contacts WHERE id = ?",
                (contact_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return Contact(
            id=row["id"],
            display_name=row["display_name"] or "",
            owner_id=row["owner_id"],
        )

    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        return await asyncio.to_thread(self._fetch, contact_id)
