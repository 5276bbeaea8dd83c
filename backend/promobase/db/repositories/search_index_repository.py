"""
Search shadow table repository.

One FTS5 row per contact, rebuilt from the canonical contact on every write.
"""

from typing import Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from promobase.db.migrations import SEARCH_TABLE
from promobase.schemas.contact import Contact
from promobase.utils.search_query import SEARCH_COLUMNS, search_fields


_INSERT_SQL = text(
    f"INSERT INTO {SEARCH_TABLE} (id, {', '.join(SEARCH_COLUMNS)}) "
    f"VALUES (:id, {', '.join(':' + column for column in SEARCH_COLUMNS)})"
)
_DELETE_SQL = text(f"DELETE FROM {SEARCH_TABLE} WHERE id = :id")


class SearchIndexRepository:
    """Repository for the contacts_fts shadow table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _row(contact: Contact) -> Dict[str, str]:
        return {"id": contact.id, **search_fields(contact)}

    async def upsert(self, contact: Contact) -> None:
        """Replace the shadow row of one contact."""
        await self.session.execute(_DELETE_SQL, {"id": contact.id})
        await self.session.execute(_INSERT_SQL, self._row(contact))

    async def delete(self, contact_id: str) -> None:
        await self.session.execute(_DELETE_SQL, {"id": contact_id})

    async def clear(self) -> None:
        await self.session.execute(text(f"DELETE FROM {SEARCH_TABLE}"))

    async def count(self) -> int:
        result = await self.session.execute(text(f"SELECT COUNT(*) FROM {SEARCH_TABLE}"))
        return int(result.scalar() or 0)

    async def rebuild(self, contacts: Sequence[Contact]) -> int:
        """
        Rebuild the whole shadow table from the given contacts.

        Returns:
            Number of rows indexed
        """
        await self.clear()
        if contacts:
            await self.session.execute(_INSERT_SQL, [self._row(contact) for contact in contacts])
        return len(contacts)

    async def search_ids(
        self,
        match_expression: str,
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> List[str]:
        """
        Run a MATCH query joined back to contacts for the structured filters.

        Returns:
            Matching contact IDs, best match first
        """
        sql = (
            f"SELECT c.id FROM contacts c "
            f"JOIN (SELECT id, rank FROM {SEARCH_TABLE} WHERE {SEARCH_TABLE} MATCH :match) AS hits "
            f"ON hits.id = c.id WHERE 1 = 1"
        )
        params = {"match": match_expression}
        if country:
            sql += " AND c.country = :country"
            params["country"] = country
        if verification_status:
            sql += " AND c.verification_status = :status"
            params["status"] = verification_status
        sql += " ORDER BY hits.rank"
        result = await self.session.execute(text(sql), params)
        return [row[0] for row in result]
