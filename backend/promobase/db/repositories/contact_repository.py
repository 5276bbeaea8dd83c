"""
Contact repository for database operations.

Maps the canonical Contact onto the contacts row and its owned child rows.
Callers own the transaction; nothing here commits.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, insert, literal_column, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from promobase.db.repositories.base_repository import BaseRepository
from promobase.models.contact import (
    ContactGenreRow,
    ContactPersonRow,
    ContactRow,
    GenreRow,
    SocialLinkRow,
)
from promobase.schemas.contact import Contact, ContactPerson

# Stay well below SQLite's bound-parameter limit for IN (...) lookups
ID_LOOKUP_CHUNK = 500

_CHILD_MODELS = (ContactGenreRow, ContactPersonRow, SocialLinkRow)


class ContactRepository(BaseRepository[ContactRow]):
    """Repository for contact rows and their child relations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ContactRow, session)

    def _base_query(self):
        """Base query with eager loading of every child relation."""
        return (
            select(ContactRow)
            .options(
                selectinload(ContactRow.genres),
                selectinload(ContactRow.persons),
                selectinload(ContactRow.socials),
            )
            .order_by(literal_column("contacts.rowid"))
        )

    async def list_all(
        self,
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> List[Contact]:
        """List contacts in insertion order, optionally filtered."""
        query = self._base_query()
        if country:
            query = query.where(ContactRow.country == country)
        if verification_status:
            query = query.where(ContactRow.verification_status == verification_status)
        result = await self.session.execute(query)
        return [self.to_contact(row) for row in result.scalars().all()]

    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        """Get one contact by ID."""
        result = await self.session.execute(
            self._base_query().where(ContactRow.id == contact_id)
        )
        row = result.scalar_one_or_none()
        return self.to_contact(row) if row else None

    async def list_by_ids(self, contact_ids: Sequence[str]) -> List[Contact]:
        """Load contacts for the given IDs, keeping the order of ``contact_ids``."""
        found: Dict[str, Contact] = {}
        ids = list(dict.fromkeys(contact_ids))
        for start in range(0, len(ids), ID_LOOKUP_CHUNK):
            chunk = ids[start:start + ID_LOOKUP_CHUNK]
            result = await self.session.execute(
                self._base_query().where(ContactRow.id.in_(chunk))
            )
            for row in result.scalars().all():
                found[row.id] = self.to_contact(row)
        return [found[contact_id] for contact_id in ids if contact_id in found]

    async def insert(self, contact: Contact) -> None:
        """Insert a new contact with its relations."""
        await self.session.execute(
            insert(ContactRow).values(id=contact.id, **self._base_values(contact))
        )
        await self.replace_relations(contact)

    async def overwrite(self, contact: Contact) -> bool:
        """
        Overwrite an existing contact and replace its relations.

        Returns:
            False when no contact with this ID exists
        """
        result = await self.session.execute(
            update(ContactRow)
            .where(ContactRow.id == contact.id)
            .values(**self._base_values(contact))
        )
        if not result.rowcount:
            return False
        await self.replace_relations(contact)
        return True

    async def remove(self, contact_id: str) -> bool:
        """Delete a contact; child rows go with it through ON DELETE CASCADE."""
        return await self.delete(contact_id)

    async def replace_relations(self, contact: Contact) -> None:
        """Delete every child row of the contact, then insert the new set."""
        for model in _CHILD_MODELS:
            await self.session.execute(delete(model).where(model.contact_id == contact.id))

        if contact.genres:
            await self.session.execute(
                sqlite_insert(GenreRow)
                .values([{"name": genre} for genre in contact.genres])
                .on_conflict_do_nothing()
            )
            await self.session.execute(
                insert(ContactGenreRow),
                [
                    {"contact_id": contact.id, "genre_name": genre, "sort_order": position}
                    for position, genre in enumerate(contact.genres)
                ],
            )

        if contact.contact_persons:
            await self.session.execute(
                insert(ContactPersonRow),
                [
                    {
                        "id": uuid.uuid4().hex,
                        "contact_id": contact.id,
                        "name": person.name,
                        "position": person.position,
                        "email": person.email,
                        "sort_order": position,
                    }
                    for position, person in enumerate(contact.contact_persons)
                ],
            )

        if contact.socials:
            await self.session.execute(
                insert(SocialLinkRow),
                [
                    {
                        "id": uuid.uuid4().hex,
                        "contact_id": contact.id,
                        "platform": platform.value,
                        "url": url,
                    }
                    for platform, url in contact.socials.items()
                ],
            )

    async def clear(self) -> int:
        """Delete every contact, child row and genre; returns contacts removed."""
        for model in _CHILD_MODELS:
            await self.session.execute(delete(model))
        removed = await self.delete_all()
        await self.session.execute(delete(GenreRow))
        return removed

    async def row_counts(self) -> Dict[str, int]:
        """Row counts per relational table."""
        counts: Dict[str, int] = {}
        for model in (ContactRow, ContactGenreRow, ContactPersonRow, SocialLinkRow, GenreRow):
            result = await self.session.execute(select(func.count()).select_from(model))
            counts[model.__tablename__] = result.scalar() or 0
        return counts

    @staticmethod
    def _base_values(contact: Contact) -> Dict[str, Any]:
        return {
            "name": contact.name,
            "country": contact.country,
            "email": contact.email,
            "website": contact.website,
            "type": contact.type.value,
            "verification_status": contact.verification_status.value,
            "verification_details": contact.verification_details,
            "is_favorite": contact.is_favorite,
            "do_not_contact": contact.do_not_contact,
        }

    @staticmethod
    def to_contact(row: ContactRow) -> Contact:
        """Rebuild the canonical contact from a row with loaded relations."""
        return Contact(
            id=row.id,
            name=row.name,
            country=row.country,
            type=row.type,
            email=row.email,
            website=row.website,
            verification_status=row.verification_status,
            verification_details=row.verification_details,
            is_favorite=bool(row.is_favorite),
            do_not_contact=bool(row.do_not_contact),
            genres=[link.genre_name for link in row.genres],
            contact_persons=[
                ContactPerson(
                    name=person.name or "",
                    position=person.position or "",
                    email=person.email or "",
                )
                for person in row.persons
            ],
            socials={link.platform: link.url for link in row.socials} or None,
        )
