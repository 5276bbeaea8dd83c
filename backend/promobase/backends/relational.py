"""
Relational backend: embedded SQLite file with an FTS5 search shadow table.

Every write covers the contact row, its child rows and its shadow row in one
transaction, so readers never see a contact with half-replaced relations.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from promobase.backends.base import ContactBackend
from promobase.core.exceptions import (
    BackendUnavailableError,
    ConstraintError,
    ContactNotFoundError,
    ValidationError,
)
from promobase.core.logging import get_logger
from promobase.db.migrations import SEARCH_TABLE, SchemaManager
from promobase.db.repositories.contact_repository import ContactRepository
from promobase.db.repositories.search_index_repository import SearchIndexRepository
from promobase.db.session import close_engine, create_engine, create_sessionmaker
from promobase.models.contact import ContactRow
from promobase.schemas.contact import Contact, Diagnostics
from promobase.utils.search_query import SearchTerm, to_match_expression

logger = get_logger(__name__)


_CONSTRAINT_FIELDS = (
    ("uq_contacts_email", "email"),
    ("uq_contacts_website", "website"),
    ("contacts.id", "id"),
)


def constraint_field(exc: IntegrityError) -> Optional[str]:
    """Name the contact field behind a SQLite uniqueness failure, if it is one we own."""
    message = str(exc.orig)
    if "UNIQUE constraint failed" not in message:
        return None
    for marker, field in _CONSTRAINT_FIELDS:
        if marker in message:
            return field
    return None


class RelationalBackend(ContactBackend):
    """Contact storage over SQLAlchemy asyncio and aiosqlite."""

    name = "relational"

    def __init__(self, database_url: str, enabled: bool = True):
        self.database_url = database_url
        self.enabled = enabled
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None
        self.schema: Optional[SchemaManager] = None

    async def initialize(self) -> None:
        """
        Capability probe plus startup work.

        Opens the file, checks FTS5 support, creates the schema, applies
        pending migrations and rebuilds the shadow table when it is stale.

        Raises:
            BackendUnavailableError: when any of that fails
        """
        if not self.enabled:
            raise BackendUnavailableError("Relational backend disabled by configuration")

        try:
            self.engine = create_engine(self.database_url)
            async with self.engine.connect() as conn:
                await conn.execute(text("CREATE VIRTUAL TABLE temp.fts5_probe USING fts5(x)"))
                await conn.execute(text("DROP TABLE temp.fts5_probe"))
            self.session_maker = create_sessionmaker(self.engine)
            self.schema = SchemaManager(self.engine)
            await self.schema.ensure_schema()
            await self.schema.apply_migrations()
            await self._heal_search_index()
            await self.schema.log_index_plans()
        except (SQLAlchemyError, OSError, ImportError) as exc:
            if self.engine is not None:
                await close_engine(self.engine)
                self.engine = None
            raise BackendUnavailableError(f"Relational backend unavailable: {exc}") from exc

        logger.info("Relational backend ready", extra={"database_url": self.database_url})

    async def close(self) -> None:
        if self.engine is not None:
            await close_engine(self.engine)
            self.engine = None

    @asynccontextmanager
    async def _transaction(self, contact: Optional[Contact] = None) -> AsyncIterator[AsyncSession]:
        """One session transaction; uniqueness failures become ConstraintError."""
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    yield session
        except IntegrityError as exc:
            if constraint_field(exc) is None:
                raise
            raise await self._constraint_error(exc, contact) from exc

    async def _constraint_error(self, exc: IntegrityError, contact: Optional[Contact]) -> ConstraintError:
        field = constraint_field(exc)
        value = getattr(contact, field, None) if contact is not None else None
        return ConstraintError(field, value, contact_id=await self._conflicting_id(field, value))

    async def _conflicting_id(self, field: str, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        column = getattr(ContactRow, field)
        if field == "id":
            condition = column == value
        else:
            condition = func.lower(column) == value.lower()
        async with self.session_maker() as session:
            result = await session.execute(select(ContactRow.id).where(condition).limit(1))
            return result.scalar_one_or_none()

    async def get_all(self) -> List[Contact]:
        async with self.session_maker() as session:
            return await ContactRepository(session).list_all()

    async def get(self, contact_id: str) -> Optional[Contact]:
        async with self.session_maker() as session:
            return await ContactRepository(session).get_contact(contact_id)

    async def add(self, contact: Contact) -> None:
        async with self._transaction(contact) as session:
            await ContactRepository(session).insert(contact)
            await SearchIndexRepository(session).upsert(contact)

    async def update(self, contact: Contact) -> None:
        async with self._transaction(contact) as session:
            if not await ContactRepository(session).overwrite(contact):
                raise ContactNotFoundError(contact.id)
            await SearchIndexRepository(session).upsert(contact)

    async def delete(self, contact_id: str) -> bool:
        async with self._transaction() as session:
            removed = await ContactRepository(session).remove(contact_id)
            await SearchIndexRepository(session).delete(contact_id)
        return removed

    async def write_chunk(self, contacts: Sequence[Contact]) -> int:
        """Insert a chunk in one transaction; any failure rolls back the whole chunk."""
        current: Optional[Contact] = None
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    repo = ContactRepository(session)
                    search_index = SearchIndexRepository(session)
                    for contact in contacts:
                        current = contact
                        await repo.insert(contact)
                        await search_index.upsert(contact)
        except IntegrityError as exc:
            if constraint_field(exc) is None:
                raise
            raise await self._constraint_error(exc, current) from exc
        return len(contacts)

    async def search(
        self,
        terms: List[SearchTerm],
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> List[Contact]:
        async with self.session_maker() as session:
            repo = ContactRepository(session)
            if not terms:
                return await repo.list_all(country, verification_status)

            match_expression = to_match_expression(terms)
            try:
                ids = await SearchIndexRepository(session).search_ids(
                    match_expression, country, verification_status
                )
            except OperationalError as exc:
                raise ValidationError("query", match_expression, "invalid search query") from exc
            return await repo.list_by_ids(ids)

    async def diagnostics(self) -> Diagnostics:
        async with self.session_maker() as session:
            counts = await ContactRepository(session).row_counts()
            counts[SEARCH_TABLE] = await SearchIndexRepository(session).count()
        return Diagnostics(
            backend=self.name,
            schema_version=await self.schema.get_version(),
            row_counts=counts,
        )

    async def clear_all(self) -> None:
        async with self._transaction() as session:
            removed = await ContactRepository(session).clear()
            await SearchIndexRepository(session).clear()
        logger.info("Relational store cleared", extra={"contacts_removed": removed})

    async def rebuild_search_index(self) -> int:
        async with self._transaction() as session:
            contacts = await ContactRepository(session).list_all()
            indexed = await SearchIndexRepository(session).rebuild(contacts)
        logger.info("Search index rebuilt", extra={"rows": indexed})
        return indexed

    async def run_migrations(self) -> List[int]:
        applied = await self.schema.apply_migrations()
        await self._heal_search_index()
        return applied

    async def _heal_search_index(self) -> None:
        if await self.schema.search_index_is_stale():
            logger.warning("Search index empty while contacts exist; rebuilding")
            await self.rebuild_search_index()
