"""
Schema versioning, migration and search index self-heal tests.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from promobase.backends.relational import RelationalBackend
from promobase.core.exceptions import BackendUnavailableError
from promobase.db.migrations import SCHEMA_VERSION, SEARCH_TABLE
from promobase.services.contact_validator import validate_contact
from promobase.utils.search_query import parse_query


async def _execute(database_url, *statements):
    engine = create_async_engine(database_url)
    try:
        async with engine.begin() as conn:
            for statement in statements:
                await conn.execute(text(statement))
    finally:
        await engine.dispose()


async def _scalar(database_url, statement):
    engine = create_async_engine(database_url)
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text(statement))
            return result.scalar()
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_fresh_file_reaches_current_version(database_url):
    backend = RelationalBackend(database_url)
    await backend.initialize()
    try:
        diagnostics = await backend.diagnostics()
        assert diagnostics.schema_version == SCHEMA_VERSION
        assert diagnostics.row_counts["contacts"] == 0
        assert diagnostics.row_counts[SEARCH_TABLE] == 0
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_migrations_are_idempotent(database_url):
    backend = RelationalBackend(database_url)
    await backend.initialize()
    try:
        assert await backend.run_migrations() == []
    finally:
        await backend.close()

    reopened = RelationalBackend(database_url)
    await reopened.initialize()
    try:
        assert await reopened.run_migrations() == []
        assert (await reopened.diagnostics()).schema_version == SCHEMA_VERSION
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_version_one_file_is_upgraded(database_url):
    await _execute(
        database_url,
        """
        CREATE TABLE contacts (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL,
            country VARCHAR NOT NULL,
            email VARCHAR,
            website VARCHAR,
            type VARCHAR NOT NULL,
            verification_status VARCHAR,
            verification_details VARCHAR,
            do_not_contact BOOLEAN NOT NULL DEFAULT 0,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "INSERT INTO contacts (id, name, country, email, type, verification_status) "
        "VALUES ('old-1', 'Legacy FM', 'DE', 'hello@legacy.fm', 'Radio Station', 'verified')",
        "PRAGMA user_version = 1",
    )

    backend = RelationalBackend(database_url)
    await backend.initialize()
    try:
        contact = await backend.get("old-1")
        assert contact is not None
        assert contact.name == "Legacy FM"
        assert contact.is_favorite is False

        # The shadow table did not exist before, so startup rebuilt it
        hits = await backend.search(parse_query("legacy"))
        assert [c.id for c in hits] == ["old-1"]
        assert (await backend.diagnostics()).schema_version == SCHEMA_VERSION
    finally:
        await backend.close()

    assert await _scalar(database_url, "PRAGMA user_version") == SCHEMA_VERSION
    index_count = await _scalar(
        database_url,
        "SELECT COUNT(*) FROM sqlite_master WHERE type = 'index' AND name = 'uq_contacts_email'",
    )
    assert index_count == 1


@pytest.mark.asyncio
async def test_empty_search_index_heals_on_startup(database_url, make_contact):
    backend = RelationalBackend(database_url)
    await backend.initialize()
    try:
        await backend.add(validate_contact(make_contact("c1", name="Night Shift Radio")))
        await backend.add(validate_contact(make_contact("c2", name="Morning Beats", country="FR")))
    finally:
        await backend.close()

    await _execute(database_url, f"DELETE FROM {SEARCH_TABLE}")

    reopened = RelationalBackend(database_url)
    await reopened.initialize()
    try:
        diagnostics = await reopened.diagnostics()
        assert diagnostics.row_counts[SEARCH_TABLE] == 2
        hits = await reopened.search(parse_query("night"))
        assert [c.id for c in hits] == ["c1"]
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_disabled_backend_is_unavailable():
    backend = RelationalBackend("sqlite+aiosqlite:///never-created.db", enabled=False)
    with pytest.raises(BackendUnavailableError):
        await backend.initialize()
