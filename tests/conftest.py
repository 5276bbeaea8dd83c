"""
Pytest configuration and fixtures.
Every test gets its own throwaway SQLite file and document store under tmp_path.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from promobase.backends.document import DocumentBackend
from promobase.backends.relational import RelationalBackend
from promobase.deps.di_container import build_container, set_container
from promobase.main import create_app
from promobase.services.contact_store import ContactStore


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}"


@pytest.fixture
def document_path(tmp_path):
    return str(tmp_path / "documents.json")


@pytest.fixture
def make_contact():
    """Build a raw contact payload with sensible defaults."""
    def _make(contact_id, name="Radio One", country="UK", type="Radio Station", **fields):
        return {"id": contact_id, "name": name, "country": country, "type": type, **fields}
    return _make


@pytest.fixture
async def store(database_url, document_path):
    """Contact store backed by the relational file."""
    contact_store = ContactStore(
        RelationalBackend(database_url),
        DocumentBackend(document_path),
        bulk_chunk_size=500,
    )
    yield contact_store
    await contact_store.close()


@pytest.fixture
async def document_store(document_path):
    """Contact store whose relational backend is disabled, so it falls back to documents."""
    contact_store = ContactStore(
        RelationalBackend("sqlite+aiosqlite:///unused.db", enabled=False),
        DocumentBackend(document_path),
    )
    yield contact_store
    await contact_store.close()


@pytest.fixture
async def test_client(database_url, document_path):
    """
    Create a test HTTP client over a container pointed at tmp_path.
    """
    container = build_container({
        "database_url": database_url,
        "document_store_path": document_path,
    })
    set_container(container)
    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await container.contact_store().close()
    set_container(None)
