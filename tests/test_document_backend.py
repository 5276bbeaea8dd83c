"""
Document backend and facade fallback tests.
"""

import json

import pytest

from promobase.backends.document import DocumentBackend
from promobase.core.exceptions import (
    ConstraintError,
    ContactNotFoundError,
    TransactionError,
    ValidationError,
)
from promobase.services.contact_validator import validate_contact


@pytest.mark.asyncio
async def test_disabled_relational_falls_back(document_store, make_contact):
    await document_store.add(make_contact("c1"))

    assert document_store.backend_name == "document"
    diagnostics = await document_store.diagnostics()
    assert diagnostics.backend == "document"
    assert diagnostics.schema_version == 0
    assert diagnostics.row_counts == {"contacts": 1}


@pytest.mark.asyncio
async def test_documents_persist_across_instances(document_path, make_contact):
    backend = DocumentBackend(document_path)
    await backend.initialize()
    await backend.add(validate_contact(make_contact("c1", genres=["Jazz"])))
    await backend.add(validate_contact(make_contact("c2", name="Radio Two")))
    await backend.update(validate_contact(make_contact("c1", name="Radio One HD", genres=["Jazz"])))

    with open(document_path, encoding="utf-8") as handle:
        documents = json.load(handle)
    assert [d["id"] for d in documents] == ["c1", "c2"]

    reloaded = DocumentBackend(document_path)
    await reloaded.initialize()
    contacts = await reloaded.get_all()
    assert [c.name for c in contacts] == ["Radio One HD", "Radio Two"]
    assert contacts[0].genres == ["Jazz"]


@pytest.mark.asyncio
async def test_invalid_document_file_is_rejected(document_path):
    with open(document_path, "w", encoding="utf-8") as handle:
        json.dump([{"id": "c1", "name": "", "country": "UK", "type": "Radio Station"}], handle)

    backend = DocumentBackend(document_path)
    with pytest.raises(ValidationError) as exc_info:
        await backend.initialize()
    assert exc_info.value.index == 0


@pytest.mark.asyncio
async def test_in_memory_documents(make_contact):
    backend = DocumentBackend()
    await backend.initialize()
    await backend.add(validate_contact(make_contact("c1")))

    assert await backend.delete("c1") is True
    assert await backend.delete("c1") is False
    with pytest.raises(ContactNotFoundError):
        await backend.update(validate_contact(make_contact("c1")))


@pytest.mark.asyncio
async def test_returned_contacts_are_copies(make_contact):
    backend = DocumentBackend()
    await backend.initialize()
    await backend.add(validate_contact(make_contact("c1", genres=["Jazz"])))

    contact = await backend.get("c1")
    contact.genres.append("Rock")

    assert (await backend.get("c1")).genres == ["Jazz"]


@pytest.mark.asyncio
async def test_duplicate_id_in_chunk_keeps_earlier_records(document_store, make_contact):
    await document_store.add(make_contact("c3"))

    raws = [make_contact(f"c{i}", name=f"Station {i}") for i in range(1, 6)]
    with pytest.raises(TransactionError) as exc_info:
        await document_store.bulk_add(raws, chunk_size=10)

    error = exc_info.value
    assert error.committed_chunks == 0
    assert error.committed_records == 2
    assert isinstance(error.cause, ConstraintError)
    assert [c.id for c in await document_store.get_all()] == ["c3", "c1", "c2"]


@pytest.mark.asyncio
async def test_document_search_matches_relational_rules(document_store, make_contact):
    await document_store.add(make_contact("c1", name="Deep Night Radio", genres=["Deep House"]))
    await document_store.add(make_contact("c2", name="Jazz Corner", country="FR", genres=["Jazz"]))
    await document_store.add(
        make_contact("c3", name="Night Owl", country="DE", verificationStatus="verified")
    )

    assert [c.id for c in await document_store.search("night")] == ["c1", "c3"]
    assert [c.id for c in await document_store.search("genre:jazz")] == ["c2"]
    assert [c.id for c in await document_store.search("night", country="DE")] == ["c3"]
    assert [c.id for c in await document_store.search(verification_status="verified")] == ["c3"]
    assert len(await document_store.search(country="All")) == 3


@pytest.mark.asyncio
async def test_document_clear_all(document_store, document_path, make_contact):
    await document_store.add(make_contact("c1"))
    await document_store.clear_all()

    assert await document_store.get_all() == []
    with open(document_path, encoding="utf-8") as handle:
        assert json.load(handle) == []
