"""
Contact store tests over the relational backend.
"""

import asyncio
import json

import pytest

from promobase.core.exceptions import (
    ConstraintError,
    ContactNotFoundError,
    TransactionError,
    ValidationError,
)
from promobase.schemas.contact import SocialPlatform, VerificationStatus


@pytest.mark.asyncio
async def test_probe_selects_relational_backend(store):
    assert store.backend_name is None
    await store.get_all()
    assert store.backend_name == "relational"


@pytest.mark.asyncio
async def test_add_and_get_round_trip(store, make_contact):
    added = await store.add(
        make_contact(
            "c1",
            email="studio@radio.example.com",
            website="https://radio.example.com",
            verificationStatus="verified",
            verificationDetails="MX ok",
            isFavorite=True,
            genres=["House", "Jazz"],
            contactPersons=[
                {"name": "Ann", "position": "Host", "email": "ann@radio.example.com"},
                {"name": "Bob", "position": "Producer"},
            ],
            socials={"instagram": "https://instagram.com/radio", "spotify": "https://open.spotify.com/x"},
        )
    )

    fetched = await store.get("c1")

    assert fetched == added
    assert fetched.genres == ["House", "Jazz"]
    assert [p.name for p in fetched.contact_persons] == ["Ann", "Bob"]
    assert fetched.socials[SocialPlatform.SPOTIFY] == "https://open.spotify.com/x"
    assert fetched.verification_status == VerificationStatus.VERIFIED


@pytest.mark.asyncio
async def test_get_all_keeps_insertion_order(store, make_contact):
    for contact_id in ("zeta", "alpha", "mid"):
        await store.add(make_contact(contact_id, name=f"Station {contact_id}"))

    assert [c.id for c in await store.get_all()] == ["zeta", "alpha", "mid"]


@pytest.mark.asyncio
async def test_invalid_contact_writes_nothing(store, make_contact):
    with pytest.raises(ValidationError):
        await store.add(make_contact("c1", email="nope"))
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_email_uniqueness_is_case_insensitive(store, make_contact):
    await store.add(make_contact("c1", email="Info@Radio.com", genres=["House"]))

    with pytest.raises(ConstraintError) as exc_info:
        await store.add(make_contact("c2", name="Other", email="info@radio.com", genres=["Techno"]))

    assert exc_info.value.field == "email"
    assert exc_info.value.contact_id == "c1"
    assert exc_info.value.status_code == 409
    assert [c.id for c in await store.get_all()] == ["c1"]
    diagnostics = await store.diagnostics()
    assert diagnostics.row_counts["contact_genres"] == 1


@pytest.mark.asyncio
async def test_website_uniqueness(store, make_contact):
    await store.add(make_contact("c1", website="https://radio.example.com"))

    with pytest.raises(ConstraintError) as exc_info:
        await store.add(make_contact("c2", website="HTTPS://RADIO.EXAMPLE.COM"))

    assert exc_info.value.field == "website"


@pytest.mark.asyncio
async def test_duplicate_id_is_rejected(store, make_contact):
    await store.add(make_contact("c1"))

    with pytest.raises(ConstraintError) as exc_info:
        await store.add(make_contact("c1", name="Again"))

    assert exc_info.value.field == "id"
    assert (await store.get("c1")).name == "Radio One"


@pytest.mark.asyncio
async def test_empty_emails_do_not_collide(store, make_contact):
    await store.add(make_contact("c1"))
    await store.add(make_contact("c2", email=""))
    assert len(await store.get_all()) == 2


@pytest.mark.asyncio
async def test_update_replaces_relations(store, make_contact):
    await store.add(
        make_contact(
            "c1",
            genres=["House", "Jazz"],
            contactPersons=[{"name": "Ann"}],
            socials={"facebook": "https://facebook.com/radio"},
        )
    )

    await store.update(make_contact("c1", name="Radio One HD", genres=["Techno"]))

    contact = await store.get("c1")
    assert contact.name == "Radio One HD"
    assert contact.genres == ["Techno"]
    assert contact.contact_persons == []
    assert contact.socials is None

    counts = (await store.diagnostics()).row_counts
    assert counts["contact_genres"] == 1
    assert counts["contact_persons"] == 0
    assert counts["social_links"] == 0


@pytest.mark.asyncio
async def test_update_missing_contact(store, make_contact):
    with pytest.raises(ContactNotFoundError):
        await store.update(make_contact("ghost"))


@pytest.mark.asyncio
async def test_update_conflicting_email_keeps_previous_state(store, make_contact):
    await store.add(make_contact("c1", email="one@radio.com"))
    await store.add(make_contact("c2", email="two@radio.com", genres=["Jazz"]))

    with pytest.raises(ConstraintError):
        await store.update(make_contact("c2", email="ONE@radio.com", genres=["Rock"]))

    contact = await store.get("c2")
    assert contact.email == "two@radio.com"
    assert contact.genres == ["Jazz"]


@pytest.mark.asyncio
async def test_delete_cascades_child_rows(store, make_contact):
    await store.add(
        make_contact(
            "c1",
            genres=["House"],
            contactPersons=[{"name": "Ann"}],
            socials={"youtube": "https://youtube.com/radio"},
        )
    )

    assert await store.delete("c1") is True
    assert await store.delete("c1") is False

    counts = (await store.diagnostics()).row_counts
    assert counts["contacts"] == 0
    assert counts["contact_genres"] == 0
    assert counts["contact_persons"] == 0
    assert counts["social_links"] == 0
    assert counts["contacts_fts"] == 0


@pytest.mark.asyncio
async def test_search_free_text_and_qualifiers(store, make_contact):
    await store.add(
        make_contact(
            "c1",
            name="Deep Night Radio",
            email="studio@deepnight.fm",
            genres=["Deep House"],
            contactPersons=[{"name": "Ann Smith", "position": "Host"}],
        )
    )
    await store.add(make_contact("c2", name="Jazz Corner", country="FR", genres=["Jazz"]))
    await store.add(make_contact("c3", name="Night Owl", country="DE", type="Individual DJ"))

    assert {c.id for c in await store.search("night")} == {"c1", "c3"}
    assert [c.id for c in await store.search("genre:jazz")] == ["c2"]
    assert [c.id for c in await store.search("person:smith")] == ["c1"]
    assert [c.id for c in await store.search("email:studio@deepnight.fm")] == ["c1"]
    assert [c.id for c in await store.search('name:"night owl"')] == ["c3"]
    assert [c.id for c in await store.search("nig country:DE")] == ["c3"]
    assert await store.search("nothing-like-this") == []


@pytest.mark.asyncio
async def test_search_filters(store, make_contact):
    await store.add(make_contact("c1", name="Alpha", country="UK", verificationStatus="verified"))
    await store.add(make_contact("c2", name="Beta", country="UK"))
    await store.add(make_contact("c3", name="Gamma", country="FR", verificationStatus="verified"))

    assert [c.id for c in await store.search(country="UK")] == ["c1", "c2"]
    assert [c.id for c in await store.search(verification_status="verified")] == ["c1", "c3"]
    assert [c.id for c in await store.search(country="UK", verification_status="verified")] == ["c1"]
    assert len(await store.search(country="All", verification_status="All")) == 3
    assert [c.id for c in await store.search("alpha", country="FR")] == []


@pytest.mark.asyncio
async def test_search_reflects_updates(store, make_contact):
    await store.add(make_contact("c1", name="Old Name"))
    await store.update(make_contact("c1", name="Fresh Name"))

    assert await store.search("old") == []
    assert [c.id for c in await store.search("fresh")] == ["c1"]


@pytest.mark.asyncio
async def test_diagnostics_counts(store, make_contact):
    await store.add(make_contact("c1", genres=["House", "Jazz"]))
    await store.add(make_contact("c2", genres=["Jazz"]))

    diagnostics = await store.diagnostics()

    assert diagnostics.backend == "relational"
    assert diagnostics.schema_version == 3
    assert diagnostics.row_counts["contacts"] == 2
    assert diagnostics.row_counts["genres"] == 2
    assert diagnostics.row_counts["contact_genres"] == 3
    assert diagnostics.row_counts["contacts_fts"] == 2


@pytest.mark.asyncio
async def test_clear_all(store, make_contact):
    await store.add(make_contact("c1", genres=["House"]))
    await store.clear_all()

    counts = (await store.diagnostics()).row_counts
    assert all(value == 0 for value in counts.values())


@pytest.mark.asyncio
async def test_clear_all_overwrites_stale_document_file(store, make_contact, document_path):
    with open(document_path, "w", encoding="utf-8") as handle:
        handle.write('[{"id": "legacy", "name": ""}]')
    await store.add(make_contact("c1"))

    await store.clear_all()

    assert await store.get_all() == []
    with open(document_path, encoding="utf-8") as handle:
        assert json.load(handle) == []


@pytest.mark.asyncio
async def test_rebuild_search_index(store, make_contact):
    await store.add(make_contact("c1"))
    await store.add(make_contact("c2", name="Radio Two"))
    assert await store.rebuild_search_index() == 2
    assert len(await store.search("radio")) == 2


@pytest.mark.asyncio
async def test_bulk_add_commits_in_chunks(store, make_contact):
    raws = [make_contact(f"c{i}", name=f"Station {i}") for i in range(25)]

    result = await store.bulk_add(raws, chunk_size=10)

    assert result.inserted == 25
    assert result.chunks_committed == 3
    assert result.cancelled is False
    assert len(await store.get_all()) == 25


@pytest.mark.asyncio
async def test_bulk_add_validates_before_writing(store, make_contact):
    raws = [make_contact("c1"), make_contact("c2", type="Unknown")]

    with pytest.raises(ValidationError) as exc_info:
        await store.bulk_add(raws)

    assert exc_info.value.index == 1
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_bulk_add_failure_keeps_committed_chunks(store, make_contact):
    raws = [make_contact(f"c{i}", email=f"dj{i}@radio.com") for i in range(10)]
    raws[7]["email"] = "dj1@radio.com"

    with pytest.raises(TransactionError) as exc_info:
        await store.bulk_add(raws, chunk_size=5)

    error = exc_info.value
    assert error.committed_chunks == 1
    assert error.committed_records == 5
    assert error.total_records == 10
    assert isinstance(error.cause, ConstraintError)
    assert [c.id for c in await store.get_all()] == [f"c{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_bulk_add_cancel_between_chunks(store, make_contact):
    cancel = asyncio.Event()
    cancel.set()

    result = await store.bulk_add([make_contact("c1")], cancel_event=cancel)

    assert result.cancelled is True
    assert result.inserted == 0
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_export_json_is_camel_case(store, make_contact):
    await store.add(make_contact("c1", doNotContact=True))

    documents = json.loads(await store.export_json())

    assert documents[0]["id"] == "c1"
    assert documents[0]["doNotContact"] is True
    assert "do_not_contact" not in documents[0]
