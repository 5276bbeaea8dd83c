"""
Merge, merge-all, undo and history tests over the relational store.
"""

import csv
import io
import json

import pytest

from promobase.core.exceptions import ConstraintError, ContactNotFoundError, MergeUsageError
from promobase.services.merge_service import MergeService


@pytest.fixture
def merge_service(store):
    return MergeService(store)


async def _seed(store, make_contact):
    await store.add(make_contact("a1", name="Radio One", email="info@radio.com", genres=["House"]))
    await store.add(
        make_contact(
            "a2",
            name="Radio One London",
            email="INFO@radio.com.uk",
            website="https://radio.com",
            genres=["Jazz"],
            doNotContact=True,
        )
    )
    await store.add(make_contact("b1", name="Jazz Corner", country="FR", genres=["Jazz"]))
    await store.add(
        make_contact("b2", name="Jazz Corner", country="FR", email="jc@corner.fr", contactPersons=[{"name": "Eve"}])
    )
    await store.add(make_contact("solo", name="Solo Station", country="DE"))


@pytest.mark.asyncio
async def test_find_duplicates(store, merge_service, make_contact):
    await _seed(store, make_contact)

    groups = await merge_service.find_duplicates()

    assert [(g.kind, g.member_ids) for g in groups] == [("name_country", ["b1", "b2"])]


@pytest.mark.asyncio
async def test_preview_does_not_write(store, merge_service, make_contact):
    await _seed(store, make_contact)

    preview = await merge_service.preview(["b1", "b2"])

    # b2 has an email so it is the default primary
    assert preview.primary_id == "b2"
    assert preview.merged.genres == ["Jazz"]
    assert {d.label for d in preview.diffs} == {"Genres"}
    assert await store.get("b1") is not None
    assert not store.ledger.can_undo()


@pytest.mark.asyncio
async def test_merge_then_undo_restores_everything(store, merge_service, make_contact):
    await _seed(store, make_contact)
    before = {c.id: c for c in await store.get_all()}

    result = await merge_service.merge_group(["a1", "a2"], primary_id="a1")

    assert result.absorbed_ids == ["a2"]
    merged = await store.get("a1")
    assert merged.name == "Radio One London"
    assert merged.website == "https://radio.com"
    assert merged.genres == ["House", "Jazz"]
    assert merged.do_not_contact is True
    assert await store.get("a2") is None
    assert len(merge_service.history()) == 1
    assert {d.label for d in result.history[0].diffs} >= {"Name", "Website", "Genres", "Do Not Contact"}

    undo = await merge_service.undo()

    assert undo.snapshot_id == result.snapshot_id
    assert set(undo.restored_ids) == {"a1", "a2"}
    after = {c.id: c for c in await store.get_all()}
    assert after == before
    assert merge_service.history() == []
    assert not store.ledger.can_undo()


@pytest.mark.asyncio
async def test_merged_record_can_take_over_absorbed_email(store, merge_service, make_contact):
    await store.add(make_contact("p", name="Primary"))
    await store.add(make_contact("o", name="Other", email="only@other.com"))

    await merge_service.merge_group(["p", "o"], primary_id="p")

    assert (await store.get("p")).email == "only@other.com"
    assert [c.id for c in await store.search("email:only@other.com")] == ["p"]


@pytest.mark.asyncio
async def test_usage_errors_leave_store_untouched(store, merge_service, make_contact):
    await store.add(make_contact("p", name="Primary"))
    await store.add(make_contact("o", name="Other"))
    before = {c.id: c for c in await store.get_all()}

    with pytest.raises(MergeUsageError):
        await merge_service.merge_group(["p", "p"])
    with pytest.raises(MergeUsageError):
        await merge_service.merge_group(["p", "o"], primary_id="x")
    with pytest.raises(ContactNotFoundError):
        await merge_service.merge_group(["p", "ghost"])

    assert {c.id: c for c in await store.get_all()} == before
    assert not store.ledger.can_undo()


@pytest.mark.asyncio
async def test_failed_write_restores_group(store, merge_service, make_contact, monkeypatch):
    await store.add(make_contact("p", name="Primary", genres=["House"]))
    await store.add(make_contact("o", name="Other", email="o@radio.com"))
    before = {c.id: c for c in await store.get_all()}

    real_update = store.update
    calls = []

    async def update_failing_once(raw):
        calls.append(raw)
        if len(calls) == 1:
            raise ConstraintError("email", "o@radio.com", contact_id="elsewhere")
        return await real_update(raw)

    monkeypatch.setattr(store, "update", update_failing_once)

    with pytest.raises(ConstraintError):
        await merge_service.merge_group(["p", "o"], primary_id="p")

    assert {c.id: c for c in await store.get_all()} == before
    assert not store.ledger.can_undo()
    assert merge_service.history() == []


@pytest.mark.asyncio
async def test_merge_all_email_groups_on_document_store(document_store, make_contact):
    service = MergeService(document_store)
    await document_store.add(make_contact("e1", name="Email One", email="dup@radio.com"))
    await document_store.add(make_contact("e2", name="Email One Extra", email="DUP@radio.com "))
    await document_store.add(make_contact("w1", name="Site", website="https://same.com"))
    await document_store.add(make_contact("w2", name="Site", website="https://SAME.com", country="FR"))
    await document_store.add(make_contact("solo", name="Solo", country="DE"))
    before = {c.id: c for c in await document_store.get_all()}

    groups = await service.find_duplicates()
    assert [g.kind for g in groups] == ["email", "website"]

    result = await service.merge_all()

    assert [c.id for c in result.merged] == ["e1", "w1"]
    assert (await document_store.get("e1")).name == "Email One Extra"
    assert [c.id for c in await document_store.get_all()] == ["e1", "w1", "solo"]
    assert len(document_store.ledger.snapshots) == 1

    await service.undo()

    assert {c.id: c for c in await document_store.get_all()} == before
    assert await service.find_duplicates() != []



@pytest.mark.asyncio
async def test_merge_all_with_overrides(store, merge_service, make_contact):
    await store.add(make_contact("a", name="Same", country="UK"))
    await store.add(make_contact("b", name="Same", country="UK", email="b@radio.com"))
    await store.add(make_contact("c", name="Other", country="FR"))
    await store.add(make_contact("d", name="Other", country="FR"))
    before = {c.id: c for c in await store.get_all()}

    groups = await merge_service.find_duplicates()
    overrides = {groups[0].group_id: "a"}

    result = await merge_service.merge_all(primary_overrides=overrides)

    assert [c.id for c in result.merged] == ["a", "c"]
    assert sorted(result.absorbed_ids) == ["b", "d"]
    assert [c.id for c in await store.get_all()] == ["a", "c"]
    assert (await store.get("a")).email == "b@radio.com"
    assert len(store.ledger.snapshots) == 1
    assert len(merge_service.history()) == 2

    undo = await merge_service.undo(result.snapshot_id)
    assert set(undo.restored_ids) == {"a", "b", "c", "d"}
    assert {c.id: c for c in await store.get_all()} == before
    assert merge_service.history() == []


@pytest.mark.asyncio
async def test_merge_all_without_groups(merge_service):
    result = await merge_service.merge_all()
    assert result.snapshot_id is None
    assert result.merged == []


@pytest.mark.asyncio
async def test_undo_errors(store, merge_service, make_contact):
    with pytest.raises(MergeUsageError):
        await merge_service.undo()

    await store.add(make_contact("a", name="Same"))
    await store.add(make_contact("b", name="Same"))
    await merge_service.merge_group(["a", "b"])

    with pytest.raises(MergeUsageError):
        await merge_service.undo("not-a-snapshot")


@pytest.mark.asyncio
async def test_history_exports(store, merge_service, make_contact):
    await store.add(make_contact("a", name="Same", genres=["House"]))
    await store.add(make_contact("b", name="Same", email="b@radio.com", genres=["Jazz"]))

    await merge_service.merge_group(["a", "b"], primary_id="a")

    entries = json.loads(merge_service.export_history_json())
    assert entries[0]["primaryId"] == "a"
    assert entries[0]["otherIds"] == ["b"]
    assert "snapshotId" not in entries[0]

    rows = list(csv.reader(io.StringIO(merge_service.export_history_csv())))
    assert rows[0] == ["timestamp", "primaryId", "otherIds", "field", "before", "after"]
    by_field = {row[3]: row for row in rows[1:]}
    assert by_field["Email"][4:] == ["", "b@radio.com"]
    assert by_field["Genres"][4:] == ["House", "House, Jazz"]


@pytest.mark.asyncio
async def test_store_close_drops_ledger(store, merge_service, make_contact):
    await store.add(make_contact("a", name="Same"))
    await store.add(make_contact("b", name="Same"))
    await merge_service.merge_group(["a", "b"])

    await store.close()

    assert merge_service.history() == []
    assert not store.ledger.can_undo()


@pytest.mark.asyncio
async def test_undo_only_accepts_latest_snapshot(store, merge_service, make_contact):
    await store.add(make_contact("a", name="Same"))
    await store.add(make_contact("b", name="Same", email="b@radio.com"))
    await store.add(make_contact("c", name="Same", email="c@radio.com"))
    before = {c.id: c for c in await store.get_all()}

    first = await merge_service.merge_group(["a", "b"], primary_id="a")
    second = await merge_service.merge_group(["a", "c"], primary_id="a")
    merged = {c.id: c for c in await store.get_all()}

    with pytest.raises(MergeUsageError):
        await merge_service.undo(first.snapshot_id)

    assert {c.id: c for c in await store.get_all()} == merged
    assert len(store.ledger.snapshots) == 2

    assert (await merge_service.undo(second.snapshot_id)).snapshot_id == second.snapshot_id
    assert (await merge_service.undo(first.snapshot_id)).snapshot_id == first.snapshot_id
    assert {c.id: c for c in await store.get_all()} == before


@pytest.mark.asyncio
async def test_failed_undo_puts_records_back(store, merge_service, make_contact):
    await store.add(make_contact("p", name="Primary", genres=["House"]))
    await store.add(make_contact("o", name="Other", email="o@radio.com", genres=["Jazz"]))
    await merge_service.merge_group(["p", "o"], primary_id="p")

    edited = (await store.get("p")).to_document()
    edited["email"] = "p@radio.com"
    await store.update(edited)
    await store.add(make_contact("n", name="Newcomer", country="FR", email="o@radio.com"))
    before_undo = {c.id: c for c in await store.get_all()}

    with pytest.raises(ConstraintError):
        await merge_service.undo()

    assert {c.id: c for c in await store.get_all()} == before_undo
    assert (await store.get("p")).genres == ["House", "Jazz"]
    assert await store.get("o") is None
    assert store.ledger.can_undo()
    assert len(merge_service.history()) == 1

    await store.delete("n")
    await merge_service.undo()

    assert (await store.get("o")).email == "o@radio.com"
    assert (await store.get("p")).genres == ["House"]
    assert not store.ledger.can_undo()
