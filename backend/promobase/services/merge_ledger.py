"""
Undo stack and audit history for merges.

The ledger is owned by the contact store and lives exactly as long as it
does. It is the only writer of snapshots and history entries.
"""

import csv
import io
import json
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from promobase.core.exceptions import MergeUsageError
from promobase.core.logging import get_logger
from promobase.schemas.contact import Contact

if TYPE_CHECKING:
    from promobase.services.contact_store import ContactStore

logger = get_logger(__name__)


HISTORY_CSV_COLUMNS = ["timestamp", "primaryId", "otherIds", "field", "before", "after"]


class FieldDiff(BaseModel):
    """One user-visible field that changed in a merge."""
    model_config = ConfigDict(frozen=True)

    label: str
    before: str
    after: str


class MergeHistoryEntry(BaseModel):
    """Immutable audit record of one merged group."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: datetime
    primary_id: str = Field(alias="primaryId")
    other_ids: List[str] = Field(alias="otherIds")
    diffs: List[FieldDiff] = Field(default_factory=list)
    snapshot_id: str = Field(alias="snapshotId")


class SnapshotGroup(BaseModel):
    """Pre-merge copies of one group."""
    primary_before: Contact
    others_before: List[Contact]


class MergeSnapshot(BaseModel):
    """One undo unit: a single merge or a whole merge-all batch."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    groups: List[SnapshotGroup] = Field(default_factory=list)
    history_count: int = 0


def _display(contact: Contact) -> List[tuple]:
    return [
        ("Name", contact.name),
        ("Email", contact.email or ""),
        ("Website", contact.website or ""),
        ("Country", contact.country),
        ("Type", contact.type.value),
        ("Verification", contact.verification_status.value),
        ("Do Not Contact", "Yes" if contact.do_not_contact else "No"),
        ("Genres", ", ".join(contact.genres)),
        ("Persons", str(len(contact.contact_persons))),
        ("Socials", str(len(contact.socials or {}))),
    ]


class MergeLedger:
    """LIFO stack of merge snapshots plus the append-only merge history."""

    def __init__(self):
        self._snapshots: List[MergeSnapshot] = []
        self._history: List[MergeHistoryEntry] = []

    @property
    def snapshots(self) -> List[MergeSnapshot]:
        return list(self._snapshots)

    def history(self) -> List[MergeHistoryEntry]:
        return list(self._history)

    def can_undo(self) -> bool:
        return bool(self._snapshots)

    def record_merge(
        self,
        primary_before: Contact,
        others_before: Sequence[Contact],
        snapshot: Optional[MergeSnapshot] = None,
    ) -> MergeSnapshot:
        """
        Capture deep copies of a group just before it is merged.

        Args:
            primary_before: Primary record as currently stored
            others_before: Records about to be absorbed
            snapshot: Open batch snapshot to add the group to; a new
                snapshot is pushed when omitted

        Returns:
            The snapshot holding the group
        """
        if snapshot is None:
            snapshot = MergeSnapshot()
            self._snapshots.append(snapshot)
        snapshot.groups.append(
            SnapshotGroup(
                primary_before=primary_before.model_copy(deep=True),
                others_before=[other.model_copy(deep=True) for other in others_before],
            )
        )
        return snapshot

    def begin_batch(self) -> MergeSnapshot:
        """Push an empty snapshot that several merges will share."""
        snapshot = MergeSnapshot()
        self._snapshots.append(snapshot)
        return snapshot

    def discard_last_group(self, snapshot: MergeSnapshot) -> None:
        """Forget the most recent group of a snapshot after its merge failed."""
        if snapshot.groups:
            snapshot.groups.pop()
        if not snapshot.groups and snapshot in self._snapshots:
            self._snapshots.remove(snapshot)

    def append_history(
        self,
        snapshot: MergeSnapshot,
        primary_before: Contact,
        merged: Contact,
        absorbed_ids: Sequence[str],
    ) -> MergeHistoryEntry:
        entry = MergeHistoryEntry(
            timestamp=datetime.now(timezone.utc),
            primary_id=merged.id,
            other_ids=list(absorbed_ids),
            diffs=self.diff(primary_before, merged),
            snapshot_id=snapshot.id,
        )
        self._history.append(entry)
        snapshot.history_count += 1
        return entry

    @staticmethod
    def diff(before: Contact, after: Contact) -> List[FieldDiff]:
        """Diff the user-visible fields; an empty list means no visible change."""
        return [
            FieldDiff(label=label, before=old, after=new)
            for (label, old), (_, new) in zip(_display(before), _display(after))
            if old != new
        ]

    async def undo(self, store: "ContactStore", snapshot_id: Optional[str] = None) -> MergeSnapshot:
        """
        Reverse the most recent merge snapshot.

        Primaries are overwritten with their captured state and every absorbed
        record is written back exactly as captured. If any write fails, every
        touched record is put back the way it was before the undo started and
        the snapshot stays on the stack. History entries are removed and the
        snapshot popped only once all writes succeed.

        Raises:
            MergeUsageError: when there is nothing to undo, or ``snapshot_id``
                does not name the most recent snapshot
        """
        snapshot = self._find(snapshot_id)

        touched: Dict[str, Optional[Contact]] = {}
        for group in snapshot.groups:
            for contact in [group.primary_before, *group.others_before]:
                if contact.id not in touched:
                    touched[contact.id] = await store.get(contact.id)

        try:
            for group in reversed(snapshot.groups):
                await self.restore(store, group.primary_before)
                for other in group.others_before:
                    await self.restore(store, other)
        except Exception:
            logger.error("Undo failed, putting records back", extra={"snapshot_id": snapshot.id})
            await self._put_back(store, touched)
            raise

        before = len(self._history)
        self._history = [entry for entry in self._history if entry.snapshot_id != snapshot.id]
        removed = before - len(self._history)
        self._snapshots.remove(snapshot)

        logger.info(
            "Merge undone",
            extra={
                "snapshot_id": snapshot.id,
                "groups": len(snapshot.groups),
                "history_removed": removed,
                "history_expected": snapshot.history_count,
            },
        )
        return snapshot

    def _find(self, snapshot_id: Optional[str]) -> MergeSnapshot:
        if not self._snapshots:
            raise MergeUsageError("Nothing to undo")
        latest = self._snapshots[-1]
        if snapshot_id is None or snapshot_id == latest.id:
            return latest
        if any(snapshot.id == snapshot_id for snapshot in self._snapshots):
            # Later merges may have touched the same records
            raise MergeUsageError(
                f"Merge snapshot {snapshot_id} is not the most recent; undo {latest.id} first"
            )
        raise MergeUsageError(f"Unknown merge snapshot: {snapshot_id}")

    async def _put_back(self, store: "ContactStore", touched: Dict[str, Optional[Contact]]) -> None:
        """Return every touched record to its state from before a failed undo."""
        for contact_id, current in touched.items():
            if current is None and await store.get(contact_id) is not None:
                await store.delete(contact_id)
        for current in touched.values():
            if current is not None:
                await self.restore(store, current)

    @staticmethod
    async def restore(store: "ContactStore", contact: Contact) -> None:
        """Write a captured contact back, overwriting or re-adding it."""
        if await store.get(contact.id) is not None:
            await store.update(contact)
        else:
            await store.add(contact)

    def clear(self) -> None:
        self._snapshots.clear()
        self._history.clear()

    def export_json(self) -> str:
        """History as a camelCase JSON array."""
        return json.dumps(
            [
                entry.model_dump(mode="json", by_alias=True, exclude={"snapshot_id"})
                for entry in self._history
            ],
            indent=2,
        )

    def export_csv(self) -> str:
        """History as CSV, one row per field diff."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(HISTORY_CSV_COLUMNS)
        for entry in self._history:
            common = [entry.timestamp.isoformat(), entry.primary_id, "|".join(entry.other_ids)]
            if not entry.diffs:
                writer.writerow(common + ["", "", ""])
            for field_diff in entry.diffs:
                writer.writerow(common + [field_diff.label, field_diff.before, field_diff.after])
        return buffer.getvalue()
