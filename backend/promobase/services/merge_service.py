"""
Duplicate service: find groups, preview and apply merges, undo them.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from promobase.core.exceptions import ContactNotFoundError, MergeUsageError
from promobase.core.logging import get_logger
from promobase.schemas.contact import Contact
from promobase.schemas.merge import MergePreview, MergeResult, UndoResult
from promobase.services.base_service import BaseService
from promobase.services.contact_store import ContactStore
from promobase.services.duplicates import DuplicateGroup, build_groups, pick_default_primary
from promobase.services.merge_engine import combine
from promobase.services.merge_ledger import MergeHistoryEntry, MergeSnapshot

logger = get_logger(__name__)


class MergeService(BaseService):
    """Service for duplicate groups and merges over a contact store."""

    def __init__(self, store: ContactStore):
        self.store = store
        self.ledger = store.ledger

    async def find_duplicates(self) -> List[DuplicateGroup]:
        """Recompute duplicate groups from the current contacts."""
        return build_groups(await self.store.get_all())

    async def _resolve(
        self,
        contact_ids: Sequence[str],
        primary_id: Optional[str] = None,
    ) -> Tuple[Contact, List[Contact]]:
        """Load the group members and split them into primary and others."""
        ids = list(dict.fromkeys(contact_ids))
        if len(ids) < 2:
            raise MergeUsageError("A merge needs at least two distinct contacts")
        if primary_id is not None and primary_id not in ids:
            raise MergeUsageError(f"Primary {primary_id} is not part of the group")

        members: List[Contact] = []
        for contact_id in ids:
            contact = await self.store.get(contact_id)
            if contact is None:
                raise ContactNotFoundError(contact_id)
            members.append(contact)

        if primary_id is None:
            primary = pick_default_primary(DuplicateGroup(kind="manual", key="", members=members))
        else:
            primary = next(member for member in members if member.id == primary_id)
        others = [member for member in members if member.id != primary.id]
        return primary, others

    async def preview(self, contact_ids: Sequence[str], primary_id: Optional[str] = None) -> MergePreview:
        """Show the merged record and its field diffs without writing."""
        primary, others = await self._resolve(contact_ids, primary_id)
        merged = combine(primary, others)
        return MergePreview(
            primary_id=primary.id,
            merged=merged,
            diffs=self.ledger.diff(primary, merged),
        )

    async def merge_group(self, contact_ids: Sequence[str], primary_id: Optional[str] = None) -> MergeResult:
        """
        Merge one group as its own undo unit.

        Args:
            contact_ids: IDs of the group members
            primary_id: Member to keep; defaults to the group's default primary

        Returns:
            MergeResult with the snapshot ID to undo it
        """
        primary, others = await self._resolve(contact_ids, primary_id)
        merged = combine(primary, others)
        snapshot = self.ledger.record_merge(primary, others)
        entry = await self._apply(snapshot, primary, others, merged)
        return MergeResult(
            snapshot_id=snapshot.id,
            merged=[merged],
            absorbed_ids=[other.id for other in others],
            history=[entry],
        )

    async def merge_all(
        self,
        groups: Optional[Sequence[DuplicateGroup]] = None,
        primary_overrides: Optional[Dict[str, str]] = None,
    ) -> MergeResult:
        """
        Merge every group as a single undo unit.

        Args:
            groups: Groups to merge; defaults to the current duplicate groups
            primary_overrides: group_id -> primary contact ID

        Returns:
            MergeResult covering the whole batch
        """
        if groups is None:
            groups = await self.find_duplicates()
        overrides = primary_overrides or {}
        result = MergeResult()
        if not groups:
            return result

        snapshot = self.ledger.begin_batch()
        result.snapshot_id = snapshot.id
        try:
            for group in groups:
                primary, others = await self._resolve(group.member_ids, overrides.get(group.group_id))
                merged = combine(primary, others)
                self.ledger.record_merge(primary, others, snapshot=snapshot)
                entry = await self._apply(snapshot, primary, others, merged)
                result.merged.append(merged)
                result.absorbed_ids.extend(other.id for other in others)
                result.history.append(entry)
        finally:
            if not snapshot.groups:
                self.ledger.discard_last_group(snapshot)

        logger.info(
            "Merge all completed",
            extra={"snapshot_id": snapshot.id, "groups": len(result.merged)},
        )
        return result

    async def _apply(
        self,
        snapshot: MergeSnapshot,
        primary: Contact,
        others: List[Contact],
        merged: Contact,
    ) -> MergeHistoryEntry:
        """
        Write a merge: absorbed records are removed first so the primary can
        take over their email or website. A failed write restores the group.
        """
        try:
            for other in others:
                await self.store.delete(other.id)
            await self.store.update(merged)
        except Exception:
            logger.error("Merge failed, restoring group", extra={"primary_id": primary.id})
            await self.ledger.restore(self.store, primary)
            for other in others:
                await self.ledger.restore(self.store, other)
            self.ledger.discard_last_group(snapshot)
            raise

        entry = self.ledger.append_history(snapshot, primary, merged, [other.id for other in others])
        logger.info(
            "Contacts merged",
            extra={
                "primary_id": merged.id,
                "absorbed_ids": entry.other_ids,
                "changed_fields": [d.label for d in entry.diffs],
            },
        )
        return entry

    async def undo(self, snapshot_id: Optional[str] = None) -> UndoResult:
        """Undo the latest merge unit; ``snapshot_id``, when given, must name it."""
        snapshot = await self.ledger.undo(self.store, snapshot_id)
        restored: List[str] = []
        for group in snapshot.groups:
            restored.append(group.primary_before.id)
            restored.extend(other.id for other in group.others_before)
        return UndoResult(snapshot_id=snapshot.id, restored_ids=restored)

    def history(self) -> List[MergeHistoryEntry]:
        return self.ledger.history()

    def export_history_json(self) -> str:
        return self.ledger.export_json()

    def export_history_csv(self) -> str:
        return self.ledger.export_csv()
