"""
Duplicate controller.
Coordinates the merge service for duplicate groups, merges and undo.
"""

from typing import List

from promobase.controllers.base_controller import BaseController
from promobase.schemas.merge import (
    DuplicateGroupResponse,
    MergeAllRequest,
    MergePreview,
    MergeRequest,
    MergeResult,
    UndoRequest,
    UndoResult,
)
from promobase.services.duplicates import pick_default_primary
from promobase.services.merge_ledger import MergeHistoryEntry
from promobase.services.merge_service import MergeService


class DuplicateController(BaseController):
    """Controller for duplicate detection and merging."""

    def __init__(self, merge_service: MergeService):
        self.merge_service = merge_service

    async def list_groups(self) -> List[DuplicateGroupResponse]:
        groups = await self.merge_service.find_duplicates()
        return [
            DuplicateGroupResponse(
                group_id=group.group_id,
                kind=group.kind,
                key=group.key,
                member_ids=group.member_ids,
                default_primary_id=pick_default_primary(group).id,
                members=group.members,
            )
            for group in groups
        ]

    async def preview(self, request: MergeRequest) -> MergePreview:
        return await self.merge_service.preview(request.contact_ids, request.primary_id)

    async def merge(self, request: MergeRequest) -> MergeResult:
        return await self.merge_service.merge_group(request.contact_ids, request.primary_id)

    async def merge_all(self, request: MergeAllRequest) -> MergeResult:
        return await self.merge_service.merge_all(primary_overrides=request.primary_overrides)

    async def undo(self, request: UndoRequest) -> UndoResult:
        return await self.merge_service.undo(request.snapshot_id)

    def history(self) -> List[MergeHistoryEntry]:
        return self.merge_service.history()

    def export_history(self, fmt: str) -> str:
        """
        Export merge history.

        Args:
            fmt: "json" or "csv"
        """
        if fmt == "csv":
            return self.merge_service.export_history_csv()
        return self.merge_service.export_history_json()
