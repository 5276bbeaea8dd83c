"""
Duplicate detection and merge endpoints.
"""

from typing import List

from fastapi import APIRouter, Query, Response

from promobase.deps.di_container import get_container
from promobase.schemas.merge import (
    DuplicateGroupResponse,
    MergeAllRequest,
    MergePreview,
    MergeRequest,
    MergeResult,
    UndoRequest,
    UndoResult,
)
from promobase.services.merge_ledger import MergeHistoryEntry

router = APIRouter()


@router.get("", response_model=List[DuplicateGroupResponse])
async def list_duplicate_groups() -> List[DuplicateGroupResponse]:
    """Current duplicate groups, strongest signal first."""
    controller = get_container().duplicate_controller()
    return await controller.list_groups()


@router.post("/preview", response_model=MergePreview)
async def preview_merge(request: MergeRequest) -> MergePreview:
    """Show the merged record without writing it."""
    controller = get_container().duplicate_controller()
    return await controller.preview(request)


@router.post("/merge", response_model=MergeResult)
async def merge_group(request: MergeRequest) -> MergeResult:
    """Merge one group."""
    controller = get_container().duplicate_controller()
    return await controller.merge(request)


@router.post("/merge-all", response_model=MergeResult)
async def merge_all(request: MergeAllRequest) -> MergeResult:
    """Merge every current group as one undo unit."""
    controller = get_container().duplicate_controller()
    return await controller.merge_all(request)


@router.post("/undo", response_model=UndoResult)
async def undo_merge(request: UndoRequest) -> UndoResult:
    """Undo the latest merge unit."""
    controller = get_container().duplicate_controller()
    return await controller.undo(request)


@router.get("/history", response_model=List[MergeHistoryEntry])
async def merge_history() -> List[MergeHistoryEntry]:
    controller = get_container().duplicate_controller()
    return controller.history()


@router.get("/history/export")
async def export_merge_history(fmt: str = Query("json", pattern="^(json|csv)$", alias="format")) -> Response:
    """Download merge history as JSON or CSV."""
    controller = get_container().duplicate_controller()
    media_type = "text/csv" if fmt == "csv" else "application/json"
    return Response(
        content=controller.export_history(fmt),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="merge-history.{fmt}"'},
    )
