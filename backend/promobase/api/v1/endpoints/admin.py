"""
Maintenance endpoints: diagnostics, search index, migrations, import and backup.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Response

from promobase.deps.di_container import get_container
from promobase.schemas.admin import ClearResponse, MigrationResponse, RebuildIndexResponse
from promobase.schemas.contact import Diagnostics
from promobase.schemas.imports import ImportReport, ImportRowsRequest

router = APIRouter()


@router.get("/diagnostics", response_model=Diagnostics)
async def get_diagnostics() -> Diagnostics:
    """Schema version and row counts of the active backend."""
    controller = get_container().admin_controller()
    return await controller.diagnostics()


@router.post("/search-index/rebuild", response_model=RebuildIndexResponse)
async def rebuild_search_index() -> RebuildIndexResponse:
    controller = get_container().admin_controller()
    return await controller.rebuild_search_index()


@router.post("/migrations", response_model=MigrationResponse)
async def run_migrations() -> MigrationResponse:
    controller = get_container().admin_controller()
    return await controller.run_migrations()


@router.post("/clear", response_model=ClearResponse)
async def clear_all() -> ClearResponse:
    """Delete every contact."""
    controller = get_container().admin_controller()
    return await controller.clear_all()


@router.post("/import/rows", response_model=ImportReport)
async def import_rows(request: ImportRowsRequest) -> ImportReport:
    """Import tabular rows (header -> value)."""
    controller = get_container().admin_controller()
    return await controller.import_rows(request)


@router.get("/export")
async def export_json() -> Response:
    """Full JSON backup."""
    controller = get_container().admin_controller()
    return Response(
        content=await controller.export_json(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="contacts-backup.json"'},
    )


@router.post("/restore", response_model=ImportReport)
async def restore_json(documents: List[Dict[str, Any]] = Body(...)) -> ImportReport:
    """Restore a JSON backup."""
    controller = get_container().admin_controller()
    return await controller.restore_json(documents)
