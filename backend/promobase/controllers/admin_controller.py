"""
Admin controller.
Maintenance operations: diagnostics, search index, migrations, import and backup.
"""

from typing import Any, Dict, List, Optional

from promobase.controllers.base_controller import BaseController
from promobase.schemas.admin import ClearResponse, MigrationResponse, RebuildIndexResponse
from promobase.schemas.contact import Diagnostics
from promobase.schemas.imports import ImportOptions, ImportReport, ImportRowsRequest
from promobase.services.contact_store import ContactStore
from promobase.services.import_service import ImportService


class AdminController(BaseController):
    """Controller for store maintenance."""

    def __init__(self, store: ContactStore, import_service: ImportService):
        self.store = store
        self.import_service = import_service

    async def diagnostics(self) -> Diagnostics:
        return await self.store.diagnostics()

    async def rebuild_search_index(self) -> RebuildIndexResponse:
        return RebuildIndexResponse(indexed=await self.store.rebuild_search_index())

    async def run_migrations(self) -> MigrationResponse:
        applied = await self.store.run_migrations()
        diagnostics = await self.store.diagnostics()
        return MigrationResponse(applied=applied, schema_version=diagnostics.schema_version)

    async def clear_all(self) -> ClearResponse:
        await self.store.clear_all()
        return ClearResponse()

    async def import_rows(self, request: ImportRowsRequest) -> ImportReport:
        return await self.import_service.import_rows(request.rows, options=request.options)

    async def export_json(self) -> str:
        return await self.store.export_json()

    async def restore_json(
        self,
        documents: List[Dict[str, Any]],
        options: Optional[ImportOptions] = None,
    ) -> ImportReport:
        """Restore a JSON backup; existing IDs are treated as duplicates."""
        return await self.import_service.import_documents(documents, options)
