"""
Health service.
Provides health check functionality.
"""

import time
from promobase.services.base_service import BaseService
from promobase.services.contact_store import ContactStore
from promobase.schemas.health import HealthResponse


class HealthService(BaseService):
    """Service for health check operations."""

    def __init__(self, store: ContactStore):
        self.store = store
        self.start_time = time.time()

    async def get_health(self) -> HealthResponse:
        """
        Get system health status.

        Returns:
            HealthResponse with status, uptime, and checks
        """
        # Calculate uptime
        uptime_seconds = int(time.time() - self.start_time)
        uptime_str = f"PT{uptime_seconds}S"  # ISO 8601 duration format

        checks = {}

        # Check the active storage backend
        try:
            diagnostics = await self.store.diagnostics()
            checks["storage"] = "ok"
            checks["backend"] = diagnostics.backend
            checks["schema_version"] = diagnostics.schema_version
        except Exception as e:
            checks["storage"] = f"error: {str(e)}"

        # The document fallback still serves requests, but without the relational engine
        if checks["storage"] != "ok":
            status = "error"
        elif checks.get("backend") != "relational":
            status = "degraded"
        else:
            status = "ok"

        return HealthResponse(
            status=status,
            uptime=uptime_str,
            backend=checks.get("backend"),
            checks=checks,
        )
