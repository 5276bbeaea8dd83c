"""
Health check response schemas.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health status plus the storage backend serving requests."""
    status: str
    uptime: str
    backend: Optional[str] = None
    checks: Dict[str, Any] = Field(default_factory=dict)
