"""
Schemas for maintenance operations.
"""

from typing import List

from pydantic import BaseModel


class RebuildIndexResponse(BaseModel):
    """Rows written to the search index."""
    indexed: int


class MigrationResponse(BaseModel):
    """Schema steps applied by a migration run."""
    applied: List[int]
    schema_version: int


class ClearResponse(BaseModel):
    cleared: bool = True
