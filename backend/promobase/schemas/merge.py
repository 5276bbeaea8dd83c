"""
Schemas for duplicate groups, merges and undo.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from promobase.schemas.contact import Contact
from promobase.services.merge_ledger import FieldDiff, MergeHistoryEntry


class DuplicateGroupResponse(BaseModel):
    """A duplicate group with its default primary."""
    model_config = ConfigDict(populate_by_name=True)

    group_id: str = Field(alias="groupId")
    kind: str
    key: str
    member_ids: List[str] = Field(alias="memberIds")
    default_primary_id: str = Field(alias="defaultPrimaryId")
    members: List[Contact]


class MergeRequest(BaseModel):
    """Merge the given contacts, optionally naming the primary."""
    model_config = ConfigDict(populate_by_name=True)

    contact_ids: List[str] = Field(alias="contactIds", min_length=2)
    primary_id: Optional[str] = Field(None, alias="primaryId")


class MergeAllRequest(BaseModel):
    """Merge every current duplicate group; overrides map group id to primary id."""
    model_config = ConfigDict(populate_by_name=True)

    primary_overrides: Dict[str, str] = Field(default_factory=dict, alias="primaryOverrides")


class MergePreview(BaseModel):
    """What a merge would produce, without writing."""
    model_config = ConfigDict(populate_by_name=True)

    primary_id: str = Field(alias="primaryId")
    merged: Contact
    diffs: List[FieldDiff]


class MergeResult(BaseModel):
    """Outcome of a merge or merge-all batch."""
    model_config = ConfigDict(populate_by_name=True)

    snapshot_id: Optional[str] = Field(None, alias="snapshotId")
    merged: List[Contact] = Field(default_factory=list)
    absorbed_ids: List[str] = Field(default_factory=list, alias="absorbedIds")
    history: List[MergeHistoryEntry] = Field(default_factory=list)


class UndoRequest(BaseModel):
    """Undo the latest merge; a snapshot id, when sent, must be the latest one."""
    model_config = ConfigDict(populate_by_name=True)

    snapshot_id: Optional[str] = Field(None, alias="snapshotId")


class UndoResult(BaseModel):
    """Records restored by an undo."""
    model_config = ConfigDict(populate_by_name=True)

    snapshot_id: str = Field(alias="snapshotId")
    restored_ids: List[str] = Field(alias="restoredIds")
