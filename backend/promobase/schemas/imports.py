"""
Import options and reports.
"""

import csv
import enum
import io
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from promobase.schemas.contact import ContactType


class DuplicateMode(str, enum.Enum):
    """What to do with a row matching an existing contact."""
    SKIP = "skip"
    UPDATE = "update"
    REPLACE = "replace"


class ErrorMode(str, enum.Enum):
    """What to do after a row fails."""
    CONTINUE = "continue"
    ABORT = "abort"


class GenreRule(str, enum.Enum):
    MERGE = "merge"
    REPLACE = "replace"
    SKIP = "skip"


class DoNotContactRule(str, enum.Enum):
    OR = "or"
    REPLACE = "replace"
    SKIP = "skip"


class DedupKeys(BaseModel):
    """Keys used to match incoming rows with existing contacts."""
    model_config = ConfigDict(populate_by_name=True)

    email: bool = True
    website: bool = True
    name_country: bool = Field(True, alias="nameCountry")


class UpdateFields(BaseModel):
    """Per-field rules for the update duplicate mode."""
    model_config = ConfigDict(populate_by_name=True)

    name: bool = True
    email: bool = False
    website: bool = True
    country: bool = False
    type: bool = False
    genres: GenreRule = GenreRule.MERGE
    do_not_contact: DoNotContactRule = Field(DoNotContactRule.OR, alias="doNotContact")


class ImportOptions(BaseModel):
    """Options for one import run."""
    model_config = ConfigDict(populate_by_name=True)

    mapping: Optional[Dict[str, str]] = None
    dedup: DedupKeys = Field(default_factory=DedupKeys)
    duplicate_mode: DuplicateMode = Field(DuplicateMode.UPDATE, alias="duplicateMode")
    update_fields: UpdateFields = Field(default_factory=UpdateFields, alias="updateFields")
    error_mode: ErrorMode = Field(ErrorMode.CONTINUE, alias="errorMode")
    default_type: ContactType = Field(ContactType.RADIO_STATION, alias="defaultType")
    chunk_size: Optional[int] = Field(None, alias="chunkSize", ge=1)


class ImportConflict(BaseModel):
    """A row that was skipped or failed."""
    row: int
    reason: str
    name: str = ""
    email: str = ""
    website: str = ""
    country: str = ""


CONFLICT_CSV_COLUMNS = ["row", "reason", "name", "email", "website", "country"]


class ImportReport(BaseModel):
    """Summary of an import run."""
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False
    cancelled: bool = False
    conflicts: List[ImportConflict] = Field(default_factory=list)

    def conflicts_csv(self) -> str:
        """Conflict report as CSV with every value quoted."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(CONFLICT_CSV_COLUMNS)
        for conflict in self.conflicts:
            writer.writerow([getattr(conflict, column) for column in CONFLICT_CSV_COLUMNS])
        return buffer.getvalue()


class ImportRowsRequest(BaseModel):
    """Tabular rows posted for import."""
    rows: List[Dict[str, Any]]
    options: ImportOptions = Field(default_factory=ImportOptions)
