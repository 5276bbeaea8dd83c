"""
Import service for tabular files, JSON backups and store-to-store migration.

Rows are read lazily, validated one at a time and matched against existing
contacts (and earlier rows of the same run). New contacts are buffered and
flushed through the store's bulk insert.
"""

import asyncio
import csv
import json
import uuid
from pathlib import Path
from typing import IO, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from openpyxl import load_workbook

from promobase.backends.base import ContactBackend
from promobase.core.exceptions import AppException, TransactionError
from promobase.core.logging import get_logger
from promobase.schemas.contact import Contact
from promobase.schemas.imports import (
    DoNotContactRule,
    DuplicateMode,
    ErrorMode,
    GenreRule,
    ImportConflict,
    ImportOptions,
    ImportReport,
)
from promobase.services.base_service import BaseService
from promobase.services.contact_store import ContactStore
from promobase.services.contact_validator import validate_contact
from promobase.services.duplicates import normalize

logger = get_logger(__name__)


# Mapping key -> header names tried in order (exact or substring match)
HEADER_GUESSES: Dict[str, Tuple[str, ...]] = {
    "name": ("name",),
    "email": ("email",),
    "website": ("website", "url"),
    "country": ("country",),
    "type": ("type",),
    "genres": ("genres", "genre"),
    "do_not_contact": ("do_not_contact", "donotcontact", "do not contact"),
}

IMPORTED_FIELDS = ("name", "email", "website", "country", "type")


def guess_mapping(headers: Sequence[str]) -> Dict[str, str]:
    """Guess which header feeds each contact field."""
    lowered = [str(header).strip().lower() for header in headers]
    mapping: Dict[str, str] = {}
    for key, candidates in HEADER_GUESSES.items():
        for candidate in candidates:
            index = next(
                (i for i, header in enumerate(lowered) if header == candidate or candidate in header),
                None,
            )
            if index is not None:
                mapping[key] = headers[index]
                break
    return mapping


def new_import_id() -> str:
    return f"imp-{uuid.uuid4().hex[:12]}"


def csv_rows(handle: IO[str]) -> Tuple[List[str], Iterator[Dict[str, Any]]]:
    """Header and lazy row iterator of an open CSV file; blank lines are skipped."""
    reader = csv.DictReader(handle)
    headers = list(reader.fieldnames or [])

    def rows() -> Iterator[Dict[str, Any]]:
        for row in reader:
            if any((value or "").strip() for value in row.values() if isinstance(value, str)):
                yield row

    return headers, rows()


def worksheet_rows(worksheet) -> Tuple[List[str], Iterator[Dict[str, Any]]]:
    """Header row and lazy row iterator of a worksheet; empty rows are skipped."""
    values = worksheet.iter_rows(values_only=True)
    headers = [str(cell).strip() if cell is not None else "" for cell in next(values, ())]

    def rows() -> Iterator[Dict[str, Any]]:
        for record in values:
            if all(cell is None or str(cell).strip() == "" for cell in record):
                continue
            yield {header: cell for header, cell in zip(headers, record) if header}

    return headers, rows()


class _DedupIndex:
    """Normalized keys of known contacts, including rows accepted this run."""

    def __init__(self):
        self.by_id: Dict[str, Contact] = {}
        self.by_email: Dict[str, str] = {}
        self.by_website: Dict[str, str] = {}
        self.by_name_country: Dict[str, str] = {}

    def add(self, contact: Contact) -> None:
        self.by_id[contact.id] = contact
        if contact.email:
            self.by_email[normalize(contact.email)] = contact.id
        if contact.website:
            self.by_website[normalize(contact.website)] = contact.id
        self.by_name_country[f"{normalize(contact.name)}|{normalize(contact.country)}"] = contact.id

    def discard(self, contact_id: str) -> None:
        self.by_id.pop(contact_id, None)
        for keys in (self.by_email, self.by_website, self.by_name_country):
            for key in [key for key, value in keys.items() if value == contact_id]:
                del keys[key]

    def find(self, contact: Contact, options: ImportOptions, match_id: bool) -> Optional[str]:
        if match_id and contact.id in self.by_id:
            return contact.id
        keys = options.dedup
        if keys.email and contact.email and normalize(contact.email) in self.by_email:
            return self.by_email[normalize(contact.email)]
        if keys.website and contact.website and normalize(contact.website) in self.by_website:
            return self.by_website[normalize(contact.website)]
        name_country = f"{normalize(contact.name)}|{normalize(contact.country)}"
        if keys.name_country and name_country in self.by_name_country:
            return self.by_name_country[name_country]
        return None


class _ImportRun:
    """State of a single import call."""

    def __init__(
        self,
        store: ContactStore,
        options: ImportOptions,
        chunk_size: int,
        cancel_event: Optional[asyncio.Event],
    ):
        self.store = store
        self.options = options
        self.chunk_size = chunk_size
        self.cancel_event = cancel_event
        self.report = ImportReport()
        self.index = _DedupIndex()
        self.pending: Dict[str, Tuple[int, Contact]] = {}

    def conflict(self, row: int, reason: str, values: Mapping[str, Any], error: bool = True) -> None:
        self.report.conflicts.append(
            ImportConflict(
                row=row,
                reason=reason,
                **{key: str(values.get(key) or "") for key in ("name", "email", "website", "country")},
            )
        )
        if error:
            self.report.errors += 1

    async def flush(self) -> bool:
        """Write buffered new contacts; returns False when the flush failed."""
        if not self.pending:
            return True
        batch = list(self.pending.values())
        self.pending = {}
        try:
            result = await self.store.bulk_add([contact for _, contact in batch], chunk_size=len(batch))
            self.report.inserted += result.inserted
            ok = True
        except TransactionError as exc:
            reason = getattr(exc.cause, "message", str(exc.cause))
            self.report.inserted += exc.committed_records
            for row, contact in batch[exc.committed_records:]:
                self.index.discard(contact.id)
                self.conflict(row, reason, contact.model_dump())
            ok = False
            logger.warning(
                "Import chunk failed",
                extra={"rows": len(batch), "committed": exc.committed_records, "error": reason},
            )
        await asyncio.sleep(0)
        return ok

    def merge_into(self, current: Contact, incoming: Contact, whole_document: bool) -> Contact:
        """Apply the duplicate mode to an existing contact."""
        if self.options.duplicate_mode == DuplicateMode.REPLACE:
            if whole_document:
                return incoming.model_copy(update={"id": current.id}, deep=True)
            updated = current.model_copy(deep=True)
            for field_name in IMPORTED_FIELDS:
                setattr(updated, field_name, getattr(incoming, field_name))
            updated.genres = list(incoming.genres)
            updated.do_not_contact = incoming.do_not_contact
            return updated

        rules = self.options.update_fields
        updated = current.model_copy(deep=True)
        for field_name in IMPORTED_FIELDS:
            value = getattr(incoming, field_name)
            if getattr(rules, field_name) and value:
                setattr(updated, field_name, value)

        if rules.genres == GenreRule.REPLACE:
            updated.genres = list(incoming.genres)
        elif rules.genres == GenreRule.MERGE:
            updated.genres = updated.genres + [g for g in incoming.genres if g not in updated.genres]

        if rules.do_not_contact == DoNotContactRule.REPLACE:
            updated.do_not_contact = incoming.do_not_contact
        elif rules.do_not_contact == DoNotContactRule.OR:
            updated.do_not_contact = updated.do_not_contact or incoming.do_not_contact
        return updated

    async def handle_duplicate(
        self, row: int, existing_id: str, incoming: Contact, whole_document: bool
    ) -> bool:
        if self.options.duplicate_mode == DuplicateMode.SKIP:
            self.report.skipped += 1
            self.conflict(row, "Duplicate skipped", incoming.model_dump(), error=False)
            return True

        if existing_id in self.pending:
            pending_row, current = self.pending[existing_id]
            updated = validate_contact(self.merge_into(current, incoming, whole_document))
            self.pending[existing_id] = (pending_row, updated)
            self.index.add(updated)
            self.report.updated += 1
            return True

        current = self.index.by_id[existing_id]
        try:
            updated = await self.store.update(self.merge_into(current, incoming, whole_document))
        except AppException as exc:
            self.conflict(row, exc.message, incoming.model_dump())
            return False
        self.index.add(updated)
        self.report.updated += 1
        return True

    async def run(
        self,
        rows: Iterable[Mapping[str, Any]],
        to_contact,
        whole_document: bool,
    ) -> ImportReport:
        for contact in await self.store.get_all():
            self.index.add(contact)

        for row_number, raw in enumerate(rows, start=1):
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.report.cancelled = True
                break
            self.report.processed += 1

            candidate = to_contact(raw)
            try:
                contact = validate_contact(candidate, index=row_number)
            except AppException as exc:
                self.conflict(row_number, exc.message, candidate)
                if self.options.error_mode == ErrorMode.ABORT:
                    await self.flush()
                    self.report.aborted = True
                    break
                continue

            existing_id = self.index.find(contact, self.options, match_id=whole_document)
            if existing_id is not None:
                ok = await self.handle_duplicate(row_number, existing_id, contact, whole_document)
            else:
                self.pending[contact.id] = (row_number, contact)
                self.index.add(contact)
                ok = True
                if len(self.pending) >= self.chunk_size:
                    ok = await self.flush()

            if not ok and self.options.error_mode == ErrorMode.ABORT:
                await self.flush()
                self.report.aborted = True
                break
        else:
            await self.flush()

        logger.info(
            "Import finished",
            extra={
                "processed": self.report.processed,
                "inserted": self.report.inserted,
                "updated": self.report.updated,
                "skipped": self.report.skipped,
                "errors": self.report.errors,
                "aborted": self.report.aborted,
                "cancelled": self.report.cancelled,
            },
        )
        return self.report


class ImportService(BaseService):
    """Service for importing contacts into a contact store."""

    def __init__(self, store: ContactStore, chunk_size: int = 500):
        self.store = store
        self.chunk_size = chunk_size

    def _run(self, options: Optional[ImportOptions], cancel_event: Optional[asyncio.Event]) -> _ImportRun:
        options = options or ImportOptions()
        return _ImportRun(self.store, options, options.chunk_size or self.chunk_size, cancel_event)

    async def import_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        headers: Optional[Sequence[str]] = None,
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """
        Import tabular rows (header -> cell value).

        Args:
            rows: Row mappings, read lazily
            headers: Column names used to guess the mapping; taken from the
                first row when omitted
            options: Import options
            cancel_event: Checked before every row

        Returns:
            ImportReport
        """
        run = self._run(options, cancel_event)
        rows = iter(rows)
        if run.options.mapping is not None:
            mapping = dict(run.options.mapping)
        else:
            first = next(rows, None)
            if first is None:
                return run.report
            if headers is None:
                headers = list(first.keys())
            rows = _chain_first(first, rows)
            mapping = guess_mapping(list(headers))

        def to_contact(raw: Mapping[str, Any]) -> Dict[str, Any]:
            values = {key: _cell(raw.get(column)) for key, column in mapping.items()}
            return {
                "id": new_import_id(),
                "name": values.get("name", ""),
                "email": values.get("email", ""),
                "website": values.get("website", ""),
                "country": values.get("country", ""),
                "type": values.get("type") or run.options.default_type,
                "genres": values.get("genres", ""),
                "do_not_contact": values.get("do_not_contact", ""),
            }

        logger.info("Import started", extra={"mapping": mapping, "mode": run.options.duplicate_mode.value})
        return await run.run(rows, to_contact, whole_document=False)

    async def import_csv(
        self,
        path: Union[str, Path],
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """Import a CSV file with a header row."""
        with open(path, newline="", encoding="utf-8-sig") as handle:
            headers, rows = csv_rows(handle)
            return await self.import_rows(rows, headers, options, cancel_event)

    async def import_xlsx(
        self,
        path: Union[str, Path],
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """Import the first worksheet of an .xlsx file; row 1 holds the headers."""
        workbook = load_workbook(path, read_only=True, data_only=True)
        try:
            headers, rows = worksheet_rows(workbook.worksheets[0])
            return await self.import_rows(rows, headers, options, cancel_event)
        finally:
            workbook.close()

    async def import_documents(
        self,
        documents: Iterable[Mapping[str, Any]],
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """Import canonical contact documents, keeping their IDs (backup restore)."""
        run = self._run(options, cancel_event)

        def to_contact(raw: Any) -> Any:
            if isinstance(raw, Contact):
                return raw.model_dump(by_alias=True)
            return dict(raw) if isinstance(raw, Mapping) else {}

        return await run.run(documents, to_contact, whole_document=True)

    async def import_json(
        self,
        payload: Union[str, bytes],
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """Restore a JSON backup (array of contacts)."""
        documents = json.loads(payload)
        if not isinstance(documents, list):
            documents = []
        return await self.import_documents(documents, options, cancel_event)

    async def import_from_backend(
        self,
        source: ContactBackend,
        options: Optional[ImportOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportReport:
        """Copy every contact of another backend into this store."""
        await source.initialize()
        contacts = await source.get_all()
        logger.info("Migrating contacts between stores", extra={"source": source.name, "contacts": len(contacts)})
        return await self.import_documents(contacts, options, cancel_event)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _chain_first(first: Mapping[str, Any], rest: Iterator[Mapping[str, Any]]) -> Iterator[Mapping[str, Any]]:
    yield first
    yield from rest
