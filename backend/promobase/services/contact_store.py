"""
Contact store facade.

The single entry point for contact reads and writes. On first use it probes
the relational backend once and pins the result for the life of the store;
when the probe fails every call goes to the document backend instead.
"""

import asyncio
import json
from typing import Any, Iterable, List, Mapping, Optional, Union

from promobase.backends.base import ContactBackend
from promobase.core.exceptions import BackendUnavailableError, TransactionError
from promobase.core.logging import get_logger
from promobase.schemas.contact import BulkAddResult, Contact, Diagnostics, VerificationStatus
from promobase.services.base_service import BaseService
from promobase.services.contact_validator import validate_contact, validate_many
from promobase.services.merge_ledger import MergeLedger
from promobase.utils.search_query import parse_query

logger = get_logger(__name__)

RawContact = Union[Contact, Mapping[str, Any]]

_ALL_FILTER = "all"


def _filter_value(value: Optional[Union[str, VerificationStatus]]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, VerificationStatus):
        return value.value
    value = value.strip()
    if not value or value.lower() == _ALL_FILTER:
        return None
    return value


class ContactStore(BaseService):
    """Facade over the relational and document backends."""

    def __init__(
        self,
        relational: ContactBackend,
        document: ContactBackend,
        ledger: Optional[MergeLedger] = None,
        bulk_chunk_size: int = 500,
    ):
        self.relational = relational
        self.document = document
        self.ledger = ledger if ledger is not None else MergeLedger()
        self.bulk_chunk_size = bulk_chunk_size
        self._backend: Optional[ContactBackend] = None
        self._lock = asyncio.Lock()

    async def backend(self) -> ContactBackend:
        """Active backend, selected on first call."""
        if self._backend is not None:
            return self._backend
        async with self._lock:
            if self._backend is None:
                try:
                    await self.relational.initialize()
                    self._backend = self.relational
                except BackendUnavailableError as exc:
                    logger.warning(
                        "Relational backend unavailable, falling back to document store",
                        extra={"reason": exc.message},
                    )
                    await self.document.initialize()
                    self._backend = self.document
                logger.info("Storage backend selected", extra={"backend": self._backend.name})
        return self._backend

    @property
    def backend_name(self) -> Optional[str]:
        return self._backend.name if self._backend is not None else None

    async def get_all(self) -> List[Contact]:
        backend = await self.backend()
        return await backend.get_all()

    async def get(self, contact_id: str) -> Optional[Contact]:
        backend = await self.backend()
        return await backend.get(contact_id)

    async def add(self, raw: RawContact) -> Contact:
        """Validate and insert a contact; returns the stored form."""
        contact = validate_contact(raw)
        backend = await self.backend()
        await backend.add(contact)
        return contact

    async def update(self, raw: RawContact) -> Contact:
        """Validate and overwrite an existing contact, relations included."""
        contact = validate_contact(raw)
        backend = await self.backend()
        await backend.update(contact)
        return contact

    async def delete(self, contact_id: str) -> bool:
        backend = await self.backend()
        return await backend.delete(contact_id)

    async def bulk_add(
        self,
        raws: Iterable[RawContact],
        chunk_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BulkAddResult:
        """
        Insert many contacts, one transaction per chunk.

        Every record is validated before anything is written. Chunks already
        committed stay committed when a later chunk fails or the caller
        cancels; the loop yields to the event loop between chunks.

        Args:
            raws: Contacts to insert
            chunk_size: Records per transaction; defaults to BULK_CHUNK_SIZE
            cancel_event: Checked before each chunk

        Returns:
            BulkAddResult with inserted and committed chunk counts

        Raises:
            ValidationError: a record is invalid (nothing written)
            TransactionError: a chunk failed; counts cover committed chunks
        """
        contacts = validate_many(raws)
        size = max(1, chunk_size or self.bulk_chunk_size)
        total = len(contacts)
        result = BulkAddResult()
        backend = await self.backend()

        for start in range(0, total, size):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info("Bulk add cancelled", extra={"inserted": result.inserted, "total": total})
                break

            chunk = contacts[start:start + size]
            try:
                written = await backend.write_chunk(chunk)
            except TransactionError as exc:
                logger.error(
                    "Bulk chunk failed",
                    extra={"chunk": result.chunks_committed, "error": str(exc.cause)},
                )
                raise TransactionError(
                    result.chunks_committed,
                    result.inserted + exc.committed_records,
                    total,
                    exc.cause,
                ) from exc.cause
            except Exception as exc:
                logger.error(
                    "Bulk chunk rolled back",
                    extra={"chunk": result.chunks_committed, "error": str(exc)},
                )
                raise TransactionError(result.chunks_committed, result.inserted, total, exc) from exc

            result.inserted += written
            result.chunks_committed += 1
            logger.debug(
                "Bulk chunk committed",
                extra={"chunk": result.chunks_committed, "records": written},
            )
            await asyncio.sleep(0)

        return result

    async def search(
        self,
        query: Optional[str] = None,
        country: Optional[str] = None,
        verification_status: Optional[Union[str, VerificationStatus]] = None,
    ) -> List[Contact]:
        """
        Search contacts by free text and qualifiers.

        ``country`` and ``verification_status`` are exact filters; ``None`` or
        ``"All"`` disables them. An empty query lists everything the filters
        allow.
        """
        backend = await self.backend()
        return await backend.search(
            parse_query(query),
            _filter_value(country),
            _filter_value(verification_status),
        )

    async def diagnostics(self) -> Diagnostics:
        backend = await self.backend()
        return await backend.diagnostics()

    async def clear_all(self) -> None:
        """Remove every contact from the active backend and the document store."""
        backend = await self.backend()
        await backend.clear_all()
        if backend is not self.document:
            # Overwrites the file without loading it; stale content is never parsed
            await self.document.clear_all()

    async def rebuild_search_index(self) -> int:
        backend = await self.backend()
        return await backend.rebuild_search_index()

    async def run_migrations(self) -> List[int]:
        backend = await self.backend()
        return await backend.run_migrations()

    async def export_json(self) -> str:
        """Full backup as the canonical camelCase JSON array."""
        contacts = await self.get_all()
        return json.dumps([contact.to_document() for contact in contacts], indent=2, ensure_ascii=False)

    async def close(self) -> None:
        """Close the active backend and drop the ledger."""
        if self._backend is not None:
            await self._backend.close()
        self.ledger.clear()
        self._backend = None
