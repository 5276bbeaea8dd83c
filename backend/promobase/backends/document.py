"""
Document backend: contacts kept as canonical JSON documents.

Used when the relational backend is unavailable. Order is preserved by
insertion. With a path the whole collection is written back to one JSON file
after every change; without one it lives in memory only.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from promobase.backends.base import ContactBackend
from promobase.core.exceptions import ConstraintError, ContactNotFoundError, TransactionError
from promobase.core.logging import get_logger
from promobase.schemas.contact import Contact, Diagnostics
from promobase.services.contact_validator import validate_contact
from promobase.utils.search_query import SearchTerm, matches

logger = get_logger(__name__)


class DocumentBackend(ContactBackend):
    """Stores contacts as documents keyed by id."""

    name = "document"

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._contacts: Dict[str, Contact] = {}

    async def initialize(self) -> None:
        self._contacts = {}
        if self.path is None or not self.path.exists():
            logger.info("Document store ready", extra={"path": str(self.path or ""), "contacts": 0})
            return

        raw = self.path.read_text(encoding="utf-8").strip()
        documents = json.loads(raw) if raw else []
        for index, document in enumerate(documents):
            contact = validate_contact(document, index=index)
            self._contacts[contact.id] = contact
        logger.info(
            "Document store loaded",
            extra={"path": str(self.path), "contacts": len(self._contacts)},
        )

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps([c.to_document() for c in self._contacts.values()], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, self.path)

    async def get_all(self) -> List[Contact]:
        return [contact.model_copy(deep=True) for contact in self._contacts.values()]

    async def get(self, contact_id: str) -> Optional[Contact]:
        contact = self._contacts.get(contact_id)
        return contact.model_copy(deep=True) if contact else None

    async def add(self, contact: Contact) -> None:
        if contact.id in self._contacts:
            raise ConstraintError("id", contact.id, contact_id=contact.id)
        self._contacts[contact.id] = contact.model_copy(deep=True)
        self._persist()

    async def update(self, contact: Contact) -> None:
        if contact.id not in self._contacts:
            raise ContactNotFoundError(contact.id)
        self._contacts[contact.id] = contact.model_copy(deep=True)
        self._persist()

    async def delete(self, contact_id: str) -> bool:
        if self._contacts.pop(contact_id, None) is None:
            return False
        self._persist()
        return True

    async def write_chunk(self, contacts: Sequence[Contact]) -> int:
        """
        Write contacts in order until the first failure.

        Documents have no transactions: records written before the failure
        stay, later ones are not attempted.

        Raises:
            TransactionError: carrying how many records of this chunk were kept
        """
        written = 0
        try:
            for contact in contacts:
                if contact.id in self._contacts:
                    raise ConstraintError("id", contact.id, contact_id=contact.id)
                self._contacts[contact.id] = contact.model_copy(deep=True)
                written += 1
        except ConstraintError as exc:
            raise TransactionError(0, written, len(contacts), exc) from exc
        finally:
            if written:
                self._persist()
        return written

    async def search(
        self,
        terms: List[SearchTerm],
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> List[Contact]:
        results = []
        for contact in self._contacts.values():
            if country and contact.country != country:
                continue
            if verification_status and contact.verification_status.value != verification_status:
                continue
            if matches(contact, terms):
                results.append(contact.model_copy(deep=True))
        return results

    async def diagnostics(self) -> Diagnostics:
        return Diagnostics(
            backend=self.name,
            schema_version=0,
            row_counts={"contacts": len(self._contacts)},
        )

    async def clear_all(self) -> None:
        removed = len(self._contacts)
        self._contacts.clear()
        self._persist()
        logger.info("Document store cleared", extra={"contacts_removed": removed})

    async def rebuild_search_index(self) -> int:
        # Documents are searched directly; there is no derived index
        return len(self._contacts)

    async def run_migrations(self) -> List[int]:
        return []
