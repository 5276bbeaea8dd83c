"""
Contact controller.
"""

from typing import Any, Dict, List, Optional

from promobase.controllers.base_controller import BaseController
from promobase.core.exceptions import ContactNotFoundError
from promobase.schemas.contact import BulkAddResult, Contact, ContactListResponse
from promobase.services.contact_store import ContactStore


class ContactController(BaseController):
    """Controller for contact CRUD and search."""

    def __init__(self, store: ContactStore):
        self.store = store

    async def list_contacts(
        self,
        query: Optional[str] = None,
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> ContactListResponse:
        """List contacts, or search them when a query or filter is given."""
        if query or country or verification_status:
            contacts = await self.store.search(query, country, verification_status)
        else:
            contacts = await self.store.get_all()
        return ContactListResponse(items=contacts, total=len(contacts))

    async def get_contact(self, contact_id: str) -> Contact:
        contact = await self.store.get(contact_id)
        if contact is None:
            raise ContactNotFoundError(contact_id)
        return contact

    async def create_contact(self, payload: Dict[str, Any]) -> Contact:
        """Create a contact from a raw payload."""
        return await self.store.add(payload)

    async def update_contact(self, contact_id: str, payload: Dict[str, Any]) -> Contact:
        """Overwrite a contact; the path ID wins over any ID in the body."""
        return await self.store.update({**payload, "id": contact_id})

    async def delete_contact(self, contact_id: str) -> None:
        if not await self.store.delete(contact_id):
            raise ContactNotFoundError(contact_id)

    async def bulk_add(self, payloads: List[Dict[str, Any]]) -> BulkAddResult:
        return await self.store.bulk_add(payloads)
