"""
Contact API endpoints.
Bodies are taken as raw objects so every write passes the contact validator.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Query, Response, status

from promobase.deps.di_container import get_container
from promobase.schemas.contact import BulkAddResult, Contact, ContactListResponse

router = APIRouter()


@router.get("", response_model=ContactListResponse)
async def list_contacts(
    q: Optional[str] = Query(None, description="Free text with optional field:value qualifiers"),
    country: Optional[str] = Query(None),
    verification_status: Optional[str] = Query(None, alias="verificationStatus"),
) -> ContactListResponse:
    """List or search contacts."""
    controller = get_container().contact_controller()
    return await controller.list_contacts(q, country, verification_status)


@router.post("", response_model=Contact, status_code=status.HTTP_201_CREATED)
async def create_contact(payload: Dict[str, Any] = Body(...)) -> Contact:
    """Create a contact."""
    controller = get_container().contact_controller()
    return await controller.create_contact(payload)


@router.post("/bulk", response_model=BulkAddResult, status_code=status.HTTP_201_CREATED)
async def bulk_add_contacts(payloads: List[Dict[str, Any]] = Body(...)) -> BulkAddResult:
    """Insert many contacts, one transaction per chunk."""
    controller = get_container().contact_controller()
    return await controller.bulk_add(payloads)


@router.get("/{contact_id}", response_model=Contact)
async def get_contact(contact_id: str) -> Contact:
    """Get contact by ID."""
    controller = get_container().contact_controller()
    return await controller.get_contact(contact_id)


@router.put("/{contact_id}", response_model=Contact)
async def update_contact(contact_id: str, payload: Dict[str, Any] = Body(...)) -> Contact:
    """Overwrite a contact and its relations."""
    controller = get_container().contact_controller()
    return await controller.update_contact(contact_id, payload)


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(contact_id: str) -> Response:
    """Delete a contact."""
    controller = get_container().contact_controller()
    await controller.delete_contact(contact_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
