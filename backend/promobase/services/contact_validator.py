"""
Contact validation gate.
Every write through the facade passes here first, whatever the backend.
"""

from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from promobase.core.exceptions import ValidationError
from promobase.schemas.contact import Contact


def validate_contact(raw: Union[Contact, Mapping[str, Any]], index: Optional[int] = None) -> Contact:
    """
    Normalize and validate a raw contact.

    Strings are trimmed, optional fields defaulted and relation collections
    coerced (malformed entries dropped). The whole record is rejected when a
    required field is empty, the type or verification status is unknown, or
    email/website are present but malformed.

    Args:
        raw: Contact instance or mapping (camelCase or snake_case keys)
        index: Position in a batch, reported back on failure

    Returns:
        A new validated Contact

    Raises:
        ValidationError: with the offending field and value
    """
    if isinstance(raw, Contact):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise ValidationError(None, raw, "contact must be an object", index=index)

    try:
        return Contact.model_validate(dict(raw))
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else None
        value = error.get("input")
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise ValidationError(field, value, message, index=index) from exc


def validate_many(raws: Iterable[Union[Contact, Mapping[str, Any]]]) -> List[Contact]:
    """Validate a batch up front; the first failure carries its index."""
    return [validate_contact(raw, index=i) for i, raw in enumerate(raws)]
