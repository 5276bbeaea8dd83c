"""
Canonical contact schemas.

A Contact is the storage-independent shape every backend reads and writes.
Field names are snake_case in Python and camelCase on the wire, matching the
JSON backup format.
"""

import enum
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$", re.IGNORECASE)
URL_PATTERN = re.compile(
    r"^(https?://)[\w.-]+(?:\.[\w.-]+)+(?:[\w\-._~:/?#\[\]@!$&'()*+,;=.%]+)?$",
    re.IGNORECASE,
)

_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}


class ContactType(str, enum.Enum):
    """Contact category enumeration."""
    RADIO_STATION = "Radio Station"
    DJ_RECORD_POOL = "DJ Record Pool"
    INDIVIDUAL_DJ = "Individual DJ"
    MUSIC_REVIEWER = "Music Reviewer"
    PUBLICATION = "Publication"
    PLAYLIST_CURATOR = "Playlist Curator"
    BACKGROUND_MUSIC_PROVIDER = "Background Music Provider"
    GIG_VENUE = "Gig Venue"


class VerificationStatus(str, enum.Enum):
    """Verification status enumeration."""
    UNVERIFIED = "unverified"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    ERROR = "error"


class SocialPlatform(str, enum.Enum):
    """Social platforms a contact may link to."""
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    SOUNDCLOUD = "soundcloud"
    BANDCAMP = "bandcamp"
    TIKTOK = "tiktok"


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _clean_text(value)
    return text or None


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


class ContactPerson(BaseModel):
    """A named person reachable at the contact."""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    position: str = ""
    email: str = ""

    @field_validator("name", "position", "email", mode="before")
    @classmethod
    def _trim(cls, value: Any) -> str:
        return _clean_text(value)

    @property
    def merge_key(self) -> str:
        return (self.email or self.name).strip().lower()


class Contact(BaseModel):
    """Canonical contact entity."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    country: str
    type: ContactType
    email: Optional[str] = None
    website: Optional[str] = None
    verification_status: VerificationStatus = Field(
        VerificationStatus.UNVERIFIED, alias="verificationStatus"
    )
    verification_details: Optional[str] = Field(None, alias="verificationDetails")
    is_favorite: bool = Field(False, alias="isFavorite")
    do_not_contact: bool = Field(False, alias="doNotContact")
    genres: List[str] = Field(default_factory=list)
    contact_persons: List[ContactPerson] = Field(default_factory=list, alias="contactPersons")
    socials: Optional[Dict[SocialPlatform, str]] = None

    @field_validator("id", "name", "country", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> str:
        text = _clean_text(value)
        if not text:
            raise ValueError("is required")
        return text

    @field_validator("type", mode="before")
    @classmethod
    def _trim_type(cls, value: Any) -> Any:
        if isinstance(value, ContactType):
            return value
        return _clean_text(value)

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, value: Any) -> Optional[str]:
        email = _optional_text(value)
        if email and not EMAIL_PATTERN.match(email):
            raise ValueError("invalid email format")
        return email

    @field_validator("website", mode="before")
    @classmethod
    def _check_website(cls, value: Any) -> Optional[str]:
        website = _optional_text(value)
        if website and not URL_PATTERN.match(website):
            raise ValueError("invalid website URL")
        return website

    @field_validator("verification_status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        if isinstance(value, VerificationStatus):
            return value
        return _clean_text(value) or VerificationStatus.UNVERIFIED

    @field_validator("verification_details", mode="before")
    @classmethod
    def _trim_details(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("is_favorite", "do_not_contact", mode="before")
    @classmethod
    def _to_bool(cls, value: Any) -> bool:
        return coerce_bool(value)

    @field_validator("genres", mode="before")
    @classmethod
    def _clean_genres(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            return []
        genres: List[str] = []
        for item in value:
            if isinstance(item, (dict, list, tuple)):
                continue
            genre = _clean_text(item)
            if genre and genre not in genres:
                genres.append(genre)
        return genres

    @field_validator("contact_persons", mode="before")
    @classmethod
    def _clean_persons(cls, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        persons = []
        for item in value:
            if isinstance(item, ContactPerson):
                item = item.model_dump()
            if not isinstance(item, dict):
                continue
            person = {key: _clean_text(item.get(key)) for key in ("name", "position", "email")}
            if any(person.values()):
                persons.append(person)
        return persons

    @field_validator("socials", mode="before")
    @classmethod
    def _clean_socials(cls, value: Any) -> Optional[Dict[Any, str]]:
        if not isinstance(value, dict):
            return None
        socials = {}
        for platform, url in value.items():
            if not isinstance(url, str):
                continue
            url = url.strip()
            if url:
                key = platform.value if isinstance(platform, SocialPlatform) else _clean_text(platform)
                socials[key] = url
        return socials or None

    def to_document(self) -> Dict[str, Any]:
        """Return the camelCase JSON document for this contact."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContactListResponse(BaseModel):
    """Schema for contact list response."""
    items: List[Contact]
    total: int


class BulkAddResult(BaseModel):
    """Outcome of a chunked bulk insert."""
    inserted: int = 0
    chunks_committed: int = 0
    cancelled: bool = False


class Diagnostics(BaseModel):
    """Informational storage diagnostics."""
    backend: str
    schema_version: int = Field(0, alias="schemaVersion")
    row_counts: Dict[str, int] = Field(default_factory=dict, alias="rowCounts")

    model_config = ConfigDict(populate_by_name=True)
