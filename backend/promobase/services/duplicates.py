"""
Duplicate detection over the current contact set.

Groups are recomputed on demand and never stored.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from promobase.schemas.contact import Contact


KIND_EMAIL = "email"
KIND_WEBSITE = "website"
KIND_NAME_COUNTRY = "name_country"

# Strongest signal first; a contact claimed by an earlier kind is not regrouped
KIND_PRIORITY = (KIND_EMAIL, KIND_WEBSITE, KIND_NAME_COUNTRY)


def normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def duplicate_key(contact: Contact, kind: str) -> str:
    """Normalized matching key of a contact for one kind; empty means no key."""
    if kind == KIND_EMAIL:
        return normalize(contact.email)
    if kind == KIND_WEBSITE:
        return normalize(contact.website)
    name, country = normalize(contact.name), normalize(contact.country)
    return f"{name}|{country}" if name and country else ""


@dataclass
class DuplicateGroup:
    """Two or more contacts believed to be the same entity."""
    kind: str
    key: str
    members: List[Contact] = field(default_factory=list)

    @property
    def group_id(self) -> str:
        return f"{self.kind}:{self.key}"

    @property
    def member_ids(self) -> List[str]:
        return [member.id for member in self.members]


def build_groups(contacts: Sequence[Contact]) -> List[DuplicateGroup]:
    """
    Group duplicates by email, then website, then name and country.

    Buckets keep the natural order of ``contacts``. Each contact ends up in
    at most one group.
    """
    claimed = set()
    groups: List[DuplicateGroup] = []

    for kind in KIND_PRIORITY:
        buckets: Dict[str, List[Contact]] = {}
        for contact in contacts:
            key = duplicate_key(contact, kind)
            if key:
                buckets.setdefault(key, []).append(contact)

        for key, bucket in buckets.items():
            members = [contact for contact in bucket if contact.id not in claimed]
            if len(members) < 2:
                continue
            groups.append(DuplicateGroup(kind=kind, key=key, members=members))
            claimed.update(member.id for member in members)

    return groups


def pick_default_primary(group: DuplicateGroup) -> Contact:
    """Prefer a member with an email, then one with a website, then the first."""
    for member in group.members:
        if normalize(member.email):
            return member
    for member in group.members:
        if normalize(member.website):
            return member
    return group.members[0]
