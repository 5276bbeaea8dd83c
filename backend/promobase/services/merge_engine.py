"""
Field resolution for merging duplicate contacts.
"""

from typing import Dict, List, Sequence

from promobase.core.exceptions import MergeUsageError
from promobase.schemas.contact import Contact, ContactPerson, VerificationStatus


VERIFICATION_RANK: Dict[VerificationStatus, int] = {
    VerificationStatus.VERIFIED: 4,
    VerificationStatus.VERIFYING: 3,
    VerificationStatus.NOT_FOUND: 2,
    VerificationStatus.ERROR: 1,
    VerificationStatus.UNVERIFIED: 0,
}

FILL_IF_MISSING_FIELDS = ("email", "website", "country", "type")


def combine(primary: Contact, others: Sequence[Contact]) -> Contact:
    """
    Merge ``others`` into ``primary`` and return the merged contact.

    Rules:
        name: longest wins, ties keep the earlier value (primary first)
        email/website/country/type: filled from the first other that has a
            value, only when the primary's is empty
        verification: highest rank in the group; details travel with a status
            won by an other
        do_not_contact: OR over the group
        genres: ordered union, primary's first
        persons: deduplicated by email-or-name, first occurrence wins
        socials: per-platform fill-if-missing

    Raises:
        MergeUsageError: ``others`` is empty or contains the primary
    """
    if not others:
        raise MergeUsageError("Nothing to merge: others is empty")
    if any(other.id == primary.id for other in others):
        raise MergeUsageError(f"Cannot merge contact {primary.id} into itself")

    merged = primary.model_copy(deep=True)

    for other in others:
        if len(other.name) > len(merged.name):
            merged.name = other.name

    for field_name in FILL_IF_MISSING_FIELDS:
        if getattr(merged, field_name):
            continue
        for other in others:
            value = getattr(other, field_name)
            if value:
                setattr(merged, field_name, value)
                break

    best_rank = VERIFICATION_RANK[merged.verification_status]
    for other in others:
        rank = VERIFICATION_RANK[other.verification_status]
        if rank > best_rank:
            best_rank = rank
            merged.verification_status = other.verification_status
            merged.verification_details = other.verification_details

    merged.do_not_contact = primary.do_not_contact or any(o.do_not_contact for o in others)

    genres: List[str] = list(merged.genres)
    for other in others:
        for genre in other.genres:
            if genre not in genres:
                genres.append(genre)
    merged.genres = genres

    persons: List[ContactPerson] = []
    seen = set()
    for person in [*merged.contact_persons, *(p for o in others for p in o.contact_persons)]:
        key = person.merge_key
        if key in seen:
            continue
        seen.add(key)
        persons.append(person)
    merged.contact_persons = persons

    socials = dict(merged.socials or {})
    for other in others:
        for platform, url in (other.socials or {}).items():
            if url and not socials.get(platform):
                socials[platform] = url
    merged.socials = {platform: url for platform, url in socials.items() if url} or None

    return merged
