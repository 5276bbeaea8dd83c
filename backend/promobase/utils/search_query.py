"""
Search query parsing.

Free text plus optional ``field:value`` / ``field:"phrase"`` qualifiers.
Terms are conjunctive. The same parse feeds the FTS5 MATCH expression of
the relational backend and the in-memory matcher of the document backend.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from promobase.schemas.contact import Contact


# Qualifier -> search shadow table column
QUALIFIER_COLUMNS: Dict[str, str] = {
    "name": "name",
    "email": "email",
    "website": "website",
    "country": "country",
    "type": "type",
    "genre": "genres_text",
    "genres": "genres_text",
    "person": "persons_text",
    "persons": "persons_text",
}

SEARCH_COLUMNS = ("name", "email", "website", "country", "type", "genres_text", "persons_text")

_TERM_PATTERN = re.compile(r'(\w+):"([^"]+)"|(\w+):(\S+)|"([^"]+)"|(\S+)')


@dataclass(frozen=True)
class SearchTerm:
    """One conjunctive term of a query."""
    text: str
    column: Optional[str] = None
    phrase: bool = False


def parse_query(query: Optional[str]) -> List[SearchTerm]:
    """Split a query string into search terms."""
    terms: List[SearchTerm] = []
    for match in _TERM_PATTERN.finditer((query or "").strip()):
        qualified_phrase, phrase_value, qualified_token, token_value, phrase, token = match.groups()
        if qualified_phrase:
            term = _qualified(qualified_phrase, phrase_value, phrase=True, raw=match.group(0))
        elif qualified_token:
            term = _qualified(qualified_token, token_value, phrase=False, raw=match.group(0))
        elif phrase:
            term = SearchTerm(_strip_quotes(phrase), phrase=True)
        else:
            term = SearchTerm(_strip_quotes(token))
        if term.text and any(ch.isalnum() for ch in term.text):
            terms.append(term)
    return terms


def _qualified(field: str, value: str, phrase: bool, raw: str) -> SearchTerm:
    column = QUALIFIER_COLUMNS.get(field.lower())
    if column is None:
        # Unknown qualifier: search the whole token as plain text
        return SearchTerm(_strip_quotes(raw))
    return SearchTerm(_strip_quotes(value), column=column, phrase=phrase)


def _strip_quotes(value: str) -> str:
    return value.replace('"', "").strip()


def to_match_expression(terms: List[SearchTerm]) -> str:
    """
    Build an FTS5 MATCH expression.

    Every term is quoted so punctuation (``@``, ``.``) never reaches the FTS
    parser; bare tokens become prefix queries, phrases match exactly.
    """
    parts = []
    for term in terms:
        expr = f'"{term.text}"' if term.phrase else f'"{term.text}"*'
        if term.column:
            expr = f"{term.column} : {expr}"
        parts.append(expr)
    return " AND ".join(parts)


def search_fields(contact: Contact) -> Dict[str, str]:
    """Searchable text of a contact, keyed by search column."""
    return {
        "name": contact.name,
        "email": contact.email or "",
        "website": contact.website or "",
        "country": contact.country,
        "type": contact.type.value,
        "genres_text": " ".join(contact.genres),
        "persons_text": " ".join(
            f"{person.name} {person.position} {person.email}" for person in contact.contact_persons
        ),
    }


def matches(contact: Contact, terms: List[SearchTerm]) -> bool:
    """Case-insensitive in-memory match of every term against a contact."""
    fields = {key: value.lower() for key, value in search_fields(contact).items()}
    for term in terms:
        needle = term.text.lower()
        if term.column:
            if needle not in fields[term.column]:
                return False
        elif not any(needle in value for value in fields.values()):
            return False
    return True
