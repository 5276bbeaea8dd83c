"""
Database models.
Import all models here to ensure they're registered with Base.
"""

from promobase.models.contact import (
    ContactRow,
    GenreRow,
    ContactGenreRow,
    ContactPersonRow,
    SocialLinkRow,
)

__all__ = [
    "ContactRow",
    "GenreRow",
    "ContactGenreRow",
    "ContactPersonRow",
    "SocialLinkRow",
]
