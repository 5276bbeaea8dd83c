"""
Relational projection of a contact: core row plus owned child relations.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    and_,
    func,
)
from sqlalchemy.orm import relationship

from promobase.db.base import Base


class ContactRow(Base):
    """Core contact fields."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    country = Column(String, nullable=False)
    email = Column(String, nullable=True)
    website = Column(String, nullable=True)
    type = Column(String, nullable=False)
    verification_status = Column(String, nullable=True, default="unverified")
    verification_details = Column(String, nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False, server_default="0")
    do_not_contact = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships (read side; writes replace child rows explicitly)
    genres = relationship(
        "ContactGenreRow",
        order_by="ContactGenreRow.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    persons = relationship(
        "ContactPersonRow",
        order_by="ContactPersonRow.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    socials = relationship(
        "SocialLinkRow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


Index("idx_contacts_name", ContactRow.name)
Index("idx_contacts_country", ContactRow.country)
Index("idx_contacts_type", ContactRow.type)
Index("idx_contacts_email", ContactRow.email)
Index(
    "uq_contacts_email",
    func.lower(ContactRow.email),
    unique=True,
    sqlite_where=and_(ContactRow.email.isnot(None), ContactRow.email != ""),
)
Index(
    "uq_contacts_website",
    func.lower(ContactRow.website),
    unique=True,
    sqlite_where=and_(ContactRow.website.isnot(None), ContactRow.website != ""),
)


class GenreRow(Base):
    """Genre lookup table."""

    __tablename__ = "genres"

    name = Column(String, primary_key=True)


class ContactGenreRow(Base):
    """Genre link owned by a contact."""

    __tablename__ = "contact_genres"

    contact_id = Column(String, ForeignKey("contacts.id", ondelete="CASCADE"), primary_key=True)
    genre_name = Column(String, ForeignKey("genres.name"), primary_key=True)
    sort_order = Column(Integer, nullable=False, default=0)


class ContactPersonRow(Base):
    """Person reachable at a contact."""

    __tablename__ = "contact_persons"

    id = Column(String, primary_key=True)
    contact_id = Column(String, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False, default="")
    position = Column(String, nullable=True)
    email = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)


class SocialLinkRow(Base):
    """Social platform URL owned by a contact."""

    __tablename__ = "social_links"
    __table_args__ = (UniqueConstraint("contact_id", "platform", name="uq_social_links_platform"),)

    id = Column(String, primary_key=True)
    contact_id = Column(String, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String, nullable=False)
    url = Column(String, nullable=False)
