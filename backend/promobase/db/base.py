"""
SQLAlchemy declarative base for the relational projection.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


# Names for constraints the models leave unnamed; explicit names win
NAMING_CONVENTION = {
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for contact tables."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
