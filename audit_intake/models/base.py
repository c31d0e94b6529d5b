"""Declarative Base shared by the catalog and findings models."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Keeps index and unique-constraint names stable between create_all and Alembic
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
