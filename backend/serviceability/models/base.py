"""Shared declarative base for all ORM models.

Keeping a single ``Base`` class puts the SQLAlchemy metadata in one place so
that table creation on startup and in tests works off the same registry.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass
