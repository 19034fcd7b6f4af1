"""Database package exports and side effect imports.

Importing ``models`` registers every ORM class on ``Base.metadata`` so that
Alembic and the SQLite bootstrap in :mod:`raidbot.db.session` can see them.
"""

from .base import Base

from . import models  # noqa: F401

__all__ = ["Base"]
