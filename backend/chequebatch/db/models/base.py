"""
SQLAlchemy declarative base and shared helpers for all models.

Each table lives in its own file under ``chequebatch/db/models/`` and
``__init__.py`` re-exports them so ``Base.metadata`` sees every table.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def generate_uuid() -> uuid.UUID:
    return uuid.uuid4()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
