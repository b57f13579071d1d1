"""SQLAlchemy declarative Base and shared model helpers."""

import uuid
from datetime import UTC, datetime

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


def new_id() -> str:
    """Opaque primary key for new rows."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)
