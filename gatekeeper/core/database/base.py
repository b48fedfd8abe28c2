"""
SQLAlchemy declarative base and shared column mixins.

All SQLAlchemy models inherit from Base. Records use ULID string keys so ids
sort by creation time and can be generated without a database round trip.
"""
from datetime import datetime
from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return ulid.new().str


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from gatekeeper.core.database.base import Base, UlidPrimaryKeyMixin

        class Role(Base, UlidPrimaryKeyMixin):
            __tablename__ = "roles"

            name: Mapped[str] = mapped_column(String(50), unique=True)
    """
    pass


class UlidPrimaryKeyMixin:
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)


class TimestampMixin:
    """
    Adds created_at and updated_at, both filled in by the database.

    The values are fetched back in the same INSERT/UPDATE statement so async
    sessions never need a lazy refresh to read them.
    """
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
