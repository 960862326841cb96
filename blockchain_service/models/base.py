"""
Declarative base and shared column mixins.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Root declarative class holding the shared metadata."""
    pass


class BaseModel(Base):
    """Abstract base for all service tables."""

    __abstract__ = True

    def to_dict(self) -> dict:
        return {column.name: getattr(self, column.key) for column in self.__mapper__.columns}


class TimestampMixin:
    """Standard audit timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        comment="Row creation time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        comment="Last modification time"
    )
