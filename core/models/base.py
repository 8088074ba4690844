"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- TimestampMixin: Adds an integer primary key and audit timestamps

``updated_at`` doubles as the optimistic-concurrency version token for
rows that are written concurrently (see storefront.ledger). It is set on
the Python side so the stored value always carries microseconds and reads
back exactly equal to what was written, on every backend.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all storefront models."""
    pass


class TimestampMixin:
    """Mixin providing an autoincrement id and standard audit columns.

    Adds:
    - id: integer primary key
    - created_at: Timestamp set on insert
    - updated_at: Timestamp updated on every change
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
