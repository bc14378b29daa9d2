"""
Declarative base and timestamp mixins shared by every table.
"""
from datetime import datetime, timezone
from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    def __repr__(self) -> str:
        # Primary key only: touching other attributes could trigger a lazy
        # load, which an AsyncSession refuses outside an awaitable context.
        identity = inspect(self).identity
        key = ", ".join(repr(v) for v in identity) if identity else "transient"
        return f"<{self.__class__.__name__}({key})>"


class CreatedAtMixin:
    """Rows that only record when they were written."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )
