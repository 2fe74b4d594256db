"""Base model and mixins for SQLModel."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class TimestampMixin(SQLModel):
    """Mixin for the created_at timestamp."""

    created_at: datetime = Field(default_factory=utcnow, index=True)
