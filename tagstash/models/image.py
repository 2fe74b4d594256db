"""Image model - one stored blob and its metadata."""

import secrets
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin

TOKEN_BYTES = 16


def new_access_token() -> str:
    """Generate an opaque, unguessable access token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


class ImageBase(SQLModel):
    """Shared image fields."""

    owner_id: Optional[int] = Field(default=None, index=True)
    filename: str = Field(unique=True)
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: int = 0
    storage_path: str = Field(unique=True)
    remote_url: Optional[str] = None


class Image(ImageBase, TimestampMixin, table=True):
    """Image database model."""

    __tablename__ = "images"

    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(default_factory=new_access_token, unique=True, index=True)


class ImageRead(SQLModel):
    """Listing entry for a live image."""

    id: int
    filename: str
    tags: List[str] = []
    url: str
    created_at: datetime
