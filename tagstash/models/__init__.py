"""Unified SQLModel definitions for tagstash."""

from .base import TimestampMixin, utcnow
from .image import Image, ImageRead, new_access_token
from .tag import ImageTag, Tag

__all__ = [
    "Image",
    "ImageRead",
    "ImageTag",
    "Tag",
    "TimestampMixin",
    "new_access_token",
    "utcnow",
]
