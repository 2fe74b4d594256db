"""Database repositories for data access."""

from .base import BaseRepository
from .image import ImageRepository
from .tag import TagRepository

__all__ = ["BaseRepository", "ImageRepository", "TagRepository"]
