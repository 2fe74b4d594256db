"""Tag models - tag names and image-tag associations."""

from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer
from sqlmodel import Field, SQLModel


class Tag(SQLModel, table=True):
    """Tag database model - a normalized tag name."""

    __tablename__ = "tags"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)


class ImageTag(SQLModel, table=True):
    """ImageTag database model - links images to tags."""

    __tablename__ = "image_tags"

    image_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("images.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    tag_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
