"""Image repository for data access."""

from typing import List, Optional, Sequence

from sqlalchemy import delete, func
from sqlmodel import Session, select

from tagstash.models.image import Image
from tagstash.models.tag import ImageTag, Tag

from .base import BaseRepository


def _tagged_image_ids(tag_names: Sequence[str]):  # type: ignore[no-untyped-def]
    """Subquery of image ids carrying any of the given tag names."""
    return (
        select(ImageTag.image_id)
        .join(Tag, Tag.id == ImageTag.tag_id)
        .where(Tag.name.in_(list(tag_names)))
    )


class ImageRepository(BaseRepository[Image]):
    """Repository for Image operations."""

    def __init__(self, session: Session):
        """Initialize image repository.

        Args:
            session: SQLModel database session
        """
        super().__init__(session, Image)

    def get_by_token(self, token: str) -> Optional[Image]:
        """Get an image by its public access token."""
        stmt = select(Image).where(Image.token == token)
        return self.session.exec(stmt).first()

    def list_by_tags(
        self,
        tag_names: Sequence[str],
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Image]:
        """List images newest first, optionally filtered by tag.

        Args:
            tag_names: Tag names; an image matches when it carries any of
                them. Empty means no filter.
            limit: Maximum number of images, None for all
            offset: Number of images to skip

        Returns:
            Images ordered by creation time descending, ties broken by
            id descending
        """
        stmt = select(Image)
        if tag_names:
            stmt = stmt.where(Image.id.in_(_tagged_image_ids(tag_names)))
        stmt = stmt.order_by(Image.created_at.desc(), Image.id.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.exec(stmt).all())

    def random_sample(self, tag_names: Sequence[str], count: int = 1) -> List[Image]:
        """Draw up to ``count`` images uniformly at random from the current matches."""
        stmt = select(Image)
        if tag_names:
            stmt = stmt.where(Image.id.in_(_tagged_image_ids(tag_names)))
        stmt = stmt.order_by(func.random()).limit(count)
        return list(self.session.exec(stmt).all())

    def delete_by_id(self, image_id: int) -> bool:
        """Delete an image row and its tag links.

        Returns:
            True if a row was removed, False if it was already gone
        """
        self.session.execute(delete(ImageTag).where(ImageTag.image_id == image_id))
        result = self.session.execute(delete(Image).where(Image.id == image_id))
        return bool(result.rowcount)

    def update_size(self, image_id: int, size_bytes: int) -> None:
        """Record the current on-disk size of an image."""
        image = self.get(image_id)
        if image:
            image.size_bytes = size_bytes
            self.update(image)
