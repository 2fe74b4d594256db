"""Tag repository for data access."""

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

from sqlmodel import Session, select

from tagstash.models.tag import ImageTag, Tag

from .base import BaseRepository


class TagRepository(BaseRepository[Tag]):
    """Repository for Tag and ImageTag operations."""

    def __init__(self, session: Session):
        super().__init__(session, Tag)

    def get_by_names(self, names: Sequence[str]) -> Dict[str, Tag]:
        """Map existing tag names to their rows."""
        if not names:
            return {}
        stmt = select(Tag).where(Tag.name.in_(list(names)))
        return {tag.name: tag for tag in self.session.exec(stmt).all()}

    def ensure(self, names: Sequence[str]) -> List[Tag]:
        """Get or create tags by name, preserving the order of ``names``.

        Raises IntegrityError when another session inserts one of the
        names first; the caller rolls back and retries.
        """
        existing = self.get_by_names(names)
        tags: List[Tag] = []
        for name in names:
            tag = existing.get(name)
            if tag is None:
                tag = self.add(Tag(name=name))
                existing[name] = tag
            tags.append(tag)
        return tags

    def list_all(self) -> List[Tag]:
        """All tags in alphabetical order."""
        return list(self.session.exec(select(Tag).order_by(Tag.name)).all())

    def attach(self, image_id: int, tag_ids: Iterable[int]) -> int:
        """Link tags to an image, skipping links that already exist.

        Returns:
            Number of links created
        """
        wanted = list(dict.fromkeys(tag_ids))
        if not wanted:
            return 0
        present = set(
            self.session.exec(
                select(ImageTag.tag_id)
                .where(ImageTag.image_id == image_id)
                .where(ImageTag.tag_id.in_(wanted))
            ).all()
        )
        created = 0
        for tag_id in wanted:
            if tag_id in present:
                continue
            self.session.add(ImageTag(image_id=image_id, tag_id=tag_id))
            created += 1
        self.session.flush()
        return created

    def names_for_images(self, image_ids: Sequence[int]) -> Dict[int, List[str]]:
        """Map image ids to their tag names, alphabetically."""
        result: Dict[int, List[str]] = defaultdict(list)
        if not image_ids:
            return result
        stmt = (
            select(ImageTag.image_id, Tag.name)
            .join(Tag, Tag.id == ImageTag.tag_id)
            .where(ImageTag.image_id.in_(list(image_ids)))
            .order_by(Tag.name)
        )
        for image_id, name in self.session.exec(stmt).all():
            result[image_id].append(name)
        return result
