"""Catalog - the shared metadata store for images, tags and their links.

One Catalog instance is built at startup and shared by every request.
Each operation opens its own short session and commits or rolls back
before returning, so callers never observe a half-applied write and the
returned models are detached snapshots.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from tagstash.models.image import Image
from tagstash.models.tag import Tag

from . import SessionFactory
from .repositories import ImageRepository, TagRepository

logger = logging.getLogger(__name__)


class CatalogUnavailableError(RuntimeError):
    """The catalog database could not complete an operation."""


class Catalog:
    """Facade over the image and tag repositories."""

    def __init__(self, session_factory: SessionFactory):
        """Initialize the catalog.

        Args:
            session_factory: Callable returning a new database session
        """
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise CatalogUnavailableError(str(e)) from e
        finally:
            session.close()

    def create_image(
        self,
        *,
        filename: str,
        storage_path: str,
        size_bytes: int,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
        owner_id: Optional[int] = None,
        remote_url: Optional[str] = None,
    ) -> Image:
        """Insert an image record; the id and access token are generated here."""
        image = Image(
            owner_id=owner_id,
            filename=filename,
            original_name=original_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            remote_url=remote_url,
        )
        try:
            with self._session() as session:
                ImageRepository(session).add(image)
        except IntegrityError as e:
            raise CatalogUnavailableError(f"Image record rejected: {e.orig}") from e
        logger.debug(f"Created image {image.id} ({filename})")
        return image

    def get_image(self, image_id: int) -> Optional[Image]:
        with self._session() as session:
            return ImageRepository(session).get(image_id)

    def get_by_token(self, token: str) -> Optional[Image]:
        with self._session() as session:
            return ImageRepository(session).get_by_token(token)

    def delete_image(self, image_id: int) -> bool:
        """Delete an image record and its tag links in one transaction.

        Deleting an id that no longer exists is a no-op returning False.
        """
        with self._session() as session:
            removed = ImageRepository(session).delete_by_id(image_id)
        if removed:
            logger.info(f"Deleted image record {image_id}")
        return removed

    def update_size(self, image_id: int, size_bytes: int) -> None:
        with self._session() as session:
            ImageRepository(session).update_size(image_id, size_bytes)

    def list_by_tags(
        self,
        tag_names: Sequence[str],
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Image]:
        """Images matching any of ``tag_names``, newest first."""
        with self._session() as session:
            return ImageRepository(session).list_by_tags(tag_names, limit, offset)

    def draw_random(self, tag_names: Sequence[str], count: int = 1) -> List[Image]:
        """Draw up to ``count`` random images matching any of ``tag_names``."""
        with self._session() as session:
            return ImageRepository(session).random_sample(tag_names, count)

    def count_images(self) -> int:
        with self._session() as session:
            return ImageRepository(session).count()

    def ensure_tags(self, names: Sequence[str]) -> List[Tag]:
        """Get or create tags by name.

        A name inserted concurrently by another request makes the first
        attempt fail on the unique constraint; the retry then finds it.
        """
        if not names:
            return []
        for attempt in (1, 2):
            try:
                with self._session() as session:
                    return TagRepository(session).ensure(names)
            except IntegrityError as e:
                if attempt == 2:
                    raise CatalogUnavailableError(f"Tag insert rejected: {e.orig}") from e
                logger.debug(f"Tag insert raced, retrying: {e.orig}")
        return []

    def attach_tags(self, image_id: int, tag_ids: Sequence[int]) -> int:
        try:
            with self._session() as session:
                return TagRepository(session).attach(image_id, tag_ids)
        except IntegrityError as e:
            raise CatalogUnavailableError(f"Tag link rejected: {e.orig}") from e

    def tags_for(self, image_ids: Sequence[int]) -> Dict[int, List[str]]:
        with self._session() as session:
            return dict(TagRepository(session).names_for_images(image_ids))

    def list_tags(self) -> List[Tag]:
        with self._session() as session:
            return TagRepository(session).list_all()
