"""Retrieval reconciler.

The catalog can point at files that no longer exist: the upload
directory is plain disk and files get deleted or lost behind the
catalog's back. Every read path here checks the backing file before
returning a record and purges records whose file is gone, so the
catalog heals itself as it is read.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from tagstash.db.catalog import Catalog
from tagstash.models.image import Image
from tagstash.storage import BlobStore

from .cleanup import purge_image

logger = logging.getLogger(__name__)

# Upper bound on random draws per request. A catalog full of stale
# entries could otherwise keep a request drawing dead records forever;
# past the cap the request reports not-found even if a live image exists.
RANDOM_MAX_ATTEMPTS = 50


class ResolveMode(str, Enum):
    """How a candidate is chosen among the images matching a filter."""

    newest = "newest"
    random = "random"


@dataclass
class ResolveOutcome:
    """Result of a resolve call.

    ``image`` and ``path`` are set when a live image was found. Purged ids
    and cleanup errors are reported alongside but never change whether
    the lookup succeeded.
    """

    image: Optional[Image] = None
    path: Optional[Path] = None
    purged: List[int] = field(default_factory=list)
    cleanup_errors: List[str] = field(default_factory=list)
    attempts: int = 0

    @property
    def found(self) -> bool:
        return self.image is not None


@dataclass
class LiveImage:
    """A listed image whose backing file was present."""

    image: Image
    tags: List[str]


class Reconciler:
    """Finds images whose backing file exists, purging stale records on the way."""

    def __init__(
        self,
        catalog: Catalog,
        blobs: BlobStore,
        max_random_attempts: int = RANDOM_MAX_ATTEMPTS,
    ):
        self.catalog = catalog
        self.blobs = blobs
        self.max_random_attempts = max_random_attempts

    def _is_live(self, image: Image, outcome: ResolveOutcome) -> Optional[bool]:
        """Check the backing file.

        Returns:
            True if present, False if missing, None if the check itself
            failed (the record is then skipped but not purged)
        """
        try:
            return self.blobs.exists(image.storage_path)
        except (OSError, ValueError) as e:
            message = f"existence check failed for image {image.id}: {e}"
            logger.warning(message)
            outcome.cleanup_errors.append(message)
            return None

    def _purge(self, image: Image, outcome: ResolveOutcome) -> None:
        logger.info(f"Backing file missing for image {image.id}, removing record")
        cleanup = purge_image(self.catalog, self.blobs, image)
        outcome.purged.append(image.id)
        outcome.cleanup_errors.extend(cleanup.errors)

    def _check(self, image: Image, outcome: ResolveOutcome) -> bool:
        """Visit one candidate; on a hit fill ``outcome`` and return True."""
        outcome.attempts += 1
        live = self._is_live(image, outcome)
        if live:
            outcome.image = image
            outcome.path = self.blobs.path(image.storage_path)
            return True
        if live is False:
            self._purge(image, outcome)
        return False

    def resolve(self, tags: Sequence[str], mode: ResolveMode = ResolveMode.newest) -> ResolveOutcome:
        """Return one live image matching any of ``tags`` (empty = all)."""
        if ResolveMode(mode) is ResolveMode.random:
            return self._resolve_random(tags)
        return self._resolve_newest(tags)

    def _resolve_newest(self, tags: Sequence[str]) -> ResolveOutcome:
        outcome = ResolveOutcome()
        for image in self.catalog.list_by_tags(tags):
            if self._check(image, outcome):
                break
        return outcome

    def _resolve_random(self, tags: Sequence[str]) -> ResolveOutcome:
        outcome = ResolveOutcome()
        for _ in range(self.max_random_attempts):
            drawn = self.catalog.draw_random(tags, 1)
            if not drawn:
                return outcome
            if self._check(drawn[0], outcome):
                return outcome
        logger.warning(
            f"No live image after {self.max_random_attempts} random draws for tags {list(tags)}"
        )
        return outcome

    def resolve_by_id(self, image_id: int) -> ResolveOutcome:
        outcome = ResolveOutcome()
        image = self.catalog.get_image(image_id)
        if image is not None:
            self._check(image, outcome)
        return outcome

    def resolve_by_token(self, token: str) -> ResolveOutcome:
        outcome = ResolveOutcome()
        image = self.catalog.get_by_token(token)
        if image is not None:
            self._check(image, outcome)
        return outcome

    def list_live(
        self,
        tags: Sequence[str],
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[LiveImage]:
        """List images newest first, silently skipping those without a file.

        Unlike the resolve calls this never purges anything.
        """
        images = self.catalog.list_by_tags(tags, limit=limit, offset=offset)
        live = []
        for image in images:
            try:
                if self.blobs.exists(image.storage_path):
                    live.append(image)
            except (OSError, ValueError) as e:
                logger.warning(f"existence check failed for image {image.id}: {e}")
        tag_map: Dict[int, List[str]] = self.catalog.tags_for([i.id for i in live])
        return [LiveImage(image=i, tags=tag_map.get(i.id, [])) for i in live]
