"""Removal of an image's backing file and catalog record.

Both the retrieval reconciler's lazy delete and explicit deletion go
through ``purge_image`` so they behave identically.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from tagstash.db.catalog import Catalog, CatalogUnavailableError
from tagstash.models.image import Image
from tagstash.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupOutcome:
    """What happened when purging one image.

    ``record_deleted`` is the primary result. ``file_error`` and
    ``catalog_error`` describe side effects that failed; callers decide
    whether to escalate them.
    """

    image_id: int
    record_deleted: bool = False
    file_removed: bool = False
    file_error: Optional[str] = None
    catalog_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.file_error is None and self.catalog_error is None

    @property
    def errors(self) -> list:
        return [e for e in (self.file_error, self.catalog_error) if e]


def purge_image(catalog: Catalog, blobs: BlobStore, image: Image) -> CleanupOutcome:
    """Remove the backing file (if any) then the record and its tag links.

    The file goes first: if the catalog delete then fails, the record
    points at a missing file and the next retrieval that selects it
    purges it again. Deleting an already deleted record is a no-op.
    """
    outcome = CleanupOutcome(image_id=image.id)
    try:
        outcome.file_removed = blobs.delete(image.storage_path)
    except (OSError, ValueError) as e:
        outcome.file_error = f"file removal failed for image {image.id}: {e}"
        logger.warning(outcome.file_error)

    try:
        outcome.record_deleted = catalog.delete_image(image.id)
    except CatalogUnavailableError as e:
        outcome.catalog_error = f"catalog delete failed for image {image.id}: {e}"
        logger.error(outcome.catalog_error)
    return outcome
