"""Ingestion pipeline: raw bytes in, catalog records out.

For every item the blob is written first, then shrunk to the byte
budget, and only then is the catalog record created, so the recorded
size is always the final on-disk size. Items in a batch are processed
independently; one failing item becomes an error entry in the result
and the rest carry on.
"""

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence, Union

import httpx

from tagstash.analysis.naming import (
    display_name_from_url,
    extension_for_content_type,
    main_mime_type,
    resolve_mime_type,
    sanitize_filename,
)
from tagstash.analysis.reencode import DEFAULT_MAX_BYTES, ensure_max_size, sniff_mime_type
from tagstash.analysis.tags import normalize_tags
from tagstash.db.catalog import Catalog, CatalogUnavailableError
from tagstash.storage import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30.0
DEFAULT_FETCH_MAX_BYTES = 20 * 1024 * 1024


class FetchError(Exception):
    """A remote image could not be downloaded."""


@dataclass
class StagedFile:
    """An uploaded body already written to the blob store."""

    key: str
    original_name: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class IngestItem:
    """Per-item ingestion result: a created record or an error message."""

    source: str
    id: Optional[int] = None
    token: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IngestionPipeline:
    def __init__(
        self,
        catalog: Catalog,
        blobs: BlobStore,
        max_bytes: int = DEFAULT_MAX_BYTES,
        http_client: Optional[httpx.Client] = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        fetch_max_bytes: int = DEFAULT_FETCH_MAX_BYTES,
    ):
        """Initialize the pipeline.

        Args:
            catalog: Shared catalog
            blobs: Blob store receiving the files
            max_bytes: Byte budget for every stored image
            http_client: Client for remote fetches; one is created (and
                owned) when omitted
            fetch_timeout: Timeout in seconds for a remote fetch
            fetch_max_bytes: Largest remote body accepted
        """
        self.catalog = catalog
        self.blobs = blobs
        self.max_bytes = max_bytes
        self.fetch_max_bytes = fetch_max_bytes
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(
            follow_redirects=True, timeout=fetch_timeout
        )

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def stage_upload(
        self,
        data: bytes,
        original_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StagedFile:
        """Persist an uploaded body under a fresh unique key."""
        ext = PurePosixPath(sanitize_filename(original_name)).suffix
        if not ext:
            ext = extension_for_content_type(content_type)
        key = self.blobs.new_key(ext)
        self.blobs.write(key, data)
        return StagedFile(key=key, original_name=original_name, content_type=content_type)

    def ingest_local(
        self,
        files: Sequence[StagedFile],
        raw_tags: Union[str, Iterable[str], None] = None,
        owner_id: Optional[int] = None,
    ) -> List[IngestItem]:
        """Create records for files already written to the blob store."""
        tag_ids = self._tag_ids(raw_tags)
        results = []
        for staged in files:
            name = sanitize_filename(staged.original_name) or staged.key
            try:
                path = self.blobs.path(staged.key)
                mime = (
                    sniff_mime_type(path)
                    or main_mime_type(staged.content_type)
                    or resolve_mime_type(None, name)
                )
                item = self._record(
                    staged.key, name, mime, owner_id, None, tag_ids, source=name
                )
            except (CatalogUnavailableError, OSError, ValueError) as e:
                logger.warning(f"Upload of {name} failed: {e}")
                self._discard(staged.key)
                item = IngestItem(source=name, error=f"store failed: {name}")
            results.append(item)
        return results

    def ingest_urls(
        self,
        urls: Sequence[str],
        raw_tags: Union[str, Iterable[str], None] = None,
        owner_id: Optional[int] = None,
    ) -> List[IngestItem]:
        """Download each URL and create a record for it."""
        tag_ids = self._tag_ids(raw_tags)
        results = []
        for url in urls:
            try:
                data, content_type = self.fetch(url)
            except (FetchError, httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
                logger.warning(f"Download of {url} failed: {e}")
                results.append(IngestItem(source=url, error=f"download failed: {url}"))
                continue

            key = self.blobs.new_key(extension_for_content_type(content_type))
            try:
                self.blobs.write(key, data)
                mime = main_mime_type(content_type) or sniff_mime_type(self.blobs.path(key))
                item = self._record(
                    key,
                    display_name_from_url(url, fallback=key),
                    mime or resolve_mime_type(None, key),
                    owner_id,
                    url,
                    tag_ids,
                    source=url,
                )
            except (CatalogUnavailableError, OSError, ValueError) as e:
                logger.warning(f"Storing {url} failed: {e}")
                self._discard(key)
                item = IngestItem(source=url, error=f"store failed: {url}")
            results.append(item)
        return results

    def fetch(self, url: str):  # type: ignore[no-untyped-def]
        """Download ``url``, returning ``(body, content_type)``.

        Raises:
            FetchError: If the body exceeds ``fetch_max_bytes``
            httpx.HTTPError: On transport errors and non-2xx responses
        """
        with self.http_client.stream("GET", url) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > self.fetch_max_bytes:
                    raise FetchError(f"{url} exceeds {self.fetch_max_bytes} bytes")
                chunks.append(chunk)
            return b"".join(chunks), response.headers.get("content-type")

    def _tag_ids(self, raw_tags: Union[str, Iterable[str], None]) -> List[int]:
        names = normalize_tags(raw_tags)
        return [tag.id for tag in self.catalog.ensure_tags(names)]

    def _record(
        self,
        key: str,
        display_name: str,
        mime_type: str,
        owner_id: Optional[int],
        remote_url: Optional[str],
        tag_ids: List[int],
        source: str,
    ) -> IngestItem:
        result = ensure_max_size(self.blobs.path(key), self.max_bytes)
        image = self.catalog.create_image(
            filename=key,
            storage_path=key,
            size_bytes=result.size,
            original_name=display_name,
            mime_type=mime_type,
            owner_id=owner_id,
            remote_url=remote_url,
        )
        try:
            self.catalog.attach_tags(image.id, tag_ids)
        except CatalogUnavailableError:
            self._forget(image.id)
            raise
        logger.info(f"Stored image {image.id} from {source} ({result.size} bytes)")
        return IngestItem(
            source=source,
            id=image.id,
            token=image.token,
            size=result.size,
            mime_type=mime_type,
        )

    def _forget(self, image_id: int) -> None:
        try:
            self.catalog.delete_image(image_id)
        except CatalogUnavailableError as e:
            logger.warning(f"Could not remove half-created image {image_id}: {e}")

    def _discard(self, key: str) -> None:
        try:
            self.blobs.delete(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not remove orphaned blob {key}: {e}")
