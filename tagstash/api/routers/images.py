"""Images API router.

Handles all image operations:
- Resolving one image by tag filter (newest or random)
- Direct access by id and by public token
- Listing live images
- Local upload and remote URL ingestion
- Deletion by owner or admin
"""

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel

from ...analysis.naming import content_disposition, resolve_mime_type
from ...analysis.tags import normalize_tags
from ...core.cleanup import purge_image
from ...core.ingestion import IngestionPipeline, IngestItem
from ...core.retrieval import Reconciler, ResolveMode, ResolveOutcome
from ...db.catalog import Catalog
from ...db.config import Settings
from ...models.image import ImageRead
from ...storage import BlobStore
from ..dependencies import (
    Caller,
    get_blobs,
    get_caller,
    get_catalog,
    get_pipeline,
    get_reconciler,
    get_settings,
    require_caller,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "No matching image found"

router = APIRouter(prefix="/images", tags=["images"])
public_router = APIRouter(tags=["public"])


class UrlUpload(BaseModel):
    """Body of a remote URL ingestion request."""

    urls: List[str] = []
    tags: Union[str, List[str], None] = None


def _public_url(request: Request, settings: Settings, token: str) -> str:
    base = settings.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/i/{token}"


def _image_response(outcome: ResolveOutcome) -> Response:
    """Send the resolved image bytes, or a plain-text 404."""
    if not outcome.found or outcome.path is None:
        return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)
    image = outcome.image
    try:
        data = outcome.path.read_bytes()
    except FileNotFoundError:
        # Removed between the existence check and the read
        return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)
    mime = resolve_mime_type(image.mime_type, image.original_name, image.filename)
    return Response(
        content=data,
        media_type=mime,
        headers={"Content-Disposition": content_disposition(image.original_name or image.filename, mime)},
    )


def _item_response(request: Request, settings: Settings, item: IngestItem) -> dict:
    if not item.ok:
        return {"error": item.error}
    return {"id": item.id, "url": _public_url(request, settings, item.token)}


@router.get("")
def get_images(
    tags: Optional[List[str]] = Query(None),
    random: bool = False,
    reconciler: Reconciler = Depends(get_reconciler),
) -> Response:
    """Return one image matching the tag filter, newest or random."""
    mode = ResolveMode.random if random else ResolveMode.newest
    outcome = reconciler.resolve(normalize_tags(tags), mode)
    if outcome.purged:
        logger.info(f"Purged {len(outcome.purged)} stale records while resolving")
    return _image_response(outcome)


@router.get("/list", response_model=List[ImageRead])
def list_images(
    request: Request,
    tags: Optional[List[str]] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    reconciler: Reconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
) -> List[ImageRead]:
    """List live images newest first."""
    live = reconciler.list_live(normalize_tags(tags), limit=limit, offset=offset)
    return [
        ImageRead(
            id=entry.image.id,
            filename=entry.image.filename,
            tags=entry.tags,
            url=_public_url(request, settings, entry.image.token),
            created_at=entry.image.created_at,
        )
        for entry in live
    ]


@router.get("/{image_id}/raw")
def get_raw_image(
    image_id: int,
    reconciler: Reconciler = Depends(get_reconciler),
) -> Response:
    """Get an image's bytes by id."""
    return _image_response(reconciler.resolve_by_id(image_id))


@public_router.get("/i/{token}")
def get_public_image(
    token: str,
    reconciler: Reconciler = Depends(get_reconciler),
) -> Response:
    """Get an image's bytes by its public token."""
    return _image_response(reconciler.resolve_by_token(token))


@router.post("/upload")
def upload_local(
    request: Request,
    files: Optional[List[UploadFile]] = File(None),
    tags: Optional[List[str]] = Form(None),
    caller: Optional[Caller] = Depends(get_caller),
    pipeline: IngestionPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Upload one or more image files with optional tags."""
    if not files:
        raise HTTPException(status_code=400, detail="No files selected")

    staged = []
    # one slot per upload; None is filled from the ingested results in order
    slots: List[Optional[IngestItem]] = []
    for upload in files:
        try:
            staged.append(
                pipeline.stage_upload(upload.file.read(), upload.filename, upload.content_type)
            )
            slots.append(None)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not stage upload {upload.filename}: {e}")
            slots.append(IngestItem(source=upload.filename or "", error=f"store failed: {upload.filename}"))

    ingested = iter(pipeline.ingest_local(staged, tags, owner_id=caller.id if caller else None))
    items = [slot if slot is not None else next(ingested) for slot in slots]
    return {"created": [_item_response(request, settings, i) for i in items]}


@router.post("/upload-url")
def upload_by_url(
    request: Request,
    body: UrlUpload,
    caller: Optional[Caller] = Depends(get_caller),
    pipeline: IngestionPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Fetch images from remote URLs with optional tags."""
    if not body.urls:
        raise HTTPException(status_code=400, detail="No URLs provided")
    items = pipeline.ingest_urls(body.urls, body.tags, owner_id=caller.id if caller else None)
    return {"created": [_item_response(request, settings, i) for i in items]}


@router.delete("/{image_id}")
def delete_image(
    image_id: int,
    caller: Caller = Depends(require_caller),
    catalog: Catalog = Depends(get_catalog),
    blobs: BlobStore = Depends(get_blobs),
) -> dict:
    """Delete an image; only its owner or an admin may do so."""
    image = catalog.get_image(image_id)
    if not image:
        raise HTTPException(status_code=404, detail="Image not found")
    if not caller.may_delete(image.owner_id):
        raise HTTPException(status_code=403, detail="Not allowed to delete this image")

    outcome = purge_image(catalog, blobs, image)
    if outcome.catalog_error:
        raise HTTPException(status_code=500, detail="Storage unavailable")
    return {"deleted": image_id}
