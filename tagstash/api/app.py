"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tagstash import __version__
from tagstash.core import IngestionPipeline, Reconciler
from tagstash.db import create_db_engine, init_db, session_factory
from tagstash.db.catalog import Catalog, CatalogUnavailableError
from tagstash.db.config import Settings
from tagstash.db.config import settings as default_settings
from tagstash.storage import BlobStore

from .routers import images, tags

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application and its shared components.

    The catalog, blob store, reconciler and ingestion pipeline are created
    once here and shared by every request through ``app.state``.
    """
    settings = settings or default_settings
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(settings.database_url, echo=settings.sql_echo)
    init_db(engine)
    catalog = Catalog(session_factory(engine))
    blobs = BlobStore(settings.uploads_dir)
    pipeline = IngestionPipeline(
        catalog,
        blobs,
        max_bytes=settings.max_image_bytes,
        fetch_timeout=settings.fetch_timeout_seconds,
        fetch_max_bytes=settings.fetch_max_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
        logger.info(f"Serving images from {blobs.root}")
        yield
        pipeline.close()
        engine.dispose()

    app = FastAPI(title="tagstash", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.catalog = catalog
    app.state.blobs = blobs
    app.state.reconciler = Reconciler(
        catalog, blobs, max_random_attempts=settings.random_max_attempts
    )
    app.state.pipeline = pipeline

    @app.exception_handler(CatalogUnavailableError)
    async def catalog_unavailable(request: Request, exc: CatalogUnavailableError) -> JSONResponse:
        logger.error(f"Catalog unavailable during {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})

    @app.exception_handler(OSError)
    async def blob_store_failed(request: Request, exc: OSError) -> JSONResponse:
        logger.error(f"Blob store failure during {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})

    @app.get("/healthz")
    def health() -> dict:
        return {"ok": True, "images": catalog.count_images()}

    app.include_router(images.router, prefix="/api")
    app.include_router(images.public_router)
    app.include_router(tags.router, prefix="/api")
    return app
