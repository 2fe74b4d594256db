"""Shared test fixtures.

Every test gets its own data directory with a fresh SQLite catalog and
upload directory, so tests never share state.
"""

import io
from pathlib import Path
from typing import Callable, Generator, List, Optional

import numpy as np
import pytest
from PIL import Image
from sqlmodel import Session

from tagstash.db import create_db_engine, init_db, session_factory
from tagstash.db.catalog import Catalog
from tagstash.db.config import Settings
from tagstash.models.image import Image as ImageRecord
from tagstash.storage import BlobStore


def noise_image(width: int, height: int, mode: str = "RGB", seed: int = 0) -> Image.Image:
    """Random noise compresses badly, which makes oversized test images easy."""
    rng = np.random.default_rng(seed)
    if mode == "L":
        arr = rng.integers(0, 256, size=(height, width), dtype=np.uint8)
    else:
        arr = rng.integers(0, 256, size=(height, width, len(mode)), dtype=np.uint8)
    return Image.fromarray(arr)


@pytest.fixture
def noise() -> Callable[..., Image.Image]:
    return noise_image


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return Settings(data_dir=str(data_dir), _env_file=None)


@pytest.fixture
def db_engine(settings: Settings):  # type: ignore[no-untyped-def]
    """Create a SQLite engine with all tables."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:  # type: ignore[no-untyped-def]
    """Create a database session with automatic rollback."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def catalog(db_engine) -> Catalog:  # type: ignore[no-untyped-def]
    return Catalog(session_factory(db_engine))


@pytest.fixture
def blobs(settings: Settings) -> BlobStore:
    return BlobStore(settings.uploads_dir)


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a noise image to ``tmp_path / name``."""

    def factory(
        name: str,
        width: int = 600,
        height: int = 400,
        fmt: Optional[str] = None,
        mode: str = "RGB",
        seed: int = 0,
        **save_kwargs,
    ) -> Path:
        path = tmp_path / name
        noise_image(width, height, mode, seed).save(path, format=fmt, **save_kwargs)
        return path

    return factory


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    """Factory returning encoded noise JPEG bytes."""

    def factory(width: int = 600, height: int = 400, quality: int = 95, seed: int = 0) -> bytes:
        buf = io.BytesIO()
        noise_image(width, height, seed=seed).save(buf, format="JPEG", quality=quality)
        return buf.getvalue()

    return factory


@pytest.fixture
def store_image(catalog: Catalog, blobs: BlobStore) -> Callable[..., ImageRecord]:
    """Write a small blob and create its catalog record with tags."""

    def factory(
        tags: Optional[List[str]] = None,
        data: bytes = b"not really an image",
        ext: str = ".jpg",
        owner_id: Optional[int] = None,
        original_name: Optional[str] = None,
        mime_type: Optional[str] = "image/jpeg",
    ) -> ImageRecord:
        key = blobs.new_key(ext)
        blobs.write(key, data)
        image = catalog.create_image(
            filename=key,
            storage_path=key,
            size_bytes=len(data),
            original_name=original_name or f"photo{ext}",
            mime_type=mime_type,
            owner_id=owner_id,
        )
        if tags:
            catalog.attach_tags(image.id, [t.id for t in catalog.ensure_tags(tags)])
        return image

    return factory
