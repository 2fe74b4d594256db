"""Local filesystem blob store.

Blobs are addressed by a key relative to the store root; the catalog
records the key, never the absolute path.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class BlobStore:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, key: str) -> Path:
        """Resolve a key to a path inside the store root."""
        candidate = (self.root / key).resolve()
        root = self.root.resolve()
        if candidate != root and root not in candidate.parents:
            raise ValueError(f"Blob key escapes store root: {key!r}")
        return candidate

    def new_key(self, extension: Optional[str] = None) -> str:
        """Generate a fresh, unique key carrying ``extension``."""
        ext = extension or ""
        if ext and not ext.startswith("."):
            ext = f".{ext}"
        return f"{uuid.uuid4().hex}{ext.lower()}"

    def exists(self, key: str) -> bool:
        return self.path(key).is_file()

    def read(self, key: str) -> bytes:
        return self.path(key).read_bytes()

    def write(self, key: str, data: bytes) -> Path:
        """Write ``data`` durably under ``key``, replacing any previous blob."""
        path = self.path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.part")
        try:
            with open(tmp, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        return path

    def delete(self, key: str) -> bool:
        """Remove a blob.

        Returns:
            True if a file was removed, False if it did not exist
        """
        try:
            self.path(key).unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed blob {key}")
        return True
