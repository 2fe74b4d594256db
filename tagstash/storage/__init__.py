"""Blob storage backends."""

from .blob_store import BlobStore

__all__ = ["BlobStore"]
