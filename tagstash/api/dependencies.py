"""Request dependencies: shared components and the caller identity."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from tagstash.core.ingestion import IngestionPipeline
from tagstash.core.retrieval import Reconciler
from tagstash.db.catalog import Catalog
from tagstash.db.config import Settings
from tagstash.storage import BlobStore

ADMIN_ROLE = "admin"


@dataclass
class Caller:
    """Identity asserted by the authentication layer in front of the API."""

    id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def may_delete(self, owner_id: Optional[int]) -> bool:
        return self.is_admin or (owner_id is not None and owner_id == self.id)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog


def get_blobs(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_caller(
    x_caller_id: Optional[str] = Header(None),
    x_caller_role: Optional[str] = Header(None),
) -> Optional[Caller]:
    """Read the caller identity, None for anonymous requests."""
    if not x_caller_id:
        return None
    try:
        caller_id = int(x_caller_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller identity")
    return Caller(id=caller_id, role=(x_caller_role or "user").strip().lower())


def require_caller(
    x_caller_id: Optional[str] = Header(None),
    x_caller_role: Optional[str] = Header(None),
) -> Caller:
    caller = get_caller(x_caller_id, x_caller_role)
    if caller is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return caller
