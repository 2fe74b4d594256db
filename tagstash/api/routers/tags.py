"""Tags API router."""

from fastapi import APIRouter, Depends

from ...db.catalog import Catalog
from ..dependencies import get_catalog

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("")
def list_tags(catalog: Catalog = Depends(get_catalog)) -> dict:
    """List all tags alphabetically."""
    return {"tags": [{"id": t.id, "name": t.name} for t in catalog.list_tags()]}
