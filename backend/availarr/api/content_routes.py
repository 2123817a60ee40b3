"""
Content API Routes

Read-only access to the availability verdicts.

Endpoints:
- GET /api/content/{kind}: available titles sorted by popularity, paginated
- GET /api/content/{kind}/{tmdb_id}: one title with its verdict (and seasons)
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from availarr.database import get_db
from availarr.models.content import ContentKind
from availarr.schemas.responses import ContentListResponse, ContentResponse
from availarr.services.content_store import ContentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/content", tags=["content"])


def _parse_kind(kind: str) -> ContentKind:
    try:
        return ContentKind.parse(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown content kind: {kind}")


@router.get("/{kind}", response_model=ContentListResponse)
async def list_content(
    kind: str,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db)
):
    """
    List available titles of one kind, most popular first.

    Args:
        kind: movie or tv
        page: Page number (1-based)
        limit: Items per page
    """
    content_kind = _parse_kind(kind)
    records, total_pages = ContentStore(db).list_available(content_kind, page=page, limit=limit)
    return ContentListResponse(
        results=[ContentResponse(**record.to_dict()) for record in records],
        page=page,
        total_pages=total_pages,
    )


@router.get("/{kind}/{tmdb_id}", response_model=ContentResponse)
async def get_content(kind: str, tmdb_id: int, db: Session = Depends(get_db)):
    """
    Get one title and its latest verdict.

    Raises:
        HTTPException 404: If the title has never been recorded
    """
    content_kind = _parse_kind(kind)
    record = ContentStore(db).find_one(content_kind, tmdb_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No record for {content_kind.value} {tmdb_id}")
    return ContentResponse(**record.to_dict(include_seasons=content_kind is ContentKind.SERIES))
