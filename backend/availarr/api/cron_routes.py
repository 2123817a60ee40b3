"""
Cron API Routes

Janitor endpoints hit by an external scheduler.

Endpoints:
- GET /api/cron: delete records not checked for CLEANUP_MAX_AGE_DAYS days
- GET /api/refresh: same sweep, with a timestamp and no-cache headers
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from availarr.config import Config
from availarr.database import get_db
from availarr.jobs.maintenance import cleanup_old_content
from availarr.schemas.responses import CleanupResponse
from availarr.services.content_store import ContentStore
from availarr.services.exceptions import StoreWriteError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cron"])


def _sweep(db: Session) -> int:
    try:
        return cleanup_old_content(ContentStore(db), Config.CLEANUP_MAX_AGE_DAYS)
    except StoreWriteError as e:
        logger.error(f"✗ Cleanup failed: {e}")
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/cron", response_model=CleanupResponse)
async def cron_cleanup(db: Session = Depends(get_db)):
    """Delete records older than the retention window."""
    deleted = _sweep(db)
    return CleanupResponse(deleted=deleted, max_age_days=Config.CLEANUP_MAX_AGE_DAYS)


@router.get("/refresh", response_model=CleanupResponse)
async def refresh_cleanup(response: Response, db: Session = Depends(get_db)):
    """Same sweep as /api/cron, never cached by intermediaries."""
    deleted = _sweep(db)
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    return CleanupResponse(
        deleted=deleted,
        max_age_days=Config.CLEANUP_MAX_AGE_DAYS,
        timestamp=datetime.utcnow().isoformat(),
    )
