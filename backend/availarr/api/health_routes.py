"""
Probe endpoints for the orchestrator.

/health/live answers as long as the process serves requests. /health/ready
also needs the content store: it runs a trivial query and reports how many
records are stored, or 503 when the database cannot be reached.
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from availarr.database import get_db
from availarr.services.content_store import ContentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness_probe():
    return {"status": "alive"}


@router.get("/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """200 with the stored record count, 503 when the store is down."""
    try:
        db.execute(text("SELECT 1"))
        records = ContentStore(db).count()
    except SQLAlchemyError as e:
        logger.error(f"✗ Content store not reachable: {e}")
        return JSONResponse(status_code=503, content={"status": "not_ready", "reason": str(e)})

    return {"status": "ready", "database": "connected", "records": records}
