from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

SERVICE = {"service": "clinicflow", "version": "0.1.0"}


@router.get("/health")
async def health_check():
    return {"status": "ok", **SERVICE}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a round trip to the database."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database readiness check failed")
        return JSONResponse(status_code=503, content={"status": "unavailable", **SERVICE})
    return {"status": "ready", **SERVICE}
