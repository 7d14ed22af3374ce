"""
Health endpoints for operational monitoring.

Lightweight checks that expose no secrets.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from aisaint.core.database import check_connection, missing_tables

logger = logging.getLogger("aisaint")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness check: DB connectivity + required tables."""
    engine = request.app.state.engine
    try:
        if not await check_connection(engine):
            raise RuntimeError("connection probe failed")
        missing = await missing_tables(engine)
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok"}
