"""
agenda/api/health.py

Health and metrics endpoints for operational monitoring.
"""

import logging

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from agenda.core.database import check_connection
from agenda.core.metrics import METRICS
from agenda.realtime.hub import hub

logger = logging.getLogger("agenda")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Readiness check: DB connectivity plus live-update subscriber count."""
    db_ok = check_connection()
    body = {
        "status": "ok" if db_ok else "unavailable",
        "db": db_ok,
        "sse_subscribers": await hub.get_global_count(),
    }
    if not db_ok:
        logger.warning("readyz.db_unavailable")
        return JSONResponse(status_code=503, content=body)
    return body


@router.get("/metrics", tags=["metrics"])
def metrics_endpoint():
    """Prometheus text exposition of in-process metrics."""
    return Response(content=METRICS.export_prometheus(), media_type="text/plain")
