"""
Liveness and readiness probes.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

logger = logging.getLogger("recreate")

root_router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["app_users", "price_plans", "works", "notifications"]


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(request: Request):
    """Readiness check: DB connectivity + required tables."""
    db = getattr(request.app.state, "db", None)
    if db is None or not db.check_connection():
        return JSONResponse(status_code=503, content={"status": "unavailable", "reason": "database"})

    try:
        present = set(inspect(db.engine).get_table_names())
    except Exception as e:
        logger.warning(f"Readiness table check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "reason": "database"})

    missing = [t for t in REQUIRED_TABLES if t not in present]
    if missing:
        return JSONResponse(status_code=503, content={"status": "unavailable", "missing_tables": missing})
    return {"status": "ready"}
