"""Health check endpoint.

Reports database connectivity using the manager the persistence lifespan
placed on ``app.state.database``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


async def _check_database(request: Request) -> dict[str, str]:
    manager = getattr(request.app.state, "database", None)
    if manager is None:
        return {"status": "error", "detail": "database not initialized"}
    try:
        async with manager.get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_database_unhealthy", extra={"error": str(exc)})
        return {"status": "error", "detail": type(exc).__name__}
    return {"status": "ok"}


@router.get("/healthz")
async def healthz(request: Request) -> Any:
    """Return 200 when every check passes, 503 otherwise."""
    checks = {"database": await _check_database(request)}
    all_ok = all(c["status"] == "ok" for c in checks.values())
    return JSONResponse(
        content={"status": "ok" if all_ok else "degraded", "checks": checks},
        status_code=200 if all_ok else 503,
    )
