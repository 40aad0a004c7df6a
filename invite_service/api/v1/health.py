# invite_service/api/v1/health.py

"""
Health endpoints.

- /api/v1/health       -> lightweight liveness (no DB)
- /api/v1/health/db    -> DB readiness check (small SELECT 1)
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invite_service.db.session import get_db

logger = logging.getLogger("invite.health")

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Liveness check")
def health():
    """Returns 200 as long as the process is up and routing works. Does NOT touch the database."""
    return {
        "status": "ok",
        "service": "invite-service",
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/db", summary="Database readiness check")
def health_db(db: Session = Depends(get_db)):
    """Runs `SELECT 1`; 200 when the store is reachable, 503 when not."""
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.exception("DB health check failed")
        raise HTTPException(
            status_code=503,
            detail={
                "status": "error",
                "db": "down",
                "message": "Database unreachable.",
                "error": exc.__class__.__name__,
            },
        )
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    return {
        "status": "ok",
        "db": "up",
        "latency_ms": elapsed_ms,
    }
