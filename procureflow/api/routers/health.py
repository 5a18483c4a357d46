"""Health check endpoints for ProcureFlow.

Provides health probes:
- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (can approvals be processed?)

Readiness checks database connectivity and the Redis broker used for
delegation sweeps.
"""

import logging
from datetime import datetime
from typing import Any, Dict

import redis
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procureflow import __version__
from procureflow.api.deps import get_db
from procureflow.core.config import get_settings

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy", "dialect": db.get_bind().dialect.name}
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


def check_redis() -> Dict[str, Any]:
    """Check Redis broker connectivity."""
    try:
        r = redis.from_url(
            get_settings().celery_broker,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        r.ping()
        info = r.info("server")
        r.close()
        return {"status": "healthy", "version": info.get("redis_version", "unknown")}
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/health/ready")
def readiness_probe(db: Session = Depends(get_db)):
    """
    Readiness probe.

    Returns 503 when the database or the broker is unreachable.
    """
    checks = {
        "database": check_database(db),
        "redis": check_redis(),
    }
    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    content = {
        "status": "not_ready" if unhealthy else "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if unhealthy:
        content["failed"] = unhealthy
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if unhealthy else status.HTTP_200_OK,
        content=content,
    )
