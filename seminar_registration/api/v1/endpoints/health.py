# seminar_registration/api/v1/endpoints/health.py
"""
Health check endpoints for monitoring system status.
"""
import redis
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from seminar_registration.api import deps
from seminar_registration.db.redis import get_redis_client
from seminar_registration.scheduler import get_scheduler_status

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check():
    """Basic health check - API is responding."""
    return {"status": "healthy", "service": "seminar-registration"}


@router.get("/db")
def database_health(db: Session = Depends(deps.get_db)):
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "component": "database"}
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database unhealthy: {str(e)}",
        )


@router.get("/redis")
def redis_health():
    """Check Redis connectivity. Redis is optional: without it jobs run unlocked."""
    client = get_redis_client()
    if client is None:
        return {"status": "disabled", "component": "redis"}
    try:
        client.ping()
        return {"status": "healthy", "component": "redis"}
    except redis.RedisError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Redis unhealthy: {str(e)}",
        )


@router.get("/scheduler")
def scheduler_health():
    """Periodic jobs and their next run times."""
    return get_scheduler_status()
