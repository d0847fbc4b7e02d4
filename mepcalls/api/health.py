import logging

import redis
from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from mepcalls.core.config import settings
from mepcalls.core.database import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}


@router.get("/ready")
def ready():
    checks = {"database": "ok", "heartbeats": settings.heartbeat_backend}
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database not ready: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    finally:
        db.close()
    if settings.heartbeat_backend == "redis":
        try:
            redis.Redis.from_url(settings.redis_url).ping()
        except redis.RedisError as exc:
            logger.error("Redis not ready: %s", exc)
            raise HTTPException(status_code=503, detail="Redis unavailable") from exc
    return {"status": "ready", "checks": checks}
