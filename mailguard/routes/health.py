# mailguard/routes/health.py
"""
Health check endpoints with reputation store monitoring.
"""

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mailguard.config import settings
from mailguard.db.pool import db_health_check
from mailguard.services.infrastructure.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "mailguard"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check for the reputation store and whichever backends are configured.
    """
    cache = getattr(request.app.state, "reputation_cache", None)
    checks = {
        "reputation_cache": {"ok": cache is not None, "backend": cache.backend if cache else None},
        "mailbox": {"ok": True, "configured": getattr(request.app.state, "mailbox", None) is not None},
    }
    overall_ok = cache is not None

    if settings.REDIS_URL:
        t0 = time.time()
        redis_ok = await fast_redis.ping()
        checks["redis"] = {"ok": redis_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
        overall_ok = overall_ok and redis_ok

    if settings.DATABASE_URL:
        t0 = time.time()
        db_health = await db_health_check()
        is_healthy = bool(db_health.get("healthy", False))
        checks["database"] = {"ok": is_healthy, "latency_ms": round((time.time() - t0) * 1000, 1)}
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy

    body = {"status": "ready" if overall_ok else "degraded", "checks": checks}
    return JSONResponse(status_code=200 if overall_ok else 503, content=body)
