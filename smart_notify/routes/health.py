"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from smart_notify.config import settings
from smart_notify.db.pool import db_health_check
from smart_notify.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "smart-notify"}


@router.get("/readyz")
async def readyz():
    """Readiness check across Redis, the database pool and configuration."""
    checks = {}
    overall_ok = True

    # 1) Redis
    t0 = time.time()
    try:
        redis_ok = await fast_redis.ping()
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)

        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                }
            )

        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 3) Configuration
    config_issues = []
    if not settings.OPENAI_API_KEY:
        config_issues.append("OPENAI_API_KEY not set (fallback heuristic only)")
    if not settings.fcm_send_url() or not settings.FCM_ACCESS_TOKEN:
        config_issues.append("FCM not configured (push delivery disabled)")
    if not settings.JWT_JWKS_URL and not settings.JWT_SECRET:
        config_issues.append("No JWT verification key configured")

    # Missing reasoning or push keeps the service degraded but usable
    config_ok = bool(settings.JWT_JWKS_URL or settings.JWT_SECRET)

    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
