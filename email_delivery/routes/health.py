"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "email-delivery"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness check covering the cache backend and email providers."""
    checks = {}
    overall_ok = True

    # 1) Cache backend
    cache = getattr(request.app.state, "email_cache", None)
    t0 = time.time()
    try:
        cache_ok = bool(cache is not None and await cache.ping())
        checks["redis"] = {"ok": cache_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
        overall_ok = overall_ok and cache_ok
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Providers - at least one must be usable
    service = getattr(request.app.state, "email_service", None)
    if service is None:
        checks["providers"] = {"ok": False, "error": "Email service not initialized"}
        overall_ok = False
    else:
        providers = await service.provider_status()
        providers_ok = any(provider["available"] for provider in providers)
        checks["providers"] = {
            "ok": providers_ok,
            "providers": providers,
            "retry_queue_size": service.queue_size,
        }
        overall_ok = overall_ok and providers_ok

    return {"overall_ok": overall_ok, "checks": checks}
