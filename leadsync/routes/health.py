# leadsync/routes/health.py
"""
Health check endpoints: liveness plus a readiness check over the durable
store, the record store configuration and the session.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from leadsync.auth.verify import get_container
from leadsync.container import ServiceContainer
from leadsync.infrastructure.security.encryption_service import validate_encryption_config

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "leadsync"}


@router.get("/readyz")
async def readyz(container: ServiceContainer = Depends(get_container)):
    """Readiness check across the pipeline's dependencies."""
    checks = {}
    overall_ok = True

    # 1) Durable store
    t0 = time.time()
    try:
        store_ok = await container.store.ping()
        checks["store"] = {
            "ok": bool(store_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(store_ok)
    except Exception as e:
        checks["store"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Record store configuration (no network call)
    sheets_ok = container.config.sheets_configured()
    checks["sheets"] = {
        "ok": sheets_ok,
        "writable": bool(container.config.SHEETS_SERVICE_ACCOUNT_JSON),
    }
    if not sheets_ok:
        checks["sheets"]["error"] = "Spreadsheet id or credentials missing"
    overall_ok = overall_ok and sheets_ok

    # 3) Session encryption key
    encryption_ok = validate_encryption_config(container.session_manager.encryption_key)
    checks["encryption"] = {"ok": encryption_ok}
    overall_ok = overall_ok and encryption_ok

    # 4) Session and queue, informational only
    checks["session"] = {"authenticated": container.session_manager.is_authenticated()}
    try:
        checks["mutation_queue"] = await container.queue.stats()
    except Exception as e:
        checks["mutation_queue"] = {"error": f"{type(e).__name__}: {e}"}

    sync_state = container.sync.state
    checks["sync"] = {
        "last_sync_at": sync_state.last_sync_at.isoformat() if sync_state.last_sync_at else None,
        "error": sync_state.error.kind if sync_state.error else None,
    }

    body = {"status": "ready" if overall_ok else "degraded", "checks": checks}
    return JSONResponse(status_code=200 if overall_ok else 503, content=body)
