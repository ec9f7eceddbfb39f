"""
FastAPI + Uvicorn ASGI application for Kubernetes deployment.

Runs cert-sync as a web service: the watcher and requeue scheduler run in
background threads while Uvicorn serves probe endpoints. Uvicorn handles
SIGTERM; the lifespan shutdown cancels in-flight reconciliations and
drains the scheduler.

Entry point for production: uvicorn cert_sync.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from cert_sync import __version__
from cert_sync.config import AppSettings
from cert_sync.domain.models import ReconcileOutcome, SecretRef
from cert_sync.main import Runtime, build_runtime, configure_structlog

# ─────────────────────── Global State ───────────────────────
# Set during app startup and read by the probes.

_runtime: Runtime | None = None
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager — runs on startup and shutdown.

    Startup: load settings, build the runtime, start scheduler and watcher.
    Shutdown: cancel in-flight work and stop both.
    """
    global _runtime, _error_message

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        namespace=settings.kubernetes.namespace or "*",
        workers=settings.workers,
    )

    try:
        runtime = build_runtime(settings)
        runtime.start()
    except Exception as e:
        _error_message = f"Failed to initialize controller: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    _runtime = runtime
    log.info("asgi.startup_complete")

    yield  # ← App is running here; Uvicorn handles requests

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    # Blocking joins run off the event loop.
    await asyncio.to_thread(runtime.stop)
    log.info("asgi.shutdown_complete")


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="cert-sync",
    description="Synchronize cert-manager TLS secrets to AWS Certificate Manager",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health")
async def health() -> JSONResponse:
    """
    Kubernetes liveness probe.

    Returns 200 while the watcher thread is alive and startup succeeded,
    503 otherwise.
    """
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )

    if _runtime is None or not _runtime.watcher_alive:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "watcher thread not running"},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "healthy", "watcher_running": True},
    )


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Kubernetes readiness probe.

    Returns 202 while starting, 503 on a startup error, 200 once the
    scheduler is running.
    """
    if _error_message:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": _error_message},
        )

    if _runtime is None or not _runtime.scheduler.running:
        return JSONResponse(
            status_code=202,
            content={"status": "starting"},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "ready", "watcher_running": _runtime.watcher_alive},
    )


@app.get("/info")
async def info() -> dict[str, Any]:
    """Application metadata and scheduler state, for debugging."""
    return {
        "name": "cert-sync",
        "version": __version__,
        "watcher_running": _runtime is not None and _runtime.watcher_alive,
        "scheduler_running": _runtime is not None and _runtime.scheduler.running,
        "pending_reconciliations": len(_runtime.scheduler.pending()) if _runtime else 0,
        "has_error": _error_message is not None,
    }


def _outcome_body(outcome: ReconcileOutcome) -> dict[str, Any]:
    requeue = outcome.requeue_after.total_seconds() if outcome.requeue_after else None
    if outcome.failure is not None:
        return {
            "status": "failed",
            "error_code": outcome.failure.code.value,
            "message": outcome.failure.message,
            "requeue_after_seconds": requeue,
        }
    if outcome.action is None:
        return {"status": "skipped", "requeue_after_seconds": requeue}
    return {
        "status": "success",
        "action": outcome.action.value,
        "certificate_arn": outcome.certificate_arn,
        "requeue_after_seconds": requeue,
    }


@app.post("/reconcile/{namespace}/{name}")
async def reconcile(namespace: str, name: str) -> JSONResponse:
    """
    Reconcile one secret immediately.

    Intended for debugging and for forcing a sync after a manual change,
    without waiting for a watch event or requeue. The outcome's requeue
    request is honoured as for any scheduled pass.

    Returns 200 on success or skip, 500 with the error code on failure,
    503 if the controller is not initialized yet.
    """
    if _runtime is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "reason": "Controller not initialized"},
        )

    ref = SecretRef(namespace, name)
    log.info("trigger.manual_start", secret=str(ref), source="REST")

    outcome = await asyncio.to_thread(_runtime.scheduler.run_once, ref)
    body = _outcome_body(outcome)
    return JSONResponse(status_code=200 if outcome.succeeded else 500, content=body)


if __name__ == "__main__":
    # For local testing: python -m uvicorn cert_sync.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "cert_sync.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
