"""Health check endpoints."""
from fastapi import APIRouter, Request, Response, status
from prometheus_client import Gauge
from loguru import logger

from src.trading_ops.core.config import settings

router = APIRouter()

SERVICE_READY = Gauge("service_ready", "Service readiness: 1=ready, 0=not ready")


@router.get("/healthz", status_code=status.HTTP_200_OK)
async def healthz():
    """Liveness probe: is the process alive?"""
    return {
        "status": "ok",
        "version": settings.VERSION,
        "service": settings.PROJECT_NAME,
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
async def ready(request: Request, response: Response):
    """
    Readiness probe: can the service drive canary deployments?

    Checks:
    - Canary engine constructed
    - Tick scheduler running
    """
    engine = getattr(request.app.state, "canary_engine", None)
    checks = {
        "canary_engine": engine is not None,
        "scheduler_running": engine is not None and engine.scheduler.running,
    }

    is_ready = all(checks.values())
    SERVICE_READY.set(1 if is_ready else 0)

    if not is_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(f"Service NOT READY: {checks}")
        return {
            "status": "not_ready",
            "checks": checks,
        }

    return {
        "status": "ready",
        "checks": checks,
    }
