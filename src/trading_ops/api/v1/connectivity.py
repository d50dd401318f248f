"""Endpoint and feed connectivity endpoints."""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from src.trading_ops.api.deps import get_health_checker
from src.trading_ops.connectivity.feeds import generate_feed_statuses
from src.trading_ops.connectivity.health_checker import HealthChecker, MONITORED_ENDPOINTS

router = APIRouter()


@router.get("/connectivity")
async def connectivity_status(checker: HealthChecker = Depends(get_health_checker)) -> Dict[str, Any]:
    """Run one round of checks, then report rolling health, SLA and feeds."""
    await checker.check_all(MONITORED_ENDPOINTS)

    endpoints = [checker.get_endpoint_health(name) for name in MONITORED_ENDPOINTS]
    sla = []
    for name in MONITORED_ENDPOINTS:
        metrics = checker.get_sla_metrics(name)
        sla.append({"endpoint": name, "metrics": metrics.to_dict() if metrics else None})

    return {
        "endpoints": [e.to_dict() for e in endpoints if e is not None],
        "sla": sla,
        "feeds": [f.to_dict() for f in generate_feed_statuses()],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/connectivity")
async def rerun_connectivity(checker: HealthChecker = Depends(get_health_checker)) -> Dict[str, Any]:
    """Clear check history and run a fresh round."""
    checker.clear_history()
    checks = await checker.check_all(MONITORED_ENDPOINTS)
    return {
        "message": "Health checks completed",
        "checks": [c.to_dict() for c in checks],
    }
