"""Canary deployment endpoints."""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger

from src.trading_ops.api.deps import get_canary_engine
from src.trading_ops.core.config import settings
from src.trading_ops.core.limiter import limiter
from src.trading_ops.deployment.canary_engine import CanaryEngine, DeploymentNotFoundError
from src.trading_ops.models.schemas import CanaryConfig, RollbackRequest
from src.trading_ops.monitoring.tracing import operation_span, set_span_attributes

router = APIRouter()


@router.post("/canary", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.CANARY_START_RATE_LIMIT)
async def start_deployment(
    request: Request,
    body: CanaryConfig,
    engine: CanaryEngine = Depends(get_canary_engine),
) -> Dict[str, Any]:
    """
    Start a staged canary rollout.

    Every call creates a new deployment; do not retry blindly.
    """
    with operation_span(
        "canary.start_deployment",
        canary_name=body.name,
        canary_version=body.version,
        canary_environment=body.environment,
        canary_stages=len(body.stages),
    ) as span:
        try:
            deployment = engine.start_deployment(body)
        except Exception as e:
            logger.error(f"Failed to start canary {body.name} {body.version}: {e}")
            raise HTTPException(
                status_code=500,
                detail="Failed to start canary deployment",
            )

        set_span_attributes(span, deployment_id=deployment.id)
        return deployment.to_dict()


@router.get("/canary")
async def list_deployments(engine: CanaryEngine = Depends(get_canary_engine)) -> List[Dict[str, Any]]:
    """All deployments, newest first."""
    return [d.to_dict() for d in engine.get_all_deployments()]


@router.get("/canary/{deployment_id}")
async def get_deployment(
    deployment_id: str,
    engine: CanaryEngine = Depends(get_canary_engine),
) -> Dict[str, Any]:
    deployment = engine.get_deployment(deployment_id)
    if deployment is None:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return deployment.to_dict()


@router.post("/canary/rollback")
async def rollback_deployment(
    body: RollbackRequest,
    engine: CanaryEngine = Depends(get_canary_engine),
) -> Dict[str, Any]:
    with operation_span(
        "canary.rollback_deployment",
        deployment_id=body.deployment_id,
        rollback_reason=body.reason,
    ) as span:
        try:
            deployment = engine.rollback_deployment(body.deployment_id, body.reason)
        except DeploymentNotFoundError as e:
            logger.warning(f"Rollback requested for unknown deployment {body.deployment_id}")
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            logger.error(f"Rollback of {body.deployment_id} failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to rollback deployment")

        set_span_attributes(span, deployment_status=deployment.status.value)
        return deployment.to_dict()
