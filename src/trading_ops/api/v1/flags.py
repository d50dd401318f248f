"""Feature flag endpoints."""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.trading_ops.api.deps import get_flag_manager
from src.trading_ops.flags.flag_manager import FeatureFlagManager
from src.trading_ops.models.flags import Environment, FeatureFlagCreate, FeatureFlagUpdate

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Flag not found")


@router.get("/flags")
async def list_flags(flags: FeatureFlagManager = Depends(get_flag_manager)) -> List[Dict[str, Any]]:
    return [f.to_dict() for f in flags.get_all_flags()]


@router.get("/flags/evaluate/{key}")
async def evaluate_flag(
    key: str,
    environment: Environment = Query(default="production"),
    flags: FeatureFlagManager = Depends(get_flag_manager),
) -> Dict[str, Any]:
    return {"key": key, "environment": environment, "enabled": flags.is_enabled(key, environment)}


@router.get("/flags/{flag_id}")
async def get_flag(flag_id: str, flags: FeatureFlagManager = Depends(get_flag_manager)) -> Dict[str, Any]:
    flag = flags.get_flag(flag_id)
    if flag is None:
        raise _not_found()
    return flag.to_dict()


@router.post("/flags", status_code=status.HTTP_201_CREATED)
async def create_flag(
    body: FeatureFlagCreate,
    flags: FeatureFlagManager = Depends(get_flag_manager),
) -> Dict[str, Any]:
    return flags.create_flag(body).to_dict()


@router.patch("/flags/{flag_id}")
async def update_flag(
    flag_id: str,
    body: FeatureFlagUpdate,
    flags: FeatureFlagManager = Depends(get_flag_manager),
) -> Dict[str, Any]:
    flag = flags.update_flag(flag_id, body)
    if flag is None:
        raise _not_found()
    return flag.to_dict()


@router.delete("/flags/{flag_id}")
async def delete_flag(flag_id: str, flags: FeatureFlagManager = Depends(get_flag_manager)) -> Dict[str, Any]:
    if not flags.delete_flag(flag_id):
        raise _not_found()
    return {"success": True}


@router.post("/flags/{flag_id}/toggle")
async def toggle_flag(flag_id: str, flags: FeatureFlagManager = Depends(get_flag_manager)) -> Dict[str, Any]:
    flag = flags.toggle_flag(flag_id)
    if flag is None:
        raise _not_found()
    return flag.to_dict()
