"""Strategy config validation endpoints."""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from src.trading_ops.api.deps import get_config_presets
from src.trading_ops.models.schemas import ValidateRequest
from src.trading_ops.monitoring.tracing import operation_span, set_span_attributes
from src.trading_ops.validation.config_differ import compare_configs
from src.trading_ops.validation.config_validator import validate_config
from src.trading_ops.validation.presets import ConfigPresetStore

router = APIRouter()


@router.post("/validate")
async def validate(
    body: ValidateRequest,
    presets: ConfigPresetStore = Depends(get_config_presets),
) -> Dict[str, Any]:
    """
    Validate a submitted config, optionally diffing it against a preset.

    ``diff`` is null when ``compareWith`` is absent or names no preset.
    """
    with operation_span("config.validate", compare_with=body.compare_with) as span:
        result = validate_config(body.config)

        diff = None
        if body.compare_with:
            baseline = presets.get(body.compare_with)
            if baseline is None:
                logger.warning(f"Unknown comparison preset {body.compare_with!r}, skipping diff")
            else:
                diff = compare_configs(baseline, body.config).to_dict()

        set_span_attributes(
            span,
            config_name=body.config.name,
            config_valid=result.valid,
            error_count=len(result.errors),
            warning_count=len(result.warnings),
        )
        return {"validation": result.to_dict(), "diff": diff}


@router.get("/validate")
async def validate_preset(
    env: str = Query(default="production"),
    presets: ConfigPresetStore = Depends(get_config_presets),
) -> Dict[str, Any]:
    config = presets.get(env)
    if config is None:
        raise HTTPException(status_code=404, detail="Environment not found")

    return {"config": config.to_dict(), "validation": validate_config(config).to_dict()}
