"""Request-scoped access to the per-process service objects on ``app.state``."""
from fastapi import Request

from src.trading_ops.connectivity.health_checker import HealthChecker
from src.trading_ops.deployment.canary_engine import CanaryEngine
from src.trading_ops.flags.flag_manager import FeatureFlagManager
from src.trading_ops.validation.presets import ConfigPresetStore


def get_canary_engine(request: Request) -> CanaryEngine:
    return request.app.state.canary_engine


def get_health_checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker


def get_flag_manager(request: Request) -> FeatureFlagManager:
    return request.app.state.flag_manager


def get_config_presets(request: Request) -> ConfigPresetStore:
    return request.app.state.config_presets
