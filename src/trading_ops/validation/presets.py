"""Named strategy configuration presets.

``production`` and ``staging`` are healthy reference configs used as
diff baselines; ``invalid`` deliberately breaks most validation rules.
"""
from typing import Any, Dict, List, Optional

from src.trading_ops.models.strategy import StrategyConfig

PRESETS: Dict[str, Dict[str, Any]] = {
    "production": {
        "name": "momentum-strategy-v2",
        "version": "2.1.0",
        "enabled": True,
        "riskLimits": [
            {"symbol": "AAPL", "maxNotional": 5_000_000, "maxPosition": 10_000, "maxOrderSize": 1_000, "enabled": True},
            {"symbol": "MSFT", "maxNotional": 3_000_000, "maxPosition": 8_000, "maxOrderSize": 800, "enabled": True},
            {"symbol": "GOOGL", "maxNotional": 4_000_000, "maxPosition": 5_000, "maxOrderSize": 500, "enabled": True},
        ],
        "venues": [
            {"name": "NYSE", "enabled": True, "apiEndpoint": "https://api.nyse.example.com", "timeout": 2000, "maxRetries": 3},
            {"name": "NASDAQ", "enabled": True, "apiEndpoint": "https://api.nasdaq.example.com", "timeout": 1500, "maxRetries": 3},
            {"name": "BATS", "enabled": False, "apiEndpoint": "https://api.bats.example.com", "timeout": 2000, "maxRetries": 2},
        ],
        "routing": [
            {"symbol": "AAPL", "venue": "NASDAQ", "priority": 1, "conditions": {"minLiquidity": 100_000}},
            {"symbol": "MSFT", "venue": "NASDAQ", "priority": 1, "conditions": {"minLiquidity": 80_000}},
            {"symbol": "GOOGL", "venue": "NASDAQ", "priority": 1, "conditions": {"minLiquidity": 50_000}},
        ],
        "parameters": {
            "lookbackPeriod": 20,
            "entryThreshold": 0.02,
            "exitThreshold": 0.01,
            "maxHoldingPeriod": 300,
        },
    },
    "staging": {
        "name": "momentum-strategy-v2",
        "version": "2.2.0-beta",
        "enabled": True,
        "riskLimits": [
            {"symbol": "AAPL", "maxNotional": 1_000_000, "maxPosition": 2_000, "maxOrderSize": 200, "enabled": True},
        ],
        "venues": [
            {"name": "NYSE", "enabled": True, "apiEndpoint": "https://staging-api.nyse.example.com", "timeout": 3000, "maxRetries": 3},
        ],
        "routing": [
            {"symbol": "AAPL", "venue": "NYSE", "priority": 1, "conditions": {"minLiquidity": 50_000}},
        ],
        "parameters": {
            "lookbackPeriod": 15,
            "entryThreshold": 0.025,
            "exitThreshold": 0.015,
            "maxHoldingPeriod": 200,
        },
    },
    "invalid": {
        "name": "",
        "version": "invalid",
        "enabled": True,
        "riskLimits": [
            {"symbol": "AAPL", "maxNotional": -1_000, "maxPosition": 0, "maxOrderSize": 5_000, "enabled": True},
        ],
        "venues": [
            {"name": "BadVenue", "enabled": True, "apiEndpoint": "not-a-url", "timeout": 50, "maxRetries": 0},
        ],
        "routing": [
            {"symbol": "TSLA", "venue": "NonExistentVenue", "priority": 200, "conditions": {}},
        ],
        "parameters": {},
    },
}


class ConfigPresetStore:
    """Read-only lookup of preset configs; each call returns a fresh model."""

    def __init__(self, presets: Optional[Dict[str, Dict[str, Any]]] = None):
        self._presets = presets if presets is not None else PRESETS

    def names(self) -> List[str]:
        return list(self._presets)

    def get(self, env: str) -> Optional[StrategyConfig]:
        raw = self._presets.get(env)
        if raw is None:
            return None
        return StrategyConfig.model_validate(raw)


config_presets = ConfigPresetStore()
