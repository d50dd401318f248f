from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.trading_ops.models.strategy import CamelModel, StrategyConfig


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class StageConfig(FrozenCamelModel):
    traffic_percentage: float = Field(..., description="Share of traffic routed to the canary")
    duration: float = Field(..., description="Stage duration in minutes")


class HealthThresholds(FrozenCamelModel):
    max_error_rate: float = Field(..., description="Maximum error rate in percent")
    max_latency_p95: float = Field(..., description="Maximum P95 latency in ms")
    min_success_rate: float = Field(..., description="Minimum success rate in percent")


class CanaryConfig(FrozenCamelModel):
    name: str
    version: str
    environment: str
    stages: List[StageConfig]
    health_thresholds: HealthThresholds
    auto_rollback: bool = True

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "name": "momentum-strategy-v2",
                "version": "2.2.0",
                "environment": "staging",
                "stages": [
                    {"trafficPercentage": 10, "duration": 5},
                    {"trafficPercentage": 50, "duration": 10},
                    {"trafficPercentage": 100, "duration": 15},
                ],
                "healthThresholds": {
                    "maxErrorRate": 5,
                    "maxLatencyP95": 200,
                    "minSuccessRate": 95,
                },
                "autoRollback": True,
            }
        },
    )


class RollbackRequest(CamelModel):
    deployment_id: str
    reason: str = "Manual rollback"


class ValidateRequest(CamelModel):
    config: StrategyConfig
    compare_with: Optional[str] = Field(default=None, description="Preset to diff against")