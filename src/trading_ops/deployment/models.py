"""Canary deployment records.

Plain dataclasses owned and mutated by the canary engine. ``to_dict``
renders the camelCase JSON shape served by the API.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class DeploymentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DeploymentStatus.COMPLETED,
            DeploymentStatus.FAILED,
            DeploymentStatus.ROLLED_BACK,
        )


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class StageMetrics:
    """Traffic observed during one evaluation tick. Latencies in ms."""
    requests: int = 0
    errors: int = 0
    avg_latency: float = 0.0
    max_latency: float = 0.0

    @property
    def error_rate(self) -> float:
        """Errors as a percentage of requests; 0 when there was no traffic."""
        if self.requests <= 0:
            return 0.0
        return self.errors / self.requests * 100

    @property
    def success_rate(self) -> float:
        if self.requests <= 0:
            return 100.0
        return (self.requests - self.errors) / self.requests * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requests": self.requests,
            "errors": self.errors,
            "avgLatency": self.avg_latency,
            "maxLatency": self.max_latency,
        }


@dataclass
class HealthMetrics:
    error_rate: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    throughput: float = 0.0
    success_rate: float = 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorRate": self.error_rate,
            "latencyP95": self.latency_p95,
            "latencyP99": self.latency_p99,
            "throughput": self.throughput,
            "successRate": self.success_rate,
        }


@dataclass
class HealthCheck:
    name: str
    threshold: float
    actual: float = 0.0
    status: CheckStatus = CheckStatus.PENDING
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "threshold": self.threshold,
            "actual": self.actual,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class CanaryStage:
    stage: int
    name: str
    traffic_percentage: float
    duration: float  # minutes
    health_checks: List[HealthCheck]
    status: StageStatus = StageStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    metrics: StageMetrics = field(default_factory=StageMetrics)

    @property
    def duration_seconds(self) -> float:
        return self.duration * 60

    def failed_checks(self) -> List[HealthCheck]:
        return [c for c in self.health_checks if c.status == CheckStatus.FAILED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "name": self.name,
            "trafficPercentage": self.traffic_percentage,
            "duration": self.duration,
            "status": self.status.value,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "healthChecks": [c.to_dict() for c in self.health_checks],
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class CanaryDeployment:
    id: str
    name: str
    version: str
    environment: str
    start_time: datetime
    stages: List[CanaryStage]
    status: DeploymentStatus = DeploymentStatus.RUNNING
    current_stage: int = 1
    end_time: Optional[datetime] = None
    health_metrics: HealthMetrics = field(default_factory=HealthMetrics)
    rollback_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    auto_rollback: bool = True

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    @property
    def active_stage(self) -> Optional[CanaryStage]:
        if 1 <= self.current_stage <= len(self.stages):
            return self.stages[self.current_stage - 1]
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "environment": self.environment,
            "version": self.version,
            "status": self.status.value,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "currentStage": self.current_stage,
            "totalStages": self.total_stages,
            "stages": [s.to_dict() for s in self.stages],
            "healthMetrics": self.health_metrics.to_dict(),
            "autoRollback": self.auto_rollback,
        }
        if self.rollback_reason is not None:
            data["rollbackReason"] = self.rollback_reason
        if self.failure_reason is not None:
            data["failureReason"] = self.failure_reason
        return data
