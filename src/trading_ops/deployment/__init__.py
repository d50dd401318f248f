"""Canary deployment engine and its collaborators."""

from .models import (
    CanaryDeployment,
    CanaryStage,
    CheckStatus,
    DeploymentStatus,
    HealthCheck,
    HealthMetrics,
    StageMetrics,
    StageStatus,
)

from .sampler import MetricsSampler, RandomMetricsSampler

from .scheduling import (
    TickScheduler,
    APSchedulerTickScheduler,
    VirtualClockScheduler,
)

from .store import DeploymentStore, InMemoryDeploymentStore

from .canary_engine import CanaryEngine, DeploymentNotFoundError

__all__ = [
    # Records
    "CanaryDeployment",
    "CanaryStage",
    "CheckStatus",
    "DeploymentStatus",
    "HealthCheck",
    "HealthMetrics",
    "StageMetrics",
    "StageStatus",
    # Collaborators
    "MetricsSampler",
    "RandomMetricsSampler",
    "TickScheduler",
    "APSchedulerTickScheduler",
    "VirtualClockScheduler",
    "DeploymentStore",
    "InMemoryDeploymentStore",
    # Engine
    "CanaryEngine",
    "DeploymentNotFoundError",
]
