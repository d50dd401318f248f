import os
from typing import Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

# Disable OTLP export and the shutdown drain during tests
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = "none"
os.environ["SHUTDOWN_GRACE_SECONDS"] = "0"

# Import app AFTER setting the environment variables
from src.trading_ops.main import app, create_app
from src.trading_ops.deployment.canary_engine import CanaryEngine
from src.trading_ops.deployment.models import StageMetrics
from src.trading_ops.deployment.sampler import MetricsSampler
from src.trading_ops.deployment.scheduling import VirtualClockScheduler
from src.trading_ops.models.schemas import CanaryConfig

# Thresholds no synthetic sample can fail
ALWAYS_PASS = {"maxErrorRate": 100, "maxLatencyP95": 100000, "minSuccessRate": 0}


class StaticMetricsSampler(MetricsSampler):
    """Replays fixed samples; the last one repeats once the sequence runs out."""

    def __init__(self, samples: Iterable[StageMetrics]):
        self.samples: List[StageMetrics] = list(samples)
        self.calls: List[float] = []

    def sample(self, traffic_percentage: float) -> StageMetrics:
        index = min(len(self.calls), len(self.samples) - 1)
        self.calls.append(traffic_percentage)
        sample = self.samples[index]
        return StageMetrics(
            requests=sample.requests,
            errors=sample.errors,
            avg_latency=sample.avg_latency,
            max_latency=sample.max_latency,
        )


HEALTHY = StageMetrics(requests=1000, errors=10, avg_latency=80, max_latency=140)
ERROR_SPIKE = StageMetrics(requests=1000, errors=200, avg_latency=80, max_latency=140)
SLOW = StageMetrics(requests=1000, errors=10, avg_latency=450, max_latency=900)


def make_canary_config(
    stages=((10, 1),),
    thresholds: Optional[dict] = None,
    auto_rollback: bool = True,
    **overrides,
) -> CanaryConfig:
    data = {
        "name": "momentum-strategy-v2",
        "version": "2.2.0",
        "environment": "staging",
        "stages": [{"trafficPercentage": pct, "duration": minutes} for pct, minutes in stages],
        "healthThresholds": thresholds or {"maxErrorRate": 5, "maxLatencyP95": 200, "minSuccessRate": 95},
        "autoRollback": auto_rollback,
    }
    data.update(overrides)
    return CanaryConfig.model_validate(data)


@pytest.fixture
def scheduler():
    return VirtualClockScheduler()


@pytest.fixture
def healthy_engine(scheduler):
    return CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([HEALTHY]))


@pytest.fixture(scope="module")
def client():
    # Context manager triggers the lifespan events (startup/shutdown)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def virtual_app():
    """App whose canary engine runs on a virtual clock with healthy samples."""
    scheduler = VirtualClockScheduler()
    engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([HEALTHY]))
    test_app = create_app(canary_engine=engine)
    with TestClient(test_app) as c:
        yield c, scheduler
