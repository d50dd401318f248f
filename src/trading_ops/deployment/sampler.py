"""Synthetic traffic metrics for canary stages."""
import math
import random
from abc import ABC, abstractmethod
from typing import Optional

from src.trading_ops.deployment.models import StageMetrics


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class MetricsSampler(ABC):
    @abstractmethod
    def sample(self, traffic_percentage: float) -> StageMetrics:
        """Produce one metrics snapshot for a stage serving ``traffic_percentage``."""
        pass


class RandomMetricsSampler(MetricsSampler):
    """Uniformly random stage metrics.

    requests scale with the traffic share of ``base_requests``; 1-3% of
    them fail; average latency falls in 50-150ms and the max is 1.5-2x
    the average. Pass ``seed`` (or an ``rng``) for a reproducible run.
    """

    def __init__(
        self,
        base_requests: int = 1000,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.base_requests = base_requests
        self.rng = rng or random.Random(seed)

    def sample(self, traffic_percentage: float) -> StageMetrics:
        requests = int(math.floor(self.base_requests * traffic_percentage / 100))

        error_fraction = self.rng.uniform(0.01, 0.03)
        errors = int(math.floor(requests * error_fraction))

        avg_latency = self.rng.uniform(50.0, 150.0)
        max_latency = avg_latency * self.rng.uniform(1.5, 2.0)

        return StageMetrics(
            requests=requests,
            errors=errors,
            avg_latency=_round_half_up(avg_latency),
            max_latency=_round_half_up(max_latency),
        )
