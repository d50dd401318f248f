"""Simulated venue connectivity checks and SLA aggregation.

No network traffic is generated: each check awaits a random latency of
20-120ms and fails about one time in twenty. Results are kept per
endpoint (bounded history) and rolled up into endpoint health and SLA
figures.
"""
import asyncio
import math
import random
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Sequence

from loguru import logger

from src.trading_ops.core.config import settings
from src.trading_ops.models.connectivity import ConnectivityCheck, EndpointHealth, SLAMetrics
from src.trading_ops.monitoring.metrics import ENDPOINT_CHECKS

MONITORED_ENDPOINTS = ("NYSE", "NASDAQ", "BATS", "ReferenceData", "ExecutionGateway")

FAILURE_PROBABILITY = 0.05
HEALTHY_UPTIME = 99.0
DEGRADED_UPTIME = 95.0


def endpoint_url(name: str) -> str:
    return f"https://api.{name.lower()}.example.com"


class HealthChecker:
    """Keeps a rolling history of simulated checks per endpoint.

    ``sleep`` and ``rng`` are injectable so tests can run checks without
    waiting and with a fixed outcome sequence.
    """

    def __init__(
        self,
        history_limit: int = settings.HEALTH_HISTORY_LIMIT,
        window_size: int = settings.HEALTH_WINDOW_SIZE,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.history_limit = history_limit
        self.window_size = window_size
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._history: Dict[str, Deque[ConnectivityCheck]] = defaultdict(
            lambda: deque(maxlen=self.history_limit)
        )

    async def check_endpoint(self, url: str, name: str) -> ConnectivityCheck:
        latency_ms = self.rng.uniform(20.0, 120.0)
        await self._sleep(latency_ms / 1000)

        success = self.rng.random() > FAILURE_PROBABILITY
        check = ConnectivityCheck(
            endpoint=name,
            success=success,
            latency=latency_ms,
            timestamp=datetime.now(timezone.utc),
            error=None if success else "Connection timeout",
        )
        self.record(check)

        ENDPOINT_CHECKS.labels(endpoint=name, success=str(success).lower()).inc()
        if not success:
            logger.warning(f"🔌 {name} ({url}) check failed: {check.error}")
        return check

    async def check_all(self, names: Sequence[str] = MONITORED_ENDPOINTS) -> List[ConnectivityCheck]:
        return list(await asyncio.gather(
            *(self.check_endpoint(endpoint_url(name), name) for name in names)
        ))

    def record(self, check: ConnectivityCheck) -> None:
        self._history[check.endpoint].append(check)

    def history(self, name: str) -> List[ConnectivityCheck]:
        return list(self._history.get(name, ()))

    def get_endpoint_health(self, name: str) -> Optional[EndpointHealth]:
        """Health over the most recent ``window_size`` checks, None if never checked."""
        history = self.history(name)
        if not history:
            return None

        recent = history[-self.window_size:]
        successful = [c for c in recent if c.success]
        uptime = len(successful) / len(recent) * 100
        error_rate = (len(recent) - len(successful)) / len(recent) * 100
        avg_latency = sum(c.latency for c in successful) / len(successful) if successful else 0.0

        if uptime >= HEALTHY_UPTIME:
            status = "healthy"
        elif uptime >= DEGRADED_UPTIME:
            status = "degraded"
        else:
            status = "down"

        return EndpointHealth(
            name=name,
            url=endpoint_url(name),
            status=status,
            latency=avg_latency,
            last_check=recent[-1].timestamp,
            uptime=uptime,
            error_rate=error_rate,
        )

    def get_sla_metrics(self, name: str) -> Optional[SLAMetrics]:
        """SLA figures over the full retained history.

        Percentiles index the sorted successful latencies at
        ``floor(n * q)`` and fall back to the mean past the end.
        """
        history = self.history(name)
        if not history:
            return None

        latencies = sorted(c.latency for c in history if c.success)
        avg_latency = sum(latencies) / len(latencies) if latencies else 0.0

        def percentile(q: float) -> float:
            index = math.floor(len(latencies) * q)
            return latencies[index] if index < len(latencies) else avg_latency

        return SLAMetrics(
            availability=len(latencies) / len(history) * 100,
            avg_latency=avg_latency,
            p95_latency=percentile(0.95),
            p99_latency=percentile(0.99),
            error_rate=(len(history) - len(latencies)) / len(history) * 100,
            total_requests=len(history),
        )

    def clear_history(self, name: Optional[str] = None) -> None:
        if name:
            self._history.pop(name, None)
        else:
            self._history.clear()
