from datetime import datetime
from typing import Literal, Optional

from src.trading_ops.models.strategy import CamelModel


class ConnectivityCheck(CamelModel):
    endpoint: str
    success: bool
    latency: float  # ms
    timestamp: datetime
    error: Optional[str] = None


class EndpointHealth(CamelModel):
    name: str
    url: str
    status: Literal["healthy", "degraded", "down"]
    latency: float
    last_check: datetime
    uptime: float
    error_rate: float


class SLAMetrics(CamelModel):
    availability: float
    avg_latency: float
    p95_latency: float
    p99_latency: float
    error_rate: float
    total_requests: int


class FeedStatus(CamelModel):
    name: str
    type: Literal["market-data", "reference-data", "execution"]
    connected: bool
    last_heartbeat: datetime
    messages_per_second: float
    lag: float  # seconds
    status: Literal["active", "stale", "disconnected"]
