"""Synthetic market-data, reference-data and execution feed status."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from src.trading_ops.models.connectivity import FeedStatus

# name, type, heartbeat age (ms), messages/s, lag (s), status
_FEEDS = [
    ("NYSE Market Data", "market-data", 1_000, 12_500, 2, "active"),
    ("NASDAQ Market Data", "market-data", 800, 15_200, 1, "active"),
    ("BATS Market Data", "market-data", 15_000, 450, 15, "stale"),
    ("Reference Data Feed", "reference-data", 2_000, 50, 0, "active"),
    ("Execution Gateway", "execution", 120_000, 0, 120, "disconnected"),
]


def generate_feed_statuses(now: Optional[datetime] = None) -> List[FeedStatus]:
    now = now or datetime.now(timezone.utc)
    return [
        FeedStatus(
            name=name,
            type=feed_type,
            connected=status != "disconnected",
            last_heartbeat=now - timedelta(milliseconds=age_ms),
            messages_per_second=rate,
            lag=lag,
            status=status,
        )
        for name, feed_type, age_ms, rate, lag, status in _FEEDS
    ]
