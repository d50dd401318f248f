"""Cancellable delayed-task scheduling for canary progression.

Each deployment owns at most one pending job, keyed by deployment id.
Scheduling a key that already has a pending job replaces it, and
cancelling a key drops whatever is pending. Two implementations:

* ``APSchedulerTickScheduler`` runs jobs on the application event loop
  through APScheduler's ``AsyncIOScheduler``.
* ``VirtualClockScheduler`` keeps its own clock and only runs jobs when
  ``advance`` is called, for simulations and deterministic tests.

Example:
    >>> scheduler = VirtualClockScheduler()
    >>> scheduler.schedule("canary-1", 5.0, lambda: print("tick"))
    >>> scheduler.advance(5.0)
    tick
"""
import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

Callback = Callable[[], None]


class TickScheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        """Monotonic clock reading in seconds."""
        pass

    @abstractmethod
    def schedule(self, key: str, delay_seconds: float, callback: Callback) -> None:
        """Run ``callback`` after ``delay_seconds``, replacing any job pending for ``key``."""
        pass

    @abstractmethod
    def cancel(self, key: str) -> bool:
        """Drop the job pending for ``key``. Returns False if nothing was pending."""
        pass

    @abstractmethod
    def has_pending(self, key: str) -> bool:
        pass

    @property
    def running(self) -> bool:
        return True

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class APSchedulerTickScheduler(TickScheduler):
    """Date-triggered APScheduler jobs executed as coroutines on the event loop.

    Jobs are wrapped in a coroutine so the ``AsyncIOExecutor`` awaits them
    on the loop instead of handing them to a thread pool; every deployment
    mutation therefore happens on the loop thread.
    """

    def __init__(self):
        # bound to the running loop in start()
        self._scheduler: Optional[AsyncIOScheduler] = None

    def now(self) -> float:
        return time.monotonic()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start on the current event loop. Must be called from a coroutine."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(
            timezone=timezone.utc,
            event_loop=asyncio.get_running_loop(),
        )
        self._scheduler.start()
        logger.info("⏰ Canary tick scheduler started")

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("⏰ Canary tick scheduler stopped")
        self._scheduler = None

    def schedule(self, key: str, delay_seconds: float, callback: Callback) -> None:
        if not self.running:
            raise RuntimeError("Tick scheduler is not running")
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(delay_seconds, 0.0))
        self._scheduler.add_job(
            _run_callback,
            trigger="date",
            run_date=run_date,
            args=[key, callback],
            id=key,
            name=f"canary tick {key}",
            replace_existing=True,
            misfire_grace_time=None,  # a late tick still runs
            coalesce=True,
        )

    def cancel(self, key: str) -> bool:
        if self._scheduler is None:
            return False
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            return False
        return True

    def has_pending(self, key: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(key) is not None


async def _run_callback(key: str, callback: Callback) -> None:
    # errors propagate to the executor, which logs them against the job
    callback()


class VirtualClockScheduler(TickScheduler):
    """In-process scheduler with a manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, str]] = []
        self._jobs: Dict[str, Tuple[int, Callback]] = {}

    def now(self) -> float:
        return self._now

    def schedule(self, key: str, delay_seconds: float, callback: Callback) -> None:
        seq = next(self._seq)
        self._jobs[key] = (seq, callback)
        heapq.heappush(self._queue, (self._now + max(delay_seconds, 0.0), seq, key))

    def cancel(self, key: str) -> bool:
        return self._jobs.pop(key, None) is not None

    def has_pending(self, key: str) -> bool:
        return key in self._jobs

    def run_pending(self) -> int:
        """Run jobs due at the current instant."""
        return self.advance(0.0)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running due jobs in order. Returns how many ran."""
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, seq, key = heapq.heappop(self._queue)
            job = self._jobs.get(key)
            if job is None or job[0] != seq:
                # replaced or cancelled
                continue
            del self._jobs[key]
            self._now = max(self._now, due)
            job[1]()
            ran += 1
        self._now = target
        return ran
