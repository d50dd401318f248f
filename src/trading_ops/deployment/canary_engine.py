"""Canary deployment engine.

Drives staged rollouts: each stage routes a share of traffic to the new
version for a fixed duration while three health checks (error rate,
P95 latency, success rate) are evaluated on a fixed tick. A failing
check with auto-rollback enabled aborts the deployment; otherwise the
stage completes once its duration has elapsed and the next one starts.

Example:
    >>> engine = CanaryEngine(scheduler=VirtualClockScheduler())
    >>> deployment = engine.start_deployment(config)
    >>> engine.scheduler.advance(60)
    >>> engine.get_deployment(deployment.id).status
    <DeploymentStatus.COMPLETED: 'completed'>
"""
import copy
import itertools
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple


from src.trading_ops.core.config import settings
from src.trading_ops.core.logging import deployment_logger
from src.trading_ops.deployment.models import (
    CanaryDeployment,
    CanaryStage,
    CheckStatus,
    DeploymentStatus,
    HealthCheck,
    HealthMetrics,
    StageStatus,
)
from src.trading_ops.deployment.sampler import MetricsSampler, RandomMetricsSampler
from src.trading_ops.deployment.scheduling import TickScheduler, APSchedulerTickScheduler
from src.trading_ops.deployment.store import DeploymentStore, InMemoryDeploymentStore
from src.trading_ops.models.schemas import CanaryConfig
from src.trading_ops.monitoring.metrics import (
    CANARY_ACTIVE_DEPLOYMENTS,
    CANARY_DEPLOYMENTS_FINISHED,
    CANARY_DEPLOYMENTS_STARTED,
    CANARY_HEALTH_CHECKS,
    CANARY_ROLLBACKS,
)

ERROR_RATE_CHECK = "Error Rate"
LATENCY_P95_CHECK = "Latency P95"
SUCCESS_RATE_CHECK = "Success Rate"


class DeploymentNotFoundError(LookupError):
    """Raised when a deployment id is not registered with the engine."""

    def __init__(self, deployment_id: str):
        super().__init__(f"Deployment {deployment_id} not found")
        self.deployment_id = deployment_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CanaryEngine:
    """Owns every canary deployment for the lifetime of the process.

    All progression goes through ``scheduler``: at most one job is pending
    per deployment, keyed by deployment id, so a rollback can cancel it.
    Readers receive deep copies; the engine is the only mutator.
    """

    def __init__(
        self,
        scheduler: Optional[TickScheduler] = None,
        sampler: Optional[MetricsSampler] = None,
        store: Optional[DeploymentStore] = None,
        check_interval_seconds: Optional[float] = None,
    ):
        self.scheduler = scheduler or APSchedulerTickScheduler()
        self.sampler = sampler or RandomMetricsSampler(
            base_requests=settings.CANARY_BASE_REQUESTS,
            seed=settings.CANARY_METRICS_SEED,
        )
        self.store = store or InMemoryDeploymentStore()
        self.check_interval_seconds = (
            check_interval_seconds
            if check_interval_seconds is not None
            else settings.CANARY_CHECK_INTERVAL_SECONDS
        )
        if self.check_interval_seconds <= 0:
            raise ValueError("check_interval_seconds must be > 0")

        self._configs: Dict[str, CanaryConfig] = {}
        self._stage_started_at: Dict[str, float] = {}
        self._created_seq: Dict[str, int] = {}
        self._seq = itertools.count()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_deployment(self, config: CanaryConfig) -> CanaryDeployment:
        """Register a new deployment and schedule its first stage.

        Returns a snapshot taken before any stage starts: status running,
        current stage 1, every stage pending.

        Raises:
            ValueError: if the config has no stages or a stage is out of range
            RuntimeError: if the tick scheduler is not running
        """
        self._check_config(config)

        deployment_id = f"canary-{uuid.uuid4().hex[:12]}"
        thresholds = config.health_thresholds

        stages = [
            CanaryStage(
                stage=index,
                name=f"Stage {index} - {stage.traffic_percentage:g}% Traffic",
                traffic_percentage=stage.traffic_percentage,
                duration=stage.duration,
                health_checks=[
                    HealthCheck(name=ERROR_RATE_CHECK, threshold=thresholds.max_error_rate),
                    HealthCheck(name=LATENCY_P95_CHECK, threshold=thresholds.max_latency_p95),
                    HealthCheck(name=SUCCESS_RATE_CHECK, threshold=thresholds.min_success_rate),
                ],
            )
            for index, stage in enumerate(config.stages, start=1)
        ]

        deployment = CanaryDeployment(
            id=deployment_id,
            name=config.name,
            version=config.version,
            environment=config.environment,
            start_time=_utcnow(),
            stages=stages,
            auto_rollback=config.auto_rollback,
        )

        # raises before anything is stored if the scheduler is down
        self.scheduler.schedule(deployment_id, 0.0, lambda: self._run_step(self._begin_stage, deployment_id, 0))

        self.store.put(deployment)
        self._configs[deployment_id] = config
        self._created_seq[deployment_id] = next(self._seq)

        CANARY_DEPLOYMENTS_STARTED.labels(environment=config.environment).inc()
        CANARY_ACTIVE_DEPLOYMENTS.inc()
        deployment_logger(deployment_id).info(
            f"🚀 Canary started: {config.name} {config.version} "
            f"→ {config.environment} in {len(stages)} stages "
            f"(auto_rollback={config.auto_rollback})"
        )

        return copy.deepcopy(deployment)

    def get_deployment(self, deployment_id: str) -> Optional[CanaryDeployment]:
        deployment = self.store.get(deployment_id)
        return copy.deepcopy(deployment) if deployment else None

    def get_all_deployments(self) -> List[CanaryDeployment]:
        """All deployments, newest first."""
        deployments = sorted(
            self.store,
            key=lambda d: (d.start_time, self._created_seq.get(d.id, -1)),
            reverse=True,
        )
        return [copy.deepcopy(d) for d in deployments]

    def rollback_deployment(self, deployment_id: str, reason: str) -> CanaryDeployment:
        """Manually roll back a deployment.

        A deployment that already reached a terminal status is left as it
        is: a completed deployment stays completed and a rolled back one
        keeps its original reason and end time.

        Raises:
            DeploymentNotFoundError: if the id is unknown
        """
        deployment = self.store.get(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)

        if deployment.status.is_terminal:
            deployment_logger(deployment_id).warning(
                f"Rollback ignored: already {deployment.status.value}"
            )
            return copy.deepcopy(deployment)

        self.scheduler.cancel(deployment_id)
        self._terminate(deployment, DeploymentStatus.ROLLED_BACK, reason=reason)
        CANARY_ROLLBACKS.labels(trigger="manual").inc()
        deployment_logger(deployment_id, deployment.current_stage).warning(f"⏪ Rolled back manually: {reason}")
        return copy.deepcopy(deployment)

    # ------------------------------------------------------------------
    # Stage progression
    # ------------------------------------------------------------------

    @staticmethod
    def _check_config(config: CanaryConfig) -> None:
        if not config.stages:
            raise ValueError("Canary config must define at least one stage")
        for index, stage in enumerate(config.stages, start=1):
            if not 0 <= stage.traffic_percentage <= 100:
                raise ValueError(
                    f"Stage {index} traffic percentage must be between 0 and 100, "
                    f"got {stage.traffic_percentage}"
                )
            if stage.duration < 0:
                raise ValueError(f"Stage {index} duration cannot be negative")

    def _live(self, deployment_id: str, stage_index: int) -> Optional[Tuple[CanaryDeployment, CanaryStage]]:
        """Deployment and stage if a job for ``stage_index`` may still act on them."""
        deployment = self.store.get(deployment_id)
        if deployment is None or deployment.status != DeploymentStatus.RUNNING:
            return None
        if deployment.current_stage != stage_index + 1:
            return None
        return deployment, deployment.stages[stage_index]

    def _run_step(self, step, deployment_id: str, stage_index: int) -> None:
        """Run a scheduled step; an unexpected error fails the deployment."""
        try:
            step(deployment_id, stage_index)
        except Exception as e:
            log = deployment_logger(deployment_id, stage_index + 1)
            deployment = self.store.get(deployment_id)
            if deployment is None or deployment.status.is_terminal:
                log.exception("Scheduled step failed after the deployment finished")
                return
            log.exception(f"💥 Canary failed: {e}")
            self.scheduler.cancel(deployment_id)
            self._terminate(deployment, DeploymentStatus.FAILED, reason=f"Internal error: {e}")

    def _begin_stage(self, deployment_id: str, stage_index: int) -> None:
        live = self._live(deployment_id, stage_index)
        if live is None:
            deployment_logger(deployment_id, stage_index + 1).debug("Stage not started: deployment inactive")
            return
        deployment, stage = live
        if stage.status != StageStatus.PENDING:
            return

        stage.status = StageStatus.RUNNING
        stage.start_time = _utcnow()
        self._stage_started_at[deployment_id] = self.scheduler.now()

        deployment_logger(deployment_id, stage.stage).info(
            f"▶️  Stage {stage.stage}/{deployment.total_stages}: "
            f"{stage.traffic_percentage:g}% traffic for {stage.duration:g} min"
        )
        self._tick(deployment_id, stage_index)

    def _tick(self, deployment_id: str, stage_index: int) -> None:
        live = self._live(deployment_id, stage_index)
        if live is None:
            deployment_logger(deployment_id, stage_index + 1).debug("Stale tick ignored")
            return
        deployment, stage = live
        if stage.status != StageStatus.RUNNING:
            return
        log = deployment_logger(deployment_id, stage.stage)

        config = self._configs[deployment_id]
        elapsed = self.scheduler.now() - self._stage_started_at[deployment_id]

        self._evaluate_health(deployment, stage, elapsed)
        failed = stage.failed_checks()

        if failed and config.auto_rollback:
            names = ", ".join(c.name for c in failed)
            self._terminate(deployment, DeploymentStatus.ROLLED_BACK, reason=f"Health check failed: {names}")
            CANARY_ROLLBACKS.labels(trigger="auto").inc()
            log.error(f"🔴 Auto-rolled back: {names}")
            return

        if failed:
            log.warning(
                f"⚠️  Failing {', '.join(c.name for c in failed)}; auto-rollback disabled, continuing"
            )

        if elapsed < stage.duration_seconds:
            self.scheduler.schedule(
                deployment_id,
                self.check_interval_seconds,
                lambda: self._run_step(self._tick, deployment_id, stage_index),
            )
            return

        stage.status = StageStatus.COMPLETED
        stage.end_time = _utcnow()
        log.info(f"✅ Stage {stage.stage}/{deployment.total_stages} completed")

        next_index = stage_index + 1
        if next_index < deployment.total_stages:
            deployment.current_stage = next_index + 1
            self._begin_stage(deployment_id, next_index)
        else:
            self._terminate(deployment, DeploymentStatus.COMPLETED)
            log.info(f"🏁 Completed all {deployment.total_stages} stages")

    def _evaluate_health(self, deployment: CanaryDeployment, stage: CanaryStage, elapsed: float) -> None:
        """Sample metrics for the stage and grade its three health checks."""
        config = self._configs[deployment.id]
        thresholds = config.health_thresholds
        now = _utcnow()

        metrics = self.sampler.sample(stage.traffic_percentage)
        stage.metrics = metrics
        error_rate = metrics.error_rate
        success_rate = metrics.success_rate

        error_check, latency_check, success_check = stage.health_checks
        self._grade(error_check, error_rate, error_rate <= thresholds.max_error_rate, now)
        self._grade(latency_check, metrics.avg_latency, metrics.avg_latency <= thresholds.max_latency_p95, now)
        self._grade(success_check, success_rate, success_rate >= thresholds.min_success_rate, now)

        deployment.health_metrics = HealthMetrics(
            error_rate=error_rate,
            latency_p95=metrics.avg_latency,
            latency_p99=metrics.max_latency,  # approximated from the max
            throughput=metrics.requests / elapsed if elapsed > 0 else float(metrics.requests),
            success_rate=success_rate,
        )

    @staticmethod
    def _grade(check: HealthCheck, actual: float, passed: bool, now: datetime) -> None:
        check.actual = actual
        check.status = CheckStatus.PASSED if passed else CheckStatus.FAILED
        check.timestamp = now
        CANARY_HEALTH_CHECKS.labels(check=check.name, status=check.status.value).inc()

    def _terminate(
        self,
        deployment: CanaryDeployment,
        status: DeploymentStatus,
        reason: Optional[str] = None,
    ) -> None:
        now = _utcnow()
        deployment.status = status
        deployment.end_time = now
        if status == DeploymentStatus.ROLLED_BACK:
            deployment.rollback_reason = reason
        elif status == DeploymentStatus.FAILED:
            deployment.failure_reason = reason

        if status != DeploymentStatus.COMPLETED:
            stage = deployment.active_stage
            if stage is not None and stage.status == StageStatus.RUNNING:
                stage.status = StageStatus.FAILED
                stage.end_time = now

        self._stage_started_at.pop(deployment.id, None)
        CANARY_ACTIVE_DEPLOYMENTS.dec()
        CANARY_DEPLOYMENTS_FINISHED.labels(
            environment=deployment.environment, status=status.value
        ).inc()
