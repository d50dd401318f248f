"""Unit tests for the canary deployment engine.

Most runs use a virtual clock scheduler and fixed metric samples, so
every stage transition happens at a known simulated time. A few run on
the real asyncio scheduler with sub-second stages.
"""
import asyncio

import pytest
from prometheus_client import REGISTRY

from src.trading_ops.deployment.canary_engine import CanaryEngine, DeploymentNotFoundError
from src.trading_ops.deployment.models import (
    CheckStatus,
    DeploymentStatus,
    StageMetrics,
    StageStatus,
)
from src.trading_ops.deployment.sampler import MetricsSampler, RandomMetricsSampler
from src.trading_ops.deployment.scheduling import APSchedulerTickScheduler

from conftest import (
    ALWAYS_PASS,
    ERROR_SPIKE,
    HEALTHY,
    SLOW,
    StaticMetricsSampler,
    make_canary_config,
)


def running_stages(deployment):
    return [s for s in deployment.stages if s.status == StageStatus.RUNNING]


class TestStartDeployment:
    """Deployment creation."""

    @pytest.mark.parametrize("stage_count", [1, 2, 5])
    def test_snapshot_has_all_stages_pending(self, healthy_engine, stage_count):
        config = make_canary_config(stages=[(10 * (i + 1), 1) for i in range(stage_count)])

        deployment = healthy_engine.start_deployment(config)

        assert deployment.status == DeploymentStatus.RUNNING
        assert deployment.current_stage == 1
        assert deployment.total_stages == stage_count
        assert len(deployment.stages) == stage_count
        assert all(s.status == StageStatus.PENDING for s in deployment.stages)
        assert deployment.end_time is None
        assert deployment.rollback_reason is None

    def test_stages_built_from_config(self, healthy_engine):
        config = make_canary_config(stages=[(10, 5), (50, 10)])

        deployment = healthy_engine.start_deployment(config)

        first, second = deployment.stages
        assert first.stage == 1
        assert first.name == "Stage 1 - 10% Traffic"
        assert first.duration == 5
        assert second.name == "Stage 2 - 50% Traffic"
        assert [c.name for c in first.health_checks] == ["Error Rate", "Latency P95", "Success Rate"]
        assert [c.threshold for c in first.health_checks] == [5, 200, 95]
        assert all(c.status == CheckStatus.PENDING for c in first.health_checks)

    def test_initial_health_metrics(self, healthy_engine):
        deployment = healthy_engine.start_deployment(make_canary_config())

        assert deployment.health_metrics.error_rate == 0
        assert deployment.health_metrics.success_rate == 100

    def test_ids_are_unique(self, healthy_engine):
        ids = {healthy_engine.start_deployment(make_canary_config()).id for _ in range(10)}
        assert len(ids) == 10

    def test_snapshot_is_detached_from_engine_state(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())
        scheduler.run_pending()

        assert deployment.stages[0].status == StageStatus.PENDING
        assert healthy_engine.get_deployment(deployment.id).stages[0].status == StageStatus.RUNNING

    def test_empty_stages_rejected(self, healthy_engine, scheduler):
        with pytest.raises(ValueError, match="at least one stage"):
            healthy_engine.start_deployment(make_canary_config(stages=[]))

        assert healthy_engine.get_all_deployments() == []

    @pytest.mark.parametrize("stages", [[(150, 1)], [(-5, 1)], [(10, -1)]])
    def test_out_of_range_stage_rejected(self, healthy_engine, stages):
        with pytest.raises(ValueError):
            healthy_engine.start_deployment(make_canary_config(stages=stages))

    def test_invalid_interval_rejected(self, scheduler):
        with pytest.raises(ValueError):
            CanaryEngine(scheduler=scheduler, check_interval_seconds=0)


class TestStageProgression:
    """Tick-driven stage advancement."""

    def test_first_stage_starts_on_first_tick(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())

        scheduler.run_pending()

        current = healthy_engine.get_deployment(deployment.id)
        stage = current.stages[0]
        assert stage.status == StageStatus.RUNNING
        assert stage.start_time is not None
        assert stage.metrics.requests == HEALTHY.requests
        assert all(c.status == CheckStatus.PASSED for c in stage.health_checks)
        assert all(c.timestamp is not None for c in stage.health_checks)

    def test_always_pass_single_stage_completes(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=RandomMetricsSampler(seed=7))
        config = make_canary_config(stages=[(10, 1)], thresholds=ALWAYS_PASS)

        deployment = engine.start_deployment(config)
        scheduler.advance(60)

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.COMPLETED
        assert current.stages[0].status == StageStatus.COMPLETED
        assert current.stages[0].end_time is not None
        assert current.end_time is not None
        assert not scheduler.has_pending(deployment.id)

    def test_stage_still_running_before_duration(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 1)]))

        scheduler.advance(55)

        current = healthy_engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.RUNNING
        assert current.stages[0].status == StageStatus.RUNNING
        assert scheduler.has_pending(deployment.id)

    def test_ticks_every_interval(self, scheduler):
        sampler = StaticMetricsSampler([HEALTHY])
        engine = CanaryEngine(scheduler=scheduler, sampler=sampler, check_interval_seconds=5)

        engine.start_deployment(make_canary_config(stages=[(25, 1)]))
        scheduler.advance(60)

        # t = 0, 5, ..., 60
        assert len(sampler.calls) == 13
        assert set(sampler.calls) == {25}

    def test_multi_stage_advances_in_order(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1), (100, 1)]))

        scheduler.advance(60)
        current = healthy_engine.get_deployment(deployment.id)
        assert current.current_stage == 2
        assert [s.status for s in current.stages] == [
            StageStatus.COMPLETED, StageStatus.RUNNING, StageStatus.PENDING,
        ]

        scheduler.advance(60)
        current = healthy_engine.get_deployment(deployment.id)
        assert current.current_stage == 3

        scheduler.advance(60)
        current = healthy_engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.COMPLETED
        assert current.current_stage == 3
        assert all(s.status == StageStatus.COMPLETED for s in current.stages)

    def test_at_most_one_running_stage(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1), (100, 1)]))

        for _ in range(40):
            scheduler.advance(5)
            current = healthy_engine.get_deployment(deployment.id)
            if current.status == DeploymentStatus.RUNNING:
                assert len(running_stages(current)) <= 1
                earlier = current.stages[:current.current_stage - 1]
                assert all(s.status == StageStatus.COMPLETED for s in earlier)

    def test_zero_duration_stage_completes_immediately(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 0), (20, 0)]))

        scheduler.run_pending()

        assert healthy_engine.get_deployment(deployment.id).status == DeploymentStatus.COMPLETED

    def test_health_metrics_follow_last_sample(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())

        scheduler.advance(10)

        metrics = healthy_engine.get_deployment(deployment.id).health_metrics
        assert metrics.error_rate == pytest.approx(1.0)
        assert metrics.success_rate == pytest.approx(99.0)
        assert metrics.latency_p95 == HEALTHY.avg_latency
        assert metrics.latency_p99 == HEALTHY.max_latency
        assert metrics.throughput == pytest.approx(HEALTHY.requests / 10)

    def test_zero_traffic_stage_counts_as_healthy(self, scheduler):
        engine = CanaryEngine(
            scheduler=scheduler,
            sampler=StaticMetricsSampler([StageMetrics(requests=0, errors=0, avg_latency=60, max_latency=90)]),
        )
        deployment = engine.start_deployment(make_canary_config(stages=[(0, 1)]))

        scheduler.advance(60)

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.COMPLETED
        assert current.health_metrics.success_rate == 100


class TestAutoRollback:
    """Health-gated automatic rollback."""

    def test_error_rate_breach_rolls_back(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([ERROR_SPIKE]))
        deployment = engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1)]))

        scheduler.advance(300)

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.ROLLED_BACK
        assert "Error Rate" in current.rollback_reason
        assert current.rollback_reason.startswith("Health check failed: ")
        assert current.end_time is not None
        assert current.stages[0].status == StageStatus.FAILED
        assert current.stages[0].end_time is not None
        assert current.stages[1].status == StageStatus.PENDING
        assert current.stages[1].start_time is None
        assert not scheduler.has_pending(deployment.id)

    def test_failure_in_later_stage_keeps_completed_stages(self, scheduler):
        # 13 healthy ticks finish stage 1, then stage 2 spikes
        sampler = StaticMetricsSampler([HEALTHY] * 13 + [ERROR_SPIKE])
        engine = CanaryEngine(scheduler=scheduler, sampler=sampler)
        deployment = engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1), (100, 1)]))

        scheduler.advance(600)

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.ROLLED_BACK
        assert current.current_stage == 2
        assert [s.status for s in current.stages] == [
            StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.PENDING,
        ]

    def test_reason_lists_every_failed_check(self, scheduler):
        bad = StageMetrics(requests=1000, errors=200, avg_latency=450, max_latency=900)
        engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([bad]))
        deployment = engine.start_deployment(make_canary_config())

        scheduler.run_pending()

        reason = engine.get_deployment(deployment.id).rollback_reason
        assert reason == "Health check failed: Error Rate, Latency P95, Success Rate"

    def test_latency_breach_rolls_back(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([SLOW]))
        deployment = engine.start_deployment(make_canary_config())

        scheduler.run_pending()

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.ROLLED_BACK
        assert current.rollback_reason == "Health check failed: Latency P95"
        checks = {c.name: c for c in current.stages[0].health_checks}
        assert checks["Latency P95"].status == CheckStatus.FAILED
        assert checks["Latency P95"].actual == SLOW.avg_latency
        assert checks["Error Rate"].status == CheckStatus.PASSED


class TestMonitorOnlyMode:
    """autoRollback disabled: failures are recorded but never abort."""

    def test_failed_checks_do_not_roll_back(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([ERROR_SPIKE]))
        deployment = engine.start_deployment(
            make_canary_config(stages=[(10, 1), (50, 1)], auto_rollback=False)
        )

        scheduler.advance(30)
        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.RUNNING
        assert current.rollback_reason is None
        error_check = current.stages[0].health_checks[0]
        assert error_check.status == CheckStatus.FAILED
        assert error_check.actual == pytest.approx(20.0)

    def test_progression_continues_to_completion(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=StaticMetricsSampler([ERROR_SPIKE]))
        deployment = engine.start_deployment(
            make_canary_config(stages=[(10, 1), (50, 1)], auto_rollback=False)
        )

        scheduler.advance(180)

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.COMPLETED
        assert all(s.status == StageStatus.COMPLETED for s in current.stages)


class TestManualRollback:
    """Explicit rollback requests."""

    def test_rollback_running_deployment(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1)]))
        scheduler.advance(10)

        result = healthy_engine.rollback_deployment(deployment.id, "Bad fills on AAPL")

        assert result.status == DeploymentStatus.ROLLED_BACK
        assert result.rollback_reason == "Bad fills on AAPL"
        assert result.end_time is not None
        assert result.stages[0].status == StageStatus.FAILED
        assert result.stages[0].end_time is not None
        assert result.stages[1].status == StageStatus.PENDING
        assert not scheduler.has_pending(deployment.id)

    def test_no_progress_after_rollback(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1)]))
        scheduler.advance(10)
        healthy_engine.rollback_deployment(deployment.id, "stop")

        scheduler.advance(600)

        current = healthy_engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.ROLLED_BACK
        assert current.stages[1].status == StageStatus.PENDING

    def test_late_tick_is_ignored(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())
        scheduler.advance(10)
        before = healthy_engine.get_deployment(deployment.id)
        healthy_engine.rollback_deployment(deployment.id, "stop")

        # a tick that was already dispatched when the rollback landed
        healthy_engine._tick(deployment.id, 0)

        after = healthy_engine.get_deployment(deployment.id)
        assert after.status == DeploymentStatus.ROLLED_BACK
        assert after.stages[0].metrics == before.stages[0].metrics

    def test_rollback_before_first_stage_starts(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())

        result = healthy_engine.rollback_deployment(deployment.id, "changed my mind")
        scheduler.advance(120)

        assert result.status == DeploymentStatus.ROLLED_BACK
        current = healthy_engine.get_deployment(deployment.id)
        assert current.stages[0].status == StageStatus.PENDING
        assert current.stages[0].start_time is None

    def test_completed_deployment_stays_completed(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())
        scheduler.advance(60)
        completed = healthy_engine.get_deployment(deployment.id)

        result = healthy_engine.rollback_deployment(deployment.id, "too late")

        assert result.status == DeploymentStatus.COMPLETED
        assert result.rollback_reason is None
        assert result.end_time == completed.end_time
        assert result.stages[0].status == StageStatus.COMPLETED

    def test_second_rollback_keeps_first_reason(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())
        scheduler.advance(5)
        first = healthy_engine.rollback_deployment(deployment.id, "first")

        second = healthy_engine.rollback_deployment(deployment.id, "second")

        assert second.rollback_reason == "first"
        assert second.end_time == first.end_time

    def test_unknown_deployment(self, healthy_engine):
        with pytest.raises(DeploymentNotFoundError, match="canary-missing"):
            healthy_engine.rollback_deployment("canary-missing", "whatever")


class TestQueries:
    """Read operations."""

    def test_get_unknown_returns_none(self, healthy_engine):
        assert healthy_engine.get_deployment("canary-missing") is None

    def test_all_deployments_newest_first(self, healthy_engine):
        first = healthy_engine.start_deployment(make_canary_config(name="first"))
        second = healthy_engine.start_deployment(make_canary_config(name="second"))
        third = healthy_engine.start_deployment(make_canary_config(name="third"))

        ordered = healthy_engine.get_all_deployments()

        assert [d.id for d in ordered] == [third.id, second.id, first.id]

    def test_deployments_are_independent(self, scheduler):
        sampler = StaticMetricsSampler([HEALTHY])
        engine = CanaryEngine(scheduler=scheduler, sampler=sampler)
        keep = engine.start_deployment(make_canary_config(stages=[(10, 1)]))
        drop = engine.start_deployment(make_canary_config(stages=[(10, 1)]))
        scheduler.advance(5)

        engine.rollback_deployment(drop.id, "only this one")
        scheduler.advance(60)

        assert engine.get_deployment(keep.id).status == DeploymentStatus.COMPLETED
        assert engine.get_deployment(drop.id).status == DeploymentStatus.ROLLED_BACK

    def test_to_dict_uses_camel_case(self, healthy_engine, scheduler):
        deployment = healthy_engine.start_deployment(make_canary_config())
        healthy_engine.rollback_deployment(deployment.id, "stop")

        data = healthy_engine.get_deployment(deployment.id).to_dict()

        assert data["status"] == "rolled_back"
        assert data["rollbackReason"] == "stop"
        assert data["currentStage"] == 1
        assert data["totalStages"] == 1
        assert set(data["healthMetrics"]) == {"errorRate", "latencyP95", "latencyP99", "throughput", "successRate"}
        assert data["stages"][0]["trafficPercentage"] == 10
        assert set(data["stages"][0]["metrics"]) == {"requests", "errors", "avgLatency", "maxLatency"}


class FailingSampler(MetricsSampler):
    def sample(self, traffic_percentage):
        raise RuntimeError("metrics backend unavailable")


class TestInternalFailure:
    """A step that raises ends the deployment instead of stalling it."""

    def test_sampler_error_fails_deployment(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=FailingSampler())
        deployment = engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1)]))

        scheduler.run_pending()

        current = engine.get_deployment(deployment.id)
        assert current.status == DeploymentStatus.FAILED
        assert current.failure_reason == "Internal error: metrics backend unavailable"
        assert current.rollback_reason is None
        assert current.end_time is not None
        assert current.stages[0].status == StageStatus.FAILED
        assert current.stages[0].end_time is not None
        assert current.stages[1].status == StageStatus.PENDING
        assert not scheduler.has_pending(deployment.id)

    def test_failure_reason_rendered(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=FailingSampler())
        deployment = engine.start_deployment(make_canary_config())
        scheduler.run_pending()

        data = engine.get_deployment(deployment.id).to_dict()

        assert data["status"] == "failed"
        assert data["failureReason"].startswith("Internal error")

    def test_failed_deployment_leaves_active_gauge(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=FailingSampler())
        before = REGISTRY.get_sample_value("canary_active_deployments")

        engine.start_deployment(make_canary_config())
        scheduler.run_pending()

        assert REGISTRY.get_sample_value("canary_active_deployments") == before

    def test_failed_deployment_ignores_rollback(self, scheduler):
        engine = CanaryEngine(scheduler=scheduler, sampler=FailingSampler())
        deployment = engine.start_deployment(make_canary_config())
        scheduler.run_pending()

        result = engine.rollback_deployment(deployment.id, "too late")

        assert result.status == DeploymentStatus.FAILED
        assert result.rollback_reason is None


async def wait_until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class TestOnAPScheduler:
    """The engine driven by the real asyncio scheduler."""

    @pytest.mark.asyncio
    async def test_short_deployment_runs_to_completion(self):
        scheduler = APSchedulerTickScheduler()
        sampler = StaticMetricsSampler([HEALTHY])
        engine = CanaryEngine(scheduler=scheduler, sampler=sampler, check_interval_seconds=0.01)
        scheduler.start()
        try:
            # 0.001 min is 60 ms per stage
            config = make_canary_config(stages=[(10, 0.001), (50, 0.001)], thresholds=ALWAYS_PASS)
            deployment = engine.start_deployment(config)

            await wait_until(lambda: engine.get_deployment(deployment.id).status.is_terminal)

            current = engine.get_deployment(deployment.id)
            assert current.status == DeploymentStatus.COMPLETED
            assert all(s.status == StageStatus.COMPLETED for s in current.stages)
            assert set(sampler.calls) == {10, 50}
            assert not scheduler.has_pending(deployment.id)
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_rollback_mid_stage_stops_ticks(self):
        scheduler = APSchedulerTickScheduler()
        sampler = StaticMetricsSampler([HEALTHY])
        engine = CanaryEngine(scheduler=scheduler, sampler=sampler, check_interval_seconds=0.01)
        scheduler.start()
        try:
            deployment = engine.start_deployment(make_canary_config(stages=[(10, 1), (50, 1)]))
            await wait_until(lambda: len(sampler.calls) >= 3)
            assert scheduler.has_pending(deployment.id)

            result = engine.rollback_deployment(deployment.id, "Bad fills on AAPL")
            ticks = len(sampler.calls)
            await asyncio.sleep(0.05)

            assert result.status == DeploymentStatus.ROLLED_BACK
            assert result.stages[0].status == StageStatus.FAILED
            assert not scheduler.has_pending(deployment.id)
            assert len(sampler.calls) == ticks
        finally:
            scheduler.shutdown()
