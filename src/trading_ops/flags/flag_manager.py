"""In-memory feature flag store with environment and rollout gating."""
import random
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from src.trading_ops.models.flags import (
    Environment,
    FeatureFlag,
    FeatureFlagCreate,
    FeatureFlagUpdate,
    FlagEnvironments,
)

ALL_ENVIRONMENTS = FlagEnvironments(production=True, staging=True, development=True)
PRE_PRODUCTION = FlagEnvironments(production=False, staging=True, development=True)

DEFAULT_FLAGS = [
    FeatureFlagCreate(
        name="Enhanced Risk Monitoring",
        key="enhanced_risk_monitoring",
        description="Enable advanced risk monitoring with real-time alerts",
        enabled=True,
        environments=ALL_ENVIRONMENTS,
        rollout_percentage=100,
        tags=["risk", "monitoring"],
    ),
    FeatureFlagCreate(
        name="Canary Deployments",
        key="canary_deployments",
        description="Enable gradual rollout with canary deployments",
        enabled=True,
        environments=PRE_PRODUCTION,
        rollout_percentage=50,
        tags=["deployment", "canary"],
    ),
    FeatureFlagCreate(
        name="Advanced Config Diff",
        key="advanced_config_diff",
        description="Show detailed config differences with syntax highlighting",
        enabled=True,
        environments=ALL_ENVIRONMENTS,
        rollout_percentage=100,
        tags=["config", "ui"],
    ),
    FeatureFlagCreate(
        name="Auto Rollback",
        key="auto_rollback",
        description="Automatically rollback deployments on health check failures",
        enabled=False,
        environments=PRE_PRODUCTION,
        rollout_percentage=25,
        tags=["deployment", "safety"],
    ),
    FeatureFlagCreate(
        name="Real-time Feed Monitoring",
        key="realtime_feed_monitoring",
        description="Enable real-time market data feed monitoring",
        enabled=True,
        environments=ALL_ENVIRONMENTS,
        rollout_percentage=100,
        tags=["feeds", "monitoring"],
    ),
]


class FeatureFlagManager:

    def __init__(self, rng: Optional[random.Random] = None, seed_defaults: bool = True):
        self.rng = rng or random.Random()
        self._flags: Dict[str, FeatureFlag] = {}
        if seed_defaults:
            for index, flag in enumerate(DEFAULT_FLAGS, start=1):
                self._insert(f"flag-{index}", flag)

    def _insert(self, flag_id: str, data: FeatureFlagCreate) -> FeatureFlag:
        now = datetime.now(timezone.utc)
        flag = FeatureFlag(id=flag_id, created_at=now, updated_at=now, **data.model_dump())
        self._flags[flag_id] = flag
        return flag

    def is_enabled(self, key: str, environment: Environment = "production") -> bool:
        """Whether ``key`` is on for this environment and this draw of the rollout."""
        flag = next((f for f in self._flags.values() if f.key == key), None)
        if flag is None or not flag.enabled:
            return False
        if not getattr(flag.environments, environment):
            return False
        return self.rng.uniform(0, 100) <= flag.rollout_percentage

    def get_flag(self, flag_id: str) -> Optional[FeatureFlag]:
        return self._flags.get(flag_id)

    def get_all_flags(self) -> List[FeatureFlag]:
        return sorted(self._flags.values(), key=lambda f: f.name)

    def create_flag(self, data: FeatureFlagCreate) -> FeatureFlag:
        flag = self._insert(f"flag-{uuid.uuid4().hex[:8]}", data)
        logger.info(f"🚩 Created flag {flag.key} ({flag.id})")
        return flag

    def update_flag(self, flag_id: str, updates: FeatureFlagUpdate) -> Optional[FeatureFlag]:
        flag = self._flags.get(flag_id)
        if flag is None:
            return None

        # model_copy does not re-validate, so keep nested models as models
        changes = {
            name: getattr(updates, name)
            for name in updates.model_fields_set
            if getattr(updates, name) is not None
        }
        updated = flag.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self._flags[flag_id] = updated
        logger.info(f"🚩 Updated flag {updated.key}: {sorted(changes)}")
        return updated

    def delete_flag(self, flag_id: str) -> bool:
        return self._flags.pop(flag_id, None) is not None

    def toggle_flag(self, flag_id: str) -> Optional[FeatureFlag]:
        flag = self._flags.get(flag_id)
        if flag is None:
            return None
        return self.update_flag(flag_id, FeatureFlagUpdate(enabled=not flag.enabled))
