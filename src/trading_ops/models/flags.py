from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from src.trading_ops.models.strategy import CamelModel

Environment = Literal["production", "staging", "development"]


class FlagEnvironments(CamelModel):
    production: bool = False
    staging: bool = False
    development: bool = False


class FeatureFlagCreate(CamelModel):
    name: str
    key: str
    description: str = ""
    enabled: bool = False
    environments: FlagEnvironments = Field(default_factory=FlagEnvironments)
    rollout_percentage: float = Field(default=100.0, ge=0, le=100)
    tags: List[str] = Field(default_factory=list)


class FeatureFlagUpdate(CamelModel):
    name: Optional[str] = None
    key: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    environments: Optional[FlagEnvironments] = None
    rollout_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    tags: Optional[List[str]] = None


class FeatureFlag(FeatureFlagCreate):
    id: str
    created_at: datetime
    updated_at: datetime
