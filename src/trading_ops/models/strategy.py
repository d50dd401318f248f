"""Strategy configuration, validation result and diff schemas."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model speaking camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RiskLimit(CamelModel):
    symbol: str = ""
    max_notional: float = 0.0
    max_position: float = 0.0
    max_order_size: float = 0.0
    enabled: bool = True


class VenueConfig(CamelModel):
    name: str = ""
    enabled: bool = False
    api_endpoint: str = ""
    timeout: float = 0.0  # milliseconds
    max_retries: int = 0


class RoutingRule(CamelModel):
    symbol: str = ""
    venue: str = ""
    priority: float = 0.0
    conditions: Dict[str, Any] = Field(default_factory=dict)


class StrategyConfig(CamelModel):
    """A trading strategy configuration as submitted for validation.

    Every field has an empty default so that missing sections surface as
    validation errors instead of request parsing failures.
    """
    name: str = ""
    version: str = ""
    enabled: bool = False
    risk_limits: List[RiskLimit] = Field(default_factory=list)
    venues: List[VenueConfig] = Field(default_factory=list)
    routing: List[RoutingRule] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ValidationError(CamelModel):
    field: str
    message: str
    severity: Literal["error", "critical"]


class ValidationWarning(CamelModel):
    field: str
    message: str
    suggestion: Optional[str] = None


class ValidationResult(CamelModel):
    valid: bool
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ModifiedField(CamelModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class ConfigDiff(CamelModel):
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    modified: List[ModifiedField] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)
