"""Strategy configuration validation.

Checks basic fields, risk limits, venues and routing rules of a
``StrategyConfig``. Findings are data, not exceptions: errors (severity
``error`` or ``critical``) make the config invalid, warnings never do.

Example:
    >>> result = validate_config(StrategyConfig(name="mm", version="1.0.0"))
    >>> result.valid
    False
    >>> [e.field for e in result.errors]
    ['riskLimits', 'venues']
"""
import re
from typing import List

from loguru import logger
from pydantic import AnyUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.trading_ops.models.strategy import (
    StrategyConfig,
    ValidationError,
    ValidationResult,
    ValidationWarning,
)
from src.trading_ops.monitoring.metrics import CONFIG_VALIDATIONS

VERSION_PATTERN = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+")

MAX_NOTIONAL_REVIEW_THRESHOLD = 10_000_000
MIN_VENUE_TIMEOUT_MS = 100
MAX_VENUE_TIMEOUT_MS = 30_000
MIN_ROUTING_PRIORITY = 1
MAX_ROUTING_PRIORITY = 100

_url_adapter = TypeAdapter(AnyUrl)


def is_valid_version(version: str) -> bool:
    return bool(version) and VERSION_PATTERN.fullmatch(version) is not None


def is_valid_url(url: str) -> bool:
    if not url:
        return False
    try:
        _url_adapter.validate_python(url)
    except PydanticValidationError:
        return False
    return True


class ConfigValidator:
    """Stateless validator; every ``validate`` call builds a fresh result."""

    def validate(self, config: StrategyConfig) -> ValidationResult:
        errors: List[ValidationError] = []
        warnings: List[ValidationWarning] = []

        self._validate_basic_fields(config, errors)
        self._validate_risk_limits(config, errors, warnings)
        self._validate_venues(config, errors, warnings)
        self._validate_routing(config, errors, warnings)

        result = ValidationResult(valid=not errors, errors=errors, warnings=warnings)

        CONFIG_VALIDATIONS.labels(outcome="valid" if result.valid else "invalid").inc()
        logger.debug(
            f"Validated config {config.name or '<unnamed>'}: "
            f"{len(errors)} errors, {len(warnings)} warnings"
        )
        return result

    def _validate_basic_fields(self, config: StrategyConfig, errors: List[ValidationError]) -> None:
        if not config.name or not config.name.strip():
            errors.append(ValidationError(
                field="name",
                message="Strategy name is required",
                severity="critical",
            ))

        if not is_valid_version(config.version):
            errors.append(ValidationError(
                field="version",
                message="Invalid version format. Expected semver (e.g., 1.0.0)",
                severity="error",
            ))

    def _validate_risk_limits(
        self,
        config: StrategyConfig,
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
    ) -> None:
        if not config.risk_limits:
            errors.append(ValidationError(
                field="riskLimits",
                message="At least one risk limit must be defined",
                severity="critical",
            ))
            return

        for index, limit in enumerate(config.risk_limits):
            prefix = f"riskLimits[{index}]"

            if not limit.symbol:
                errors.append(ValidationError(
                    field=f"{prefix}.symbol",
                    message="Symbol is required",
                    severity="error",
                ))

            if limit.max_notional <= 0:
                errors.append(ValidationError(
                    field=f"{prefix}.maxNotional",
                    message="Max notional must be positive",
                    severity="critical",
                ))

            if limit.max_notional > MAX_NOTIONAL_REVIEW_THRESHOLD:
                warnings.append(ValidationWarning(
                    field=f"{prefix}.maxNotional",
                    message="Max notional exceeds $10M threshold",
                    suggestion="Consider reviewing with risk management",
                ))

            if limit.max_position <= 0:
                errors.append(ValidationError(
                    field=f"{prefix}.maxPosition",
                    message="Max position must be positive",
                    severity="error",
                ))

            if limit.max_order_size > limit.max_position:
                errors.append(ValidationError(
                    field=f"{prefix}.maxOrderSize",
                    message="Max order size cannot exceed max position",
                    severity="error",
                ))

    def _validate_venues(
        self,
        config: StrategyConfig,
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
    ) -> None:
        if not config.venues:
            errors.append(ValidationError(
                field="venues",
                message="At least one venue must be configured",
                severity="critical",
            ))
            return

        if not any(venue.enabled for venue in config.venues):
            warnings.append(ValidationWarning(
                field="venues",
                message="No venues are enabled",
                suggestion="Enable at least one venue for trading",
            ))

        for index, venue in enumerate(config.venues):
            prefix = f"venues[{index}]"

            if not venue.name:
                errors.append(ValidationError(
                    field=f"{prefix}.name",
                    message="Venue name is required",
                    severity="error",
                ))

            if not is_valid_url(venue.api_endpoint):
                errors.append(ValidationError(
                    field=f"{prefix}.apiEndpoint",
                    message="Valid API endpoint URL is required",
                    severity="critical",
                ))

            if not MIN_VENUE_TIMEOUT_MS <= venue.timeout <= MAX_VENUE_TIMEOUT_MS:
                warnings.append(ValidationWarning(
                    field=f"{prefix}.timeout",
                    message="Timeout should be between 100ms and 30s",
                    suggestion="Recommended: 1000-5000ms",
                ))

    def _validate_routing(
        self,
        config: StrategyConfig,
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
    ) -> None:
        if not config.routing:
            warnings.append(ValidationWarning(
                field="routing",
                message="No routing rules defined",
                suggestion="Add routing rules for order flow",
            ))
            return

        venue_names = {venue.name for venue in config.venues}
        symbols = {limit.symbol for limit in config.risk_limits}

        for index, rule in enumerate(config.routing):
            prefix = f"routing[{index}]"

            if rule.symbol not in symbols:
                warnings.append(ValidationWarning(
                    field=f"{prefix}.symbol",
                    message=f"Symbol {rule.symbol} not found in risk limits",
                    suggestion="Add risk limit for this symbol",
                ))

            if rule.venue not in venue_names:
                errors.append(ValidationError(
                    field=f"{prefix}.venue",
                    message=f"Venue {rule.venue} not found in venue configuration",
                    severity="error",
                ))

            if not MIN_ROUTING_PRIORITY <= rule.priority <= MAX_ROUTING_PRIORITY:
                warnings.append(ValidationWarning(
                    field=f"{prefix}.priority",
                    message="Priority should be between 1 and 100",
                ))


config_validator = ConfigValidator()


def validate_config(config: StrategyConfig) -> ValidationResult:
    return config_validator.validate(config)
