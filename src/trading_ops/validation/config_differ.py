"""Structural diff between two strategy configurations.

Only ``version`` and ``enabled`` are compared by value. Risk limits are
compared by symbol: a symbol present on one side only is reported as
``riskLimits.<symbol>`` in ``added`` or ``removed``. Field changes inside
a risk limit present on both sides (a new ``maxNotional``, say) are not
reported.
"""
from typing import List

from src.trading_ops.models.strategy import ConfigDiff, ModifiedField, StrategyConfig

COMPARED_FIELDS = ("version", "enabled")


class ConfigDiffer:

    def compare(self, old: StrategyConfig, new: StrategyConfig) -> ConfigDiff:
        modified: List[ModifiedField] = []
        for name in COMPARED_FIELDS:
            old_value = getattr(old, name)
            new_value = getattr(new, name)
            if old_value != new_value:
                modified.append(ModifiedField(field=name, old_value=old_value, new_value=new_value))

        old_symbols = _symbols(old)
        new_symbols = _symbols(new)

        added = [f"riskLimits.{s}" for s in new_symbols if s not in old_symbols]
        removed = [f"riskLimits.{s}" for s in old_symbols if s not in new_symbols]

        return ConfigDiff(added=added, removed=removed, modified=modified)


def _symbols(config: StrategyConfig) -> List[str]:
    """Distinct risk-limit symbols in first-seen order."""
    return list(dict.fromkeys(limit.symbol for limit in config.risk_limits))


config_differ = ConfigDiffer()


def compare_configs(old: StrategyConfig, new: StrategyConfig) -> ConfigDiff:
    return config_differ.compare(old, new)
