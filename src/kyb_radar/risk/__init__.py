"""
Deterministic risk scoring
"""

from .rules import RulesConfig, TriggerDefinition, BandRange, DEFAULT_THRESHOLDS
from .engine import (
    RiskRuleEngine,
    parse_review_date,
    months_between,
    round_half_up,
    TRIG_SECTOR_HIGH_RISK,
    TRIG_KYB_OVERDUE,
    TRIG_INTL_SPIKE,
    TRIG_HIGH_RISK_COUNTRY,
    TRIG_CASH_HEAVY,
)

__all__ = [
    "RulesConfig",
    "TriggerDefinition",
    "BandRange",
    "DEFAULT_THRESHOLDS",
    "RiskRuleEngine",
    "parse_review_date",
    "months_between",
    "round_half_up",
    "TRIG_SECTOR_HIGH_RISK",
    "TRIG_KYB_OVERDUE",
    "TRIG_INTL_SPIKE",
    "TRIG_HIGH_RISK_COUNTRY",
    "TRIG_CASH_HEAVY",
]
