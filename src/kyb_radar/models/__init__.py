"""
Data models for the KYB pipeline
"""

from .stages import (
    JourneyClassification,
    EntityProfile,
    PartyRecord,
    PartySummary,
    GroupContext,
    TransactionInsights,
    TriggerRecord,
    TriggerImpact,
    ScoreBreakdown,
    RiskAssessment,
    NarrativeResult,
    as_str_list,
    TRANSACTIONS_NOT_AVAILABLE,
    PARTIES_NOT_AVAILABLE,
    DATA_GAP_PARTIES,
)
from .outcome import AuditTrail, KYBOutcome, OUTCOME_FIELDS

__all__ = [
    "JourneyClassification",
    "EntityProfile",
    "PartyRecord",
    "PartySummary",
    "GroupContext",
    "TransactionInsights",
    "TriggerRecord",
    "TriggerImpact",
    "ScoreBreakdown",
    "RiskAssessment",
    "NarrativeResult",
    "AuditTrail",
    "KYBOutcome",
    "OUTCOME_FIELDS",
    "as_str_list",
    "TRANSACTIONS_NOT_AVAILABLE",
    "PARTIES_NOT_AVAILABLE",
    "DATA_GAP_PARTIES",
]
