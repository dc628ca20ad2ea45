"""
KYB pipeline: stage normalization and the LangGraph conductor
"""

from .normalizer import (
    as_mapping,
    lenient_model,
    normalize_journey,
    normalize_profile,
    normalize_party_summary,
    normalize_group,
    normalize_transactions,
    normalize_risk,
    normalize_narrative,
    normalize_text,
    normalize_risk_compliance,
    normalize_risk_scope,
    validate_outcome,
)
from .conductor import KYBConductor, KYBState, build_profile_summary, RISK_RULES_AGENT

__all__ = [
    # Normalization
    "as_mapping",
    "lenient_model",
    "normalize_journey",
    "normalize_profile",
    "normalize_party_summary",
    "normalize_group",
    "normalize_transactions",
    "normalize_risk",
    "normalize_narrative",
    "normalize_text",
    "normalize_risk_compliance",
    "normalize_risk_scope",
    "validate_outcome",
    # Conductor
    "KYBConductor",
    "KYBState",
    "build_profile_summary",
    "RISK_RULES_AGENT",
]
