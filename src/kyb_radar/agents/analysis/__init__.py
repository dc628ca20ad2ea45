"""
Analysis agents: transaction patterns, rules compliance, risk scope
"""

from .transaction_pattern import TransactionPatternAgent, pct_change, format_amount
from .risk_compliance import RiskComplianceAgent
from .risk_scope import RiskScopeActionsAgent, empty_risk_scope, RISK_SCOPE_SECTIONS

__all__ = [
    "TransactionPatternAgent",
    "RiskComplianceAgent",
    "RiskScopeActionsAgent",
    "empty_risk_scope",
    "RISK_SCOPE_SECTIONS",
    "pct_change",
    "format_amount",
]
