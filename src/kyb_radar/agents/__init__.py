"""
KYB Stage Agents

Agents organized by concern: profiling, analysis and narrative.
"""

# Base Agent Framework
from .base import BaseAgent, AgentResponse, RedFlagDetector, ChatModel

# Profiling Agents
from .profiling import (
    JourneyClassifierAgent,
    CustomerPartyProfileAgent,
    CustomerProfileAgent,
    GroupRelationshipAgent,
)

# Analysis Agents
from .analysis import (
    TransactionPatternAgent,
    RiskComplianceAgent,
    RiskScopeActionsAgent,
)

# Narrative Agents
from .narrative import KYBNoteAgent

__all__ = [
    # Base
    "BaseAgent",
    "AgentResponse",
    "RedFlagDetector",
    "ChatModel",
    # Profiling
    "JourneyClassifierAgent",
    "CustomerPartyProfileAgent",
    "CustomerProfileAgent",
    "GroupRelationshipAgent",
    # Analysis
    "TransactionPatternAgent",
    "RiskComplianceAgent",
    "RiskScopeActionsAgent",
    # Narrative
    "KYBNoteAgent",
]
