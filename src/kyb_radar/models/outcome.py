"""
Final KYB outcome contract
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..config import DEFAULT_JOURNEY_TYPE
from .stages import (
    EntityProfile,
    PartySummary,
    GroupContext,
    TransactionInsights,
    RiskAssessment,
    as_str_list,
)

# Field names and order of the outcome as seen by external callers
OUTCOME_FIELDS = (
    "journey_type",
    "entity_profile",
    "party_summary",
    "group_context",
    "transaction_insights",
    "risk_assessment",
    "kyb_note",
    "recommended_actions",
)


class AuditTrail(BaseModel):
    """Record of which stages ran for a customer"""
    agents_called: List[str] = Field(default_factory=list)
    customer_id: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class KYBOutcome(BaseModel):
    """The only object returned across the system boundary"""
    journey_type: str = DEFAULT_JOURNEY_TYPE
    entity_profile: EntityProfile = Field(default_factory=EntityProfile)
    party_summary: PartySummary = Field(default_factory=PartySummary)
    group_context: Optional[GroupContext] = None
    transaction_insights: TransactionInsights = Field(default_factory=TransactionInsights)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    kyb_note: str = ""
    recommended_actions: List[str] = Field(default_factory=list)
    audit_trail: Optional[AuditTrail] = None

    @field_validator("recommended_actions", mode="before")
    @classmethod
    def _actions(cls, v):
        return as_str_list(v)

    def to_contract(self) -> Dict[str, Any]:
        """JSON-ready dict; audit_trail is omitted when it was never attached."""
        data = self.model_dump(mode="json")
        if data.get("audit_trail") is None:
            data.pop("audit_trail", None)
        return data
