"""
Stage output models for the KYB pipeline.

Every model has usable defaults so that a partially populated producer
payload can always be completed into a contract-safe value.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import DEFAULT_JOURNEY_TYPE, DEFAULT_RISK_BAND, DEFAULT_BASE_SCORE

TRANSACTIONS_NOT_AVAILABLE = "Transaction analysis not available"
PARTIES_NOT_AVAILABLE = "Party information not available"
DATA_GAP_PARTIES = "DATA_GAP_PARTIES"

PARTY_RISK_LABELS = ("LOW", "MEDIUM", "HIGH")


def as_str_list(value: Any) -> List[str]:
    """Coerce a loosely typed value into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple, set)):
        items = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, dict):
                text = item.get("action") or item.get("text") or item.get("code")
                items.append(str(text) if text else json.dumps(item, sort_keys=True, default=str))
            else:
                items.append(str(item))
        return items
    return [str(value)]


class JourneyClassification(BaseModel):
    """Output of the journey classifier"""
    journey_type: str = DEFAULT_JOURNEY_TYPE
    has_linked_customers: bool = False
    num_parties: int = 1
    reasoning: str = ""


class EntityProfile(BaseModel):
    """KYB-relevant attributes of the legal entity"""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    legal_name: str = ""
    short_name: str = ""
    customer_id: str = ""
    journey_type: Optional[str] = None
    sector: str = ""
    sub_sector: str = ""
    country_of_incorporation: str = ""
    primary_operating_country: str = ""
    onboarding_date: str = ""
    turnover_band: str = ""
    internal_risk_rating: str = ""
    pep_flag: bool = False
    sanctions_flag: bool = False
    kyb_status: str = ""
    kyb_last_review_date: Optional[str] = None
    products: List[str] = Field(default_factory=list)

    @field_validator("products", mode="before")
    @classmethod
    def _products(cls, v):
        return as_str_list(v)


class PartyRecord(BaseModel):
    """A director, owner, partner or signatory of the entity"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    party_id: str = "UNKNOWN"
    name: str = "UNKNOWN"
    role: str = "UNKNOWN"
    risk_label: str = "MEDIUM"
    key_flags: List[str] = Field(default_factory=list)

    @field_validator("risk_label", mode="before")
    @classmethod
    def _risk_label(cls, v):
        label = str(v or "").strip().upper()
        return label if label in PARTY_RISK_LABELS else "MEDIUM"

    @field_validator("key_flags", mode="before")
    @classmethod
    def _key_flags(cls, v):
        # Ordered set: first occurrence wins
        return list(dict.fromkeys(as_str_list(v)))


class PartySummary(BaseModel):
    """Parties associated with the entity plus an observation paragraph"""
    parties: List[PartyRecord] = Field(default_factory=list)
    key_observations: str = PARTIES_NOT_AVAILABLE

    @classmethod
    def data_gap(cls, customer_id: str, legal_name: str = "Unknown") -> "PartySummary":
        """Summary with a single synthetic principal, used when no party data exists."""
        return cls(
            parties=[
                PartyRecord(
                    party_id=f"{customer_id}-P01",
                    name=f"{legal_name or 'Unknown'} Principal",
                    role="Beneficial Owner",
                    risk_label="MEDIUM",
                    key_flags=[DATA_GAP_PARTIES],
                )
            ],
            key_observations=PARTIES_NOT_AVAILABLE,
        )


class GroupContext(BaseModel):
    """Group and affiliate relationships of the entity"""
    model_config = ConfigDict(extra="allow")

    linked_entities: List[str] = Field(default_factory=list)
    group_structure: str = ""
    relationship_types: List[str] = Field(default_factory=list)
    aggregate_risk_indicators: str = ""

    @field_validator("linked_entities", "relationship_types", mode="before")
    @classmethod
    def _lists(cls, v):
        return as_str_list(v)

    @field_validator("group_structure", "aggregate_risk_indicators", mode="before")
    @classmethod
    def _text(cls, v):
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return "; ".join(as_str_list(v))
        if isinstance(v, dict):
            return json.dumps(v, sort_keys=True, default=str)
        return str(v)


class TransactionInsights(BaseModel):
    """Behavioural view of the customer's recent transactions"""
    summary: str = TRANSACTIONS_NOT_AVAILABLE
    candidate_triggers: List[str] = Field(default_factory=list)
    supporting_metrics: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("candidate_triggers", mode="before")
    @classmethod
    def _triggers(cls, v):
        return as_str_list(v)

    @field_validator("supporting_metrics", mode="before")
    @classmethod
    def _metrics(cls, v):
        return v if isinstance(v, dict) else {}

    @classmethod
    def not_available(cls) -> "TransactionInsights":
        return cls()


class TriggerRecord(BaseModel):
    code: str
    severity: str = "MEDIUM"
    reason: str = ""


class TriggerImpact(BaseModel):
    code: str
    delta: int = 0


class ScoreBreakdown(BaseModel):
    base_score: int = DEFAULT_BASE_SCORE
    trigger_impacts: List[TriggerImpact] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.base_score + sum(impact.delta for impact in self.trigger_impacts)


class RiskAssessment(BaseModel):
    """Deterministic risk verdict produced by the rule engine"""
    risk_band: str = DEFAULT_RISK_BAND
    score: int = DEFAULT_BASE_SCORE
    journey_type: str = DEFAULT_JOURNEY_TYPE
    triggers_fired: List[TriggerRecord] = Field(default_factory=list)
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    overall_reasoning: str = "Risk assessment completed"

    @property
    def trigger_codes(self) -> List[str]:
        return [t.code for t in self.triggers_fired]

    @classmethod
    def conservative(cls, journey_type: str = DEFAULT_JOURNEY_TYPE) -> "RiskAssessment":
        """AMBER/20 assessment used when no verdict could be produced."""
        return cls(journey_type=journey_type)


class NarrativeResult(BaseModel):
    """KYB note and recommended actions for the relationship manager"""
    kyb_note: str = ""
    recommended_actions: List[str] = Field(default_factory=list)

    @field_validator("kyb_note", mode="before")
    @classmethod
    def _note(cls, v):
        if v is None:
            return ""
        if isinstance(v, (dict, list)):
            return json.dumps(v, default=str)
        return str(v)

    @field_validator("recommended_actions", mode="before")
    @classmethod
    def _actions(cls, v):
        return as_str_list(v)
