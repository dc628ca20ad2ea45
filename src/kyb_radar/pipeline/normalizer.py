"""
Stage output normalization.

Each normalize_* function takes whatever a stage producer returned (a model,
a dict, JSON text, free text or None) plus a fallback value, and returns a
value of the stage's canonical type. None of them raise.
"""

from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from ..agents.base import parse_model_text
from ..agents.analysis.risk_scope import empty_risk_scope, RISK_SCOPE_SECTIONS
from ..config import JourneyType, RiskBand, DEFAULT_JOURNEY_TYPE, DEFAULT_RISK_BAND
from ..models import (
    JourneyClassification,
    EntityProfile,
    PartyRecord,
    PartySummary,
    GroupContext,
    TransactionInsights,
    RiskAssessment,
    NarrativeResult,
    AuditTrail,
    KYBOutcome,
    as_str_list,
)

M = TypeVar("M", bound=BaseModel)

_JOURNEY_TYPES = {j.value for j in JourneyType}
_RISK_BANDS = {b.value for b in RiskBand}


def as_mapping(raw: Any, key: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Coerce a producer result into a dict.

    Models are dumped, JSON text is parsed, and a single-key wrapper such as
    {"transaction_insights": {...}} is unwrapped when `key` names it.
    """
    if raw is None:
        return None
    if isinstance(raw, BaseModel):
        data = raw.model_dump()
    elif isinstance(raw, dict):
        data = raw
    elif isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        data = parse_model_text(text)
    else:
        return None
    if not isinstance(data, dict):
        return None
    if key and isinstance(data.get(key), dict):
        return data[key]
    return data


def _try_model(model_cls: Type[M], data: Dict[str, Any]) -> Optional[M]:
    try:
        return model_cls.model_validate(data)
    except ValidationError:
        return None


def lenient_model(model_cls: Type[M], overlay: Dict[str, Any], base: Optional[Dict[str, Any]] = None) -> M:
    """
    Build a model from `base` updated with every key of `overlay` that
    validates; keys that would break validation are dropped.
    """
    current = dict(base or {})
    model = _try_model(model_cls, current) or model_cls()
    for key, value in overlay.items():
        candidate = _try_model(model_cls, {**current, key: value})
        if candidate is not None:
            current[key] = value
            model = candidate
    return model


def _present(value: Any) -> bool:
    return value not in (None, "", [], {})


# --- Per-stage normalizers ------------------------------------------------------


def normalize_journey(raw: Any, fallback: JourneyClassification) -> JourneyClassification:
    data = as_mapping(raw)
    if data is None:
        return fallback
    journey = str(data.get("journey_type") or "").strip().upper()
    data = {**data, "journey_type": journey if journey in _JOURNEY_TYPES else DEFAULT_JOURNEY_TYPE}
    return lenient_model(JourneyClassification, data)


def normalize_party_summary(raw: Any, fallback: PartySummary) -> PartySummary:
    data = as_mapping(raw, "party_summary")
    if data is None:
        return fallback
    parties = data.get("parties")
    records: List[PartyRecord] = []
    for item in parties if isinstance(parties, list) else []:
        if isinstance(item, dict):
            records.append(lenient_model(PartyRecord, item))
    observations = data.get("key_observations")
    return PartySummary(
        parties=records or list(fallback.parties),
        key_observations=str(observations) if _present(observations) else fallback.key_observations,
    )


def normalize_profile(
    raw: Any, fallback: Tuple[EntityProfile, PartySummary]
) -> Tuple[EntityProfile, PartySummary]:
    """Entity profile merged over the fallback's fields; party summary filled from the fallback."""
    fallback_profile, fallback_parties = fallback
    data = as_mapping(raw)
    if data is None:
        return fallback

    incoming = data.get("entity_profile")
    if isinstance(incoming, dict):
        overlay = {k: v for k, v in incoming.items() if _present(v)}
        profile = lenient_model(EntityProfile, overlay, fallback_profile.model_dump())
    else:
        profile = fallback_profile

    return profile, normalize_party_summary(data.get("party_summary"), fallback_parties)


def normalize_group(raw: Any, fallback: Optional[GroupContext]) -> Optional[GroupContext]:
    """GroupContext with linked entities, or None when the resolver found nothing."""
    if isinstance(raw, GroupContext):
        return raw if raw.linked_entities else None
    data = as_mapping(raw, "group_context")
    if data is None:
        return fallback
    context = lenient_model(GroupContext, data)
    return context if context.linked_entities else None


def normalize_transactions(raw: Any, fallback: TransactionInsights) -> TransactionInsights:
    data = as_mapping(raw, "transaction_insights")
    if data is None or not any(k in data for k in ("summary", "candidate_triggers", "supporting_metrics")):
        return fallback
    data = {k: v for k, v in data.items() if _present(v)}
    return lenient_model(TransactionInsights, data)


def normalize_risk(raw: Any, fallback: RiskAssessment) -> RiskAssessment:
    data = as_mapping(raw, "risk_assessment")
    if data is None:
        return fallback
    assessment = lenient_model(RiskAssessment, data, fallback.model_dump())
    return _consistent_risk(assessment)


def normalize_narrative(raw: Any, fallback: NarrativeResult) -> NarrativeResult:
    data = as_mapping(raw)
    if data is None:
        return fallback
    result = lenient_model(NarrativeResult, data)
    return NarrativeResult(
        kyb_note=result.kyb_note.strip() or fallback.kyb_note,
        recommended_actions=result.recommended_actions or list(fallback.recommended_actions),
    )


def normalize_text(raw: Any, fallback: str) -> str:
    """Free-text producer output; JSON objects are rejected in favour of the fallback."""
    if isinstance(raw, str):
        text = raw.strip()
        if text and not isinstance(parse_model_text(text), (dict, list)):
            return text
    return fallback


def normalize_risk_compliance(raw: Any, fallback: Dict[str, Any]) -> Dict[str, Any]:
    data = as_mapping(raw)
    if data is None or "risk_color" not in data:
        return fallback
    color = str(data.get("risk_color") or "").strip().upper()
    return {
        "risk_color": color if color in _RISK_BANDS else DEFAULT_RISK_BAND,
        "key_flags": as_str_list(data.get("key_flags")),
        "recommended_actions": as_str_list(data.get("recommended_actions")) or list(fallback.get("recommended_actions", [])),
    }


def normalize_risk_scope(raw: Any, fallback: Dict[str, Any]) -> Dict[str, Any]:
    """Risk-scope document with all four sections present."""
    data = as_mapping(raw)
    if data is None or not any(isinstance(data.get(s), (dict, list)) for s in RISK_SCOPE_SECTIONS):
        return fallback

    result = empty_risk_scope()
    for section, default in result.items():
        value = data.get(section)
        if isinstance(default, dict) and isinstance(value, dict):
            merged = dict(default)
            for key, item in value.items():
                merged[key] = as_str_list(item) if isinstance(default.get(key), list) else item
            result[section] = merged
        elif isinstance(default, list) and isinstance(value, list):
            result[section] = [dict(a) for a in value if isinstance(a, dict)]
    for action in result["risk_actions"]:
        action.setdefault("dependency_on", [])
    return result


# --- Final validation pass --------------------------------------------------------


def _consistent_risk(assessment: RiskAssessment) -> RiskAssessment:
    """Re-assert score == base + sum(deltas) and a known band."""
    band = assessment.risk_band.strip().upper()
    updates = {}
    if assessment.score != assessment.score_breakdown.total:
        updates["score"] = assessment.score_breakdown.total
    if band not in _RISK_BANDS:
        updates["risk_band"] = DEFAULT_RISK_BAND
    elif band != assessment.risk_band:
        updates["risk_band"] = band
    return assessment.model_copy(update=updates) if updates else assessment


def validate_outcome(outcome: Union[KYBOutcome, Dict[str, Any], None]) -> KYBOutcome:
    """
    Re-assert presence and type of every outcome field.

    Idempotent: validating an already validated outcome returns an equal one.
    """
    if isinstance(outcome, KYBOutcome):
        result = outcome
    else:
        data = outcome if isinstance(outcome, dict) else {}
        if not data:
            logger.warning("Outcome validation received no outcome data; rebuilding defaults")
        result = KYBOutcome(
            journey_type=str(data.get("journey_type") or DEFAULT_JOURNEY_TYPE),
            entity_profile=lenient_model(EntityProfile, as_mapping(data.get("entity_profile")) or {}),
            party_summary=normalize_party_summary(data.get("party_summary"), PartySummary()),
            group_context=normalize_group(data.get("group_context"), None),
            transaction_insights=normalize_transactions(data.get("transaction_insights"), TransactionInsights()),
            risk_assessment=normalize_risk(data.get("risk_assessment"), RiskAssessment()),
            kyb_note=str(data.get("kyb_note") or ""),
            recommended_actions=as_str_list(data.get("recommended_actions")),
            audit_trail=lenient_model(AuditTrail, data["audit_trail"]) if isinstance(data.get("audit_trail"), dict) else None,
        )

    journey = result.journey_type.strip().upper()
    updates: Dict[str, Any] = {}
    if journey not in _JOURNEY_TYPES:
        updates["journey_type"] = DEFAULT_JOURNEY_TYPE
    elif journey != result.journey_type:
        updates["journey_type"] = journey
    if result.group_context is not None and not result.group_context.linked_entities:
        updates["group_context"] = None
    if not result.party_summary.parties:
        profile = result.entity_profile
        updates["party_summary"] = PartySummary.data_gap(profile.customer_id, profile.legal_name or "Unknown")
    risk = _consistent_risk(result.risk_assessment)
    if risk is not result.risk_assessment:
        updates["risk_assessment"] = risk
    return result.model_copy(update=updates) if updates else result
