"""
KYB Note Agent

Writes the relationship-manager narrative and recommended actions for a
completed risk assessment.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig, RiskBand, DEFAULT_RISK_BAND, DEFAULT_BASE_SCORE
from ...models import NarrativeResult

BAND_ACTIONS = {
    RiskBand.RED.value: [
        "Urgent: Schedule immediate KYB review meeting with customer",
        "Escalate to senior risk team for enhanced due diligence",
    ],
    RiskBand.AMBER.value: [
        "Schedule KYB review within next 30 days",
        "Request additional documentation to address identified concerns",
    ],
    RiskBand.GREEN.value: [
        "Continue regular monitoring per standard KYB review cycle",
    ],
}

# Extra actions keyed by the trigger that fired, in this order
TRIGGER_ACTIONS = {
    "TRIG_HIGH_RISK_COUNTRY": "Verify transaction rationale for high-risk country payments",
    "TRIG_CASH_HEAVY": "Validate cash deposit sources and ensure compliance with cash handling policies",
    "TRIG_KYB_OVERDUE": "Complete overdue KYB review documentation immediately",
    "TRIG_INTL_SPIKE": "Obtain supporting evidence for the increase in international outward payments",
    "TRIG_SECTOR_HIGH_RISK": "Apply enhanced due diligence measures for the high-risk sector",
}


class NoteOutput(BaseModel):
    """Output from KYB note agent"""
    kyb_note: str = Field(description="Professional narrative paragraph for the RM")
    recommended_actions: List[str] = Field(description="Clear, actionable items for the RM")


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def read_band(risk_assessment: Dict[str, Any]) -> str:
    band = risk_assessment.get("risk_band") or risk_assessment.get("band") or risk_assessment.get("risk_color")
    band = str(band or DEFAULT_RISK_BAND).strip().upper()
    return band if band in BAND_ACTIONS else DEFAULT_RISK_BAND


def read_trigger_codes(risk_assessment: Dict[str, Any]) -> List[str]:
    """Trigger codes from either triggers_fired records or a plain triggers list"""
    raw = risk_assessment.get("triggers_fired")
    if raw is None:
        raw = risk_assessment.get("triggers", [])
    codes = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, dict):
            if item.get("code"):
                codes.append(str(item["code"]))
        elif item is not None:
            codes.append(str(item))
    return codes


def read_score(risk_assessment: Dict[str, Any]) -> int:
    try:
        return int(risk_assessment.get("score", DEFAULT_BASE_SCORE))
    except (TypeError, ValueError):
        return DEFAULT_BASE_SCORE


def coerce_risk_assessment(value: Any) -> Dict[str, Any]:
    """Accept a risk assessment as a dict or JSON text; free text becomes a conservative AMBER record."""
    if isinstance(value, dict):
        return value
    text = "" if value is None else str(value)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {"band": DEFAULT_RISK_BAND, "score": DEFAULT_BASE_SCORE, "triggers": [], "reasoning": text}


class KYBNoteAgent(BaseAgent):
    """Generates the KYB narrative and action plan"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="KYBNoteAgent", temperature=0.4, max_tokens=1200)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are the KYB Note & Action Plan Agent for a KYB Early-Risk Radar.

Generate a well-written KYB narrative and a clear list of recommended actions for the Relationship Manager.

The narrative must be professional and concise, mention the risk band, the key risk indicators
and any notable patterns or concerns. Actions must be specific, actionable and prioritized.

OUTPUT: Return ONLY a JSON object:
{
  "kyb_note": "narrative paragraph",
  "recommended_actions": ["action", "..."]
}"""

    def get_output_schema(self) -> type:
        return NoteOutput

    async def run(self, profile_summary: str, transaction_summary: str, risk_assessment: Dict[str, Any]) -> Any:
        return await self.ask({
            "task": "write_kyb_note",
            "profile": profile_summary,
            "transaction_insights": transaction_summary,
            "risk_assessment": risk_assessment,
        })

    @staticmethod
    def default_actions(risk_assessment: Dict[str, Any]) -> List[str]:
        actions = list(BAND_ACTIONS[read_band(risk_assessment)])
        fired = set(read_trigger_codes(risk_assessment))
        actions.extend(action for code, action in TRIGGER_ACTIONS.items() if code in fired)
        return actions

    @classmethod
    def fallback(cls, profile_summary: str, transaction_summary: str, risk_assessment: Dict[str, Any]) -> NarrativeResult:
        """Templated narrative embedding band, score and triggers."""
        codes = read_trigger_codes(risk_assessment)
        note = (
            f"KYB Risk Assessment: {read_band(risk_assessment)} risk band identified. "
            f"Profile analysis indicates {_truncate(profile_summary or '', 100)}. "
            f"Transaction pattern analysis shows {_truncate(transaction_summary or '', 150)}. "
            f"Key risk indicators: {', '.join(codes) if codes else 'none'}. "
            f"Assessment score: {read_score(risk_assessment)}. "
            f"Requires RM attention based on risk profile."
        )
        return NarrativeResult(kyb_note=note, recommended_actions=cls.default_actions(risk_assessment))
