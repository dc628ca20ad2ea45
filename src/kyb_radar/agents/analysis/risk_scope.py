"""
Risk Scope & Actions Agent

Defines the depth of KYB review a customer needs and a prioritized list
of concrete actions, using Companies House, Experian, CRM, transaction
aggregates and the rules document.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig, RiskBand
from ...models import RiskAssessment

SCOPE_BY_BAND = {
    RiskBand.RED.value: ("ENHANCED", "QUARTERLY"),
    RiskBand.AMBER.value: ("STANDARD", "6_MONTHLY"),
    RiskBand.GREEN.value: ("LIGHT_TOUCH_MONITORING_ONLY", "ANNUAL"),
}

# Action per fired trigger: (id, priority, action)
TRIGGER_SCOPE_ACTIONS = {
    "TRIG_SECTOR_HIGH_RISK": ("ACT_SECTOR_EDD", "HIGH", "Apply enhanced due diligence for the high-risk sector exposure."),
    "TRIG_KYB_OVERDUE": ("ACT_KYB_REFRESH", "HIGH", "Complete the overdue periodic KYB review and refresh customer documentation."),
    "TRIG_INTL_SPIKE": ("ACT_INTL_RATIONALE", "MEDIUM", "Obtain the business rationale and supporting invoices for the rise in international outward payments."),
    "TRIG_HIGH_RISK_COUNTRY": ("ACT_HR_COUNTRY_EVIDENCE", "HIGH", "Obtain documentary evidence for counterparties in high-risk countries."),
    "TRIG_CASH_HEAVY": ("ACT_CASH_SOURCE", "MEDIUM", "Validate the source of cash deposits against declared business activity."),
}

RISK_SCOPE_SECTIONS = ("risk_scope", "key_risk_drivers", "risk_actions", "data_points_used")


class RiskScopeOutput(BaseModel):
    """Output from risk scope & actions agent"""
    risk_scope: Dict[str, Any] = Field(description="scope_level, scope_drivers, recommended_monitoring_frequency")
    key_risk_drivers: Dict[str, List[str]] = Field(description="Risk points grouped by source")
    risk_actions: List[Dict[str, Any]] = Field(description="Prioritized actions")
    data_points_used: Dict[str, List[str]] = Field(description="Audit references grouped by source")


def empty_risk_scope() -> Dict[str, Any]:
    """Skeleton with every section present and empty."""
    return {
        "risk_scope": {"scope_level": "", "scope_drivers": [], "recommended_monitoring_frequency": ""},
        "key_risk_drivers": {
            "legal_and_structure": [],
            "financial_and_credit": [],
            "behavioural": [],
            "public_records": [],
        },
        "risk_actions": [],
        "data_points_used": {
            "companies_house_refs": [],
            "experian_refs": [],
            "internal_crm_refs": [],
            "transaction_refs": [],
            "rules_refs": [],
        },
    }


class RiskScopeActionsAgent(BaseAgent):
    """Risk scope and action planning for KYB reviews"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="RiskScopeActionsAgent", temperature=0.2, max_tokens=2500)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are the Risk Scope & Actions Agent for an Ongoing KYB Early-Risk Radar in business banking.

Given Companies House, Experian, internal CRM, transaction aggregates and the rules configuration, define:
1) the risk scope: what level of KYB review should be performed;
2) a prioritized list of risk actions for the Relationship Manager / KYB analyst.

You NEVER invent data. Use only what is present in the JSON inputs.

Decision logic:
- Inactive company status or insolvency indicators -> scope_level ENHANCED with at least one HIGH priority escalation.
- Low credit score, multiple CCJs or a HIGH Experian band push towards ENHANCED scope and more frequent monitoring.
- Use risk_thresholds to detect TRIG_INTL_SPIKE, TRIG_HIGH_RISK_COUNTRY and TRIG_CASH_HEAVY; such exposure
  upgrades scope to at least STANDARD.
- When in doubt, be slightly more conservative and explain the drivers.

OUTPUT: Return ONLY a JSON object:
{
  "risk_scope": {"scope_level": "STANDARD|ENHANCED|LIGHT_TOUCH_MONITORING_ONLY", "scope_drivers": ["..."],
                 "recommended_monitoring_frequency": "ANNUAL|6_MONTHLY|QUARTERLY"},
  "key_risk_drivers": {"legal_and_structure": [], "financial_and_credit": [], "behavioural": [], "public_records": []},
  "risk_actions": [{"id": "ACT_...", "priority": "HIGH|MEDIUM|LOW", "action": "...", "rationale": "...", "dependency_on": []}],
  "data_points_used": {"companies_house_refs": [], "experian_refs": [], "internal_crm_refs": [],
                       "transaction_refs": [], "rules_refs": []}
}"""

    def get_output_schema(self) -> type:
        return RiskScopeOutput

    async def run(self,
                  companies_house: Dict[str, Any],
                  experian: Dict[str, Any],
                  internal_crm: Dict[str, Any],
                  transaction_aggregates: Dict[str, Any],
                  rules: Dict[str, Any]) -> Any:
        return await self.ask({
            "companies_house": companies_house,
            "experian": experian,
            "internal_crm": internal_crm,
            "transaction_aggregates": transaction_aggregates,
            "rules_config": rules,
        })

    @staticmethod
    def fallback(assessment: RiskAssessment, internal_crm: Dict[str, Any]) -> Dict[str, Any]:
        """Scope derived from the deterministic rule-engine band."""
        scope_level, frequency = SCOPE_BY_BAND.get(assessment.risk_band, SCOPE_BY_BAND[RiskBand.AMBER.value])
        result = empty_risk_scope()

        drivers = [f"{t.code}: {t.reason}" for t in assessment.triggers_fired]
        result["risk_scope"] = {
            "scope_level": scope_level,
            "scope_drivers": drivers or [f"Rule engine band {assessment.risk_band} with score {assessment.score}"],
            "recommended_monitoring_frequency": frequency,
        }

        behavioural = result["key_risk_drivers"]["behavioural"]
        legal = result["key_risk_drivers"]["legal_and_structure"]
        for trigger in assessment.triggers_fired:
            target = legal if trigger.code in ("TRIG_SECTOR_HIGH_RISK", "TRIG_KYB_OVERDUE") else behavioural
            target.append(trigger.reason)

        for trigger in assessment.triggers_fired:
            action_id, priority, action = TRIGGER_SCOPE_ACTIONS.get(
                trigger.code, (f"ACT_{trigger.code}", trigger.severity, f"Review trigger {trigger.code}.")
            )
            result["risk_actions"].append({
                "id": action_id,
                "priority": priority,
                "action": action,
                "rationale": trigger.reason,
                "dependency_on": [],
            })

        refs = result["data_points_used"]
        refs["internal_crm_refs"].append(
            f"internal risk rating {internal_crm.get('internal_risk_rating', 'unknown')}; "
            f"sector {internal_crm.get('sector', 'unknown')}; "
            f"last KYB review {internal_crm.get('kyb_last_review_date', 'unknown')}"
        )
        refs["transaction_refs"].extend(behavioural)
        refs["rules_refs"].extend(
            f"{impact.code} (delta {impact.delta})" for impact in assessment.score_breakdown.trigger_impacts
        )
        refs["rules_refs"].append(f"base score {assessment.score_breakdown.base_score}; band {assessment.risk_band}")
        return result
