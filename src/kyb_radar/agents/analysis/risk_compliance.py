"""
Risk Compliance Agent

Maps free-text profile and transaction summaries onto the KYB rules and
returns a coarse risk colour, key flags and actions. Serves the
risk-assessment tool; the pipeline itself scores with the rule engine.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ..narrative.kyb_note import BAND_ACTIONS
from ...config import AgentConfig, DEFAULT_RISK_BAND


class RiskComplianceOutput(BaseModel):
    """Output from risk compliance agent"""
    risk_color: str = Field(description="GREEN, AMBER or RED")
    key_flags: List[str] = Field(description="Rule-relevant observations")
    recommended_actions: List[str] = Field(description="Actions for the RM")


class RiskComplianceAgent(BaseAgent):
    """Rules-aware risk classification from summaries"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="RiskComplianceAgent", temperature=0.1, max_tokens=800)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are a KYB risk and compliance analyst.

Task:
- Map the profile and transaction observations to the KYB rules you are given.
- Classify overall risk as GREEN / AMBER / RED.
- Provide key flags and recommended actions.

OUTPUT: Return a JSON object with keys: risk_color, key_flags[], recommended_actions[]."""

    def get_output_schema(self) -> type:
        return RiskComplianceOutput

    async def run(self, profile_summary: str, transaction_summary: str, rules: Dict[str, Any]) -> Any:
        return await self.ask({
            "profile": profile_summary,
            "transactions": transaction_summary,
            "rules": rules,
        })

    @staticmethod
    def fallback() -> Dict[str, Any]:
        """Conservative AMBER verdict used when no model answer is usable."""
        return {
            "risk_color": DEFAULT_RISK_BAND,
            "key_flags": ["Automated rules assessment unavailable; manual review required"],
            "recommended_actions": list(BAND_ACTIONS[DEFAULT_RISK_BAND]),
        }
