"""
Customer Profile Agent

One-sentence profile summary of a customer, served by the profile-lookup tool.
"""

from typing import Any, Dict, Optional

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig


class CustomerProfileAgent(BaseAgent):
    """Summarizes a CRM record in one sentence"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="CustomerProfileAgent", temperature=0.2, max_tokens=300)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are a KYB expert. Summarize the customer profile you are given in one clean sentence.
Include: legal name, onboarding year, sector, turnover band, and internal risk rating.
Reply with the sentence only."""

    def get_output_schema(self) -> None:
        return None

    async def run(self, customer: Dict[str, Any]) -> Any:
        return await self.ask({"customer": customer})

    @staticmethod
    def fallback(customer: Dict[str, Any]) -> str:
        onboarding_year = str(customer.get("onboarding_date") or "")[:4] or "an unknown year"
        return (
            f"{customer.get('legal_name') or 'Unknown entity'} ({customer.get('customer_id', '')}), "
            f"onboarded in {onboarding_year}, operates in {customer.get('sector') or 'an unspecified sector'} "
            f"with turnover band {customer.get('turnover_band_inr') or 'unknown'} "
            f"and internal risk rating {customer.get('internal_risk_rating') or 'unknown'}."
        )
