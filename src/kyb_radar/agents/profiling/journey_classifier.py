"""
Journey Classifier Agent

Classifies a business customer's legal structure into a KYB journey.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig, JourneyType
from ...models import JourneyClassification


class JourneyOutput(BaseModel):
    """Output from journey classifier agent"""
    journey_type: JourneyType = Field(description="Legal-structure journey of the customer")
    has_linked_customers: bool = Field(description="Whether the customer has group or sister entities")
    num_parties: int = Field(description="Estimated number of directors, partners or owners")
    reasoning: str = Field(description="Short explanation of the classification")


class JourneyClassifierAgent(BaseAgent):
    """Classifies the KYB journey type from the CRM record"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="JourneyClassifierAgent", temperature=0.1, max_tokens=500)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are a KYB journey classifier for business banking.

Classify the customer into exactly one journey type based on legal structure:
- SOLE_TRADER: sole proprietorship, single owner, no separate legal entity
- LIMITED_COMPANY_SINGLE: private or public limited company with a single director/owner
- LIMITED_COMPANY_MULTI: limited company with several directors or shareholders
- PARTNERSHIP_LLP: partnership or limited liability partnership
- GROUP: part of a corporate group with linked or sister entities

OUTPUT: Return a JSON object with:
{
  "journey_type": "one of the values above",
  "has_linked_customers": true/false,
  "num_parties": integer,
  "reasoning": "one sentence"
}"""

    def get_output_schema(self) -> type:
        return JourneyOutput

    async def run(self, customer: Dict[str, Any]) -> Any:
        return await self.ask({"task": "classify_journey", "customer": customer})

    @staticmethod
    def fallback(customer: Dict[str, Any]) -> JourneyClassification:
        """Infer the journey from the legal name alone."""
        legal_name = str(customer.get("legal_name") or "").upper()
        if "LLP" in legal_name:
            journey = JourneyType.PARTNERSHIP_LLP
        elif any(token in legal_name for token in ("LIMITED", "PVT", "PRIVATE")):
            journey = JourneyType.LIMITED_COMPANY_SINGLE
        else:
            journey = JourneyType.SOLE_TRADER
        linked = customer.get("linked_customer_ids")
        return JourneyClassification(
            journey_type=journey.value,
            has_linked_customers=bool(linked) if isinstance(linked, list) else False,
            num_parties=1,
            reasoning="Inferred from legal name",
        )
