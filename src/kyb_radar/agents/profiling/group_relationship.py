"""
Group Relationship Agent

Identifies sister entities and group affiliations of a customer. Only
consulted when the journey classifier reports linked customers.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig
from ...models import GroupContext


class GroupOutput(BaseModel):
    """Output from group relationship agent"""
    linked_entities: List[str] = Field(description="Customer ids or names of linked entities")
    group_structure: str = Field(description="Short description of the group structure")
    relationship_types: List[str] = Field(description="Relationship tags, e.g. PARENT, SISTER, COMMON_DIRECTOR")
    aggregate_risk_indicators: str = Field(description="Group-wide risk notes")


class GroupRelationshipAgent(BaseAgent):
    """Resolves group context for customers with linked entities"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="GroupRelationshipAgent", temperature=0.2, max_tokens=800)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are the Group Relationship Agent in a KYB Early-Risk Radar.

Identify and analyse group relationships, sister entities and linked customers of the target customer,
using only the CRM records you are given.

OUTPUT: Return a JSON object:
{
  "linked_entities": ["customer ids"],
  "group_structure": "short description",
  "relationship_types": ["SISTER", "COMMON_DIRECTOR", ...],
  "aggregate_risk_indicators": "group-wide risk notes"
}
Return an empty linked_entities list when no relationship is supported by the data."""

    def get_output_schema(self) -> type:
        return GroupOutput

    async def run(self, customer: Dict[str, Any], customers: List[Dict[str, Any]]) -> Any:
        return await self.ask({
            "task": "resolve_group_relationships",
            "customer": customer,
            "crm_customers": customers,
        })

    @staticmethod
    def fallback(customer: Dict[str, Any], customers: List[Dict[str, Any]]) -> Optional[GroupContext]:
        """Link customers in the same sector whose short names contain one another."""
        customer_id = str(customer.get("customer_id") or "")
        sector = str(customer.get("sector") or "")
        short_name = str(customer.get("short_name") or "").lower()
        if not short_name:
            return None

        linked = []
        for other in customers:
            other_id = str(other.get("customer_id") or "")
            if other_id == customer_id or str(other.get("sector") or "") != sector:
                continue
            other_name = str(other.get("short_name") or "").lower()
            if other_name and (other_name in short_name or short_name in other_name):
                linked.append(other_id)

        if not linked:
            return None
        return GroupContext(
            linked_entities=linked,
            group_structure="Potential group relationship identified by sector and name similarity",
            relationship_types=["SECTOR_SIMILARITY", "NAME_SIMILARITY"],
            aggregate_risk_indicators="Risk assessment should consider group-wide exposure",
        )
