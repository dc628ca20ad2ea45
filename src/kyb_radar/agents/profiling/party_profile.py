"""
Customer & Party Profile Agent

Builds a consolidated view of the legal entity and the natural persons
associated with it (directors, beneficial owners, partners, signatories).
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..base.base_agent import BaseAgent
from ..base.llm import ChatModel
from ...config import AgentConfig, HIGH_RISK_RESIDENCIES
from ...models import EntityProfile, PartyRecord, PartySummary, DATA_GAP_PARTIES


class PartyProfileOutput(BaseModel):
    """Output from customer & party profile agent"""
    entity_profile: Dict[str, Any] = Field(description="KYB-relevant entity attributes")
    party_summary: PartySummary = Field(description="Parties and key observations")


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return False


def derive_party_flags(party: Dict[str, Any]) -> List[str]:
    """Flag codes for a raw party record"""
    flags = []
    if _truthy(party.get("pep")):
        flags.append("PEP")
    if _truthy(party.get("sanctions")):
        flags.append("SANCTIONS_HIT")
    residency = str(party.get("residency") or "").strip().upper()
    if residency in HIGH_RISK_RESIDENCIES:
        flags.append(f"HIGH_RISK_RESIDENCY_{residency}")
    return flags


def party_observations(parties: List[PartyRecord], journey_type: str) -> str:
    high_risk = sum(1 for p in parties if p.risk_label == "HIGH")
    peps = sum(1 for p in parties if "PEP" in p.key_flags)
    return (
        f"Journey type {journey_type}. "
        f"Identified {len(parties)} parties with {high_risk} high-risk and {peps} PEP flags."
    )


class CustomerPartyProfileAgent(BaseAgent):
    """Profiles the entity and its associated parties"""

    def __init__(self, config: Optional[AgentConfig] = None, chat_model: Optional[ChatModel] = None):
        if config is None:
            config = AgentConfig(name="CustomerPartyProfileAgent", temperature=0.2)
        super().__init__(config, chat_model)

    def get_system_prompt(self) -> str:
        return """You are the Customer & Party Profile Agent in a KYB Early-Risk Radar.

Prepare a clean, consolidated view of the legal entity and associated natural persons.

You receive:
- journey_type from the journey classifier
- the CRM customer record (legal name, sector, turnover band, onboarding date, KYB status, last review date)
- party records (directors, beneficial owners, partners, signatories) with PEP, sanctions and residency attributes

You must:
1. Build an entity_profile with only KYB-relevant attributes. Keep kyb_last_review_date and internal_risk_rating exactly as given.
2. Build a party_summary where each party has party_id, name, role, key_flags (list) and risk_label (LOW/MEDIUM/HIGH),
   plus key_observations: a short paragraph on concerns (PEP, high-risk residency, complex ownership).

Do NOT analyse transactions or assign an overall risk band.

OUTPUT: Return ONLY a JSON object:
{
  "entity_profile": { ... },
  "party_summary": {"parties": [ ... ], "key_observations": "text"}
}"""

    def get_output_schema(self) -> type:
        return PartyProfileOutput

    async def run(self, customer: Dict[str, Any], parties: List[Dict[str, Any]], journey_type: str) -> Any:
        return await self.ask({
            "task": "profile_customer_and_parties",
            "journey_type": journey_type,
            "customer": customer,
            "parties": parties,
        })

    @staticmethod
    def fallback_profile(customer: Dict[str, Any], journey_type: str) -> EntityProfile:
        """Entity profile copied straight from the CRM record."""
        return EntityProfile(
            journey_type=journey_type,
            legal_name=customer.get("legal_name") or "",
            short_name=customer.get("short_name") or "",
            customer_id=customer.get("customer_id") or "",
            sector=customer.get("sector") or "",
            sub_sector=customer.get("sub_sector") or "",
            country_of_incorporation=customer.get("country_of_incorporation") or "",
            primary_operating_country=customer.get("primary_operating_country") or "",
            onboarding_date=customer.get("onboarding_date") or "",
            turnover_band=customer.get("turnover_band_inr") or "",
            internal_risk_rating=customer.get("internal_risk_rating") or "",
            pep_flag=_truthy(customer.get("pep_flag")),
            sanctions_flag=_truthy(customer.get("sanctions_flag")),
            kyb_status=customer.get("kyb_status") or "",
            kyb_last_review_date=customer.get("kyb_last_review_date"),
            products=customer.get("products") or [],
        )

    @staticmethod
    def fallback_parties(customer: Dict[str, Any], parties: List[Dict[str, Any]], journey_type: str) -> PartySummary:
        customer_id = str(customer.get("customer_id") or "")
        records = [
            PartyRecord(
                party_id=party.get("party_id") or f"{customer_id}-P",
                name=party.get("name") or "Unknown Party",
                role=party.get("role") or "UNKNOWN",
                risk_label=party.get("risk_label") or "MEDIUM",
                key_flags=derive_party_flags(party),
            )
            for party in parties
        ]
        if not records:
            records = PartySummary.data_gap(customer_id, customer.get("legal_name") or "Unknown").parties
        return PartySummary(parties=records, key_observations=party_observations(records, journey_type))

    def fallback(
        self, customer: Dict[str, Any], parties: List[Dict[str, Any]], journey_type: str
    ) -> Tuple[EntityProfile, PartySummary]:
        return (
            self.fallback_profile(customer, journey_type),
            self.fallback_parties(customer, parties, journey_type),
        )
