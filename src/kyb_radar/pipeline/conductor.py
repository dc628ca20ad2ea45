"""
LangGraph-based KYB Conductor

Sequences the KYB stages for one customer, normalizes every stage output and
assembles the final KYBOutcome with an audit trail:

    classify_journey -> profile -> [resolve_group] -> analyze_transactions
        -> assess_risk -> write_note

Only CustomerNotFoundError escapes run_kyb(); every other stage failure
degrades to that stage's documented default.
"""

import json
import operator
from datetime import date, datetime
from typing import Any, Annotated, Dict, List, Optional, TypedDict

from loguru import logger
from langgraph.graph import StateGraph, END

from ..agents import (
    ChatModel,
    JourneyClassifierAgent,
    CustomerPartyProfileAgent,
    CustomerProfileAgent,
    GroupRelationshipAgent,
    TransactionPatternAgent,
    RiskComplianceAgent,
    RiskScopeActionsAgent,
    KYBNoteAgent,
)
from ..agents.narrative import coerce_risk_assessment
from ..config import PipelineConfig
from ..data import ReferenceDataStore, COMPANIES_HOUSE_DOCUMENT, EXPERIAN_DOCUMENT
from ..errors import CustomerNotFoundError, ReferenceDataError, StageError
from ..models import (
    AuditTrail,
    EntityProfile,
    GroupContext,
    JourneyClassification,
    KYBOutcome,
    NarrativeResult,
    PartySummary,
    RiskAssessment,
    TransactionInsights,
)
from ..risk import RiskRuleEngine, RulesConfig
from ..tracking import tracker
from .normalizer import (
    normalize_group,
    normalize_journey,
    normalize_narrative,
    normalize_profile,
    normalize_risk_compliance,
    normalize_risk_scope,
    normalize_text,
    validate_outcome,
)

RISK_RULES_AGENT = "RiskRulesAgent"


class KYBState(TypedDict):
    """State for the KYB pipeline graph"""
    customer_id: str
    customer: Dict[str, Any]
    journey: Optional[JourneyClassification]
    entity_profile: Optional[EntityProfile]
    party_summary: Optional[PartySummary]
    group_context: Optional[GroupContext]
    transaction_insights: Optional[TransactionInsights]
    profile_summary: str
    risk_assessment: Optional[RiskAssessment]
    narrative: Optional[NarrativeResult]
    agents_called: Annotated[List[str], operator.add]


def build_profile_summary(profile: EntityProfile, parties: PartySummary) -> str:
    """Plain-text profile handed to the rule engine stage and the narrative writer."""
    sector = profile.sector or "Unknown"
    if profile.sub_sector:
        sector = f"{sector} - {profile.sub_sector}"
    return (
        f"Entity: {profile.legal_name or 'Unknown'}. "
        f"Customer ID: {profile.customer_id or 'Unknown'}. "
        f"Sector: {sector}. "
        f"Turnover Band: {profile.turnover_band or 'Unknown'}. "
        f"Internal Risk Rating: {profile.internal_risk_rating or 'Unknown'}. "
        f"Onboarding Date: {profile.onboarding_date or 'Unknown'}. "
        f"PEP Flag: {profile.pep_flag}. "
        f"Sanctions Flag: {profile.sanctions_flag}. "
        f"Party Observations: {parties.key_observations}"
    )


class KYBConductor:
    """
    Runs the KYB pipeline and the individual stage operations exposed as tools.

    The RulesConfig is built once per conductor and shared read-only across
    concurrent runs.
    """

    def __init__(self,
                 store: Optional[ReferenceDataStore] = None,
                 chat_model: Optional[ChatModel] = None,
                 config: Optional[PipelineConfig] = None,
                 rules: Optional[RulesConfig] = None,
                 as_of: Optional[date] = None):
        self.config = config or PipelineConfig()
        self.store = store or ReferenceDataStore(self.config.data_dir)
        self.rules = rules if rules is not None else RulesConfig.from_document(
            self.store.rules(self.config.rules_document)
        )
        self.as_of = as_of

        chat_model = chat_model if chat_model is not None else ChatModel.from_env()
        self.journey_classifier = JourneyClassifierAgent(chat_model=chat_model)
        self.party_profiler = CustomerPartyProfileAgent(chat_model=chat_model)
        self.customer_profiler = CustomerProfileAgent(chat_model=chat_model)
        self.group_resolver = GroupRelationshipAgent(chat_model=chat_model)
        self.transaction_analyzer = TransactionPatternAgent(self.store, self.rules, self.config)
        self.risk_compliance = RiskComplianceAgent(chat_model=chat_model)
        self.risk_scope_agent = RiskScopeActionsAgent(chat_model=chat_model)
        self.note_writer = KYBNoteAgent(chat_model=chat_model)
        self.engine = RiskRuleEngine()

        self.graph = self._build_graph()
        self.runs_completed = 0
        logger.info(f"KYB conductor initialized (data: {self.store.data_dir}, LLM: {chat_model.provider})")

    def _build_graph(self):
        """Build the LangGraph workflow for one KYB run"""
        workflow = StateGraph(KYBState)

        workflow.add_node("classify_journey", self._classify_journey_node)
        workflow.add_node("profile", self._profile_node)
        workflow.add_node("resolve_group", self._resolve_group_node)
        workflow.add_node("analyze_transactions", self._analyze_transactions_node)
        workflow.add_node("assess_risk", self._assess_risk_node)
        workflow.add_node("write_note", self._write_note_node)

        workflow.set_entry_point("classify_journey")
        workflow.add_edge("classify_journey", "profile")

        # Group resolution only runs for customers flagged as linked
        workflow.add_conditional_edges(
            "profile",
            self._route_group,
            {
                "resolve": "resolve_group",
                "skip": "analyze_transactions",
            }
        )

        workflow.add_edge("resolve_group", "analyze_transactions")
        workflow.add_edge("analyze_transactions", "assess_risk")
        workflow.add_edge("assess_risk", "write_note")
        workflow.add_edge("write_note", END)

        return workflow.compile()

    def _route_group(self, state: KYBState) -> str:
        journey = state.get("journey")
        return "resolve" if journey is not None and journey.has_linked_customers else "skip"

    # --- Graph nodes -----------------------------------------------------------

    async def _classify_journey_node(self, state: KYBState) -> Dict[str, Any]:
        customer_id = state["customer_id"]
        customer = self.store.find_customer(customer_id)

        raw = await self.journey_classifier.run(customer)
        journey = normalize_journey(raw, JourneyClassifierAgent.fallback(customer))
        if raw is None:
            logger.warning(f"Journey classification degraded to name heuristic for {customer_id}")
        logger.info(f"{customer_id}: journey {journey.journey_type} (linked customers: {journey.has_linked_customers})")

        return {
            "customer": customer,
            "journey": journey,
            "agents_called": [self.journey_classifier.name],
        }

    async def _profile_node(self, state: KYBState) -> Dict[str, Any]:
        customer_id = state["customer_id"]
        customer = state["customer"]
        journey_type = state["journey"].journey_type
        parties = self.store.parties_for(customer_id)

        raw = await self.party_profiler.run(customer, parties, journey_type)
        profile, party_summary = normalize_profile(
            raw, self.party_profiler.fallback(customer, parties, journey_type)
        )
        if raw is None:
            logger.warning(f"Entity and party profile for {customer_id} built from CRM records")
        if not profile.journey_type:
            profile = profile.model_copy(update={"journey_type": journey_type})
        logger.info(f"{customer_id}: profiled {len(party_summary.parties)} parties")

        return {
            "entity_profile": profile,
            "party_summary": party_summary,
            "agents_called": [self.party_profiler.name],
        }

    async def _resolve_group_node(self, state: KYBState) -> Dict[str, Any]:
        customer_id = state["customer_id"]
        customer = state["customer"]
        try:
            customers = self.store.customers()
            raw = await self.group_resolver.run(customer, customers)
            group_context = normalize_group(raw, GroupRelationshipAgent.fallback(customer, customers))
        except ReferenceDataError as e:
            logger.warning(f"Group resolution failed for {customer_id}: {e}")
            group_context = None

        if group_context is None:
            logger.info(f"{customer_id}: no group context resolved")
        else:
            logger.info(f"{customer_id}: linked entities {group_context.linked_entities}")

        return {
            "group_context": group_context,
            "agents_called": [self.group_resolver.name],
        }

    async def _analyze_transactions_node(self, state: KYBState) -> Dict[str, Any]:
        customer_id = state["customer_id"]
        try:
            insights = self.transaction_analyzer.analyze(customer_id)
        except (StageError, ReferenceDataError) as e:
            logger.warning(f"Transaction analysis unavailable for {customer_id}: {e}")
            insights = TransactionInsights.not_available()

        return {
            "transaction_insights": insights,
            "agents_called": [self.transaction_analyzer.name],
        }

    async def _assess_risk_node(self, state: KYBState) -> Dict[str, Any]:
        profile = state["entity_profile"]
        party_summary = state["party_summary"]
        profile_summary = build_profile_summary(profile, party_summary)

        assessment = self.engine.assess(
            profile,
            party_summary,
            state.get("group_context"),
            state["transaction_insights"],
            state["journey"].journey_type,
            self.rules,
            as_of=self.as_of,
        )
        logger.info(
            f"{state['customer_id']}: band {assessment.risk_band}, score {assessment.score}, "
            f"triggers {assessment.trigger_codes or 'none'}"
        )

        return {
            "profile_summary": profile_summary,
            "risk_assessment": assessment,
            "agents_called": [RISK_RULES_AGENT],
        }

    async def _write_note_node(self, state: KYBState) -> Dict[str, Any]:
        profile_summary = state["profile_summary"]
        transaction_summary = state["transaction_insights"].summary
        risk = state["risk_assessment"].model_dump()

        raw = await self.note_writer.run(profile_summary, transaction_summary, risk)
        narrative = normalize_narrative(raw, KYBNoteAgent.fallback(profile_summary, transaction_summary, risk))
        if raw is None:
            logger.warning(f"KYB note for {state['customer_id']} generated from template")

        return {
            "narrative": narrative,
            "agents_called": [self.note_writer.name],
        }

    # --- Public operations ---------------------------------------------------------

    async def run_kyb(self, customer_id: str) -> KYBOutcome:
        """
        Run the full pipeline for one customer.

        Raises:
            CustomerNotFoundError: when the customer is absent from the CRM records.
        """
        start_time = datetime.now()
        logger.info(f"Starting KYB run for {customer_id}")

        initial_state: KYBState = {
            "customer_id": customer_id,
            "customer": {},
            "journey": None,
            "entity_profile": None,
            "party_summary": None,
            "group_context": None,
            "transaction_insights": None,
            "profile_summary": "",
            "risk_assessment": None,
            "narrative": None,
            "agents_called": [],
        }

        with tracker.span("run_kyb", customer_id=customer_id):
            try:
                final_state = await self.graph.ainvoke(initial_state)
            except CustomerNotFoundError as e:
                logger.error(f"KYB run aborted: {e}")
                raise

        narrative = final_state["narrative"] or NarrativeResult()
        outcome = validate_outcome(KYBOutcome(
            journey_type=final_state["journey"].journey_type,
            entity_profile=final_state["entity_profile"],
            party_summary=final_state["party_summary"],
            group_context=final_state.get("group_context"),
            transaction_insights=final_state["transaction_insights"],
            risk_assessment=final_state["risk_assessment"],
            kyb_note=narrative.kyb_note,
            recommended_actions=narrative.recommended_actions,
            audit_trail=AuditTrail(
                agents_called=list(final_state["agents_called"]),
                customer_id=customer_id,
            ),
        ))

        execution_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        self.runs_completed += 1
        tracker.log_kyb_run(customer_id, outcome.to_contract(), outcome.audit_trail.agents_called, execution_time_ms)
        logger.info(
            f"KYB run for {customer_id} completed in {execution_time_ms:.0f}ms: "
            f"{outcome.risk_assessment.risk_band} ({outcome.risk_assessment.score})"
        )
        return outcome

    def get_stats(self) -> Dict[str, Any]:
        """Run count and per-agent execution statistics"""
        agents = [
            self.journey_classifier,
            self.party_profiler,
            self.customer_profiler,
            self.group_resolver,
            self.risk_compliance,
            self.risk_scope_agent,
            self.note_writer,
        ]
        return {
            "runs_completed": self.runs_completed,
            "agent_stats": {agent.name: agent.get_stats() for agent in agents},
        }

    async def customer_profile(self, customer_id: str) -> str:
        """One-sentence profile summary of a customer."""
        customer = self.store.find_customer(customer_id)
        raw = await self.customer_profiler.run(customer)
        return normalize_text(raw, CustomerProfileAgent.fallback(customer))

    async def transaction_analysis(self, customer_id: str) -> str:
        """Transaction insights as JSON text of the form {"transaction_insights": {...}}."""
        self.store.find_customer(customer_id)
        try:
            return self.transaction_analyzer.analyze_json(customer_id)
        except (StageError, ReferenceDataError) as e:
            logger.warning(f"Transaction analysis unavailable for {customer_id}: {e}")
            return json.dumps({"transaction_insights": TransactionInsights.not_available().model_dump()})

    async def assess_risk(self, profile_summary: str, transaction_summary: str) -> str:
        """Rules-based colour, key flags and actions as JSON text."""
        raw = await self.risk_compliance.run(profile_summary, transaction_summary, self.rules.to_dict())
        result = normalize_risk_compliance(raw, RiskComplianceAgent.fallback())
        return json.dumps(result)

    async def kyb_note(self, profile_summary: str, transaction_summary: str, risk_assessment: Any) -> str:
        """KYB note text for free-form summaries and a risk assessment in either shape."""
        risk = coerce_risk_assessment(risk_assessment)
        raw = await self.note_writer.run(profile_summary, transaction_summary, risk)
        narrative = normalize_narrative(raw, KYBNoteAgent.fallback(profile_summary, transaction_summary, risk))
        return narrative.kyb_note

    def deterministic_assessment(self, customer: Dict[str, Any]) -> RiskAssessment:
        """Rule-engine verdict built from CRM records only, with no model calls."""
        customer_id = str(customer.get("customer_id") or "")
        journey = JourneyClassifierAgent.fallback(customer)
        profile, parties = self.party_profiler.fallback(customer, self.store.parties_for(customer_id), journey.journey_type)
        try:
            insights = self.transaction_analyzer.analyze(customer_id)
        except (StageError, ReferenceDataError):
            insights = TransactionInsights.not_available()
        return self.engine.assess(profile, parties, None, insights, journey.journey_type, self.rules, as_of=self.as_of)

    async def risk_scope(self, customer_id: str) -> Dict[str, Any]:
        """Risk scope, key drivers, actions and data points used for a customer."""
        customer = self.store.find_customer(customer_id)
        raw = await self.risk_scope_agent.run(
            self.store.business_record(COMPANIES_HOUSE_DOCUMENT, customer_id),
            self.store.business_record(EXPERIAN_DOCUMENT, customer_id),
            customer,
            self.store.transaction_record(customer_id),
            self.rules.to_dict(),
        )
        if raw is not None:
            normalized = normalize_risk_scope(raw, {})
            if normalized:
                return normalized
            logger.warning(f"Risk scope output for {customer_id} unusable; deriving from rule engine")
        return RiskScopeActionsAgent.fallback(self.deterministic_assessment(customer), customer)
