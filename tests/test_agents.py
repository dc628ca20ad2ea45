"""
Tests for the stage agents: the shared execution path, the deterministic
transaction analysis and every agent's fallback.
"""

import asyncio
import json
import time

import pytest

from conftest import FakeChatModel, JOURNEY, NOTE, CUSTOMER_PROFILE
from kyb_radar.agents import (
    CustomerPartyProfileAgent,
    CustomerProfileAgent,
    GroupRelationshipAgent,
    JourneyClassifierAgent,
    KYBNoteAgent,
    RedFlagDetector,
    RiskScopeActionsAgent,
    TransactionPatternAgent,
)
from kyb_radar.agents.analysis.transaction_pattern import format_amount, pct_change
from kyb_radar.agents.base import parse_model_text
from kyb_radar.agents.narrative import coerce_risk_assessment
from kyb_radar.agents.profiling.party_profile import derive_party_flags
from kyb_radar.config import AgentConfig
from kyb_radar.data import ReferenceDataStore
from kyb_radar.errors import InsufficientHistoryError
from kyb_radar.models import RiskAssessment, ScoreBreakdown, TriggerImpact, TriggerRecord


class SlowChatModel(FakeChatModel):

    def complete(self, system_prompt, user_prompt, json_mode=True, temperature=0.2, max_tokens=2000):
        time.sleep(0.5)
        return super().complete(system_prompt, user_prompt, json_mode, temperature, max_tokens)


class TestAgentExecution:
    """The single-call execution path shared by every LLM-backed agent."""

    def test_think_tags_and_fences_are_stripped(self):
        answer = '<think>checking the name</think>```json\n{"journey_type": "GROUP", "has_linked_customers": true, "num_parties": 4, "reasoning": "x"}\n```'
        agent = JourneyClassifierAgent(chat_model=FakeChatModel({JOURNEY: answer}))

        response = asyncio.run(agent.execute({"customer": {}}))

        assert response.success
        assert response.data["journey_type"] == "GROUP"
        assert response.total_tokens == 30

    def test_malformed_json_is_red_flagged(self):
        agent = JourneyClassifierAgent(chat_model=FakeChatModel({JOURNEY: "The customer is a limited company."}))

        response = asyncio.run(agent.execute({"customer": {}}))

        assert not response.success
        assert response.red_flagged
        assert response.red_flag_reason.startswith("Invalid JSON format")

    def test_empty_answer_is_red_flagged(self):
        agent = JourneyClassifierAgent(chat_model=FakeChatModel({JOURNEY: ""}))
        assert asyncio.run(agent.ask({"customer": {}})) is None

    def test_unavailable_model_returns_none(self):
        agent = JourneyClassifierAgent(chat_model=FakeChatModel())

        assert asyncio.run(agent.ask({"customer": {}})) is None
        assert agent.get_stats()["execution_count"] == 1
        assert agent.get_stats()["success_count"] == 0

    def test_provider_exception_is_contained(self):
        agent = KYBNoteAgent(chat_model=FakeChatModel({NOTE: RuntimeError("rate limited")}))
        response = asyncio.run(agent.execute({}))

        assert not response.success
        assert "rate limited" in response.red_flag_reason

    def test_timeout(self):
        config = AgentConfig(name="JourneyClassifierAgent", timeout_seconds=0.05)
        agent = JourneyClassifierAgent(config, chat_model=SlowChatModel({JOURNEY: {"journey_type": "GROUP"}}))

        response = asyncio.run(agent.execute({"customer": {}}))

        assert not response.success
        assert response.red_flag_reason.startswith("Timed out")

    def test_text_agent_confusion_marker(self):
        agent = CustomerProfileAgent(chat_model=FakeChatModel({CUSTOMER_PROFILE: "As an AI, I cannot summarize this."}))
        assert asyncio.run(agent.ask({"customer": {}})) is None

    def test_text_agent_answer(self):
        sentence = "Greenleaf Organics LLP, onboarded 2021, is a low risk agriculture business."
        agent = CustomerProfileAgent(chat_model=FakeChatModel({CUSTOMER_PROFILE: sentence}))
        assert asyncio.run(agent.ask({"customer": {}})) == sentence

    def test_red_flag_detector_length(self):
        detector = RedFlagDetector(max_tokens=10)
        flagged, reason = detector.check(json.dumps({"words": ["w"] * 50}), "json")
        assert flagged
        assert "too long" in reason

    def test_parse_model_text(self):
        assert parse_model_text('```\n{"a": 1}\n```') == {"a": 1}
        assert parse_model_text("<think>unfinished") == "unfinished"
        assert parse_model_text(None) == ""


class TestTransactionPattern:

    def test_spiking_customer(self, store):
        insights = TransactionPatternAgent(store).analyze("C001")

        assert insights.candidate_triggers == ["TRIG_INTL_SPIKE", "TRIG_HIGH_RISK_COUNTRY"]
        assert insights.supporting_metrics == {
            "intl_outward_change_pct": 150,
            "high_risk_country_share_pct": 8,
            "cash_deposit_ratio_pct": 10,
            "period_covered_months": 6,
            "latest_period": "2026-06",
        }
        assert insights.summary == (
            "Across 6 months ending 2026-06, outward volumes reached INR 6.0 Mn. "
            "International outward payments changed approx. 150% month-on-month. "
            "High-risk country share at 8%; cash deposits represent ~10% of outward flows. "
            "Candidate triggers identified: TRIG_INTL_SPIKE, TRIG_HIGH_RISK_COUNTRY."
        )

    def test_cash_heavy_customer(self, store):
        insights = TransactionPatternAgent(store).analyze("C003")

        assert insights.candidate_triggers == ["TRIG_CASH_HEAVY"]
        assert insights.supporting_metrics["cash_deposit_ratio_pct"] == 45
        assert insights.supporting_metrics["intl_outward_change_pct"] == 0

    def test_quiet_customer(self, store):
        insights = TransactionPatternAgent(store).analyze("C002")

        assert insights.candidate_triggers == []
        assert insights.summary.endswith("No major trigger-worthy anomalies detected.")

    def test_single_month_is_insufficient(self, store):
        with pytest.raises(InsufficientHistoryError):
            TransactionPatternAgent(store).analyze("C005")

    def test_no_record_is_insufficient(self, store):
        with pytest.raises(InsufficientHistoryError):
            TransactionPatternAgent(store).analyze("C999")

    def test_periods_sorted_and_bounded(self, tmp_path):
        stats = [
            {"period": f"2025-{month:02d}", "total_outward_amount": 1000, "intl_outward_amount": 100}
            for month in range(1, 10)
        ]
        stats.reverse()
        stats.append({"period": "not-a-month", "total_outward_amount": 1, "intl_outward_amount": 999999})
        stats.append({"period": "2025-10", "total_outward_amount": 1000, "intl_outward_amount": 300})
        (tmp_path / "transactions.json").write_text(json.dumps({"customers": {"T1": {"monthly_stats": stats}}}))

        insights = TransactionPatternAgent(ReferenceDataStore(tmp_path)).analyze("T1")

        assert insights.supporting_metrics["latest_period"] == "2025-10"
        assert insights.supporting_metrics["period_covered_months"] == 6
        assert insights.supporting_metrics["intl_outward_change_pct"] == 200
        assert insights.candidate_triggers == ["TRIG_INTL_SPIKE"]

    def test_analyze_json(self, store):
        payload = json.loads(TransactionPatternAgent(store).analyze_json("C002"))
        assert payload["transaction_insights"]["supporting_metrics"]["latest_period"] == "2026-06"

    def test_helpers(self):
        assert pct_change(0, 10) == 100.0
        assert pct_change(0, 0) == 0.0
        assert pct_change(100, 50) == -50.0
        assert format_amount(2_500_000) == "2.5 Mn"
        assert format_amount(350_000) == "350000"


class TestFallbacks:
    """Deterministic answers used when a model answer is unusable."""

    @pytest.mark.parametrize("legal_name,expected", [
        ("Greenleaf Organics LLP", "PARTNERSHIP_LLP"),
        ("Northwind Logistics Pvt Ltd", "LIMITED_COMPANY_SINGLE"),
        ("Sharma Precision Engineering Private Limited", "LIMITED_COMPANY_SINGLE"),
        ("Apex Gold Traders", "SOLE_TRADER"),
        ("", "SOLE_TRADER"),
    ])
    def test_journey_from_name(self, legal_name, expected):
        assert JourneyClassifierAgent.fallback({"legal_name": legal_name}).journey_type == expected

    def test_journey_linked_customers(self, store):
        assert JourneyClassifierAgent.fallback(store.find_customer("C001")).has_linked_customers is True
        assert JourneyClassifierAgent.fallback(store.find_customer("C002")).has_linked_customers is False

    def test_party_flags(self):
        assert derive_party_flags({"pep": True, "sanctions": "yes", "residency": "ae"}) == [
            "PEP", "SANCTIONS_HIT", "HIGH_RISK_RESIDENCY_AE"
        ]
        assert derive_party_flags({"pep": False, "residency": "IN"}) == []

    def test_party_profile_from_crm(self, store):
        agent = CustomerPartyProfileAgent(chat_model=FakeChatModel())
        customer = store.find_customer("C001")

        profile, parties = agent.fallback(customer, store.parties_for("C001"), "LIMITED_COMPANY_SINGLE")

        assert profile.turnover_band == "50-100 Cr"
        assert profile.kyb_last_review_date == "2023-01-15"
        assert [p.party_id for p in parties.parties] == ["C001-P01", "C001-P02", "C001-P03"]
        assert parties.parties[1].key_flags == ["HIGH_RISK_RESIDENCY_AE"]
        assert parties.key_observations == (
            "Journey type LIMITED_COMPANY_SINGLE. Identified 3 parties with 0 high-risk and 0 PEP flags."
        )

    def test_party_profile_without_parties(self, store):
        agent = CustomerPartyProfileAgent(chat_model=FakeChatModel())
        _, parties = agent.fallback(store.find_customer("C003"), [], "SOLE_TRADER")

        assert len(parties.parties) == 1
        assert parties.parties[0].party_id == "C003-P01"
        assert parties.parties[0].name == "Apex Gold Traders Principal"
        assert parties.parties[0].key_flags == ["DATA_GAP_PARTIES"]

    def test_group_heuristic(self, store):
        customers = store.customers()

        group = GroupRelationshipAgent.fallback(store.find_customer("C001"), customers)
        assert group.linked_entities == ["C004"]
        assert GroupRelationshipAgent.fallback(store.find_customer("C002"), customers) is None

    def test_customer_profile_sentence(self, store):
        sentence = CustomerProfileAgent.fallback(store.find_customer("C002"))
        assert sentence == (
            "Greenleaf Organics LLP (C002), onboarded in 2021, operates in Agriculture "
            "with turnover band 10-25 Cr and internal risk rating LOW."
        )

    def test_note_for_loose_risk_shape(self):
        result = KYBNoteAgent.fallback("profile", "transactions", {"band": "red", "triggers": ["TRIG_CASH_HEAVY"], "score": 70})

        assert result.kyb_note.startswith("KYB Risk Assessment: RED risk band identified.")
        assert "Key risk indicators: TRIG_CASH_HEAVY." in result.kyb_note
        assert "Assessment score: 70." in result.kyb_note
        assert result.recommended_actions == [
            "Urgent: Schedule immediate KYB review meeting with customer",
            "Escalate to senior risk team for enhanced due diligence",
            "Validate cash deposit sources and ensure compliance with cash handling policies",
        ]

    def test_note_truncates_long_summaries(self):
        result = KYBNoteAgent.fallback("p" * 300, "t" * 300, {})
        assert "p" * 100 + "..." in result.kyb_note
        assert "p" * 101 not in result.kyb_note
        assert result.recommended_actions[0] == "Schedule KYB review within next 30 days"

    def test_coerce_risk_assessment(self):
        assert coerce_risk_assessment('{"risk_band": "GREEN"}') == {"risk_band": "GREEN"}
        loose = coerce_risk_assessment("looks risky to me")
        assert loose["band"] == "AMBER"
        assert loose["reasoning"] == "looks risky to me"

    def test_risk_scope_from_assessment(self):
        assessment = RiskAssessment(
            risk_band="RED",
            score=65,
            triggers_fired=[TriggerRecord(code="TRIG_CASH_HEAVY", severity="MEDIUM", reason="Cash ratio 45%")],
            score_breakdown=ScoreBreakdown(base_score=50, trigger_impacts=[TriggerImpact(code="TRIG_CASH_HEAVY", delta=15)]),
        )
        result = RiskScopeActionsAgent.fallback(assessment, {"sector": "Retail"})

        assert result["risk_scope"]["scope_level"] == "ENHANCED"
        assert result["risk_scope"]["recommended_monitoring_frequency"] == "QUARTERLY"
        assert result["key_risk_drivers"]["behavioural"] == ["Cash ratio 45%"]
        assert result["risk_actions"][0]["id"] == "ACT_CASH_SOURCE"
        assert result["data_points_used"]["rules_refs"] == ["TRIG_CASH_HEAVY (delta 15)", "base score 50; band RED"]
