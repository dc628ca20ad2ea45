"""
End-to-end tests for the KYB conductor against the bundled reference data.
"""

import asyncio
import json

import pytest

from conftest import AS_OF, FakeChatModel, JOURNEY, PARTY_PROFILE, GROUP, NOTE, RISK_COMPLIANCE, RISK_SCOPE, CUSTOMER_PROFILE
from kyb_radar.data import ReferenceDataStore
from kyb_radar.errors import CustomerNotFoundError
from kyb_radar.models import OUTCOME_FIELDS, TRANSACTIONS_NOT_AVAILABLE
from kyb_radar.pipeline import KYBConductor, build_profile_summary

BASE_AGENTS = ["JourneyClassifierAgent", "CustomerPartyProfileAgent"]
TAIL_AGENTS = ["TransactionPatternAgent", "RiskRulesAgent", "KYBNoteAgent"]


def run(conductor, customer_id):
    return asyncio.run(conductor.run_kyb(customer_id))


def contract_without_audit(outcome):
    contract = outcome.to_contract()
    contract.pop("audit_trail", None)
    return contract


class TestOfflineRuns:
    """Runs with no usable model answer: every stage takes its deterministic path."""

    def test_linked_company_with_transaction_spike(self, offline_conductor):
        outcome = run(offline_conductor, "C001")
        risk = outcome.risk_assessment

        assert outcome.journey_type == "LIMITED_COMPANY_SINGLE"
        assert outcome.group_context.linked_entities == ["C004"]
        assert outcome.audit_trail.agents_called == BASE_AGENTS + ["GroupRelationshipAgent"] + TAIL_AGENTS
        assert outcome.audit_trail.customer_id == "C001"

        assert risk.trigger_codes == ["TRIG_KYB_OVERDUE", "TRIG_INTL_SPIKE", "TRIG_HIGH_RISK_COUNTRY"]
        assert risk.score == 65
        assert risk.risk_band == "RED"
        assert risk.score == risk.score_breakdown.base_score + sum(i.delta for i in risk.score_breakdown.trigger_impacts)

        assert outcome.kyb_note.startswith("KYB Risk Assessment: RED risk band identified.")
        assert "Assessment score: 65." in outcome.kyb_note
        assert outcome.recommended_actions == [
            "Urgent: Schedule immediate KYB review meeting with customer",
            "Escalate to senior risk team for enhanced due diligence",
            "Verify transaction rationale for high-risk country payments",
            "Complete overdue KYB review documentation immediately",
            "Obtain supporting evidence for the increase in international outward payments",
        ]

        parties = outcome.party_summary.parties
        assert len(parties) == 3
        assert parties[1].key_flags == ["HIGH_RISK_RESIDENCY_AE"]

    def test_unlinked_partnership_skips_group_stage(self, offline_conductor):
        outcome = run(offline_conductor, "C002")

        assert outcome.journey_type == "PARTNERSHIP_LLP"
        assert outcome.group_context is None
        assert outcome.audit_trail.agents_called == BASE_AGENTS + TAIL_AGENTS
        assert outcome.risk_assessment.score == 10
        assert outcome.risk_assessment.risk_band == "GREEN"
        assert outcome.risk_assessment.triggers_fired == []
        assert outcome.recommended_actions == ["Continue regular monitoring per standard KYB review cycle"]

    def test_high_risk_sole_trader_without_parties(self, offline_conductor):
        outcome = run(offline_conductor, "C003")
        risk = outcome.risk_assessment

        assert outcome.journey_type == "SOLE_TRADER"
        assert outcome.party_summary.parties[0].party_id == "C003-P01"
        assert outcome.party_summary.parties[0].key_flags == ["DATA_GAP_PARTIES"]
        assert risk.trigger_codes == ["TRIG_SECTOR_HIGH_RISK", "TRIG_KYB_OVERDUE", "TRIG_CASH_HEAVY"]
        assert risk.score_breakdown.base_score == 35
        assert risk.score == 75
        assert risk.risk_band == "RED"

    def test_linked_back_to_parent(self, offline_conductor):
        outcome = run(offline_conductor, "C004")

        assert outcome.group_context.linked_entities == ["C001"]
        assert outcome.risk_assessment.score == 20
        assert outcome.risk_assessment.risk_band == "GREEN"

    def test_insufficient_history_continues(self, offline_conductor):
        outcome = run(offline_conductor, "C005")

        assert outcome.transaction_insights.summary == TRANSACTIONS_NOT_AVAILABLE
        assert outcome.transaction_insights.supporting_metrics == {}
        assert "TransactionPatternAgent" in outcome.audit_trail.agents_called
        assert outcome.risk_assessment.score == 20
        assert outcome.risk_assessment.risk_band == "GREEN"

    def test_unknown_customer_aborts(self, offline_conductor):
        with pytest.raises(CustomerNotFoundError) as exc_info:
            run(offline_conductor, "C999")
        assert exc_info.value.customer_id == "C999"

    def test_contract_shape(self, offline_conductor):
        contract = run(offline_conductor, "C002").to_contract()

        assert list(contract)[:len(OUTCOME_FIELDS)] == list(OUTCOME_FIELDS)
        assert contract["group_context"] is None
        assert json.loads(json.dumps(contract)) == contract

    def test_repeat_runs_match(self, offline_conductor):
        first = run(offline_conductor, "C001")
        second = run(offline_conductor, "C001")

        assert contract_without_audit(first) == contract_without_audit(second)
        assert offline_conductor.get_stats()["runs_completed"] == 2


class TestModelAnswers:
    """Runs where scripted model answers feed the stages."""

    def test_model_may_rule_out_linked_customers(self, make_conductor):
        conductor = make_conductor({
            JOURNEY: {"journey_type": "LIMITED_COMPANY_MULTI", "has_linked_customers": False, "num_parties": 3, "reasoning": "Two directors and a signatory"},
        })
        outcome = run(conductor, "C001")

        assert outcome.journey_type == "LIMITED_COMPANY_MULTI"
        assert outcome.group_context is None
        assert "GroupRelationshipAgent" not in outcome.audit_trail.agents_called
        assert outcome.risk_assessment.journey_type == "LIMITED_COMPANY_MULTI"

    def test_empty_group_answer_is_no_group(self, make_conductor):
        conductor = make_conductor({
            JOURNEY: {"journey_type": "PARTNERSHIP_LLP", "has_linked_customers": True, "num_parties": 2, "reasoning": "x"},
            GROUP: {"linked_entities": [], "group_structure": "", "relationship_types": [], "aggregate_risk_indicators": ""},
        })
        outcome = run(conductor, "C002")

        assert outcome.group_context is None
        assert "GroupRelationshipAgent" in outcome.audit_trail.agents_called

    def test_failing_group_resolver_uses_heuristic(self, make_conductor):
        conductor = make_conductor({GROUP: RuntimeError("connection reset")})
        outcome = run(conductor, "C001")
        assert outcome.group_context.linked_entities == ["C004"]

    def test_partial_profile_merges_over_crm(self, make_conductor):
        conductor = make_conductor({PARTY_PROFILE: {"entity_profile": {"sector": "Precious Metals"}}})
        outcome = run(conductor, "C001")
        risk = outcome.risk_assessment

        assert outcome.entity_profile.sector == "Precious Metals"
        assert outcome.entity_profile.legal_name == "Sharma Precision Engineering Private Limited"
        assert len(outcome.party_summary.parties) == 3
        assert risk.trigger_codes[0] == "TRIG_SECTOR_HIGH_RISK"
        assert risk.score_breakdown.base_score == 35
        assert risk.score == 95

    def test_model_note_is_used(self, make_conductor):
        conductor = make_conductor({
            NOTE: {"kyb_note": "Sharp rise in payments to high-risk countries.", "recommended_actions": ["Call the customer"]},
        })
        outcome = run(conductor, "C001")

        assert outcome.kyb_note == "Sharp rise in payments to high-risk countries."
        assert outcome.recommended_actions == ["Call the customer"]
        assert outcome.risk_assessment.risk_band == "RED"

    def test_note_without_actions_gets_template_actions(self, make_conductor):
        conductor = make_conductor({NOTE: {"kyb_note": "Everything looks calm for this customer."}})
        outcome = run(conductor, "C002")

        assert outcome.kyb_note == "Everything looks calm for this customer."
        assert outcome.recommended_actions == ["Continue regular monitoring per standard KYB review cycle"]

    def test_malformed_answers_match_offline_run(self, make_conductor, offline_conductor):
        garbage = "Sure! Here is what I found about this customer"
        conductor = make_conductor({JOURNEY: garbage, PARTY_PROFILE: garbage, GROUP: garbage, NOTE: garbage})

        outcome = run(conductor, "C001")

        assert contract_without_audit(outcome) == contract_without_audit(run(offline_conductor, "C001"))
        assert conductor.get_stats()["agent_stats"]["KYBNoteAgent"]["red_flag_count"] == 1


class TestToolOperations:

    def test_customer_profile_fallback(self, offline_conductor):
        text = asyncio.run(offline_conductor.customer_profile("C003"))
        assert text.startswith("Apex Gold Traders (C003), onboarded in 2017")

    def test_customer_profile_model_sentence(self, make_conductor):
        sentence = "Greenleaf Organics LLP is a low risk organic produce partnership onboarded in 2021."
        conductor = make_conductor({CUSTOMER_PROFILE: sentence})
        assert asyncio.run(conductor.customer_profile("C002")) == sentence

    def test_customer_profile_unknown(self, offline_conductor):
        with pytest.raises(CustomerNotFoundError):
            asyncio.run(offline_conductor.customer_profile("C999"))

    def test_transaction_analysis(self, offline_conductor):
        payload = json.loads(asyncio.run(offline_conductor.transaction_analysis("C001")))
        assert payload["transaction_insights"]["candidate_triggers"] == ["TRIG_INTL_SPIKE", "TRIG_HIGH_RISK_COUNTRY"]

    def test_transaction_analysis_insufficient(self, offline_conductor):
        payload = json.loads(asyncio.run(offline_conductor.transaction_analysis("C005")))
        assert payload["transaction_insights"]["summary"] == TRANSACTIONS_NOT_AVAILABLE

    def test_transaction_analysis_unknown(self, offline_conductor):
        with pytest.raises(CustomerNotFoundError):
            asyncio.run(offline_conductor.transaction_analysis("C999"))

    def test_assess_risk_fallback_is_amber(self, offline_conductor):
        result = json.loads(asyncio.run(offline_conductor.assess_risk("profile text", "transaction text")))

        assert result["risk_color"] == "AMBER"
        assert result["recommended_actions"]

    def test_assess_risk_model_answer(self, make_conductor):
        conductor = make_conductor({RISK_COMPLIANCE: {"risk_color": "red", "key_flags": ["Cash heavy"], "recommended_actions": ["Escalate"]}})
        result = json.loads(asyncio.run(conductor.assess_risk("profile", "transactions")))
        assert result == {"risk_color": "RED", "key_flags": ["Cash heavy"], "recommended_actions": ["Escalate"]}

    def test_kyb_note_accepts_free_text_risk(self, offline_conductor):
        note = asyncio.run(offline_conductor.kyb_note("profile", "transactions", "looks fine to me"))
        assert note.startswith("KYB Risk Assessment: AMBER risk band identified.")

    def test_kyb_note_accepts_risk_dict(self, offline_conductor):
        note = asyncio.run(offline_conductor.kyb_note("profile", "transactions", {"risk_band": "GREEN", "score": 10}))
        assert "GREEN risk band" in note
        assert "Assessment score: 10." in note

    def test_risk_scope_from_rule_engine(self, offline_conductor):
        result = asyncio.run(offline_conductor.risk_scope("C003"))

        assert result["risk_scope"]["scope_level"] == "ENHANCED"
        assert [a["id"] for a in result["risk_actions"]] == ["ACT_SECTOR_EDD", "ACT_KYB_REFRESH", "ACT_CASH_SOURCE"]
        assert "base score 35; band RED" in result["data_points_used"]["rules_refs"]

    def test_risk_scope_model_answer_completed(self, make_conductor):
        conductor = make_conductor({RISK_SCOPE: {"risk_scope": {"scope_level": "STANDARD", "scope_drivers": ["Cash deposits"]}}})
        result = asyncio.run(conductor.risk_scope("C002"))

        assert result["risk_scope"]["scope_level"] == "STANDARD"
        assert result["risk_actions"] == []
        assert set(result["key_risk_drivers"]) == {"legal_and_structure", "financial_and_credit", "behavioural", "public_records"}

    def test_risk_scope_unknown(self, offline_conductor):
        with pytest.raises(CustomerNotFoundError):
            asyncio.run(offline_conductor.risk_scope("C999"))


def test_profile_summary_text(store, offline_conductor):
    customer = store.find_customer("C002")
    profile, parties = offline_conductor.party_profiler.fallback(customer, store.parties_for("C002"), "PARTNERSHIP_LLP")

    summary = build_profile_summary(profile, parties)

    assert summary.startswith("Entity: Greenleaf Organics LLP. Customer ID: C002. Sector: Agriculture - Organic Produce.")
    assert "Internal Risk Rating: LOW." in summary


def test_conductor_without_rules_document(tmp_path, store):
    (tmp_path / "crm.json").write_text(json.dumps({"customers": [store.find_customer("C002")]}))
    conductor = KYBConductor(store=ReferenceDataStore(tmp_path), chat_model=FakeChatModel(), as_of=AS_OF)

    outcome = run(conductor, "C002")

    assert outcome.risk_assessment.score == 20
    assert outcome.risk_assessment.risk_band == "AMBER"
    assert outcome.party_summary.parties[0].key_flags == ["DATA_GAP_PARTIES"]
    assert outcome.transaction_insights.summary == TRANSACTIONS_NOT_AVAILABLE
