"""
Tests for the deterministic risk rule engine and the rules configuration.
"""

import json
from datetime import date

import pytest

from kyb_radar.models import EntityProfile, PartySummary, TransactionInsights
from kyb_radar.risk import (
    RiskRuleEngine,
    RulesConfig,
    months_between,
    parse_review_date,
    round_half_up,
    TRIG_SECTOR_HIGH_RISK,
    TRIG_KYB_OVERDUE,
    TRIG_INTL_SPIKE,
    TRIG_HIGH_RISK_COUNTRY,
    TRIG_CASH_HEAVY,
)

AS_OF = date(2026, 7, 1)

RULES_DOC = {
    "sector_risk": {"Manufacturing": "MEDIUM", "Precious Metals": "HIGH", "Agriculture": "LOW"},
    "risk_thresholds": {
        "intl_outward_mom_spike_pct": 100,
        "high_risk_country_volume_ratio": 0.05,
        "cash_deposit_to_turnover_ratio": 0.30,
        "months_without_kyb_review_for_high_risk": 12,
        "months_without_kyb_review_for_others": 18,
    },
    "kyb_review_triggers": [
        {"code": "TRIG_HIGH_RISK_COUNTRY", "severity": "HIGH"},
        {"code": "TRIG_SECTOR_HIGH_RISK", "severity": "HIGH"},
    ],
    "risk_scoring_model": {
        "base_scores": {"LOW": 10, "MEDIUM": 20, "HIGH": 35},
        "trigger_score_impacts": {
            "TRIG_INTL_SPIKE": 15,
            "TRIG_HIGH_RISK_COUNTRY": 20,
            "TRIG_CASH_HEAVY": 15,
            "TRIG_KYB_OVERDUE": 10,
            "TRIG_SECTOR_HIGH_RISK": 15,
        },
        "bands": [
            {"min_score": 0, "max_score": 29, "risk_band": "GREEN"},
            {"min_score": 30, "max_score": 59, "risk_band": "AMBER"},
            {"min_score": 60, "max_score": 1000, "risk_band": "RED"},
        ],
    },
}


@pytest.fixture
def rules():
    return RulesConfig.from_document(RULES_DOC)


@pytest.fixture
def engine():
    return RiskRuleEngine()


def profile(**overrides):
    values = {
        "legal_name": "Test Entity Private Limited",
        "customer_id": "T001",
        "sector": "Manufacturing",
        "internal_risk_rating": "MEDIUM",
        "kyb_last_review_date": "2026-01-10",
    }
    values.update(overrides)
    return EntityProfile(**values)


def insights(intl=0, high_risk=0, cash=0):
    return TransactionInsights(
        summary="test",
        supporting_metrics={
            "intl_outward_change_pct": intl,
            "high_risk_country_share_pct": high_risk,
            "cash_deposit_ratio_pct": cash,
        },
    )


def assess(engine, rules, entity=None, txn=None, journey="LIMITED_COMPANY_SINGLE", as_of=AS_OF):
    return engine.assess(entity or profile(), PartySummary(), None, txn or insights(), journey, rules, as_of=as_of)


class TestScenarios:
    """Worked scenarios for scoring."""

    def test_no_triggers_base_score_only(self, engine):
        """Base MEDIUM=20 with no triggers lands in the band containing 20."""
        rules = RulesConfig.from_document({
            "risk_scoring_model": {
                "base_scores": {"MEDIUM": 20},
                "bands": [{"min_score": 0, "max_score": 29, "risk_band": "GREEN"}],
            }
        })
        result = assess(engine, rules)

        assert result.score == 20
        assert result.risk_band == "GREEN"
        assert result.triggers_fired == []
        assert result.score_breakdown.base_score == 20

    def test_high_risk_sector_adds_impact(self, engine, rules):
        """A HIGH sector fires the sector trigger with its configured delta."""
        result = assess(engine, rules, profile(sector="Precious Metals"))

        # Base is max(MEDIUM=20, HIGH sector=35)
        assert result.score_breakdown.base_score == 35
        assert result.trigger_codes == [TRIG_SECTOR_HIGH_RISK]
        assert result.score_breakdown.trigger_impacts[0].delta == 15
        assert result.score == 50
        assert result.triggers_fired[0].severity == "HIGH"

    def test_overdue_review_medium_rating(self, engine, rules):
        """20 months since review exceeds the 18 month limit for non-HIGH ratings."""
        result = assess(engine, rules, profile(kyb_last_review_date="2024-11-01"))

        assert result.trigger_codes == [TRIG_KYB_OVERDUE]
        assert result.triggers_fired[0].reason == "Last KYB review on 2024-11-01 exceeds 18 month limit."
        assert result.score == 30

    def test_overdue_review_high_rating(self, engine, rules):
        """The same elapsed time also fires against the 12 month HIGH limit."""
        result = assess(engine, rules, profile(kyb_last_review_date="2024-11-01", internal_risk_rating="HIGH"))

        assert TRIG_KYB_OVERDUE in result.trigger_codes
        assert "exceeds 12 month limit" in result.triggers_fired[0].reason

    def test_review_within_limit_does_not_fire(self, engine, rules):
        result = assess(engine, rules, profile(kyb_last_review_date="2025-06-01"))
        assert result.trigger_codes == []

    def test_all_transaction_triggers(self, engine, rules):
        result = assess(engine, rules, txn=insights(intl=150, high_risk=8, cash=45))

        assert result.trigger_codes == [TRIG_INTL_SPIKE, TRIG_HIGH_RISK_COUNTRY, TRIG_CASH_HEAVY]
        assert result.score == 20 + 15 + 20 + 15
        assert result.risk_band == "RED"


class TestInvariants:
    """Properties that hold for every assessment."""

    @pytest.mark.parametrize("entity,txn", [
        (dict(), dict()),
        (dict(sector="Precious Metals", internal_risk_rating="HIGH", kyb_last_review_date="2020-01-01"),
         dict(intl=500, high_risk=50, cash=90)),
        (dict(internal_risk_rating="LOW", sector="Agriculture"), dict(cash=31)),
    ])
    def test_score_equals_base_plus_deltas(self, engine, rules, entity, txn):
        result = assess(engine, rules, profile(**entity), insights(**txn))
        breakdown = result.score_breakdown
        assert result.score == breakdown.base_score + sum(i.delta for i in breakdown.trigger_impacts)
        assert [i.code for i in breakdown.trigger_impacts] == result.trigger_codes

    def test_negative_deltas_are_applied(self, engine):
        rules = RulesConfig.from_document({
            "risk_scoring_model": {
                "base_scores": {"MEDIUM": 20},
                "trigger_score_impacts": {"TRIG_CASH_HEAVY": -5},
            }
        })
        result = assess(engine, rules, txn=insights(cash=50))
        assert result.score == 15

    def test_identical_inputs_identical_output(self, engine, rules):
        """Assessment is a pure function of its inputs."""
        entity = profile(sector="Precious Metals", kyb_last_review_date="2023-01-15")
        txn = insights(intl=150, high_risk=8)
        first = assess(engine, rules, entity, txn)
        second = assess(engine, rules, entity, txn)

        assert first.model_dump_json() == second.model_dump_json()

    def test_reasoning_text(self, engine, rules):
        result = assess(engine, rules, txn=insights(high_risk=8))
        assert result.overall_reasoning == (
            "Base score 20 derived from internal rating MEDIUM for journey type LIMITED_COMPANY_SINGLE. "
            "Triggers fired: TRIG_HIGH_RISK_COUNTRY (High-risk country share approx 8% of outward flows.). "
            "Final band AMBER."
        )

    def test_reasoning_without_triggers(self, engine, rules):
        result = assess(engine, rules)
        assert "No additional triggers fired." in result.overall_reasoning
        assert result.overall_reasoning.endswith("Final band GREEN.")


class TestStrictThresholds:
    """A metric exactly at its threshold never fires."""

    def test_intl_spike_at_threshold(self, engine, rules):
        assert assess(engine, rules, txn=insights(intl=100)).trigger_codes == []
        assert assess(engine, rules, txn=insights(intl=101)).trigger_codes == [TRIG_INTL_SPIKE]

    def test_high_risk_share_at_threshold(self, engine, rules):
        assert assess(engine, rules, txn=insights(high_risk=5)).trigger_codes == []
        assert assess(engine, rules, txn=insights(high_risk=5.1)).trigger_codes == [TRIG_HIGH_RISK_COUNTRY]

    def test_cash_ratio_at_threshold(self, engine, rules):
        assert assess(engine, rules, txn=insights(cash=30)).trigger_codes == []
        assert assess(engine, rules, txn=insights(cash=31)).trigger_codes == [TRIG_CASH_HEAVY]

    def test_review_exactly_at_limit(self, engine, rules):
        # 2025-01-01 -> 2026-07-01 is exactly 18 months
        assert assess(engine, rules, profile(kyb_last_review_date="2025-01-01")).trigger_codes == []
        assert assess(engine, rules, profile(kyb_last_review_date="2024-12-31")).trigger_codes == []
        assert assess(engine, rules, profile(kyb_last_review_date="2024-12-01")).trigger_codes == [TRIG_KYB_OVERDUE]


class TestTolerantInputs:
    """The engine never raises and skews to AMBER/20 when rules are missing."""

    def test_empty_rules_document(self, engine):
        result = engine.assess(None, None, None, None, None, RulesConfig.from_document(None), as_of=AS_OF)

        assert result.score == 20
        assert result.risk_band == "AMBER"
        assert result.journey_type == "LIMITED_COMPANY_SINGLE"

    def test_malformed_rules_document(self, engine):
        rules = RulesConfig.from_document({
            "sector_risk": "not a map",
            "risk_scoring_model": {"base_scores": {"MEDIUM": "abc"}, "bands": ["bad", {"min_score": "x"}]},
        })
        result = assess(engine, rules)
        assert result.score == 20
        assert result.risk_band == "AMBER"

    def test_non_finite_numbers_use_defaults(self, engine):
        rules = RulesConfig.from_document(json.loads(
            '{"risk_thresholds": {"months_without_kyb_review_for_others": Infinity,'
            ' "intl_outward_mom_spike_pct": "nan"},'
            ' "risk_scoring_model": {"base_scores": {"MEDIUM": NaN}, "bands": [{"min_score": -Infinity, "max_score": 100}]}}'
        ))

        assert rules.base_scores == {}
        assert rules.bands == ()
        assert rules.threshold("months_without_kyb_review_for_others") == 18
        assert rules.threshold("intl_outward_mom_spike_pct") == 100.0

        result = assess(engine, rules, profile(kyb_last_review_date="2020-01-01"))
        assert result.score_breakdown.base_score == 20
        assert result.risk_band == "AMBER"
        assert TRIG_KYB_OVERDUE in result.trigger_codes

    def test_unparsable_review_date_is_skipped(self, engine, rules):
        result = assess(engine, rules, profile(kyb_last_review_date="last spring"))
        assert TRIG_KYB_OVERDUE not in result.trigger_codes

    def test_missing_metrics_fire_nothing(self, engine, rules):
        result = assess(engine, rules, txn=TransactionInsights.not_available())
        assert result.trigger_codes == []

    def test_string_metrics_are_read(self, engine, rules):
        result = assess(engine, rules, txn=TransactionInsights(supporting_metrics={"cash_deposit_ratio_pct": "45%"}))
        assert result.trigger_codes == [TRIG_CASH_HEAVY]

    def test_unknown_sector_uses_internal_rating(self, engine, rules):
        result = assess(engine, rules, profile(sector="Space Mining", internal_risk_rating="LOW"))
        assert result.score_breakdown.base_score == 10
        assert TRIG_SECTOR_HIGH_RISK not in result.trigger_codes


class TestHelpers:

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(7.49) == 7

    @pytest.mark.parametrize("text,expected", [
        ("2023-01-15", date(2023, 1, 15)),
        ("2023-1-5", date(2023, 1, 5)),
        ("2023-04", date(2023, 4, 1)),
        ("2023-01-15T10:00:00Z", date(2023, 1, 15)),
        ("15/01/2023", None),
        ("2023-13-01", None),
        ("", None),
        (None, None),
    ])
    def test_parse_review_date(self, text, expected):
        assert parse_review_date(text) == expected

    def test_months_between(self):
        assert months_between(date(2023, 1, 15), date(2026, 7, 1)) == 41
        assert months_between(date(2026, 1, 1), date(2026, 7, 1)) == 6

    def test_rules_are_read_only(self, rules):
        with pytest.raises(TypeError):
            rules.base_scores["MEDIUM"] = 99
