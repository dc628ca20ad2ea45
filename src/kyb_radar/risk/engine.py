"""
Deterministic risk rule engine

Turns the structured profile and transaction facts of a customer plus the
rules configuration into a reproducible score, band and trigger list.
No I/O and no model calls happen here.
"""

import math
import re
from datetime import date
from typing import Any, List, Optional, Tuple

from ..config import DEFAULT_JOURNEY_TYPE
from ..models import (
    EntityProfile,
    PartySummary,
    GroupContext,
    TransactionInsights,
    TriggerRecord,
    TriggerImpact,
    ScoreBreakdown,
    RiskAssessment,
)
from .rules import RulesConfig

TRIG_SECTOR_HIGH_RISK = "TRIG_SECTOR_HIGH_RISK"
TRIG_KYB_OVERDUE = "TRIG_KYB_OVERDUE"
TRIG_INTL_SPIKE = "TRIG_INTL_SPIKE"
TRIG_HIGH_RISK_COUNTRY = "TRIG_HIGH_RISK_COUNTRY"
TRIG_CASH_HEAVY = "TRIG_CASH_HEAVY"

# YYYY-MM or YYYY-MM-DD, optionally followed by a time part
_REVIEW_DATE = re.compile(r"^\s*(\d{4})-(\d{1,2})(?:-(\d{1,2}))?(?:[T ][\d:.+\-Z]*)?\s*$")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_review_date(value: Any) -> Optional[date]:
    """Lenient YYYY-MM[-DD] parser; returns None for anything unparsable."""
    if not isinstance(value, str):
        return None
    match = _REVIEW_DATE.match(value)
    if not match:
        return None
    year, month, day = match.group(1), match.group(2), match.group(3) or "1"
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def months_between(start: date, end: date) -> int:
    """Whole calendar months elapsed from start to end."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def _metric(metrics: dict, key: str) -> Optional[float]:
    value = metrics.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


class RiskRuleEngine:
    """
    Scores a customer against the rules configuration.

    assess() is a pure function of its inputs (plus the as_of date used for
    the overdue-review check) and never raises.
    """

    def assess(
        self,
        entity_profile: Optional[EntityProfile],
        party_summary: Optional[PartySummary],
        group_context: Optional[GroupContext],
        transaction_insights: Optional[TransactionInsights],
        journey_type: Optional[str],
        rules: Optional[RulesConfig],
        as_of: Optional[date] = None,
    ) -> RiskAssessment:
        profile = entity_profile or EntityProfile()
        insights = transaction_insights or TransactionInsights()
        rules = rules or RulesConfig()
        journey = journey_type or DEFAULT_JOURNEY_TYPE
        today = as_of or date.today()

        internal_rating = (profile.internal_risk_rating or "MEDIUM").strip().upper() or "MEDIUM"
        sector = profile.sector or ""

        base_score = max(
            rules.base_score(internal_rating),
            rules.base_score(rules.sector_rating(sector, default=internal_rating)),
        )

        fired: List[Tuple[str, str]] = []

        if rules.sector_rating(sector) == "HIGH":
            fired.append((TRIG_SECTOR_HIGH_RISK, "Sector classified as high risk per rules."))

        overdue_reason = self._overdue_reason(profile, internal_rating, rules, today)
        if overdue_reason:
            fired.append((TRIG_KYB_OVERDUE, overdue_reason))

        fired.extend(self._transaction_triggers(insights, rules))

        triggers = []
        impacts = []
        for code, reason in fired:
            triggers.append(TriggerRecord(code=code, severity=rules.severity(code), reason=reason))
            impacts.append(TriggerImpact(code=code, delta=rules.impact(code)))

        breakdown = ScoreBreakdown(base_score=base_score, trigger_impacts=impacts)
        score = breakdown.total
        band = rules.band_for(score)

        return RiskAssessment(
            risk_band=band,
            score=score,
            journey_type=journey,
            triggers_fired=triggers,
            score_breakdown=breakdown,
            overall_reasoning=self._reasoning(base_score, internal_rating, journey, triggers, band),
        )

    def _overdue_reason(
        self, profile: EntityProfile, internal_rating: str, rules: RulesConfig, today: date
    ) -> Optional[str]:
        raw = profile.kyb_last_review_date
        last_review = parse_review_date(raw)
        if last_review is None:
            return None

        if internal_rating == "HIGH":
            limit = int(rules.threshold("months_without_kyb_review_for_high_risk"))
        else:
            limit = int(rules.threshold("months_without_kyb_review_for_others"))

        if months_between(last_review, today) > limit:
            return f"Last KYB review on {raw.strip()} exceeds {limit} month limit."
        return None

    def _transaction_triggers(
        self, insights: TransactionInsights, rules: RulesConfig
    ) -> List[Tuple[str, str]]:
        metrics = insights.supporting_metrics or {}
        fired = []

        # Ratio thresholds are stored as fractions and compared as percentages
        intl_change = _metric(metrics, "intl_outward_change_pct")
        if intl_change is not None and intl_change > rules.threshold("intl_outward_mom_spike_pct"):
            fired.append((
                TRIG_INTL_SPIKE,
                f"International outward payments up approx {round_half_up(intl_change)}% MoM.",
            ))

        high_risk_share = _metric(metrics, "high_risk_country_share_pct")
        if high_risk_share is not None and high_risk_share > rules.threshold("high_risk_country_volume_ratio") * 100:
            fired.append((
                TRIG_HIGH_RISK_COUNTRY,
                f"High-risk country share approx {round_half_up(high_risk_share)}% of outward flows.",
            ))

        cash_ratio = _metric(metrics, "cash_deposit_ratio_pct")
        if cash_ratio is not None and cash_ratio > rules.threshold("cash_deposit_to_turnover_ratio") * 100:
            fired.append((
                TRIG_CASH_HEAVY,
                f"Cash deposits around {round_half_up(cash_ratio)}% of outward amounts.",
            ))

        return fired

    @staticmethod
    def _reasoning(
        base_score: int, internal_rating: str, journey: str, triggers: List[TriggerRecord], band: str
    ) -> str:
        text = f"Base score {base_score} derived from internal rating {internal_rating} for journey type {journey}. "
        if triggers:
            text += "Triggers fired: " + "; ".join(f"{t.code} ({t.reason})" for t in triggers) + ". "
        else:
            text += "No additional triggers fired. "
        return text + f"Final band {band}."
