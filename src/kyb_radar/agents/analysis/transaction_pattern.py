"""
Transaction Pattern Agent

Deterministic analysis of a customer's monthly transaction statistics.
No model call is involved: the metrics feed the rule engine directly.
"""

import json
from typing import Any, Dict, List, Optional

from loguru import logger

from ...config import PipelineConfig
from ...data import ReferenceDataStore
from ...errors import InsufficientHistoryError
from ...models import TransactionInsights
from ...risk import (
    RulesConfig,
    parse_review_date,
    round_half_up,
    TRIG_INTL_SPIKE,
    TRIG_HIGH_RISK_COUNTRY,
    TRIG_CASH_HEAVY,
)


def _amount(stat: Dict[str, Any], key: str) -> float:
    value = stat.get(key, 0)
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def pct_change(previous: float, latest: float) -> float:
    """Month-on-month change; a zero or negative base counts as a 100% move up."""
    if previous <= 0:
        return 100.0 if latest > 0 else 0.0
    return (latest - previous) / previous * 100


def format_amount(amount: float) -> str:
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.1f} Mn"
    return f"{amount:.0f}"


class TransactionPatternAgent:
    """Turns monthly_stats into TransactionInsights"""

    name = "TransactionPatternAgent"

    def __init__(self,
                 store: ReferenceDataStore,
                 rules: Optional[RulesConfig] = None,
                 config: Optional[PipelineConfig] = None):
        self.store = store
        self.rules = rules if rules is not None else RulesConfig.from_document(store.rules())
        self.config = config or PipelineConfig()

    def _sorted_periods(self, customer_id: str) -> List[Dict[str, Any]]:
        dated = []
        for stat in self.store.monthly_stats(customer_id):
            period = parse_review_date(str(stat.get("period", "")))
            if period is None:
                logger.warning(f"Skipping monthly stat with invalid period {stat.get('period')!r} for {customer_id}")
                continue
            dated.append((period, stat))
        dated.sort(key=lambda item: item[0])
        return [stat for _, stat in dated][-self.config.max_statement_months:]

    def analyze(self, customer_id: str) -> TransactionInsights:
        """Compute insights, raising InsufficientHistoryError when history is too short."""
        stats = self._sorted_periods(customer_id)
        if not stats:
            raise InsufficientHistoryError(f"No transaction data found for {customer_id}")
        if len(stats) < self.config.min_statement_months:
            raise InsufficientHistoryError(f"Insufficient transaction history for {customer_id}")

        latest, previous = stats[-1], stats[-2]
        intl_change = pct_change(_amount(previous, "intl_outward_amount"), _amount(latest, "intl_outward_amount"))

        total_outward = _amount(latest, "total_outward_amount")
        high_risk_share = _amount(latest, "high_risk_country_volume") / total_outward * 100 if total_outward > 0 else 0.0
        cash_ratio = _amount(latest, "cash_deposits_amount") / total_outward * 100 if total_outward > 0 else 0.0

        candidates = []
        if intl_change > self.rules.threshold("intl_outward_mom_spike_pct"):
            candidates.append(TRIG_INTL_SPIKE)
        if high_risk_share > self.rules.threshold("high_risk_country_volume_ratio") * 100:
            candidates.append(TRIG_HIGH_RISK_COUNTRY)
        if cash_ratio > self.rules.threshold("cash_deposit_to_turnover_ratio") * 100:
            candidates.append(TRIG_CASH_HEAVY)

        latest_period = str(latest.get("period", ""))
        summary = (
            f"Across {len(stats)} months ending {latest_period}, outward volumes reached INR "
            f"{format_amount(total_outward)}. "
            f"International outward payments changed approx. {round_half_up(intl_change)}% month-on-month. "
            f"High-risk country share at {round_half_up(high_risk_share)}%; "
            f"cash deposits represent ~{round_half_up(cash_ratio)}% of outward flows. "
        )
        if candidates:
            summary += f"Candidate triggers identified: {', '.join(candidates)}."
        else:
            summary += "No major trigger-worthy anomalies detected."

        logger.info(f"Transaction analysis for {customer_id}: {len(stats)} months, triggers {candidates or 'none'}")
        return TransactionInsights(
            summary=summary,
            candidate_triggers=candidates,
            supporting_metrics={
                "intl_outward_change_pct": round_half_up(intl_change),
                "high_risk_country_share_pct": round_half_up(high_risk_share),
                "cash_deposit_ratio_pct": round_half_up(cash_ratio),
                "period_covered_months": len(stats),
                "latest_period": latest_period,
            },
        )

    def analyze_json(self, customer_id: str) -> str:
        """Insights wrapped as {"transaction_insights": {...}} JSON text."""
        insights = self.analyze(customer_id)
        return json.dumps({"transaction_insights": insights.model_dump(mode="json")})
