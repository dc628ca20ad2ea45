"""
Read-only view of the rules document (rules.json).

Every accessor falls back to a safe default so that a missing or malformed
document still yields a usable configuration.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..config import DEFAULT_BASE_SCORE, DEFAULT_RISK_BAND

# Threshold defaults, keyed by their name in risk_thresholds
DEFAULT_THRESHOLDS = {
    "intl_outward_mom_spike_pct": 100.0,
    "high_risk_country_volume_ratio": 0.05,
    "cash_deposit_to_turnover_ratio": 0.30,
    "months_without_kyb_review_for_high_risk": 12,
    "months_without_kyb_review_for_others": 18,
}


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    # json.load accepts NaN and Infinity
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class TriggerDefinition:
    code: str
    severity: str = "MEDIUM"
    description: str = ""


@dataclass(frozen=True)
class BandRange:
    min_score: int
    max_score: int
    risk_band: str

    def contains(self, score: int) -> bool:
        return self.min_score <= score <= self.max_score


@dataclass(frozen=True)
class RulesConfig:
    """Immutable rules configuration, safe to share across concurrent runs"""
    base_scores: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    sector_risk: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    thresholds: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    trigger_score_impacts: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    trigger_definitions: Mapping[str, TriggerDefinition] = field(default_factory=lambda: MappingProxyType({}))
    bands: Tuple[BandRange, ...] = ()
    document: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_document(cls, document: Any) -> "RulesConfig":
        """Build a RulesConfig from a parsed rules.json tree. Never raises."""
        doc = _as_dict(document)
        model = _as_dict(doc.get("risk_scoring_model"))

        base_scores = {}
        for rating, score in _as_dict(model.get("base_scores")).items():
            value = _to_int(score)
            if value is not None:
                base_scores[str(rating).upper()] = value

        sector_risk = {
            str(sector): str(rating).upper()
            for sector, rating in _as_dict(doc.get("sector_risk")).items()
            if rating is not None
        }

        thresholds = {}
        for name, raw in _as_dict(doc.get("risk_thresholds")).items():
            value = _to_float(raw)
            if value is not None:
                thresholds[str(name)] = value

        impacts = {}
        for code, delta in _as_dict(model.get("trigger_score_impacts")).items():
            value = _to_int(delta)
            if value is not None:
                impacts[str(code)] = value

        definitions = {}
        triggers = doc.get("kyb_review_triggers")
        for node in triggers if isinstance(triggers, list) else []:
            if isinstance(node, dict) and node.get("code"):
                code = str(node["code"])
                definitions[code] = TriggerDefinition(
                    code=code,
                    severity=str(node.get("severity") or "MEDIUM"),
                    description=str(node.get("description") or ""),
                )

        bands = []
        raw_bands = model.get("bands")
        for node in raw_bands if isinstance(raw_bands, list) else []:
            if not isinstance(node, dict):
                continue
            low = _to_int(node.get("min_score", 0))
            high = _to_int(node.get("max_score", 0))
            if low is None or high is None:
                continue
            bands.append(BandRange(low, high, str(node.get("risk_band") or DEFAULT_RISK_BAND)))

        return cls(
            base_scores=MappingProxyType(base_scores),
            sector_risk=MappingProxyType(sector_risk),
            thresholds=MappingProxyType(thresholds),
            trigger_score_impacts=MappingProxyType(impacts),
            trigger_definitions=MappingProxyType(definitions),
            bands=tuple(bands),
            document=MappingProxyType(doc),
        )

    def base_score(self, rating: str) -> int:
        return self.base_scores.get(str(rating).upper(), DEFAULT_BASE_SCORE)

    def sector_rating(self, sector: str, default: str = "MEDIUM") -> str:
        return self.sector_risk.get(sector, default).upper()

    def threshold(self, name: str) -> float:
        return self.thresholds.get(name, DEFAULT_THRESHOLDS[name])

    def impact(self, code: str) -> int:
        return self.trigger_score_impacts.get(code, 0)

    def severity(self, code: str) -> str:
        definition = self.trigger_definitions.get(code)
        return definition.severity if definition else "MEDIUM"

    def band_for(self, score: int) -> str:
        """First band whose inclusive range contains the score, else AMBER."""
        for band in self.bands:
            if band.contains(score):
                return band.risk_band
        return DEFAULT_RISK_BAND

    def to_dict(self) -> Dict[str, Any]:
        """Plain copy of the source document, for prompts and tool payloads."""
        return dict(self.document)
