"""Configuration for the KYB Early-Risk Radar."""

from .config import (
    AgentConfig,
    PipelineConfig,
    ServerConfig,
    ClientConfig,
    JourneyType,
    RiskBand,
    RiskRating,
    DEFAULT_JOURNEY_TYPE,
    DEFAULT_RISK_BAND,
    DEFAULT_BASE_SCORE,
    HIGH_RISK_RESIDENCIES,
)

__all__ = [
    "AgentConfig",
    "PipelineConfig",
    "ServerConfig",
    "ClientConfig",
    "JourneyType",
    "RiskBand",
    "RiskRating",
    "DEFAULT_JOURNEY_TYPE",
    "DEFAULT_RISK_BAND",
    "DEFAULT_BASE_SCORE",
    "HIGH_RISK_RESIDENCIES",
]
