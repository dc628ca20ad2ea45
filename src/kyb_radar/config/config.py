"""
Configuration for the KYB Early-Risk Radar
"""

from dataclasses import dataclass, field
from typing import Optional
from enum import Enum
from pathlib import Path
import os

from dotenv import load_dotenv

# Load .env file at module import time (safe to call multiple times)
load_dotenv()

DEFAULT_MODEL = os.getenv("KYB_LLM_MODEL", "gpt-4o-mini")
DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "reference"


class JourneyType(str, Enum):
    """Legal-structure journeys a business customer can follow"""
    SOLE_TRADER = "SOLE_TRADER"
    LIMITED_COMPANY_SINGLE = "LIMITED_COMPANY_SINGLE"
    LIMITED_COMPANY_MULTI = "LIMITED_COMPANY_MULTI"
    PARTNERSHIP_LLP = "PARTNERSHIP_LLP"
    GROUP = "GROUP"


class RiskBand(str, Enum):
    """Coarse risk bands produced by the rule engine"""
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"


class RiskRating(str, Enum):
    """Internal risk ratings held in CRM"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


DEFAULT_JOURNEY_TYPE = JourneyType.LIMITED_COMPANY_SINGLE.value
DEFAULT_RISK_BAND = RiskBand.AMBER.value
DEFAULT_BASE_SCORE = 20

# Party residencies that earn a HIGH_RISK_RESIDENCY_<code> flag
HIGH_RISK_RESIDENCIES = ("AE", "IR", "RU")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass
class AgentConfig:
    """Configuration for individual stage agents"""
    name: str
    model: str = field(default_factory=lambda: DEFAULT_MODEL)
    temperature: float = 0.2
    max_tokens: int = 2000
    timeout_seconds: float = field(default_factory=lambda: _env_float("KYB_LLM_TIMEOUT_SECONDS", 30.0))
    red_flag_max_tokens: int = 3000


@dataclass
class PipelineConfig:
    """Configuration for the KYB conductor"""
    data_dir: Path = field(default_factory=lambda: Path(os.getenv("KYB_DATA_DIR", str(DEFAULT_DATA_DIR))))
    rules_document: str = "rules.json"
    max_statement_months: int = 6
    min_statement_months: int = 2


@dataclass
class ServerConfig:
    """Configuration for the tool protocol server"""
    host: str = field(default_factory=lambda: os.getenv("KYB_SERVER_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("KYB_SERVER_PORT", 8080))
    name: str = "kyb-radar-server"
    protocol_version: str = "2024-11-05"
    subscriber_queue_size: int = 32
    keepalive_seconds: float = 15.0


@dataclass
class ClientConfig:
    """Configuration for the tool protocol client"""
    server_url: str = field(default_factory=lambda: os.getenv("KYB_SERVER_URL", "http://localhost:8080/mcp"))
    connect_timeout_seconds: float = 30.0
    read_timeout_seconds: float = 60.0
    api_key: Optional[str] = None
