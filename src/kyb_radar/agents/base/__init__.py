from .llm import ChatModel
from .base_agent import (
    BaseAgent,
    AgentResponse,
    RedFlagDetector,
    strip_think_tags,
    strip_code_fences,
    parse_model_text,
)

__all__ = [
    "ChatModel",
    "BaseAgent",
    "AgentResponse",
    "RedFlagDetector",
    "strip_think_tags",
    "strip_code_fences",
    "parse_model_text",
]
