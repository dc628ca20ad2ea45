"""
Base Agent Classes for the KYB pipeline

Every LLM-backed stage is a small focused agent:
1. One system prompt, one call per execution
2. Red-flagging of empty, oversized or malformed answers
3. A bounded timeout per call; failures come back as unsuccessful responses
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime
import asyncio
import json

from loguru import logger

from ...config.config import AgentConfig
from ...errors import LLMUnavailableError
from ...tracking import tracker
from .llm import ChatModel


def strip_think_tags(response: str) -> str:
    """Strip chain-of-thought thinking tags from response"""
    if not response:
        return response

    if "<think>" in response:
        if "</think>" in response:
            think_end = response.find("</think>") + len("</think>")
            return response[think_end:].strip()
        # Incomplete <think> tag - keep what follows it
        think_start = response.find("<think>") + len("<think>")
        return response[think_start:].strip()

    return response


def strip_code_fences(response: str) -> str:
    """Return the body of the first Markdown code block, or the text unchanged"""
    if "```json" in response:
        start = response.find("```json") + 7
        end = response.find("```", start)
        return response[start:end if end != -1 else None].strip()
    if "```" in response:
        start = response.find("```") + 3
        end = response.find("```", start)
        return response[start:end if end != -1 else None].strip()
    return response.strip()


def parse_model_text(response: str) -> Any:
    """Parse model text into JSON data; falls back to the stripped string."""
    cleaned = strip_code_fences(strip_think_tags(response or ""))
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return cleaned


@dataclass
class AgentResponse:
    """Structured response from an agent"""
    success: bool
    data: Any
    agent_name: str
    execution_time_ms: float
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    red_flagged: bool = False
    red_flag_reason: Optional[str] = None
    raw_response: Optional[str] = None


class RedFlagDetector:
    """
    Detects signs of unreliable LLM responses.

    Overly long answers and answers in the wrong format are discarded
    rather than repaired.
    """

    confusion_markers = (
        "i'm not sure",
        "i cannot",
        "i don't understand",
        "as an ai",
    )

    def __init__(self, max_tokens: int = 3000):
        self.max_tokens = max_tokens

    def check(self, response: str, expected_format: str = "json") -> Tuple[bool, Optional[str]]:
        """
        Check if response should be red-flagged.

        Returns:
            (is_flagged, reason)
        """
        estimated_tokens = len(response.split()) * 1.3  # Rough estimate
        if estimated_tokens > self.max_tokens:
            return True, f"Response too long ({int(estimated_tokens)} estimated tokens)"

        if len(response.strip()) < 10:
            return True, "Response too short or empty"

        if expected_format == "json":
            try:
                json.loads(response)
            except json.JSONDecodeError as e:
                return True, f"Invalid JSON format: {str(e)[:100]}"
        else:
            lowered = response.lower()
            for marker in self.confusion_markers:
                if marker in lowered:
                    return True, f"Confusion marker detected: '{marker}'"

        return False, None


class BaseAgent(ABC):
    """Base agent for the LLM-backed KYB stages"""

    def __init__(self, config: AgentConfig, chat_model: Optional[ChatModel] = None):
        self.config = config
        self.name = config.name
        self.chat_model = chat_model if chat_model is not None else ChatModel.from_env(config.model)

        # Statistics
        self.execution_count = 0
        self.red_flag_count = 0
        self.success_count = 0

        self.red_flag_detector = RedFlagDetector(max_tokens=config.red_flag_max_tokens)

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Return the focused system prompt for this agent"""
        pass

    @abstractmethod
    def get_output_schema(self) -> Optional[type]:
        """Return the Pydantic model for expected output, or None for free text"""
        pass

    @property
    def expected_format(self) -> str:
        return "json" if self.get_output_schema() is not None else "text"

    async def execute(self, input_data: Dict[str, Any]) -> AgentResponse:
        """Run one model call for the given input. Never raises."""
        start_time = datetime.now()
        self.execution_count += 1

        def failed(reason: str, raw: Optional[str] = None, usage: Optional[dict] = None) -> AgentResponse:
            self.red_flag_count += 1
            execution_time_ms = (datetime.now() - start_time).total_seconds() * 1000
            tracker.log_agent_execution(
                agent_name=self.name,
                input_data=input_data,
                response_data=None,
                execution_time_ms=execution_time_ms,
                success=False,
                red_flagged=True,
                red_flag_reason=reason,
            )
            usage = usage or {}
            return AgentResponse(
                success=False,
                data=None,
                agent_name=self.name,
                execution_time_ms=execution_time_ms,
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
                red_flagged=True,
                red_flag_reason=reason,
                raw_response=raw,
            )

        try:
            with tracker.span(self.name, **{"agent.name": self.name}):
                raw_response, usage = await asyncio.wait_for(
                    asyncio.to_thread(
                        self.chat_model.complete,
                        self.get_system_prompt(),
                        self._format_input(input_data),
                        self.expected_format == "json",
                        self.config.temperature,
                        self.config.max_tokens,
                    ),
                    timeout=self.config.timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} timed out after {self.config.timeout_seconds}s")
            return failed(f"Timed out after {self.config.timeout_seconds}s")
        except LLMUnavailableError as e:
            logger.debug(f"{self.name} skipped: {e}")
            return failed(f"LLM unavailable: {e}")
        except Exception as e:
            logger.warning(f"{self.name} execution error: {e}")
            return failed(f"Execution error: {e}")

        # Strip chain-of-thought and code fences BEFORE the red-flag check
        cleaned_response = strip_code_fences(strip_think_tags(raw_response or ""))
        logger.debug(f"{self.name} raw response preview: {(raw_response or '[EMPTY]')[:300]}")

        is_flagged, flag_reason = self.red_flag_detector.check(cleaned_response, self.expected_format)
        if is_flagged:
            logger.warning(f"{self.name} red-flagged: {flag_reason}")
            return failed(flag_reason, raw_response, usage)

        parsed_data = self._parse_response(cleaned_response)
        self.success_count += 1
        execution_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        tracker.log_agent_execution(
            agent_name=self.name,
            input_data=input_data,
            response_data=parsed_data,
            execution_time_ms=execution_time_ms,
            success=True,
        )

        return AgentResponse(
            success=True,
            data=parsed_data,
            agent_name=self.name,
            execution_time_ms=execution_time_ms,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            raw_response=raw_response,
        )

    async def ask(self, input_data: Dict[str, Any]) -> Any:
        """Execute and return the parsed data, or None when the call failed."""
        response = await self.execute(input_data)
        return response.data if response.success else None

    def _format_input(self, input_data: Dict[str, Any]) -> str:
        """Format input data for the prompt"""
        return json.dumps(input_data, indent=2, default=str)

    def _parse_response(self, response: str) -> Any:
        """Parse the cleaned response into structured data"""
        if self.expected_format == "text":
            return response.strip()
        try:
            return json.loads(response)
        except json.JSONDecodeError:
            return response.strip()

    def get_stats(self) -> Dict[str, Any]:
        """Get execution statistics"""
        return {
            "agent_name": self.name,
            "execution_count": self.execution_count,
            "success_count": self.success_count,
            "red_flag_count": self.red_flag_count,
            "red_flag_rate": self.red_flag_count / max(1, self.execution_count),
        }
