"""
Chat model capability shared by all LLM-backed stage agents.

Given a system and user prompt, returns the model's text (possibly JSON)
and a token-usage dict. Groq is preferred when GROQ_API_KEY is set,
otherwise OpenAI; with neither configured every call raises
LLMUnavailableError so callers fall back to their deterministic paths.
"""

import os
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv
from loguru import logger
from openai import OpenAI

from ...config.config import DEFAULT_MODEL
from ...errors import LLMUnavailableError
from ...tracking import tracker

# Load .env file at module import time (safe to call multiple times)
load_dotenv()

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class ChatModel:
    """Thin wrapper around an OpenAI-compatible chat completions client"""

    def __init__(self, client: Optional[Any] = None, provider: str = "none", model: str = DEFAULT_MODEL):
        self.client = client
        self.provider = provider
        self.model = model

    @classmethod
    def from_env(cls, model: Optional[str] = None) -> "ChatModel":
        """Build a chat model from GROQ_API_KEY / OPENAI_API_KEY."""
        model = model or DEFAULT_MODEL
        groq_key = os.getenv("GROQ_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")

        if groq_key:
            logger.info(f"Chat model using Groq ({model})")
            return cls(OpenAI(api_key=groq_key, base_url=GROQ_BASE_URL), "groq", model)
        if openai_key:
            logger.info(f"Chat model using OpenAI ({model})")
            return cls(OpenAI(api_key=openai_key), "openai", model)

        logger.info("No GROQ_API_KEY or OPENAI_API_KEY set; stages will use deterministic fallbacks")
        return cls(None, "none", model)

    @property
    def available(self) -> bool:
        return self.client is not None

    def complete(self,
                 system_prompt: str,
                 user_prompt: str,
                 json_mode: bool = True,
                 temperature: float = 0.2,
                 max_tokens: int = 2000) -> Tuple[str, Dict[str, int]]:
        """Blocking chat completion; returns (content, usage)."""
        if not self.available:
            raise LLMUnavailableError("No LLM API key configured (set GROQ_API_KEY or OPENAI_API_KEY)")

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            # JSON mode requires the prompt to mention JSON
            kwargs["response_format"] = {"type": "json_object"}

        with tracker.span("llm_call", **{"llm.provider": self.provider, "llm.model": self.model}):
            try:
                response = self.client.chat.completions.create(**kwargs)
            except Exception as e:
                logger.error(f"LLM call failed ({self.provider}): {e}")
                raise

        content = response.choices[0].message.content or ""
        usage = {
            "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
            "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            "total_tokens": response.usage.total_tokens if response.usage else 0,
        }
        return content, usage
