"""
Shared fixtures for the KYB radar tests.
"""

import json
import os
import sys
from datetime import date

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from kyb_radar.agents.base import ChatModel
from kyb_radar.data import ReferenceDataStore
from kyb_radar.errors import LLMUnavailableError
from kyb_radar.pipeline import KYBConductor

AS_OF = date(2026, 7, 1)

# System prompt fragments identifying each LLM-backed agent
JOURNEY = "journey classifier"
PARTY_PROFILE = "Customer & Party Profile Agent"
GROUP = "Group Relationship Agent"
NOTE = "KYB Note & Action Plan Agent"
RISK_COMPLIANCE = "risk and compliance analyst"
RISK_SCOPE = "Risk Scope & Actions Agent"
CUSTOMER_PROFILE = "Summarize the customer profile"


class FakeChatModel(ChatModel):
    """
    Scripted chat model. Responses are keyed by a fragment of the agent's
    system prompt; agents without a scripted response see an unavailable LLM.
    """

    def __init__(self, responses=None):
        super().__init__(client=object(), provider="fake", model="fake-model")
        self.responses = dict(responses or {})
        self.calls = []

    def complete(self, system_prompt, user_prompt, json_mode=True, temperature=0.2, max_tokens=2000):
        for fragment, response in self.responses.items():
            if fragment in system_prompt:
                self.calls.append(fragment)
                if isinstance(response, Exception):
                    raise response
                text = response if isinstance(response, str) else json.dumps(response)
                return text, {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}
        raise LLMUnavailableError("No scripted response")


@pytest.fixture
def store():
    return ReferenceDataStore()


@pytest.fixture
def offline_conductor(store):
    """Conductor whose every LLM call fails, so only deterministic fallbacks run."""
    return KYBConductor(store=store, chat_model=FakeChatModel(), as_of=AS_OF)


@pytest.fixture
def make_conductor(store):
    def _make(responses=None):
        return KYBConductor(store=store, chat_model=FakeChatModel(responses), as_of=AS_OF)
    return _make
