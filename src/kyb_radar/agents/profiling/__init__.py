"""
Profiling agents: journey, entity & parties, customer summary, group context
"""

from .journey_classifier import JourneyClassifierAgent
from .party_profile import CustomerPartyProfileAgent, derive_party_flags, party_observations
from .customer_profile import CustomerProfileAgent
from .group_relationship import GroupRelationshipAgent

__all__ = [
    "JourneyClassifierAgent",
    "CustomerPartyProfileAgent",
    "CustomerProfileAgent",
    "GroupRelationshipAgent",
    "derive_party_flags",
    "party_observations",
]
