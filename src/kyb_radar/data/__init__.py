"""
Reference data access for the KYB pipeline
"""

from .store import (
    ReferenceDataStore,
    CRM_DOCUMENT,
    PARTIES_DOCUMENT,
    TRANSACTIONS_DOCUMENT,
    RULES_DOCUMENT,
    COMPANIES_HOUSE_DOCUMENT,
    EXPERIAN_DOCUMENT,
)

__all__ = [
    "ReferenceDataStore",
    "CRM_DOCUMENT",
    "PARTIES_DOCUMENT",
    "TRANSACTIONS_DOCUMENT",
    "RULES_DOCUMENT",
    "COMPANIES_HOUSE_DOCUMENT",
    "EXPERIAN_DOCUMENT",
]
