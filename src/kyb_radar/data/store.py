"""
Reference data store

Loads the named JSON documents the KYB stages consult (CRM, parties,
transactions, rules, Companies House and Experian extracts) and caches
them for the lifetime of the store.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from ..config import PipelineConfig
from ..errors import CustomerNotFoundError, ReferenceDataError

CRM_DOCUMENT = "crm.json"
PARTIES_DOCUMENT = "parties.json"
TRANSACTIONS_DOCUMENT = "transactions.json"
RULES_DOCUMENT = "rules.json"
COMPANIES_HOUSE_DOCUMENT = "companyHouse.json"
EXPERIAN_DOCUMENT = "experian.json"


class ReferenceDataStore:
    """Read-only access to the JSON reference documents"""

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        self.data_dir = Path(data_dir) if data_dir else PipelineConfig().data_dir
        self._cache: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def load(self, name: str) -> Any:
        """Load and parse a named document, raising ReferenceDataError on failure."""
        with self._lock:
            if name in self._cache:
                return self._cache[name]

        path = self.data_dir / name
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            raise ReferenceDataError(f"Reference document not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ReferenceDataError(f"Reference document {name} could not be read: {e}") from e

        with self._lock:
            self._cache.setdefault(name, document)
        logger.debug(f"Loaded reference document {name} from {self.data_dir}")
        return document

    def load_optional(self, name: str) -> Dict[str, Any]:
        """Load a document that may legitimately be absent; returns {} instead of raising."""
        try:
            document = self.load(name)
        except ReferenceDataError as e:
            logger.warning(f"{e}; continuing without it")
            return {}
        return document if isinstance(document, dict) else {}

    # --- CRM -----------------------------------------------------------

    def customers(self) -> List[Dict[str, Any]]:
        document = self.load(CRM_DOCUMENT)
        customers = document.get("customers", []) if isinstance(document, dict) else []
        return [c for c in customers if isinstance(c, dict)]

    def find_customer(self, customer_id: str) -> Dict[str, Any]:
        """Return the CRM record for a customer or raise CustomerNotFoundError."""
        for customer in self.customers():
            if str(customer.get("customer_id", "")) == customer_id:
                return customer
        raise CustomerNotFoundError(customer_id, CRM_DOCUMENT)

    # --- Parties and transactions ------------------------------------------

    def _by_customer(self, name: str) -> Dict[str, Any]:
        customers = self.load_optional(name).get("customers")
        return customers if isinstance(customers, dict) else {}

    def parties_for(self, customer_id: str) -> List[Dict[str, Any]]:
        parties = self._by_customer(PARTIES_DOCUMENT).get(customer_id, [])
        return [p for p in parties if isinstance(p, dict)] if isinstance(parties, list) else []

    def transaction_record(self, customer_id: str) -> Dict[str, Any]:
        """Raw transaction aggregates for a customer, {} when absent."""
        record = self._by_customer(TRANSACTIONS_DOCUMENT).get(customer_id)
        if not isinstance(record, dict):
            return {}
        return {**record, "customer_id": customer_id}

    def monthly_stats(self, customer_id: str) -> List[Dict[str, Any]]:
        stats = self.transaction_record(customer_id).get("monthly_stats", [])
        return [s for s in stats if isinstance(s, dict)] if isinstance(stats, list) else []

    # --- Rules and third-party extracts --------------------------------------

    def rules(self, name: str = RULES_DOCUMENT) -> Dict[str, Any]:
        return self.load_optional(name)

    def business_record(self, document_name: str, customer_id: str) -> Dict[str, Any]:
        """Look up a customer in a `businesses` list document such as companyHouse.json."""
        businesses = self.load_optional(document_name).get("businesses")
        for business in businesses if isinstance(businesses, list) else []:
            if isinstance(business, dict) and str(business.get("customer_id", "")) == customer_id:
                return business
        return {}
