"""
Exception hierarchy for the KYB Early-Risk Radar.

Only CustomerNotFoundError is allowed to abort a pipeline run; every other
stage failure is recovered by the pipeline through normalization defaults.
"""

from typing import Any, Dict, Optional


class KYBError(Exception):
    """Base class for all KYB radar errors"""


class CustomerNotFoundError(KYBError):
    """The customer id is absent from the backing record store"""

    def __init__(self, customer_id: str, source: Optional[str] = None):
        self.customer_id = customer_id
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"Customer not found{where}: {customer_id}")


class ReferenceDataError(KYBError):
    """A reference document is missing or cannot be parsed"""


class StageError(KYBError):
    """A pipeline stage could not produce a usable result"""


class InsufficientHistoryError(StageError):
    """Not enough transaction history to analyse a customer"""


class LLMUnavailableError(StageError):
    """No language model is configured or reachable"""


# --- Protocol errors ------------------------------------------------------------

class ProtocolError(KYBError):
    """A tool call that cannot be dispatched"""

    code = -32603

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.message = message
        self.data = data
        super().__init__(message)


class InvalidArgumentError(ProtocolError):
    """A tool call is missing required arguments or carries invalid ones"""

    code = -32602


class ToolNotFoundError(ProtocolError):
    """The requested tool name is not in the catalog"""

    code = -32602


# --- Client errors ----------------------------------------------------------------

class ConnectivityError(KYBError):
    """The protocol server cannot be reached"""


class ProtocolCallError(KYBError):
    """The protocol server answered with an error envelope"""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")
