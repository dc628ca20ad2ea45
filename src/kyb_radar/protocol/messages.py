"""
JSON-RPC envelope models for the tool protocol
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

# Reserved JSON-RPC codes plus the application-level not-found code
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
CUSTOMER_NOT_FOUND = -32004

MessageId = Union[str, int, float, None]


class ProtocolErrorBody(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class ProtocolMessage(BaseModel):
    """Request or response envelope; requests carry method/params, responses result or error."""
    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    id: MessageId = None
    method: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[ProtocolErrorBody] = None

    @classmethod
    def request(cls, method: str, params: Optional[Dict[str, Any]] = None, id: MessageId = None) -> "ProtocolMessage":
        return cls(id=id, method=method, params=params or {})

    @classmethod
    def success(cls, id: MessageId, result: Any) -> "ProtocolMessage":
        return cls(id=id, result=result)

    @classmethod
    def failure(cls, id: MessageId, code: int, message: str, data: Optional[Any] = None) -> "ProtocolMessage":
        return cls(id=id, error=ProtocolErrorBody(code=code, message=message, data=data))

    def to_wire(self) -> Dict[str, Any]:
        """Request or response dict with only the members that apply."""
        wire: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.method is not None:
            wire["method"] = self.method
            wire["params"] = self.params
        elif self.error is not None:
            wire["error"] = self.error.model_dump(exclude_none=True)
        else:
            wire["result"] = self.result
        return wire
