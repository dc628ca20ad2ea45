"""
Client side of the KYB tool protocol

ProtocolClient is a thin JSON-RPC client over httpx. RemoteKYBOrchestrator
runs a KYB assessment through the server's runKYB tool and falls back to the
four atomic tools when that call fails.
"""

import itertools
import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..agents.base import parse_model_text
from ..config import ClientConfig
from ..errors import ConnectivityError, ProtocolCallError
from ..models import OUTCOME_FIELDS
from .messages import ProtocolMessage, CUSTOMER_NOT_FOUND, INTERNAL_ERROR
from .registry import ToolName


class ProtocolClient:
    """JSON-RPC client for a KYB protocol server"""

    def __init__(self, config: Optional[ClientConfig] = None, http_client: Optional[httpx.Client] = None):
        self.config = config or ClientConfig()
        self.base_url = self.config.server_url.rstrip("/")
        self._owns_client = http_client is None
        if http_client is None:
            headers = {"Authorization": f"Bearer {self.config.api_key}"} if self.config.api_key else {}
            http_client = httpx.Client(
                timeout=httpx.Timeout(self.config.read_timeout_seconds, connect=self.config.connect_timeout_seconds),
                headers=headers,
            )
        self.http = http_client
        self._ids = itertools.count(1)

    def __enter__(self) -> "ProtocolClient":
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self._owns_client:
            self.http.close()

    def is_available(self) -> bool:
        """Liveness check against GET <base>/health."""
        try:
            response = self.http.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            logger.warning(f"Protocol server health check failed: {e}")
            return False
        return response.status_code == 200

    def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send one request and return its result; raises ConnectivityError or ProtocolCallError."""
        request = ProtocolMessage.request(method, params, id=next(self._ids))
        try:
            response = self.http.post(f"{self.base_url}/message", json=request.to_wire())
        except httpx.HTTPError as e:
            raise ConnectivityError(f"Request to {self.base_url} failed: {e}") from e
        if response.status_code >= 400:
            raise ConnectivityError(f"Protocol server returned HTTP {response.status_code} for {method}")

        try:
            body = response.json()
        except ValueError as e:
            raise ConnectivityError(f"Protocol server returned a non-JSON body for {method}") from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            if not isinstance(error, dict):
                raise ProtocolCallError(INTERNAL_ERROR, str(error))
            code = error.get("code")
            raise ProtocolCallError(
                code if isinstance(code, int) else INTERNAL_ERROR,
                str(error.get("message", "")),
                error.get("data"),
            )
        return body.get("result") if isinstance(body, dict) else None

    def initialize(self) -> Dict[str, Any]:
        return self.send("initialize") or {}

    def list_tools(self) -> List[Dict[str, Any]]:
        result = self.send("tools/list") or {}
        tools = result.get("tools", []) if isinstance(result, dict) else []
        return [t for t in tools if isinstance(t, dict)]

    def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        return self.send("tools/call", {"name": name, "arguments": arguments})


def result_text(result: Any) -> str:
    """Text of a tool result: joined text content items, the string itself, or JSON."""
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        texts = [item.get("text", "") for item in result["content"] if isinstance(item, dict)]
        return "\n".join(t for t in texts if t)
    return json.dumps(result, default=str)


def extract_result(result: Any) -> Dict[str, Any]:
    """
    Pull a KYB result map out of a runKYB tool result.

    Precedence: nested "structured" field, then top-level business fields,
    then JSON inside text content, then the raw text.
    """
    if isinstance(result, dict):
        structured = result.get("structured")
        if isinstance(structured, dict):
            return structured
        if any(field in result for field in OUTCOME_FIELDS):
            return {k: v for k, v in result.items() if k != "content"}

    text = result_text(result)
    parsed = parse_model_text(text)
    if isinstance(parsed, dict):
        return parsed
    return {"raw_result": text}


class RemoteKYBOrchestrator:
    """Runs KYB assessments through a remote protocol server"""

    FALLBACK_TOOLS = (
        ToolName.GET_CUSTOMER_PROFILE,
        ToolName.ANALYZE_TRANSACTIONS,
        ToolName.ASSESS_RISK,
        ToolName.GENERATE_KYB_NOTE,
    )

    def __init__(self, client: Optional[ProtocolClient] = None):
        self.client = client or ProtocolClient()

    def run_kyb(self, customer_id: str) -> Dict[str, Any]:
        if not self.client.is_available():
            raise ConnectivityError("server is not available")

        try:
            result = self.client.call_tool(ToolName.RUN_KYB.value, {"customerId": customer_id})
        except ProtocolCallError as e:
            if e.code == CUSTOMER_NOT_FOUND:
                raise
            logger.warning(f"runKYB failed for {customer_id} ({e}); falling back to atomic tools")
            return self._fallback(customer_id, e)
        except ConnectivityError as e:
            logger.warning(f"runKYB failed for {customer_id} ({e}); falling back to atomic tools")
            return self._fallback(customer_id, e)
        return extract_result(result)

    def _available_tools(self) -> Optional[set]:
        try:
            return {tool.get("name") for tool in self.client.list_tools()}
        except (ConnectivityError, ProtocolCallError) as e:
            logger.warning(f"Could not list server tools: {e}")
            return None

    def _fallback(self, customer_id: str, error: Exception) -> Dict[str, Any]:
        available = self._available_tools()
        tools_called: List[str] = []
        tools_failed: List[str] = []

        def call(tool: ToolName, arguments: Dict[str, Any]) -> Optional[str]:
            if available is not None and tool.value not in available:
                tools_failed.append(tool.value)
                return None
            try:
                text = result_text(self.client.call_tool(tool.value, arguments))
            except (ConnectivityError, ProtocolCallError) as e:
                logger.warning(f"Fallback tool {tool.value} failed: {e}")
                tools_failed.append(tool.value)
                return None
            tools_called.append(tool.value)
            return text

        profile = call(ToolName.GET_CUSTOMER_PROFILE, {"customerId": customer_id})
        transactions = call(ToolName.ANALYZE_TRANSACTIONS, {"customerId": customer_id})
        risk = call(ToolName.ASSESS_RISK, {
            "profileSummary": profile or "Profile not available",
            "transactionSummary": transactions or "Transaction analysis not available",
        })
        note = call(ToolName.GENERATE_KYB_NOTE, {
            "profileSummary": profile or "Profile not available",
            "transactionSummary": transactions or "Transaction analysis not available",
            "riskAssessment": risk or "{}",
        })

        if not tools_called:
            raise ConnectivityError(f"KYB run for {customer_id} failed and no fallback tool succeeded: {error}") from error

        logger.info(f"KYB fallback for {customer_id} used {tools_called}")
        return {
            "customer_id": customer_id,
            "profile": profile,
            "transactions": parse_model_text(transactions) if transactions else None,
            "risk": parse_model_text(risk) if risk else None,
            "kyb_note": note,
            "_fallback": {
                "reason": str(error),
                "tools_called": tools_called,
                "tools_failed": tools_failed,
            },
        }
