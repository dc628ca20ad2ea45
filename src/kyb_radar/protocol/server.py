"""
KYB Protocol Server

Speaks three JSON-RPC methods (initialize, tools/list, tools/call) over a
ToolRegistry and never lets an exception escape handle_message(). The
BroadcastHub fans handled messages out to long-lived SSE subscribers.
"""

import asyncio
import json
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from .. import __version__
from ..config import ServerConfig
from ..errors import CustomerNotFoundError, ProtocolError
from .messages import (
    ProtocolMessage,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
    CUSTOMER_NOT_FOUND,
)
from .registry import ToolRegistry


def text_content(value: Any) -> Dict[str, Any]:
    """Generic single-item text envelope for a tool result."""
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return {"content": [{"type": "text", "text": text}]}


class ProtocolServer:
    """Dispatches protocol messages to the tool registry"""

    def __init__(self, registry: ToolRegistry, config: Optional[ServerConfig] = None):
        self.registry = registry
        self.config = config or ServerConfig()
        self.messages_handled = 0
        self.errors_returned = 0

    async def handle_message(self, message: Any) -> ProtocolMessage:
        """Handle one request envelope. Always returns a response carrying the request id."""
        request_id = message.get("id") if isinstance(message, dict) else None
        try:
            request = message if isinstance(message, ProtocolMessage) else ProtocolMessage.model_validate(message)
        except ValidationError as e:
            errors = e.errors()
            code = INVALID_PARAMS if any(err["loc"][:1] == ("params",) for err in errors) else INVALID_REQUEST
            return self._error(request_id, code, f"Invalid request: {errors[0].get('msg', str(e))}")
        request_id = request.id
        method = request.method or ""
        self.messages_handled += 1

        try:
            if method == "initialize":
                return ProtocolMessage.success(request_id, self._initialize())
            if method == "tools/list":
                return ProtocolMessage.success(request_id, {"tools": self.registry.list_tools()})
            if method == "tools/call":
                return ProtocolMessage.success(request_id, await self._call_tool(request.params))
            return self._error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        except CustomerNotFoundError as e:
            logger.error(f"Tool call failed: {e}")
            return self._error(
                request_id,
                CUSTOMER_NOT_FOUND,
                str(e),
                {"tool": request.params.get("name"), "customerId": e.customer_id},
            )
        except ProtocolError as e:
            logger.warning(f"Rejected {method}: {e.message}")
            return self._error(request_id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Internal error while handling {method}: {e}")
            return self._error(request_id, INTERNAL_ERROR, f"Internal error: {e}", self._tool_data(request.params))

    def _initialize(self) -> Dict[str, Any]:
        return {
            "protocolVersion": self.config.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.config.name, "version": __version__},
        }

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        entry = self.registry.get(name)
        result = await self.registry.call_tool(name, params.get("arguments"))

        # Structured tools expose their top-level keys directly
        if entry.structured and isinstance(result, dict):
            return dict(result)
        return text_content(result)

    @staticmethod
    def _tool_data(params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        name = params.get("name")
        if not name:
            return None
        arguments = params.get("arguments")
        data = {"tool": name}
        if isinstance(arguments, dict) and arguments.get("customerId"):
            data["customerId"] = arguments["customerId"]
        return data

    def _error(self, request_id: Any, code: int, message: str, data: Optional[Any] = None) -> ProtocolMessage:
        self.errors_returned += 1
        try:
            return ProtocolMessage.failure(request_id, code, message, data)
        except ValidationError:
            # An id that is not a string or number cannot be echoed
            return ProtocolMessage.failure(None, code, message, data)


class BroadcastHub:
    """
    Subscriber registry for server-sent events.

    Every subscriber owns a bounded asyncio.Queue. The lock guards only the
    subscriber map; it is released before any message is queued. A subscriber
    whose queue is full is dropped and disconnected.
    """

    def __init__(self, queue_size: int = 32):
        self.queue_size = queue_size
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self) -> Tuple[str, asyncio.Queue]:
        session_id = str(uuid4())
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        async with self._lock:
            self._subscribers[session_id] = queue
        logger.info(f"SSE subscriber connected: {session_id}")
        return session_id, queue

    async def unsubscribe(self, session_id: str):
        async with self._lock:
            removed = self._subscribers.pop(session_id, None)
        if removed is not None:
            logger.info(f"SSE subscriber disconnected: {session_id}")

    async def subscriber_count(self) -> int:
        async with self._lock:
            return len(self._subscribers)

    async def is_subscribed(self, session_id: str) -> bool:
        async with self._lock:
            return session_id in self._subscribers

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Queue a payload for every subscriber; returns how many received it."""
        async with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        dropped = []
        for session_id, queue in targets:
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                dropped.append(session_id)

        for session_id in dropped:
            logger.warning(f"SSE subscriber {session_id} is not keeping up; disconnecting")
            await self.unsubscribe(session_id)
        return delivered
