"""
Tool protocol: JSON-RPC messages, tool registry, server, HTTP app and client
"""

from .messages import (
    ProtocolMessage,
    ProtocolErrorBody,
    JSONRPC_VERSION,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
    CUSTOMER_NOT_FOUND,
)
from .registry import ToolRegistry, ToolName, ToolEntry, STRUCTURED_TOOLS
from .server import ProtocolServer, BroadcastHub, text_content
from .app import create_app
from .client import ProtocolClient, RemoteKYBOrchestrator, extract_result, result_text

__all__ = [
    # Messages
    "ProtocolMessage",
    "ProtocolErrorBody",
    "JSONRPC_VERSION",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "CUSTOMER_NOT_FOUND",
    # Server side
    "ToolRegistry",
    "ToolName",
    "ToolEntry",
    "STRUCTURED_TOOLS",
    "ProtocolServer",
    "BroadcastHub",
    "text_content",
    "create_app",
    # Client side
    "ProtocolClient",
    "RemoteKYBOrchestrator",
    "extract_result",
    "result_text",
]
