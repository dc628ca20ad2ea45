"""
FastAPI surface for the KYB protocol server and the direct pipeline route
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Body, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from .. import __version__
from ..config import ServerConfig
from ..errors import CustomerNotFoundError
from ..pipeline import KYBConductor
from .registry import ToolRegistry
from .server import BroadcastHub, ProtocolServer


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


async def _event_stream(hub: BroadcastHub,
                        session_id: str,
                        queue: asyncio.Queue,
                        keepalive_seconds: float) -> AsyncIterator[str]:
    """Emit the connected event, then every broadcast message until the subscriber is dropped."""
    try:
        yield _sse("connected", {"sessionId": session_id})
        while await hub.is_subscribed(session_id):
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse("message", payload)
    finally:
        await hub.unsubscribe(session_id)


def create_protocol_router(server: ProtocolServer, hub: BroadcastHub) -> APIRouter:
    router = APIRouter()

    @router.post("/message")
    async def handle_message(message: Dict[str, Any] = Body(...)):
        """Single request/response exchange"""
        response = await server.handle_message(message)
        return response.to_wire()

    @router.get("/sse")
    async def subscribe():
        """Long-lived server-sent event stream of broadcast messages"""
        session_id, queue = await hub.subscribe()
        return StreamingResponse(
            _event_stream(hub, session_id, queue, server.config.keepalive_seconds),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @router.post("/sse/message")
    async def broadcast_message(message: Dict[str, Any] = Body(...)):
        """Handle a message and push the response to every subscriber"""
        response = await server.handle_message(message)
        payload = response.to_wire()
        subscribers = 0
        if response.error is None:
            subscribers = await hub.broadcast(payload)
        return {"status": "sent", "subscribers": subscribers, "response": payload}

    @router.get("/health")
    async def health():
        return {
            "status": "UP",
            "server": server.config.name,
            "version": __version__,
            "tools": len(server.registry.list_tools()),
            "subscribers": await hub.subscriber_count(),
        }

    return router


def create_kyb_router(conductor: KYBConductor) -> APIRouter:
    router = APIRouter()

    @router.get("/run/{customer_id}")
    async def run_kyb(customer_id: str):
        """Run the full pipeline and return the KYB outcome"""
        try:
            outcome = await conductor.run_kyb(customer_id)
        except CustomerNotFoundError as e:
            return JSONResponse(
                status_code=404,
                content={"error": "CUSTOMER_NOT_FOUND", "message": str(e), "customer_id": customer_id},
            )
        except Exception as e:
            logger.exception(f"KYB run failed for {customer_id}: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "KYB_RUN_FAILED", "message": str(e), "customer_id": customer_id},
            )
        return outcome.to_contract()

    return router


def create_app(conductor: Optional[KYBConductor] = None, config: Optional[ServerConfig] = None) -> FastAPI:
    """Build the FastAPI application around a conductor (a default one is created when omitted)."""
    config = config or ServerConfig()
    conductor = conductor or KYBConductor()
    server = ProtocolServer(ToolRegistry(conductor), config)
    hub = BroadcastHub(queue_size=config.subscriber_queue_size)

    app = FastAPI(title="KYB Early-Risk Radar", version=__version__)
    app.include_router(create_protocol_router(server, hub), prefix="/mcp", tags=["protocol"])
    app.include_router(create_kyb_router(conductor), prefix="/kyb", tags=["kyb"])

    app.state.conductor = conductor
    app.state.protocol_server = server
    app.state.broadcast_hub = hub
    return app
