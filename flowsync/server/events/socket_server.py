"""
Socket.IO server.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import socketio

from flowsync.server.events.event_emitter import global_events
from flowsync.server.state import canvas_state

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Socket.IO instance (async, ASGI mode)
# ---------------------------------------------------------------------------

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


# ---------------------------------------------------------------------------
# Engine signal fan-out: wire global_events -> Socket.IO emit
# ---------------------------------------------------------------------------

def _on_event(event: str, payload: Dict[str, Any]) -> None:
    """
    Called synchronously by EventEmitter.fire().
    We schedule an async emit on the running event loop.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop, '%s' not broadcast", event)
        return
    loop.create_task(sio.emit(event, payload))


global_events.on_event(_on_event)


# ---------------------------------------------------------------------------
# Socket.IO lifecycle events
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict) -> None:
    """Bring a freshly connected canvas up to date with the undo/redo state."""
    await sio.emit("history", canvas_state.history_payload(), to=sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("Socket %s disconnected", sid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
