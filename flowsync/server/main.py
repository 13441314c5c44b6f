"""
flowsync server: one SyncEngine behind a REST API and a Socket.IO channel.

Startup order:
  1. Settings come from FLOWSYNC_* environment variables (a .env file is
     read first) and set the log level.
  2. server.state builds the engine from those settings and loads the demo
     workflow, so the first GET /api/canvas already has a projection.
  3. The canvas router is mounted under /api. Every mutation answers with
     the fresh projection.
  4. The Socket.IO layer wraps the app and pushes ``history`` and
     ``repair`` events whenever the engine signals them.

Run with:
    python -m flowsync.server.main
or:
    uvicorn flowsync.server.main:socket_app --port 3001
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowsync.config import configure_logging
from flowsync.server.state import canvas_state
from flowsync.server.routes.canvas_routes import router
from flowsync.server.events.socket_server import create_socket_app

configure_logging(canvas_state.settings)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    engine = canvas_state.engine
    logger.info("Serving workflow '%s' (%d node(s), history bound %d)",
                engine.workflow.name, len(engine.flat.nodes), engine.history.max_size)
    yield
    if engine.has_unsaved_changes:
        logger.warning("Shutting down with unsaved changes to '%s'", engine.workflow.name)


app = FastAPI(title="flowsync API", version="0.1.0", lifespan=lifespan)

# the canvas renderer is served from a different origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# Top-level ASGI app: Socket.IO at the root, everything else to FastAPI
socket_app = create_socket_app(app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "flowsync.server.main:socket_app",
        host=canvas_state.settings.host,
        port=canvas_state.settings.port,
    )
