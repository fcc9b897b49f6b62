"""HTTP API exposing a SessionIndex from inside a target."""

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import DEFAULT_WORKER_PORT
from .index import DEFAULT_MESSAGE_LIMIT, SessionIndex

logger = logging.getLogger(__name__)


def create_app(index: Optional[SessionIndex] = None) -> FastAPI:
    index = index or SessionIndex()
    app = FastAPI(title="workspace-sessions worker", version=__version__)
    app.state.index = index

    @app.get("/health")
    async def health():
        sessions = await asyncio.to_thread(index.all_sessions)
        return {"status": "ok", "version": __version__, "sessionCount": len(sessions)}

    @app.get("/sessions")
    async def list_sessions():
        await asyncio.to_thread(index.refresh)
        sessions = await asyncio.to_thread(index.all_sessions)
        return {"sessions": [s.to_dict() for s in sessions]}

    @app.post("/refresh")
    async def refresh():
        await asyncio.to_thread(index.refresh)
        return {"success": True}

    @app.get("/sessions/{session_id}/messages")
    async def session_messages(
        session_id: str,
        limit: int = Query(DEFAULT_MESSAGE_LIMIT, ge=0),
        offset: int = Query(0, ge=0),
    ):
        return await asyncio.to_thread(index.get_messages, session_id, limit, offset)

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str):
        session = await asyncio.to_thread(index.get, session_id)
        if session is None:
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return {"session": session.to_dict()}

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        result = await asyncio.to_thread(index.delete, session_id)
        return JSONResponse(result.to_dict(), status_code=200 if result.success else 404)

    return app


def serve(host: str = "0.0.0.0", port: int = DEFAULT_WORKER_PORT, index: Optional[SessionIndex] = None):
    """Run the worker until interrupted."""
    import uvicorn

    index = index or SessionIndex()
    index.refresh()
    logger.info(f"Worker listening on {host}:{port} ({len(index.all_sessions())} sessions)")
    uvicorn.run(create_app(index), host=host, port=port, log_level="warning")
