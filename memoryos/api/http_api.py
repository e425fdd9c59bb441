"""
HTTP API adapter for the MemoryOS engine.

Architectural role:
- Expose the JSON endpoints used by the web client.
- Enforce adapter-level input validation with the pydantic record schemas.
- Delegate all memory, search, and chat work to `memoryos.core.engine.MemoryEngine`.
- Normalize engine output to camelCase JSON.

Endpoints:
- `GET    /api/auth/user`          shared user (created on first call).
- `GET    /api/memories`           all memories, newest first.
- `POST   /api/memories`           create (embedding + tags + summary derived).
- `PUT    /api/memories/{id}`      partial update (re-embeds on title/content change).
- `DELETE /api/memories/{id}`      delete.
- `POST   /api/search`             ranked search, optional type filter.
- `POST   /api/chat`               memory-grounded chat answer.
- `POST   /api/chat/sessions`      create a chat session.
- `GET    /api/chat/sessions/{id}` read a chat session.
- `GET    /api/searches/recent`    last searches.
- `GET    /api/stats`              counts per memory type.
- `GET    /health`                 liveness and AI mode.

Input validation behavior:
- Unparseable JSON or schema violations -> HTTP 400 `{"error": ...}`.
- Unknown memory/session ids -> HTTP 404.

Error handling strategy:
- Provider degradation never reaches this layer as an error; chat responses carry
  `success`/`note` flags instead.
- Unexpected exceptions are logged and returned as HTTP 500 `{"error": ...}`.

Side effects:
- Loads environment variables at import time via `load_dotenv()`.
- Builds the storage backend at import time, so misconfiguration fails at startup.
- Emits request debug logs only when `DEBUG == "true"`.
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from typing import List, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from memoryos.core.engine import InvalidRequestError, MemoryEngine, build_engine
from memoryos.memory.models import ChatMessage, MemoryCreate, MemoryUpdate


logger = logging.getLogger(__name__)

# Sensitive request/response debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"


# ============================================================
# Request Schemas
# ============================================================

class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    type: Optional[Literal["idea", "note", "learning", "task", "all"]] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    session_id: Optional[str] = Field(default=None, alias="sessionId")


def _validation_details(err: ValidationError):
    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
        for error in err.errors()
    ]


def _bad_request(message: str, err: Optional[ValidationError] = None) -> JSONResponse:
    content = {"error": message}
    if err is not None:
        content["details"] = _validation_details(err)
    return JSONResponse(status_code=400, content=content)


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": message})


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


# ============================================================
# Application Factory
# ============================================================

def create_app(engine: Optional[MemoryEngine] = None) -> FastAPI:
    """Build the FastAPI application around `engine` (configured from env if omitted)."""

    engine = engine or build_engine()

    app = FastAPI(title="MemoryOS")
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ============================================================
    # Health / User
    # ============================================================

    @app.get("/health")
    def health():
        return {"status": "ok", "ai": engine.generator.state}

    @app.get("/api/auth/user")
    async def get_user():
        user = await engine.ensure_user()
        return user.to_api()

    # ============================================================
    # Memories
    # ============================================================

    @app.get("/api/memories")
    async def list_memories():
        memories = await engine.list_memories()
        return [memory.to_api() for memory in memories]

    @app.post("/api/memories")
    async def create_memory(request: Request):
        body = await _read_json(request)
        try:
            data = MemoryCreate.model_validate(body)
        except ValidationError as err:
            return _bad_request("Invalid memory data", err)

        memory = await engine.create_memory(data)
        return memory.to_api()

    @app.put("/api/memories/{memory_id}")
    async def update_memory(memory_id: str, request: Request):
        body = await _read_json(request)
        try:
            data = MemoryUpdate.model_validate(body)
        except ValidationError as err:
            return _bad_request("Invalid memory data", err)

        memory = await engine.update_memory(memory_id, data)
        if memory is None:
            return _not_found("Memory not found")
        return memory.to_api()

    @app.delete("/api/memories/{memory_id}")
    async def delete_memory(memory_id: str):
        deleted = await engine.delete_memory(memory_id)
        if not deleted:
            return _not_found("Memory not found")
        return {"success": True}

    @app.get("/api/stats")
    async def stats():
        return await engine.stats()

    # ============================================================
    # Search
    # ============================================================

    @app.post("/api/search")
    async def search(request: Request):
        body = await _read_json(request)
        try:
            data = SearchRequest.model_validate(body)
        except ValidationError as err:
            return _bad_request("Invalid search query", err)

        if DEBUG:
            logger.debug("Search query: %r type=%r", data.query, data.type)

        try:
            results = await engine.search(data.query, data.type)
        except InvalidRequestError as err:
            return _bad_request(str(err))

        return [memory.to_api() for memory in results]

    @app.get("/api/searches/recent")
    async def recent_searches():
        searches = await engine.recent_searches()
        return [search.to_api() for search in searches]

    # ============================================================
    # Chat
    # ============================================================

    @app.post("/api/chat")
    async def chat(request: Request):
        body = await _read_json(request)
        try:
            data = ChatRequest.model_validate(body)
        except ValidationError as err:
            return _bad_request("Messages array is required", err)

        if DEBUG:
            logger.debug("Incoming messages: %s", data.messages)

        try:
            reply = await engine.chat(data.messages, session_id=data.session_id)
        except InvalidRequestError as err:
            return _bad_request(str(err))

        if DEBUG:
            logger.debug("Chat reply: %r", reply.message)

        return reply.to_api()

    @app.post("/api/chat/sessions")
    async def create_chat_session():
        session = await engine.create_chat_session()
        return session.to_api()

    @app.get("/api/chat/sessions/{session_id}")
    async def get_chat_session(session_id: str):
        session = await engine.get_chat_session(session_id)
        if session is None:
            return _not_found("Chat session not found")
        return session.to_api()

    return app


app = create_app()


def run():
    """Serve `app` with uvicorn (`HOST`/`PORT` from the environment)."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
