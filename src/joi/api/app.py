"""
Core API backend for Joi.

It exposes the following endpoints:
- **GET /health**  - liveness check.
- **POST /agent**   - one request: {"query": "...", "history": [...]} -> {"response", "state"}

The caller is identified by the ``X-User-Id`` header, which is expected to be set by an upstream
authentication proxy.
"""

import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware

from joi.agent.orchestrator import (
    TicketAgent,
    build_agent,
)
from joi.api.models import (
    AgentRequest,
    AgentResponse,
)
from joi.common import (
    AnsiColors,
    colored_print,
)
from joi.config import settings
from joi.core.errors import PermissionDeniedError
from joi.services.embeddings import load_embedding_service
from joi.services.identity import StoreIdentityProvider
from joi.store.memory_store import InMemoryDataStore
from joi.store.vector_memory import (
    ChromaMessageIndex,
    MessageIndex,
    NumpyMessageIndex,
)

logger = logging.getLogger(__name__)

# Process-wide collaborators, built on first use
_runtime: Dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def _message_index() -> MessageIndex:
    if settings.VECTOR_DB.lower() == "chroma":
        return ChromaMessageIndex(host=settings.VECTOR_DB_HOST, port=settings.VECTOR_DB_PORT)
    return NumpyMessageIndex()


def get_store() -> InMemoryDataStore:
    """Return the shared data store, seeding it from ``SEED_DATA_PATH`` if set."""
    if "store" not in _runtime:
        index = _message_index()
        if settings.SEED_DATA_PATH:
            _runtime["store"] = InMemoryDataStore.from_json(settings.SEED_DATA_PATH, message_index=index)
        else:
            logger.warning("SEED_DATA_PATH is not set; starting with an empty data store")
            _runtime["store"] = InMemoryDataStore(message_index=index)
    return _runtime["store"]


def get_agent() -> TicketAgent:
    """Return the shared agent; it holds no per-request state."""
    if "agent" not in _runtime:
        embedder = load_embedding_service()
        _runtime["embedder"] = embedder
        _runtime["agent"] = build_agent(get_store(), embedder=embedder)
    return _runtime["agent"]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Build the agent and index seeded ticket messages for similarity search."""
    get_agent()
    try:
        await get_store().index_messages(_runtime["embedder"])
    except Exception as exc:  # pylint: disable=broad-except
        # Similarity search stays empty; everything else works
        logger.error("Failed to index ticket messages: %s", exc)
    yield


app = FastAPI(title="Joi API", version="0.1.0", description="Joi support-desk agent API", lifespan=lifespan)

# Add CORS middleware to allow requests from browser frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.API_PORT}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/agent", response_model=AgentResponse, summary="Process a query")
async def agent_endpoint(
    req: AgentRequest,
    x_user_id: Optional[str] = Header(None),
    agent: TicketAgent = Depends(get_agent),
    store: InMemoryDataStore = Depends(get_store),
) -> AgentResponse:
    """Run one query through the agent on behalf of the caller named in ``X-User-Id``."""
    if not req.query or not req.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    identity = StoreIdentityProvider(store, x_user_id)
    try:
        caller = await identity.current_caller()
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=401, detail="Unknown or missing user") from exc

    logger.info("Agent request from role=%s (history=%d)", caller.role.value, len(req.history))
    reply = await agent.process(req.query.strip(), req.history, identity=identity)
    return AgentResponse(response=reply.response, state=reply.state)


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the Joi API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path for library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info("Starting Joi API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level)

    colored_print(f"Joi API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "joi.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m joi.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
