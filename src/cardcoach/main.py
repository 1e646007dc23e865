import json
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .agent import ENGINE_ERROR_MESSAGE, ConversationEngine, FinanceTools, ModelClient, build_registry
from .errors import AdapterFailureError
from .schemas import AccountCreate, ChatRequest, ChatResponse
from .services.history_service import HistoryStore
from .services.redis import RedisCrudService
from .settings import Settings, get_settings


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Handlers sit on the package logger so engine and tool logs land there too.
    package_logger = logging.getLogger("cardcoach")
    package_logger.setLevel(level)
    logger = logging.getLogger("cardcoach.server")
    if package_logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    package_logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    package_logger.addHandler(fh)

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)


def build_engine(redis_crud: RedisCrudService, settings: Settings) -> ConversationEngine:
    """Wire the conversation engine from settings around a Redis service."""
    return ConversationEngine(
        model_client=ModelClient.from_settings(settings),
        registry=build_registry(FinanceTools(redis_crud)),
        history_store=HistoryStore(
            redis_crud,
            ttl_seconds=settings.history_ttl_seconds,
            window=settings.history_window,
        ),
        max_tool_rounds=settings.max_tool_rounds,
        model_timeout_seconds=settings.model_request_timeout_seconds,
        tool_timeout_seconds=settings.tool_request_timeout_seconds,
        default_session_id=settings.default_session_id,
    )


router = APIRouter()


@router.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring.

    Returns:
        dict[str, Any]: JSON response with status field.
    """
    return {"status": "ok"}


@router.post("/api/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request) -> Any:
    """Answer one user message, calling tools as the model requests them.

    Expected Input (JSON):
        {
            "query": str - user message,
            "session_id": str | null - conversation scope, "default" when omitted
        }

    Response Format:
        {"response": str, "session_id": str, "tool_calls_count": int}
        Errors keep the same shape with a stable apology in "response".
    """
    query = body.query.strip()
    if not query:
        return JSONResponse(status_code=400, content={"response": "Empty message"})

    engine: ConversationEngine = request.app.state.engine
    session_id = body.session_id or engine.default_session_id
    LOGGER.info("Chat start session_id=%s", session_id)
    try:
        reply = await engine.run(query, session_id=session_id)
    except AdapterFailureError as e:
        LOGGER.error("Model endpoint failure for session %s: %s", session_id, e)
        return JSONResponse(
            status_code=502,
            content={"response": ENGINE_ERROR_MESSAGE, "session_id": session_id},
        )
    except Exception as e:
        LOGGER.exception("Unexpected chat error for session %s: %s", session_id, e)
        return JSONResponse(
            status_code=500,
            content={"response": ENGINE_ERROR_MESSAGE, "session_id": session_id},
        )

    return ChatResponse(
        response=reply.text,
        session_id=reply.session_id,
        tool_calls_count=reply.tool_calls_count,
    )


@router.delete("/api/chat/{session_id}")
async def clear_chat(session_id: str, request: Request) -> dict[str, Any]:
    """Forget the stored conversation of a session."""
    store: HistoryStore = request.app.state.history_store
    return {"session_id": session_id, "cleared": await store.clear(session_id)}


@router.get("/api/accounts")
async def list_accounts(request: Request) -> Any:
    tools: FinanceTools = request.app.state.tools
    try:
        return await tools.load_accounts()
    except ValueError as e:
        LOGGER.error("Stored account data is malformed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Malformed account data"})


@router.post("/api/accounts", status_code=201)
async def create_account(body: AccountCreate, request: Request) -> Any:
    """Store a new account from the dashboard form and return the stored record."""
    redis_crud: RedisCrudService = request.app.state.redis
    record = body.to_record(uuid4().hex)
    if not await redis_crud.set(f"account:{record['id']}", json.dumps(record)):
        return JSONResponse(status_code=503, content={"error": "Account store unavailable"})
    LOGGER.info("Stored account:%s (%s)", record["id"], record["name"])
    return record


@router.get("/api/transactions")
async def list_transactions(request: Request) -> Any:
    tools: FinanceTools = request.app.state.tools
    try:
        return await tools.load_transactions()
    except ValueError as e:
        LOGGER.error("Stored transaction data is malformed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Malformed transaction data"})


def create_app(
    engine: ConversationEngine | None = None,
    redis_crud: RedisCrudService | None = None,
) -> FastAPI:
    """Build the FastAPI app. Collaborators not passed in are built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect Redis and wire the engine at startup; close Redis on shutdown."""
        owns_redis = redis_crud is None
        store = redis_crud or RedisCrudService(settings.redis_url)
        if owns_redis:
            try:
                await store.connect()
            except (RedisConnectionError, RedisTimeoutError, ConnectionError, OSError) as e:
                LOGGER.warning("Redis unavailable, answers will lack account data: %s", e)

        app.state.redis = store
        app.state.tools = FinanceTools(store)
        app.state.history_store = HistoryStore(
            store,
            ttl_seconds=settings.history_ttl_seconds,
            window=settings.history_window,
        )
        app.state.engine = engine or build_engine(store, settings)
        LOGGER.info("CardCoach ready")

        yield

        LOGGER.info("Shutting down...")
        if owns_redis:
            await store.close()

    app = FastAPI(
        title="CardCoach",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("cardcoach.main:app", host=settings.host, port=settings.port)
