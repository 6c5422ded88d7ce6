"""
FastAPI Application Module

HTTP surface for the career counselor chat. Each session/message operation
of the orchestrator is exposed as one JSON endpoint.

Key Features:
- Async request handling with FastAPI
- Per-client rate limiting and per-session request serialization
- Typed error mapping (422/404/500/502/408/429)
- Structured logging, Prometheus metrics and OpenTelemetry tracing
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from structlog import get_logger

from ..config import Settings, get_settings
from ..domain.errors import ChatError
from ..domain.models import (
    ChatSession,
    Exchange,
    Message,
    MessageCreate,
    SessionCreate,
    SessionSummary,
    SessionUpdate,
)
from ..logging_setup import configure_logging
from ..repositories.base import Repository
from ..repositories.memory import InMemoryRepository
from ..repositories.sql import SQLRepository
from ..services.assembler import ConversationAssembler
from ..services.llm import GeminiProvider, GenerationProvider
from ..services.orchestrator import SessionOrchestrator
from ..services.prompts import list_templates
from .rate_limiter import RateLimiter, RateLimitExceeded, rate_limit_middleware
from .request_queue import RequestQueue

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("chat_requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter(
    "chat_errors_total", "Failed operations by error type", ["error"], registry=CUSTOM_REGISTRY
)
EXCHANGES = Counter(
    "chat_exchanges_total", "Completed user/assistant exchanges", registry=CUSTOM_REGISTRY
)
EXCHANGE_SECONDS = Histogram(
    "chat_exchange_seconds", "Time to complete an exchange", registry=CUSTOM_REGISTRY
)

logger = get_logger()


def create_repository(settings: Settings) -> Repository:
    """In-memory store unless a database URL is configured."""
    if settings.database_url:
        return SQLRepository(settings.database_url)
    return InMemoryRepository()


def create_orchestrator(
    settings: Settings,
    repository: Optional[Repository] = None,
    provider: Optional[GenerationProvider] = None,
) -> SessionOrchestrator:
    """Wire the orchestrator from settings, allowing collaborators to be swapped."""
    return SessionOrchestrator(
        repository=repository or create_repository(settings),
        provider=provider
        or GeminiProvider(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
            timeout=settings.generation_timeout,
        ),
        assembler=ConversationAssembler(
            default_service_type=settings.default_service_type,
            max_turns=settings.max_context_turns,
        ),
        temperature=settings.temperature,
        allow_anonymous=settings.allow_anonymous,
    )


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Returns the session orchestrator"""
    return request.app.state.orchestrator


def get_request_queue(request: Request) -> RequestQueue:
    """Returns the per-session request queue"""
    return request.app.state.request_queue


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown and resource management"""
    logger.info("application_startup_complete")

    yield

    await app.state.request_queue.cleanup()
    repository = app.state.orchestrator.repository
    if isinstance(repository, SQLRepository):
        repository.close()
    logger.info("application_shutdown_complete")


def _error_body(error: str, detail: str) -> Dict[str, Any]:
    return {"error": error, "detail": detail}


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[SessionOrchestrator] = None,
    rate_limiter: Optional[RateLimiter] = None,
    request_queue: Optional[RequestQueue] = None,
) -> FastAPI:
    """Build the application. Unspecified collaborators come from settings."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="Career Chat API",
        description="Chat sessions with an AI career counselor",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator or create_orchestrator(settings)
    app.state.rate_limiter = rate_limiter or RateLimiter(
        rate_limit=settings.rate_limit, time_window=settings.rate_window
    )
    app.state.request_queue = request_queue or RequestQueue(
        max_concurrent=settings.max_concurrent, queue_timeout=settings.queue_timeout
    )

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests and enforces rate limits"""
        REQUESTS.inc()
        logger.info("request_started", method=request.method, path=request.url.path)
        try:
            await rate_limit_middleware(request, request.app.state.rate_limiter)
        except RateLimitExceeded as e:
            ERRORS.labels(error="RateLimitExceeded").inc()
            return JSONResponse(
                status_code=429,
                content=_error_body("RateLimitExceeded", str(e)),
                headers={"Retry-After": str(int(e.retry_after) + 1)},
            )
        return await call_next(request)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        error = type(exc).__name__
        ERRORS.labels(error=error).inc()
        log = logger.warning if exc.status_code < 500 else logger.error
        log("request_failed", path=request.url.path, error=error, detail=exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(error, exc.message))

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/service-types")
    async def service_types() -> List[Dict[str, Any]]:
        """Lists the counselor personas a session can be created with"""
        return [
            {
                "key": t.key,
                "label": t.label,
                "follow_up_questions": t.follow_up_questions,
            }
            for t in list_templates()
        ]

    @app.post("/sessions", response_model=ChatSession)
    async def create_session(
        body: SessionCreate,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> ChatSession:
        """Starts a new conversation for a user"""
        return await orchestrator.create_session(
            title=body.title,
            user_id=body.user_id,
            description=body.description,
            service_type=body.service_type,
        )

    @app.get("/sessions", response_model=List[SessionSummary])
    async def list_sessions(
        user_id: Optional[str] = None,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> List[SessionSummary]:
        """Lists sessions, most recently active first, with a message preview"""
        return await orchestrator.list_sessions(user_id=user_id, limit=limit, offset=offset)

    @app.get("/sessions/{session_id}", response_model=ChatSession)
    async def get_session(
        session_id: UUID,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> ChatSession:
        return await orchestrator.get_session(session_id)

    @app.patch("/sessions/{session_id}", response_model=ChatSession)
    async def rename_session(
        session_id: UUID,
        body: SessionUpdate,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> ChatSession:
        return await orchestrator.rename_session(
            session_id, title=body.title, description=body.description
        )

    @app.delete("/sessions/{session_id}", status_code=204)
    async def delete_session(
        session_id: UUID,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        """Deletes a session and its transcript"""
        await orchestrator.delete_session(session_id)
        return Response(status_code=204)

    @app.get("/sessions/{session_id}/messages", response_model=List[Message])
    async def get_messages(
        session_id: UUID,
        limit: Optional[int] = Query(None, ge=1),
        offset: int = Query(0, ge=0),
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    ) -> List[Message]:
        """Gets the transcript, oldest message first"""
        return await orchestrator.get_messages(session_id, limit=limit, offset=offset)

    async def _queued_exchange(queue: RequestQueue, session_id: UUID, task, *args) -> Exchange:
        start = time.perf_counter()
        try:
            exchange = await queue.enqueue_request(session_id, task, *args)
        except TimeoutError:
            ERRORS.labels(error="Timeout").inc()
            raise HTTPException(status_code=408, detail="Request timeout")
        EXCHANGES.inc()
        EXCHANGE_SECONDS.observe(time.perf_counter() - start)
        return exchange

    @app.post("/sessions/{session_id}/messages", response_model=Exchange)
    async def send_message(
        session_id: UUID,
        body: MessageCreate,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
        queue: RequestQueue = Depends(get_request_queue),
    ) -> Exchange:
        """
        Stores the user's message and returns it with the counselor's reply.
        Sends to the same session are processed one at a time.
        """
        return await _queued_exchange(
            queue, session_id, orchestrator.send_message, session_id, body.content
        )

    @app.post("/sessions/{session_id}/retry", response_model=Exchange)
    async def retry_last_exchange(
        session_id: UUID,
        orchestrator: SessionOrchestrator = Depends(get_orchestrator),
        queue: RequestQueue = Depends(get_request_queue),
    ) -> Exchange:
        """Generates the missing reply for the last unanswered user message"""
        return await _queued_exchange(
            queue, session_id, orchestrator.retry_last_exchange, session_id
        )

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
