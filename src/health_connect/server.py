"""
Health Connect server: FastAPI app exposing chat sessions and cached
health analyses backed by Gemini.
"""

import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from . import __version__
from .analysis import ADVANCED_HEALTH, HEALTH_INSIGHTS, WELLNESS, AnalysisKind, AnalysisService
from .cache import ResponseCache
from .config import Settings, get_settings
from .errors import HealthConnectError, InternalError
from .gateway import GenerationGateway
from .models import (
    AdvancedHealthRequest,
    CreateSessionRequest,
    HealthHistoryEntry,
    HealthHistoryRequest,
    HealthInsightsRequest,
    SendMessageRequest,
    WellnessEntryRequest,
)
from .sessions import SessionManager
from .stats import StatsTracker
from .store import (
    BaseHistoryStore,
    BaseSessionStore,
    InMemoryHistoryStore,
    InMemorySessionStore,
    RedisHistoryStore,
    RedisSessionStore,
)

logger = logging.getLogger(__name__)


def _failure(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"success": False, "data": None, "message": message, **extra},
    )


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[GenerationGateway] = None,
    cache: Optional[ResponseCache] = None,
    session_store: Optional[BaseSessionStore] = None,
    history_store: Optional[BaseHistoryStore] = None,
) -> FastAPI:
    """Create the Health Connect FastAPI app.

    Every collaborator can be injected; anything left out is built from
    ``settings`` (Redis stores when ``REDIS_URL`` is set, in-memory otherwise).
    """
    settings = settings or get_settings()

    if gateway is None:
        if not settings.google_api_key:
            logger.warning("GOOGLE_API_KEY is not set; model calls will fail")
        gateway = GenerationGateway.from_api_key(
            settings.google_api_key,
            timeout=settings.provider_timeout,
            max_retries=settings.provider_max_retries,
        )
    if cache is None:
        cache = ResponseCache(ttl=settings.cache_ttl, enabled=settings.cache_enabled)
    if session_store is None:
        session_store = (
            RedisSessionStore.from_url(settings.redis_url, ttl=settings.session_ttl_seconds)
            if settings.redis_url
            else InMemorySessionStore(ttl=settings.session_ttl_seconds)
        )
    if history_store is None:
        history_store = (
            RedisHistoryStore.from_url(settings.redis_url)
            if settings.redis_url
            else InMemoryHistoryStore()
        )

    sessions = SessionManager(
        session_store,
        gateway,
        thinking_budget=settings.thinking_budget,
        default_model=settings.default_model,
    )
    analysis = AnalysisService(gateway, cache, default_model=settings.default_model)
    stats = StatsTracker()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Health Connect %s starting (cache %s, store %s)",
            __version__,
            f"ON (TTL {cache.ttl}s)" if cache.enabled else "OFF",
            type(session_store).__name__,
        )
        yield
        cache.clear()
        logger.info("Health Connect stopped")

    app = FastAPI(
        title="Health Connect",
        description="Gemini-backed health analysis and chat API",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.cache = cache
    app.state.sessions = sessions
    app.state.analysis = analysis
    app.state.stats = stats

    @app.exception_handler(RequestValidationError)
    async def on_invalid_request(request: Request, exc: RequestValidationError):
        stats.record(path=request.url.path, duration=0.0, status=400)
        return _failure(400, "Invalid input data", details=jsonable_encoder(exc.errors()))

    @app.exception_handler(HealthConnectError)
    async def on_app_error(request: Request, exc: HealthConnectError):
        stats.record(path=request.url.path, duration=0.0, status=exc.status_code)
        return _failure(exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def on_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        error = InternalError("Internal Server Error")
        stats.record(path=request.url.path, duration=0.0, status=error.status_code)
        return _failure(error.status_code, error.message)

    @app.get("/", response_class=PlainTextResponse)
    async def welcome():
        return "Welcome to Health Connect API"

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": __version__,
            "stats": stats.summary(),
        }

    @app.get("/stats")
    async def get_stats():
        cache.purge_expired()
        return {
            "cache": cache.get_stats(),
            "requests": stats.summary(),
        }

    router = APIRouter(prefix="/api")

    # -- chat sessions -------------------------------------------------------

    @router.post("/create-chat-session")
    async def create_chat_session(request: Request, body: Optional[CreateSessionRequest] = None):
        t0 = time.time()
        body = body or CreateSessionRequest()
        session = await sessions.create_session(body.model_type, body.mode)
        stats.record(path=request.url.path, duration=time.time() - t0)
        return {
            "success": True,
            "message": "Gemini chat session created successfully",
            "data": session.session_id,
            "sessionId": session.session_id,
            "modelType": session.model_type,
            "mode": session.mode,
        }

    @router.post("/send-message")
    async def send_message(body: SendMessageRequest, request: Request):
        t0 = time.time()
        path = request.url.path
        reply = await sessions.send_message(body.session_id, body.message)

        async def relay():
            try:
                async for text in reply:
                    yield text
            finally:
                await reply.aclose()
                stats.record(path=path, duration=time.time() - t0, streamed=True)

        return StreamingResponse(relay(), media_type="text/plain")

    @router.get("/chat-history/{session_id}")
    async def chat_history(session_id: str, request: Request):
        t0 = time.time()
        messages = await sessions.get_history(session_id)
        stats.record(path=request.url.path, duration=time.time() - t0)
        return {
            "success": True,
            "data": [m.model_dump(mode="json") for m in messages],
        }

    # -- single-shot analyses ------------------------------------------------

    async def run_analysis(kind: AnalysisKind, payload, request: Request):
        t0 = time.time()
        result = await analysis.analyze(kind, payload)
        stats.record(path=request.url.path, duration=time.time() - t0, cached=result.cached)
        return {
            "success": True,
            "data": result.data,
            "message": result.message,
            "cached": result.cached,
        }

    @router.post("/advanced-health-analysis")
    async def advanced_health_analysis(body: AdvancedHealthRequest, request: Request):
        return await run_analysis(ADVANCED_HEALTH, body, request)

    @router.post("/health-insights")
    async def health_insights(body: HealthInsightsRequest, request: Request):
        return await run_analysis(HEALTH_INSIGHTS, body, request)

    @router.post("/analyze-wellness")
    async def analyze_wellness(body: WellnessEntryRequest, request: Request):
        return await run_analysis(WELLNESS, body, request)

    # -- health history ------------------------------------------------------

    @router.post("/health-history", status_code=201)
    async def save_health_history(body: HealthHistoryRequest, request: Request):
        t0 = time.time()
        entry = HealthHistoryEntry(**body.model_dump())
        await history_store.save(entry)
        stats.record(path=request.url.path, duration=time.time() - t0, status=201)
        return {
            "success": True,
            "data": entry.model_dump(mode="json", by_alias=True),
            "message": "Health history saved successfully",
        }

    @router.get("/health-history/{user_id}")
    async def get_health_history(user_id: str, request: Request):
        t0 = time.time()
        entries = await history_store.list_for_user(user_id)
        stats.record(path=request.url.path, duration=time.time() - t0)
        return {
            "success": True,
            "data": [e.model_dump(mode="json", by_alias=True) for e in entries],
        }

    app.include_router(router)
    return app
