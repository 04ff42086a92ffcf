"""FastAPI application entry point.

Startup sequence: settings -> DB -> memory store -> action client -> tools + selector -> auth.
"""

import time
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from consultant.agent.agent import create_selector
from consultant.api.auth import TokenVerifier
from consultant.api.routes import router
from consultant.core.config import Settings
from consultant.core.database import init_db
from consultant.core.memory import ChatMemoryStore
from consultant.core.transport import ActionClient

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings: Settings = app.state.settings
    logger.info("startup.begin", default_provider=settings.default_provider)

    session_factory = init_db(settings.database_url)
    app.state.session_factory = session_factory
    app.state.memory = ChatMemoryStore(
        session_factory,
        continuity_window=settings.session_window,
        title_length=settings.session_title_length,
    )
    logger.info("startup.db_initialized")

    action_client = None
    if settings.gas_api_url:
        action_client = ActionClient(
            settings.gas_api_url,
            timeout=settings.gas_api_timeout,
            retry_count=settings.gas_api_retry_count,
            base_delay=settings.gas_api_retry_base_delay,
        )
    else:
        logger.warning("startup.action_api_missing", hint="Set GAS_API_URL in .env")
    app.state.action_client = action_client

    app.state.selector = create_selector(settings, action_client)
    if not app.state.selector.list_available():
        logger.error("startup.no_providers", hint="Set at least one *_API_KEY in .env")

    app.state.auth = TokenVerifier(settings.supabase_url, settings.supabase_service_key)
    if not app.state.auth.configured:
        logger.warning("startup.auth_missing", hint="Set SUPABASE_URL and SUPABASE_SERVICE_KEY in .env")

    logger.info("startup.complete")
    yield

    if action_client is not None:
        await action_client.aclose()
    await app.state.auth.aclose()
    logger.info("shutdown.complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Explicit settings; read from the environment when omitted.

    Returns:
        Configured FastAPI app (components are created in lifespan).
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Equipment Consultant API",
        description="AI consultant for equipment maintenance",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiter: per-client request throttling on chat, keyed by client address
    rate_buckets: dict[str, list[float]] = {}
    app.state.rate_buckets = rate_buckets

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """Enforce per-client rate limiting on POST /api/chat."""
        if request.url.path != "/api/chat" or request.method != "POST":
            return await call_next(request)

        client_key = request.client.host if request.client else "unknown"
        now = time.monotonic()

        # Forget clients idle for a whole window
        for key in [k for k, stamps in rate_buckets.items() if not stamps or now - stamps[-1] >= 60]:
            del rate_buckets[key]

        # Prune timestamps older than 60s
        window = [t for t in rate_buckets.get(client_key, []) if now - t < 60]

        if len(window) >= settings.rate_limit_per_min:
            rate_buckets[client_key] = window
            logger.warning("rate_limit.exceeded", client=client_key)
            return JSONResponse(
                status_code=429,
                content={"detail": "Слишком много запросов. Подождите немного."},
            )

        window.append(now)
        rate_buckets[client_key] = window
        return await call_next(request)

    app.include_router(router)
    return app


app = create_app()
