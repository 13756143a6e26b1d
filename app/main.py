import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import Settings, get_settings
from app.core.redis import build_redis_response_cache, close_redis_response_cache
from app.core.security import SecurityHeadersMiddleware
from app.routers import chat, health
from app.services.metrics import MetricsCollector
from app.services.model_gateway import GeminiBackend, ModelGateway
from app.services.orchestrator import ChatOrchestrator
from app.services.rate_limiter import RateLimiter, RateLimits
from app.services.response_cache import RedisResponseCache, ResponseCache

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Settings,
    backend=None,
    shared_cache: RedisResponseCache | None = None,
) -> ChatOrchestrator:
    """Process-wide pipeline state: limiter, cache, gateway and metrics owned by one orchestrator."""
    return ChatOrchestrator(
        rate_limiter=RateLimiter(
            RateLimits(per_minute=settings.rate_limit_per_minute, per_hour=settings.rate_limit_per_hour),
            blacklist=settings.rate_limit_blacklist,
        ),
        cache=ResponseCache(settings.cache_ttls, default_ttl=settings.cache_ttl_default),
        gateway=ModelGateway.from_settings(backend or GeminiBackend(settings), settings),
        metrics=MetricsCollector(),
        shared_cache=shared_cache,
        single_flight=settings.single_flight,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.api_key_configured:
        logger.warning("GOOGLE_API_KEY is missing or malformed; chat requests will fail until it is set")
    shared_cache = await build_redis_response_cache()
    app.state.orchestrator = build_orchestrator(settings, shared_cache=shared_cache)
    try:
        yield
    finally:
        await close_redis_response_cache()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
# Outermost, so CORS preflight responses get the headers too
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(chat.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"message": settings.app_name, "docs": "/docs"}
