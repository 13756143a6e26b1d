"""
Health endpoints:
- GET /api/health — probes every configured model, reports cache/rate-limit state and metrics
- GET /api/health/config — checks the Gemini API key without calling the model
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from app.routers.chat import get_orchestrator
from app.schemas.chat import ConfigCheckResponse, HealthResponse, HealthServices, ModelServiceHealth
from app.services.orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


def _model_health(configured: bool, available: list[str]) -> ModelServiceHealth:
    if not configured:
        status = "unconfigured"
    elif available:
        status = "healthy"
    else:
        status = "degraded"
    return ModelServiceHealth(status=status, available_models=available, configured=configured)


@router.get("", response_model=HealthResponse)
async def health(
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Healthy only if at least one model answered its probe in time; 503 otherwise."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        gateway = orchestrator.gateway
        available = await gateway.probe()
        model = _model_health(gateway.configured, available)
        body = HealthResponse(
            status="healthy" if model.status == "healthy" else "degraded",
            timestamp=timestamp,
            version=settings.app_version,
            environment=settings.environment,
            services=HealthServices(
                model=model,
                cache=orchestrator.cache.stats(),
                rate_limit=orchestrator.rate_limiter.stats(),
            ),
            metrics=orchestrator.metrics.stats(),
        )
    except Exception as e:
        logger.exception("Health check failed")
        return JSONResponse(
            {"status": "unhealthy", "error": str(e), "timestamp": timestamp},
            status_code=503,
        )
    logger.info("Health check performed: %s", body.status)
    return JSONResponse(
        body.model_dump(by_alias=True),
        status_code=200 if body.status == "healthy" else 503,
    )


@router.get("/config", response_model=ConfigCheckResponse)
def config_check(settings: Settings = Depends(get_settings)):
    """Report whether GOOGLE_API_KEY is present and well formed. Never echoes the full key."""
    key = (settings.google_api_key or "").strip()
    if not key:
        return ConfigCheckResponse(
            status="error",
            message="GOOGLE_API_KEY not found",
            details="Set GOOGLE_API_KEY in the environment or the .env file",
            environment=settings.environment,
        )
    if not key.startswith(settings.api_key_prefix):
        return ConfigCheckResponse(
            status="error",
            message="Malformed API key",
            details=f'The API key must start with "{settings.api_key_prefix}"',
            environment=settings.environment,
        )
    return ConfigCheckResponse(
        status="success",
        message="Configuration OK",
        api_key_length=len(key),
        api_key_prefix=key[:10] + "...",
        environment=settings.environment,
    )
