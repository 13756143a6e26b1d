from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Chat ----

class ChatRequest(CamelModel):
    """Documented request shape. The body is checked by services.validator, not by this model."""

    message: str = Field(..., description="User message (1-5000 characters)")
    user_id: str | None = Field(None, description="Optional user identifier; scopes cache and rate limits")


class ChatMetadata(CamelModel):
    model: str | None = None  # absent on cache hits
    query_type: str
    complexity: str | None = None


class ChatResponse(CamelModel):
    response: str
    cached: bool = False
    request_id: str
    timestamp: str
    processing_time: int = Field(..., description="Milliseconds spent handling the request")
    metadata: ChatMetadata | None = None


class ChatErrorResponse(CamelModel):
    error: str
    code: str
    request_id: str
    timestamp: str
    processing_time: int | None = None
    details: list[str] | None = None
    reason: str | None = None
    retry_after: int | None = Field(None, description="Seconds to wait before retrying (429 only)")


# ---- Health ----

class ModelServiceHealth(CamelModel):
    status: str  # "healthy" | "degraded" | "unconfigured"
    available_models: list[str] = []
    configured: bool = False


class HealthServices(CamelModel):
    model: ModelServiceHealth
    cache: dict
    rate_limit: dict


class HealthResponse(CamelModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    timestamp: str
    version: str
    environment: str
    services: HealthServices
    metrics: dict


class ConfigCheckResponse(CamelModel):
    status: str  # "success" | "error"
    message: str
    details: str | None = None
    api_key_length: int | None = None
    api_key_prefix: str | None = None
    environment: str
