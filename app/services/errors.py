"""
Typed failures for the chat pipeline.
Each error carries the HTTP status, a stable code for clients and a public message
that never leaks internals. Services raise these; only the orchestrator turns them
into responses.
"""


class ChatError(Exception):
    """Base class for every failure the chat pipeline reports to clients."""

    code = "INTERNAL_ERROR"
    status_code = 500
    public_message = "Internal system error"

    def __init__(self, message: str | None = None, *, model: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.model = model


class RequestValidationFailed(ChatError):
    code = "VALIDATION_ERROR"
    status_code = 400
    public_message = "Validation failed"

    def __init__(self, details: list[str], message: str | None = None) -> None:
        super().__init__(message)
        self.details = list(details)


class RateLimitExceeded(ChatError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    public_message = "Rate limit exceeded"

    def __init__(self, reason: str, retry_after: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retry_after = retry_after


class ModelError(ChatError):
    """Failures of the generation backend; `model` names the model involved, if any."""

    code = "MODEL_UNAVAILABLE"
    status_code = 503
    public_message = "AI model temporarily unavailable"


class NoModelAvailable(ModelError):
    pass


class GenerationFailed(ModelError):
    code = "GENERATION_FAILED"

    def __init__(self, message: str | None = None, *, model: str | None = None, not_found: bool = False) -> None:
        super().__init__(message, model=model)
        self.not_found = not_found


class GenerationTimeout(ModelError):
    code = "TIMEOUT"
    status_code = 408
    public_message = "Request timeout"

    def __init__(self, timeout: float, *, model: str | None = None) -> None:
        super().__init__(f"Generation exceeded {timeout:g}s", model=model)
        self.timeout = timeout


class ConfigurationError(ChatError):
    code = "CONFIGURATION_ERROR"
    status_code = 500
    public_message = "API configuration error"


class InternalError(ChatError):
    pass
