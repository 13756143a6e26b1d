"""
Gemini access for the chat pipeline.
Uses the google-genai async client with an API key.
- ModelGateway walks the model priority list; a model whose handle cannot be built is skipped.
- Exactly one generation call per request, bounded by the complexity timeout (asyncio.wait_for
  cancels the call when the deadline passes). No retry here; clients resend the whole request.
"""
import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from google import genai
from google.genai import errors as genai_errors
from google.genai.types import GenerateContentConfig

from app.config import Settings, get_settings
from app.services.classifier import QueryComplexity
from app.services.errors import (
    ConfigurationError,
    GenerationFailed,
    GenerationTimeout,
    NoModelAvailable,
)

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."
PROBE_PROMPT = "test"


@dataclass
class GenerationResult:
    text: str
    model: str


class GeminiModel:
    """Handle bound to one model name."""

    def __init__(self, client, name: str, temperature: float, max_output_tokens: int):
        self._client = client
        self.name = name
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    async def generate(self, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.name,
            contents=prompt,
            config=GenerateContentConfig(
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
            ),
        )
        if not response or not response.candidates:
            raise ValueError("Empty response from model")
        candidate = response.candidates[0]
        if not candidate.content or not candidate.content.parts:
            raise ValueError("No text in model response")
        return getattr(response, "text", None) or candidate.content.parts[0].text


class GeminiBackend:
    """Builds model handles from one lazily created google-genai client."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._client = None

    @property
    def configured(self) -> bool:
        return self._settings.api_key_configured

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self.configured:
            raise ConfigurationError("GOOGLE_API_KEY is missing or malformed")
        self._client = genai.Client(api_key=self._settings.google_api_key.strip())
        return self._client

    def get_model(self, name: str) -> GeminiModel:
        if not name or not name.strip():
            raise ValueError("Model name is empty")
        return GeminiModel(
            self._get_client(),
            name.strip(),
            temperature=self._settings.gemini_temperature,
            max_output_tokens=self._settings.max_output_tokens,
        )


def _backend_error(exc: Exception, model: str) -> GenerationFailed:
    """Map a backend exception to GenerationFailed using the SDK's HTTP status, not its message."""
    if isinstance(exc, genai_errors.APIError):
        return GenerationFailed(
            f"Backend returned {exc.code}: {exc.message}",
            model=model,
            not_found=exc.code == 404,
        )
    return GenerationFailed(f"{type(exc).__name__}: {exc}", model=model)


class ModelGateway:
    def __init__(
        self,
        backend,
        models: list[str],
        timeouts: dict[str, float],
        max_response_length: int,
        unavailable_cooldown: float = 300,
        probe_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend = backend
        self._models = list(models)
        self._timeouts = dict(timeouts)
        self._max_response_length = max_response_length
        self._cooldown = unavailable_cooldown
        self._probe_timeout = probe_timeout
        self._clock = clock
        self._unavailable_until: dict[str, float] = {}

    @classmethod
    def from_settings(cls, backend, settings: Settings) -> "ModelGateway":
        return cls(
            backend,
            models=settings.gemini_models,
            timeouts=settings.timeouts,
            max_response_length=settings.max_response_length,
            unavailable_cooldown=settings.unavailable_model_cooldown_seconds,
            probe_timeout=settings.health_probe_timeout_seconds,
        )

    @property
    def models(self) -> list[str]:
        return list(self._models)

    @property
    def configured(self) -> bool:
        return bool(getattr(self._backend, "configured", True))

    def timeout_for(self, complexity: QueryComplexity | str) -> float:
        key = getattr(complexity, "value", complexity)
        return self._timeouts.get(key, self._timeouts.get(QueryComplexity.NORMAL.value, 30.0))

    def mark_unavailable(self, model: str) -> None:
        self._unavailable_until[model] = self._clock() + self._cooldown
        logger.warning("Model %s marked unavailable for %ss", model, self._cooldown)

    def _in_cooldown(self, model: str) -> bool:
        until = self._unavailable_until.get(model)
        if until is None:
            return False
        if self._clock() >= until:
            del self._unavailable_until[model]
            return False
        return True

    def acquire(self):
        """First model whose handle can be built. Configuration errors propagate."""
        for name in self._models:
            if self._in_cooldown(name):
                logger.debug("Skipping model %s (cooling down)", name)
                continue
            try:
                logger.debug("Trying model: %s", name)
                return self._backend.get_model(name)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning("Model %s unavailable: %s", name, e)
        raise NoModelAvailable("No models available")

    async def generate(
        self,
        prompt: str,
        complexity: QueryComplexity | str = QueryComplexity.NORMAL,
        timeout: float | None = None,
    ) -> GenerationResult:
        handle = self.acquire()
        timeout = timeout if timeout is not None else self.timeout_for(complexity)
        logger.info("Generating with model=%s complexity=%s timeout=%ss",
                    handle.name, getattr(complexity, "value", complexity), timeout)
        try:
            text = await asyncio.wait_for(handle.generate(prompt), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeout(timeout, model=handle.name) from e
        except Exception as e:
            err = _backend_error(e, handle.name)
            if err.not_found:
                self.mark_unavailable(handle.name)
            raise err from e

        text = text or ""
        if not text.strip():
            raise GenerationFailed("Empty response from model", model=handle.name)
        if len(text) > self._max_response_length:
            text = text[: self._max_response_length] + TRUNCATION_MARKER
        return GenerationResult(text=text, model=handle.name)

    async def probe(self) -> list[str]:
        """Models that answered a short test prompt within the probe timeout, in priority order."""
        if not self.configured:
            return []

        async def _probe_one(name: str) -> str | None:
            try:
                handle = self._backend.get_model(name)
                await asyncio.wait_for(handle.generate(PROBE_PROMPT), timeout=self._probe_timeout)
                return name
            except Exception as e:
                logger.info("Health probe failed for %s: %s", name, e)
                return None

        results = await asyncio.gather(*(_probe_one(name) for name in self._models))
        return [name for name in results if name]
