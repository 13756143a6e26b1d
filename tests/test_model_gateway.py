"""Tests for model fallback, timeouts and failure mapping."""

from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors

from app.config import Settings
from app.services.classifier import QueryComplexity
from app.services.errors import (
    ConfigurationError,
    GenerationFailed,
    GenerationTimeout,
    NoModelAvailable,
)
from app.services.model_gateway import GeminiBackend, GeminiModel, ModelGateway

from tests.conftest import MODELS, FakeBackend, FakeClock


def make_gateway(backend, **kwargs):
    options = {
        "models": MODELS,
        "timeouts": {"fast": 1.0, "normal": 1.0, "complex": 1.0},
        "max_response_length": 10000,
    }
    options.update(kwargs)
    return ModelGateway(backend, **options)


def not_found_error():
    return genai_errors.ClientError(
        404, {"error": {"code": 404, "message": "model not found", "status": "NOT_FOUND"}}
    )


class TestGenerate:
    @pytest.mark.asyncio
    async def test_uses_first_model(self, backend, gateway):
        result = await gateway.generate("prompt", QueryComplexity.FAST)
        assert result.model == "model-a"
        assert result.text == "Here is your answer"
        assert backend.calls == [("model-a", "prompt")]

    @pytest.mark.asyncio
    async def test_falls_back_past_unavailable_handles(self):
        backend = FakeBackend(broken={"model-a", "model-b"})
        result = await make_gateway(backend).generate("prompt")
        assert result.model == "model-c"
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_no_model_available(self):
        backend = FakeBackend(broken=set(MODELS))
        with pytest.raises(NoModelAvailable):
            await make_gateway(backend).generate("prompt")
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_timeout_cancels_the_call(self):
        backend = FakeBackend(delay=1.0)
        gateway = make_gateway(backend, timeouts={"fast": 0.05, "normal": 1.0, "complex": 1.0})
        with pytest.raises(GenerationTimeout) as exc_info:
            await gateway.generate("prompt", QueryComplexity.FAST)
        assert exc_info.value.model == "model-a"
        assert exc_info.value.status_code == 408
        assert backend.cancelled == 1

    @pytest.mark.asyncio
    async def test_explicit_timeout_overrides_tier(self):
        backend = FakeBackend(delay=0.2)
        with pytest.raises(GenerationTimeout):
            await make_gateway(backend).generate("prompt", QueryComplexity.COMPLEX, timeout=0.05)

    @pytest.mark.asyncio
    async def test_generation_failure_is_not_retried(self):
        backend = FakeBackend(error=RuntimeError("boom"))
        with pytest.raises(GenerationFailed) as exc_info:
            await make_gateway(backend).generate("prompt")
        assert exc_info.value.model == "model-a"
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_not_found_puts_model_on_cooldown(self):
        clock = FakeClock()
        backend = FakeBackend(error=not_found_error())
        gateway = make_gateway(backend, unavailable_cooldown=300, clock=clock)
        with pytest.raises(GenerationFailed) as exc_info:
            await gateway.generate("prompt")
        assert exc_info.value.not_found

        backend.error = None
        result = await gateway.generate("prompt")
        assert result.model == "model-b"

        clock.advance(300)
        result = await gateway.generate("prompt")
        assert result.model == "model-a"

    @pytest.mark.asyncio
    async def test_truncates_long_output(self):
        backend = FakeBackend(reply="x" * 50)
        result = await make_gateway(backend, max_response_length=10).generate("prompt")
        assert result.text == "x" * 10 + "..."

    @pytest.mark.asyncio
    async def test_empty_output_is_a_failure(self):
        backend = FakeBackend(reply="  ")
        with pytest.raises(GenerationFailed):
            await make_gateway(backend).generate("prompt")

    def test_timeout_for_tiers(self, settings):
        gateway = ModelGateway.from_settings(FakeBackend(), settings)
        assert gateway.timeout_for(QueryComplexity.FAST) == 15
        assert gateway.timeout_for("normal") == 30
        assert gateway.timeout_for(QueryComplexity.COMPLEX) == 60
        assert gateway.timeout_for("unknown") == 30


class TestProbe:
    @pytest.mark.asyncio
    async def test_reports_responsive_models(self):
        backend = FakeBackend(broken={"model-b"})
        assert await make_gateway(backend).probe() == ["model-a", "model-c"]

    @pytest.mark.asyncio
    async def test_slow_models_fail_probe(self):
        backend = FakeBackend(delay=0.5)
        assert await make_gateway(backend, probe_timeout=0.05).probe() == []

    @pytest.mark.asyncio
    async def test_unconfigured_backend_skips_probe(self):
        backend = FakeBackend(configured=False)
        assert await make_gateway(backend).probe() == []
        assert backend.calls == []


class TestGeminiBackend:
    @pytest.mark.parametrize("key", ["", "   ", "sk-not-a-google-key"])
    def test_missing_or_malformed_key(self, key):
        backend = GeminiBackend(Settings(_env_file=None, google_api_key=key))
        assert not backend.configured
        with pytest.raises(ConfigurationError):
            backend.get_model("gemini-1.5-flash")

    def test_configuration_error_is_not_swallowed_by_fallback(self):
        gateway = make_gateway(GeminiBackend(Settings(_env_file=None, google_api_key="")))
        with pytest.raises(ConfigurationError):
            gateway.acquire()

    def test_builds_handle_for_valid_key(self):
        backend = GeminiBackend(Settings(_env_file=None, google_api_key="AIzaTestKey1234567890"))
        handle = backend.get_model("gemini-1.5-flash")
        assert handle.name == "gemini-1.5-flash"


class FakeAsyncModels:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def generate_content(self, model, contents, config):
        self.requests.append((model, contents, config))
        return self.response


class TestGeminiModel:
    def make_client(self, response):
        models = FakeAsyncModels(response)
        return SimpleNamespace(aio=SimpleNamespace(models=models)), models

    @pytest.mark.asyncio
    async def test_returns_response_text(self):
        part = SimpleNamespace(text="part text")
        response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))], text="full text")
        client, models = self.make_client(response)
        handle = GeminiModel(client, "gemini-1.5-flash", temperature=0.7, max_output_tokens=4096)
        assert await handle.generate("hi") == "full text"
        model, contents, config = models.requests[0]
        assert (model, contents) == ("gemini-1.5-flash", "hi")
        assert config.max_output_tokens == 4096

    @pytest.mark.asyncio
    async def test_empty_candidates_raise(self):
        client, _ = self.make_client(SimpleNamespace(candidates=[], text=None))
        handle = GeminiModel(client, "gemini-1.5-flash", temperature=0.7, max_output_tokens=4096)
        with pytest.raises(ValueError):
            await handle.generate("hi")
