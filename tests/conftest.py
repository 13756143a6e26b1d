import asyncio

import pytest

from app.config import Settings
from app.services.metrics import MetricsCollector
from app.services.model_gateway import ModelGateway
from app.services.orchestrator import ChatOrchestrator
from app.services.rate_limiter import RateLimiter, RateLimits
from app.services.response_cache import ResponseCache

MODELS = ["model-a", "model-b", "model-c"]


class FakeClock:
    """Manually advanced clock for window and TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModel:
    def __init__(self, name: str, backend: "FakeBackend"):
        self.name = name
        self._backend = backend

    async def generate(self, prompt: str) -> str:
        self._backend.calls.append((self.name, prompt))
        try:
            if self._backend.delay:
                await asyncio.sleep(self._backend.delay)
        except asyncio.CancelledError:
            self._backend.cancelled += 1
            raise
        if self._backend.error is not None:
            raise self._backend.error
        return self._backend.reply


class FakeBackend:
    """Stands in for GeminiBackend: builds handles, records every generation call."""

    def __init__(self, reply="Here is your answer", broken=(), delay=0.0, error=None, configured=True):
        self.reply = reply
        self.broken = set(broken)
        self.delay = delay
        self.error = error
        self.configured = configured
        self.calls: list[tuple[str, str]] = []
        self.cancelled = 0

    def get_model(self, name: str) -> FakeModel:
        if name in self.broken:
            raise RuntimeError(f"{name} is not available")
        return FakeModel(name, self)


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (the calls the response tier makes)."""

    def __init__(self, fail=False):
        self.store = {}
        self.expiry = {}
        self.fail = fail
        self.closed = False

    async def ping(self):
        if self.fail:
            raise ConnectionError("redis down")
        return True

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = value
        self.expiry[key] = ex

    async def aclose(self):
        self.closed = True


@pytest.fixture
def settings():
    return Settings(_env_file=None, google_api_key="AIzaTestKey1234567890", gemini_models=MODELS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def gateway(backend):
    return ModelGateway(
        backend,
        models=MODELS,
        timeouts={"fast": 1.0, "normal": 1.0, "complex": 1.0},
        max_response_length=10000,
    )


@pytest.fixture
def orchestrator(settings, gateway, clock):
    return ChatOrchestrator(
        rate_limiter=RateLimiter(RateLimits(per_minute=60, per_hour=1000), clock=clock),
        cache=ResponseCache(settings.cache_ttls, default_ttl=settings.cache_ttl_default, clock=clock),
        gateway=gateway,
        metrics=MetricsCollector(clock=clock),
    )
