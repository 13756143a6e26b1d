"""
Chat request pipeline:
  validate -> classify -> rate limit -> cache -> generate -> cache write -> respond.
Every stage may short-circuit with a ChatError. This is the only place failures become
client-facing JSON (status code + body); anything unexpected becomes a generic 500.
Concurrent identical cache misses share one generation call when single_flight is on.
"""
import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.schemas.chat import ChatErrorResponse, ChatMetadata, ChatResponse
from app.services.classifier import QueryCategory, QueryComplexity, build_prompt, classify, complexity
from app.services.errors import (
    ChatError,
    ConfigurationError,
    InternalError,
    RateLimitExceeded,
    RequestValidationFailed,
)
from app.services.metrics import MetricsCollector, estimate_tokens
from app.services.model_gateway import GenerationResult, ModelGateway
from app.services.rate_limiter import RateLimiter, identity_key
from app.services.response_cache import RedisResponseCache, ResponseCache, fingerprint
from app.services.validator import sanitize, validate

logger = logging.getLogger(__name__)

LOG_MESSAGE_PREVIEW = 200


@dataclass
class RequestContext:
    request_id: str
    address: str
    user_id: str | None
    identity: str
    raw_message: str
    sanitized_message: str
    category: QueryCategory
    complexity: QueryComplexity
    start_time: float


@dataclass
class ChatOutcome:
    status_code: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text[:LOG_MESSAGE_PREVIEW]


class ChatOrchestrator:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: ResponseCache,
        gateway: ModelGateway,
        metrics: MetricsCollector,
        shared_cache: RedisResponseCache | None = None,
        single_flight: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.gateway = gateway
        self.metrics = metrics
        self.shared_cache = shared_cache
        self._single_flight = single_flight
        self._clock = clock
        self._inflight: dict[str, asyncio.Future] = {}

    # ---- entry points ----

    def reject_malformed_body(self, address: str) -> ChatOutcome:
        request_id = str(uuid.uuid4())
        logger.warning("JSON parsing failed [%s] from %s", request_id, address)
        self.metrics.record_error(RequestValidationFailed.code)
        body = ChatErrorResponse(
            error="Invalid JSON in request body",
            code=RequestValidationFailed.code,
            request_id=request_id,
            timestamp=_now_iso(),
        )
        return ChatOutcome(status_code=400, body=body.model_dump(by_alias=True, exclude_none=True))

    async def handle(self, data: Any, address: str) -> ChatOutcome:
        request_id = str(uuid.uuid4())
        start = self._clock()
        stage = "received"
        raw_message = data.get("message") if isinstance(data, dict) else data
        logger.info("Request received [%s] from %s", request_id, address)
        try:
            stage = "validate"
            result = validate(data)
            if not result.valid:
                raise RequestValidationFailed(result.errors)
            ctx = self._build_context(request_id, data, address, start)
            logger.debug(
                "Query analysis [%s] category=%s complexity=%s length=%d",
                request_id, ctx.category.value, ctx.complexity.value, len(ctx.sanitized_message),
            )

            stage = "rate_limit"
            decision = self.rate_limiter.check(ctx.identity, ctx.category)
            if not decision.allowed:
                raise RateLimitExceeded(decision.reason or "Rate limit exceeded", decision.retry_after)

            stage = "cache"
            cached = await self._cached_response(ctx)
            if cached is not None:
                logger.info("Cache hit [%s] category=%s", request_id, ctx.category.value)
                return self._success(ctx, cached, cached=True)

            stage = "generate"
            if not self.gateway.configured:
                raise ConfigurationError("GOOGLE_API_KEY is missing or malformed")
            generation = await self._generate(ctx)
            return self._success(ctx, generation.text, cached=False, model=generation.model)
        except ChatError as e:
            return self._failure(e, request_id, stage, raw_message, start)
        except Exception:
            logger.exception(
                "Unexpected error [%s] stage=%s message=%r", request_id, stage, _preview(raw_message)
            )
            return self._failure(InternalError(), request_id, stage, raw_message, start, logged=True)

    # ---- stages ----

    def _build_context(self, request_id: str, data: dict, address: str, start: float) -> RequestContext:
        message = sanitize(data["message"])
        user_id = data.get("userId") or None
        return RequestContext(
            request_id=request_id,
            address=address,
            user_id=user_id,
            identity=identity_key(address, user_id),
            raw_message=data["message"],
            sanitized_message=message,
            category=classify(message),
            complexity=complexity(message),
            start_time=start,
        )

    async def _cached_response(self, ctx: RequestContext) -> str | None:
        payload = self.cache.get(ctx.sanitized_message, ctx.user_id)
        if payload is not None or self.shared_cache is None:
            return payload
        data = await self.shared_cache.get(ctx.sanitized_message, ctx.user_id)
        if data is None:
            return None
        self.cache.put(
            ctx.sanitized_message, ctx.user_id, data["payload"],
            data.get("category") or ctx.category, expires_at=float(data["expires_at"]),
        )
        return data["payload"]

    async def _generate(self, ctx: RequestContext) -> GenerationResult:
        if not self._single_flight:
            return await self._generate_and_store(ctx)
        key = fingerprint(ctx.sanitized_message, ctx.user_id)
        task = self._inflight.get(key)
        if task is not None:
            logger.info("Joining in-flight generation [%s]", ctx.request_id)
        else:
            task = asyncio.ensure_future(self._generate_and_store(ctx))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        # shield: a cancelled waiter must not cancel the generation other waiters share
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()

    async def _generate_and_store(self, ctx: RequestContext) -> GenerationResult:
        prompt = build_prompt(ctx.category, ctx.sanitized_message)
        result = await self.gateway.generate(prompt, ctx.complexity)
        entry = self.cache.put(ctx.sanitized_message, ctx.user_id, result.text, ctx.category)
        if self.shared_cache is not None:
            await self.shared_cache.put(entry)
        return result

    # ---- responses ----

    def _elapsed_ms(self, start: float) -> int:
        return max(0, round((self._clock() - start) * 1000))

    def _success(self, ctx: RequestContext, text: str, cached: bool, model: str | None = None) -> ChatOutcome:
        duration = self._elapsed_ms(ctx.start_time)
        tokens = 0 if cached else estimate_tokens(ctx.sanitized_message, text)
        self.metrics.record_request(ctx.category.value, cached=cached)
        self.metrics.record_performance(duration, tokens)
        if not cached:
            logger.info(
                "Request completed [%s] duration=%dms model=%s category=%s length=%d tokens=%d",
                ctx.request_id, duration, model, ctx.category.value, len(text), tokens,
            )
        body = ChatResponse(
            response=text,
            cached=cached,
            request_id=ctx.request_id,
            timestamp=_now_iso(),
            processing_time=duration,
            metadata=ChatMetadata(model=model, query_type=ctx.category.value, complexity=ctx.complexity.value),
        )
        return ChatOutcome(status_code=200, body=body.model_dump(by_alias=True, exclude_none=True))

    def _failure(
        self,
        error: ChatError,
        request_id: str,
        stage: str,
        raw_message: Any,
        start: float,
        logged: bool = False,
    ) -> ChatOutcome:
        self.metrics.record_error(error.code)
        if not logged:
            log = logger.warning if error.status_code < 500 else logger.error
            log(
                "Request failed [%s] stage=%s code=%s model=%s detail=%s message=%r",
                request_id, stage, error.code, error.model, error.message, _preview(raw_message),
            )
        body = ChatErrorResponse(
            error=error.public_message,
            code=error.code,
            request_id=request_id,
            timestamp=_now_iso(),
            processing_time=self._elapsed_ms(start),
        )
        headers: dict[str, str] = {}
        if isinstance(error, RequestValidationFailed):
            body.details = error.details
        if isinstance(error, RateLimitExceeded):
            body.reason = error.reason
            if error.retry_after is not None:
                body.retry_after = error.retry_after
                headers["Retry-After"] = str(error.retry_after)
        return ChatOutcome(
            status_code=error.status_code,
            body=body.model_dump(by_alias=True, exclude_none=True),
            headers=headers,
        )
