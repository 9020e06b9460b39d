"""
Admission Engine

Sliding-window admission control for chat-completion calls.
Enforces token and request limits per (resource, subaccount) against a
shared ordered-set store so every process sees the same consumption.

Each input admission is a single guarded batch: prune expired entries,
total the surviving window, check both limits and write the paired
input/request entries, all atomically in the store. A rejected
admission leaves no trace in the store.
"""

import inspect
import time
from typing import Any, Callable, Optional

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...constants import DEFAULT_SUBACCOUNT, MAX_LANE
from ...core.config import Settings, get_settings
from ...domain.limits.entities import (
    AdmissionLoad,
    AdmissionRecord,
    RecordKind,
    WindowUsage,
)
from ...domain.limits.exceptions import (
    InvalidDeregistrationException,
    LimiterException,
    RequestLimitExceededException,
    TokenLimitExceededException,
    UnknownLimiterKeyException,
)
from ...domain.limits.repository_interfaces import (
    Aggregate,
    Guard,
    GuardedBatch,
    ScoreRange,
    WindowOp,
    WindowStore,
)
from ...domain.limits.value_objects import LimiterKey, RateLimit, ResourceQuota
from ...infrastructure.redis.connection_factory import RedisConnectionFactory
from ...infrastructure.repositories.redis_window_store import RedisWindowStore
from ..identifiers.snowflake import SnowflakeIdGenerator, boundary_score
from ..limits.registry import RateLimitRegistry, load_overrides_file
from ..tokens.estimator import (
    CompletionPayload,
    HeuristicTokenEstimator,
    PromptPayload,
    TokenEstimator,
)

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

TOKEN_GUARD = "tokens"
REQUEST_GUARD = "requests"


class AdmissionEngine:
    """
    Check-prune-commit-release protocol over a WindowStore.

    Holds no locks across store round trips; atomicity comes from the
    store executing each guarded batch as one unit.
    """

    def __init__(
        self,
        store: WindowStore,
        registry: Optional[RateLimitRegistry] = None,
        estimator: Optional[TokenEstimator] = None,
        id_generator: Optional[SnowflakeIdGenerator] = None,
        key_prefix: str = "tokengate",
        key_ttl_padding_ms: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._registry = registry or RateLimitRegistry()
        self._estimator = estimator or HeuristicTokenEstimator()
        self._ids = id_generator or SnowflakeIdGenerator(clock=clock)
        self._key_prefix = key_prefix
        self._key_ttl_padding_ms = key_ttl_padding_ms

    @classmethod
    async def from_settings(
        cls,
        settings: Optional[Settings] = None,
        estimator: Optional[TokenEstimator] = None,
    ) -> "AdmissionEngine":
        """
        Build a Redis-backed engine from settings.

        Connects to Redis, loads the optional override file and, when no
        lane is configured, allocates one from the shared lane counter.
        """
        settings = settings or get_settings()

        overrides = None
        if settings.LIMITER_OVERRIDES_FILE:
            overrides = load_overrides_file(settings.LIMITER_OVERRIDES_FILE)
        registry = RateLimitRegistry(overrides=overrides)

        store = RedisWindowStore(
            RedisConnectionFactory(settings), settings.REDIS_KEY_PREFIX
        )
        await store.connect()

        lane = settings.LIMITER_LANE
        if lane is None:
            try:
                lane = await store.allocate_lane("ids", MAX_LANE + 1)
            except Exception:
                await store.close()
                raise
        logger.info("admission_engine.lane_assigned", lane=lane)

        return cls(
            store=store,
            registry=registry,
            estimator=estimator,
            id_generator=SnowflakeIdGenerator(lane=lane),
            key_prefix=settings.REDIS_KEY_PREFIX,
            key_ttl_padding_ms=settings.LIMITER_KEY_TTL_PADDING_MS,
        )

    @property
    def registry(self) -> RateLimitRegistry:
        return self._registry

    async def connect(self) -> None:
        await self._store.connect()

    async def close(self) -> None:
        await self._store.close()

    def get_token_limit(
        self, resource: str, subaccount: Optional[str] = None
    ) -> Optional[RateLimit]:
        return self._registry.get_token_limit(resource, subaccount or DEFAULT_SUBACCOUNT)

    def get_request_limit(
        self, resource: str, subaccount: Optional[str] = None
    ) -> Optional[RateLimit]:
        return self._registry.get_request_limit(
            resource, subaccount or DEFAULT_SUBACCOUNT
        )

    async def _estimate(self, estimate: Callable[[Any], Any], payload: Any) -> int:
        cost = estimate(payload)
        if inspect.isawaitable(cost):
            cost = await cost
        cost = int(cost)
        if cost < 0:
            raise ValueError(f"Token estimator returned a negative cost: {cost}")
        return cost

    def _cutoffs(self, quota: ResourceQuota, now_ms: int) -> tuple:
        """(token cutoff, request cutoff, prune cutoff) boundary scores.

        Input and request entries share ids and are pruned together at
        the older of the two cutoffs; each dimension is then totalled
        over its own interval.
        """
        token_cutoff = boundary_score(now_ms - quota.token.duration_ms)
        request_cutoff = boundary_score(now_ms - quota.request.duration_ms)
        return token_cutoff, request_cutoff, min(token_cutoff, request_cutoff)

    def _expire_ms(self, quota: ResourceQuota) -> int:
        return quota.longest_window_ms + self._key_ttl_padding_ms

    def _limiter_key(self, resource: str, subaccount: str) -> LimiterKey:
        try:
            return LimiterKey(resource, subaccount)
        except ValueError as e:
            raise UnknownLimiterKeyException(resource, subaccount) from e

    async def register_input(
        self,
        resource: str,
        payload: PromptPayload,
        subaccount: Optional[str] = None,
    ) -> AdmissionRecord:
        """
        Admit a prompt against the token and request windows.

        Args:
            resource: Resource (model) identifier
            payload: Prompt text or chat prompt
            subaccount: Quota partition; defaults to "default"

        Returns:
            Committed input record

        Raises:
            UnknownLimiterKeyException: Resource not in the registry (no store access)
            TokenLimitExceededException: Token window would overflow (nothing written)
            RequestLimitExceededException: Request window would overflow (nothing written)
            StoreUnavailableException: Store transport failure
        """
        subaccount = subaccount or DEFAULT_SUBACCOUNT

        with tracer.start_as_current_span("tokengate.register_input") as span:
            span.set_attribute("resource", resource)
            span.set_attribute("subaccount", subaccount)

            try:
                key = self._limiter_key(resource, subaccount)
                quota = self._registry.resolve(resource, subaccount)
                cost = await self._estimate(self._estimator.estimate_prompt, payload)
                span.set_attribute("cost", cost)

                token_cutoff, request_cutoff, prune_cutoff = self._cutoffs(
                    quota, self._ids.now_ms()
                )
                input_key = key.input_tokens_key(self._key_prefix)
                output_key = key.output_tokens_key(self._key_prefix)
                requests_key = key.requests_key(self._key_prefix)
                score = self._ids.next_score()

                batch = GuardedBatch(
                    prune=[
                        WindowOp.remove_range(k, ScoreRange.below(prune_cutoff))
                        for k in (input_key, output_key, requests_key)
                    ],
                    guards=[
                        Guard(
                            name=TOKEN_GUARD,
                            keys=(input_key, output_key),
                            aggregate=Aggregate.SUM,
                            score_range=ScoreRange.at_or_above(token_cutoff),
                            increment=cost,
                            limit=quota.token.count,
                        ),
                        Guard(
                            name=REQUEST_GUARD,
                            keys=(requests_key,),
                            aggregate=Aggregate.COUNT,
                            score_range=ScoreRange.at_or_above(request_cutoff),
                            increment=1,
                            limit=quota.request.count,
                        ),
                    ],
                    commit=[
                        WindowOp.add(input_key, score, cost),
                        WindowOp.add(requests_key, score, cost),
                    ],
                    expire_ms=self._expire_ms(quota),
                )

                result = await self._store.execute_guarded_batch(batch)
                current_tokens, current_requests = result.totals
                span.set_attribute("current_tokens", current_tokens)
                span.set_attribute("current_requests", current_requests)

                if result.failed_guard == TOKEN_GUARD:
                    raise TokenLimitExceededException(
                        resource=resource,
                        subaccount=subaccount,
                        current=current_tokens,
                        cost=cost,
                        limit=quota.token.count,
                        interval=quota.token.interval.value,
                    )
                if result.failed_guard == REQUEST_GUARD:
                    raise RequestLimitExceededException(
                        resource=resource,
                        subaccount=subaccount,
                        current=current_requests,
                        limit=quota.request.count,
                        interval=quota.request.interval.value,
                    )

            except LimiterException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                if isinstance(
                    e, (TokenLimitExceededException, RequestLimitExceededException)
                ):
                    logger.warning(
                        "admission.rejected", error_code=e.error_code, **e.details
                    )
                raise

            load = AdmissionLoad(
                tokens=current_tokens / quota.token.count,
                requests=current_requests / quota.request.count,
            )
            logger.info(
                "admission.granted",
                resource=resource,
                subaccount=subaccount,
                record_id=str(score),
                cost=cost,
                token_load=round(load.tokens, 4),
                request_load=round(load.requests, 4),
            )

            return AdmissionRecord(
                id=str(score),
                kind=RecordKind.INPUT,
                token_count=cost,
                resource=resource,
                subaccount=subaccount,
                load=load,
            )

    async def register_output(
        self,
        resource: str,
        payload: CompletionPayload,
        subaccount: Optional[str] = None,
    ) -> AdmissionRecord:
        """
        Account for a produced completion.

        Never rejected on quota; an already-produced response is always
        counted. A zero-cost output writes nothing.

        Raises:
            UnknownLimiterKeyException: Resource not in the registry
            StoreUnavailableException: Store transport failure
        """
        subaccount = subaccount or DEFAULT_SUBACCOUNT

        with tracer.start_as_current_span("tokengate.register_output") as span:
            span.set_attribute("resource", resource)
            span.set_attribute("subaccount", subaccount)

            try:
                key = self._limiter_key(resource, subaccount)
                quota = self._registry.resolve(resource, subaccount)
                cost = await self._estimate(self._estimator.estimate_completion, payload)
                span.set_attribute("cost", cost)

                score = self._ids.next_score()
                if cost > 0:
                    _, _, prune_cutoff = self._cutoffs(quota, self._ids.now_ms())
                    output_key = key.output_tokens_key(self._key_prefix)
                    await self._store.execute_guarded_batch(
                        GuardedBatch(
                            prune=[
                                WindowOp.remove_range(
                                    output_key, ScoreRange.below(prune_cutoff)
                                )
                            ],
                            commit=[WindowOp.add(output_key, score, cost)],
                            expire_ms=self._expire_ms(quota),
                        )
                    )
            except LimiterException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            logger.info(
                "admission.output_registered",
                resource=resource,
                subaccount=subaccount,
                record_id=str(score),
                cost=cost,
            )

            return AdmissionRecord(
                id=str(score),
                kind=RecordKind.OUTPUT,
                token_count=cost,
                resource=resource,
                subaccount=subaccount,
            )

    async def deregister_input(self, record: AdmissionRecord) -> None:
        """
        Release an input reservation.

        Removes the entries scored exactly at record.id from the input and
        request sets. Releasing an already expired or released record is
        a no-op.

        Raises:
            InvalidDeregistrationException: If record is not an input record
            StoreUnavailableException: Store transport failure
        """
        with tracer.start_as_current_span("tokengate.deregister_input") as span:
            span.set_attribute("record_id", record.id)
            span.set_attribute("resource", record.resource)
            span.set_attribute("subaccount", record.subaccount)

            try:
                if record.kind is not RecordKind.INPUT:
                    raise InvalidDeregistrationException(record.id, record.kind.value)

                key = record.limiter_key
                point = ScoreRange.point(record.score)
                removed_tokens, removed_requests = await self._store.execute_batch(
                    [
                        WindowOp.remove_range(key.input_tokens_key(self._key_prefix), point),
                        WindowOp.remove_range(key.requests_key(self._key_prefix), point),
                    ]
                )
            except LimiterException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            logger.info(
                "admission.released",
                resource=record.resource,
                subaccount=record.subaccount,
                record_id=record.id,
                removed=removed_tokens + removed_requests,
            )

    async def get_usage(
        self, resource: str, subaccount: Optional[str] = None
    ) -> WindowUsage:
        """
        Prune and report the surviving window consumption.

        Raises:
            UnknownLimiterKeyException: Resource not in the registry
            StoreUnavailableException: Store transport failure
        """
        subaccount = subaccount or DEFAULT_SUBACCOUNT

        with tracer.start_as_current_span("tokengate.get_usage") as span:
            span.set_attribute("resource", resource)
            span.set_attribute("subaccount", subaccount)

            try:
                key = self._limiter_key(resource, subaccount)
                quota = self._registry.resolve(resource, subaccount)
                token_cutoff, request_cutoff, prune_cutoff = self._cutoffs(
                    quota, self._ids.now_ms()
                )
                input_key = key.input_tokens_key(self._key_prefix)
                output_key = key.output_tokens_key(self._key_prefix)
                requests_key = key.requests_key(self._key_prefix)

                results = await self._store.execute_batch(
                    [
                        WindowOp.remove_range(input_key, ScoreRange.below(prune_cutoff)),
                        WindowOp.remove_range(output_key, ScoreRange.below(prune_cutoff)),
                        WindowOp.remove_range(
                            requests_key, ScoreRange.below(prune_cutoff)
                        ),
                        WindowOp.sum(input_key, ScoreRange.at_or_above(token_cutoff)),
                        WindowOp.sum(output_key, ScoreRange.at_or_above(token_cutoff)),
                        WindowOp.count(
                            requests_key, ScoreRange.at_or_above(request_cutoff)
                        ),
                    ]
                )
            except LimiterException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            usage = WindowUsage(
                resource=resource,
                subaccount=subaccount,
                input_tokens=results[3],
                output_tokens=results[4],
                requests=results[5],
                token_limit=quota.token.count,
                request_limit=quota.request.count,
            )
            logger.debug(
                "admission.usage",
                resource=resource,
                subaccount=subaccount,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                requests=usage.requests,
            )
            return usage
