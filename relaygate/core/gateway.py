"""
Gateway orchestrator: the single entry point callers use.

Holds one credential pool, model roster and client per provider, walks the
roster for each request and normalizes every outcome into a GatewayResult.
"""

import asyncio
import time
import traceback
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Any, Optional

from ..models.data_classes import ModelEntry, ProviderReply, ProviderSettings, RetryPolicy
from ..models.enums import FailureKind, Outcome, ResultStatus, StreamEventType
from ..models.schemas import GatewayPayload, GatewayResult, StreamEvent, SubmitOptions, UsageInfo
from ..utils.logging import setup_logging
from ..utils.transaction_logger import get_transaction_logger
from .config import ConfigManager
from .credential_pool import CredentialPool
from .errors import GatewayError, ModelUnavailable, RosterExhausted
from .inflight import InFlightGuard
from .llm_client import LLMClient
from .model_roster import ModelRoster
from .provider_client import AttemptTrail, ProviderClient, ProviderRequest

logger = setup_logging()

HEALTH_CHECK_PROMPT = "Say 'OK' if you're working."


@dataclass
class ProviderHandle:
    """Everything the gateway keeps per provider"""
    settings: ProviderSettings
    pool: CredentialPool
    roster: ModelRoster
    client: ProviderClient

    @property
    def name(self) -> str:
        return self.settings.name


class Gateway:
    """Resilient front door over one or more LLM providers"""

    def __init__(self, providers: List[ProviderSettings], transport: LLMClient,
                 policy: Optional[RetryPolicy] = None,
                 guard: Optional[InFlightGuard] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if not providers:
            raise ValueError("At least one provider must be configured")

        self.policy = policy or RetryPolicy()
        self.guard = guard or InFlightGuard()
        self.transport = transport
        self.providers: Dict[str, ProviderHandle] = {}

        for settings in providers:
            pool = CredentialPool(settings.name, settings.api_keys, clock=clock)
            self.providers[settings.name] = ProviderHandle(
                settings=settings,
                pool=pool,
                roster=ModelRoster(settings.name, settings.models),
                client=ProviderClient(settings, pool, transport, self.policy, sleep=sleep)
            )

        logger.info("Gateway initialized",
                    providers=list(self.providers),
                    default_provider=self.default_provider)

    @classmethod
    def from_config(cls, config_manager: ConfigManager, transport: LLMClient, **kwargs) -> "Gateway":
        return cls(list(config_manager.providers.values()), transport,
                   policy=kwargs.pop("policy", config_manager.policy), **kwargs)

    @property
    def default_provider(self) -> str:
        return next(iter(self.providers))

    def get_provider(self, name: Optional[str] = None) -> ProviderHandle:
        name = name or self.default_provider
        if name not in self.providers:
            raise KeyError(f"Unknown provider: {name}")
        return self.providers[name]

    def attempt_budget(self, handle: ProviderHandle, options: Optional[SubmitOptions] = None) -> int:
        """Upper bound on provider calls for one request"""
        if options and options.max_attempts:
            return options.max_attempts
        if handle.settings.max_attempts:
            return handle.settings.max_attempts
        per_model = max(2 * len(handle.pool), self.policy.max_retries_per_model)
        return per_model * len(handle.roster)

    # =============================================================================
    # REQUEST ENTRY POINTS
    # =============================================================================

    async def submit(self, payload: GatewayPayload, resource_key: Optional[str] = None,
                     options: Optional[SubmitOptions] = None) -> GatewayResult:
        """
        Resolve one request, retrying and failing over as needed

        Never raises for provider failures: the outcome is always a
        GatewayResult with status success, all_providers_failed or busy.
        """
        options = options or SubmitOptions()
        request_id = str(uuid.uuid4())
        started = time.monotonic()

        async with self.guard.claim(resource_key) as acquired:
            if not acquired:
                result = self._busy_result(request_id, resource_key)
            else:
                result = await self._resolve(request_id, payload, resource_key, options, started)

        await self._log_transaction(result, options)
        return result

    async def stream(self, payload: GatewayPayload, resource_key: Optional[str] = None,
                     options: Optional[SubmitOptions] = None) -> AsyncIterator[StreamEvent]:
        """
        Resolve one request incrementally

        Yields chunk events as text arrives. When an attempt fails after
        producing output, a restart event tells the caller to discard what it
        has received so far. The last event is always a single result event.
        """
        options = options or SubmitOptions()
        request_id = str(uuid.uuid4())
        started = time.monotonic()

        async with self.guard.claim(resource_key) as acquired:
            if not acquired:
                result = self._busy_result(request_id, resource_key)
            else:
                trail = None
                result = None
                try:
                    handle = self.get_provider(options.provider)
                    trail = AttemptTrail(self.attempt_budget(handle, options))
                    tried: List[str] = []
                    parts: List[str] = []
                    last_attempt = None

                    while result is None:
                        entry = self._next_model(handle, tried, trail)
                        request = self._provider_request(payload, options, entry)
                        try:
                            async for chunk in handle.client.stream(request, entry, trail):
                                if chunk.attempt != last_attempt and parts:
                                    parts = []
                                    yield StreamEvent(type=StreamEventType.RESTART,
                                                      model=chunk.model, attempt=chunk.attempt)
                                last_attempt = chunk.attempt
                                parts.append(chunk.text)
                                yield StreamEvent(type=StreamEventType.CHUNK, text=chunk.text,
                                                  model=chunk.model, attempt=chunk.attempt)
                        except ModelUnavailable as e:
                            self._model_failed(handle, entry, e)
                            continue

                        handle.roster.record_outcome(entry.model_id, Outcome.SUCCESS)
                        result = self._success_result(
                            request_id, resource_key, handle, entry,
                            ProviderReply(content="".join(parts)), trail, started
                        )
                except (GatewayError, KeyError) as e:
                    result = self._failure_result(request_id, resource_key, options, e, trail, started)
                except Exception as e:
                    logger.error("Unexpected error while streaming",
                                 request_id=request_id,
                                 error=str(e),
                                 traceback=traceback.format_exc())
                    result = self._failure_result(request_id, resource_key, options, e, trail, started)

        yield StreamEvent(type=StreamEventType.RESULT, result=result)

        await self._log_transaction(result, options)

    async def _resolve(self, request_id: str, payload: GatewayPayload, resource_key: Optional[str],
                       options: SubmitOptions, started: float) -> GatewayResult:
        trail = None
        try:
            handle = self.get_provider(options.provider)
            trail = AttemptTrail(self.attempt_budget(handle, options))

            logger.info("Processing request",
                        request_id=request_id,
                        resource_key=resource_key,
                        provider=handle.name,
                        max_attempts=trail.max_attempts)

            tried: List[str] = []
            while True:
                entry = self._next_model(handle, tried, trail)
                request = self._provider_request(payload, options, entry)
                try:
                    reply = await handle.client.execute(request, entry, trail)
                except ModelUnavailable as e:
                    self._model_failed(handle, entry, e)
                    continue

                handle.roster.record_outcome(entry.model_id, Outcome.SUCCESS)
                return self._success_result(request_id, resource_key, handle, entry, reply, trail, started)

        except (GatewayError, KeyError) as e:
            return self._failure_result(request_id, resource_key, options, e, trail, started)
        except Exception as e:
            logger.error("Unexpected error while resolving request",
                         request_id=request_id,
                         error=str(e),
                         traceback=traceback.format_exc())
            return self._failure_result(request_id, resource_key, options, e, trail, started)

    # =============================================================================
    # ROSTER WALK
    # =============================================================================

    def _next_model(self, handle: ProviderHandle, tried: List[str], trail: AttemptTrail) -> ModelEntry:
        entry = handle.roster.next(exclude=tried)
        if entry is None:
            if self.policy.reset_roster_on_exhaustion:
                handle.roster.reset()
            raise RosterExhausted(handle.name, len(tried), trail.records)
        tried.append(entry.model_id)
        return entry

    def _model_failed(self, handle: ProviderHandle, entry: ModelEntry, error: ModelUnavailable) -> None:
        handle.roster.record_outcome(entry.model_id, Outcome.PERMANENT_FAILURE)
        logger.warning("Model unavailable, trying next model",
                       provider=handle.name,
                       model=entry.model_id,
                       reason=error.reason)

    def _provider_request(self, payload: GatewayPayload, options: SubmitOptions,
                          entry: ModelEntry) -> ProviderRequest:
        requested = options.max_tokens or payload.max_tokens
        return ProviderRequest(
            messages=[message.model_dump() for message in payload.messages],
            options={
                "max_tokens": entry.cap_tokens(requested),
                "temperature": payload.temperature,
                "top_p": payload.top_p,
                "stop": payload.stop
            },
            timeout_seconds=options.timeout_seconds
        )

    # =============================================================================
    # RESULT NORMALIZATION
    # =============================================================================

    def _busy_result(self, request_id: str, resource_key: Optional[str]) -> GatewayResult:
        return GatewayResult(
            status=ResultStatus.BUSY,
            request_id=request_id,
            resource_key=resource_key,
            failure_kind=FailureKind.BUSY,
            message=f"A request for {resource_key} is already in flight"
        )

    def _success_result(self, request_id: str, resource_key: Optional[str], handle: ProviderHandle,
                        entry: ModelEntry, reply: ProviderReply, trail: AttemptTrail,
                        started: float) -> GatewayResult:
        logger.info("Request succeeded",
                    request_id=request_id,
                    provider=handle.name,
                    model=entry.model_id,
                    attempts=len(trail))
        return GatewayResult(
            status=ResultStatus.SUCCESS,
            request_id=request_id,
            resource_key=resource_key,
            provider_used=handle.name,
            model_used=entry.model_id,
            content=reply.content,
            usage=UsageInfo(**reply.usage) if reply.usage else None,
            finish_reason=reply.finish_reason,
            attempts=trail.to_dicts(),
            elapsed_ms=int((time.monotonic() - started) * 1000)
        )

    def _failure_result(self, request_id: str, resource_key: Optional[str], options: SubmitOptions,
                        error: Exception, trail: Optional[AttemptTrail], started: float) -> GatewayResult:
        kind = error.kind if isinstance(error, GatewayError) else FailureKind.UNEXPECTED
        message = error.args[0] if isinstance(error, KeyError) else str(error)

        logger.error("Request failed",
                     request_id=request_id,
                     provider=options.provider or self.default_provider,
                     failure_kind=kind.value,
                     attempts=len(trail) if trail else 0,
                     error=message)
        return GatewayResult(
            status=ResultStatus.ALL_PROVIDERS_FAILED,
            request_id=request_id,
            resource_key=resource_key,
            provider_used=options.provider or self.default_provider,
            failure_kind=kind,
            message=message,
            attempts=trail.to_dicts() if trail else [],
            elapsed_ms=int((time.monotonic() - started) * 1000)
        )

    async def _log_transaction(self, result: GatewayResult, options: SubmitOptions) -> None:
        transaction_logger = get_transaction_logger()
        if transaction_logger is None or not transaction_logger.enabled:
            return

        record = transaction_logger.create_record(result.request_id, result.resource_key)
        record.requested_provider = options.provider
        record.max_attempts = options.max_attempts
        record.status = result.status.value
        record.provider_used = result.provider_used if result.success else None
        record.model_used = result.model_used
        record.attempts = len(result.attempts)
        record.models_tried = len({attempt["model"] for attempt in result.attempts})
        record.keys_rotated = sum(
            1 for attempt in result.attempts if attempt["kind"] == FailureKind.RATE_LIMITED.value
        )
        record.total_time_ms = result.elapsed_ms
        record.backoff_wait_ms = int(sum(attempt["waited_seconds"] for attempt in result.attempts) * 1000)
        record.finish_reason = result.finish_reason
        record.failure_kind = result.failure_kind.value if result.failure_kind else None
        record.error_message = result.message
        if result.usage:
            record.input_tokens = result.usage.input_tokens
            record.output_tokens = result.usage.output_tokens

        await transaction_logger.log_transaction(record)

    # =============================================================================
    # MAINTENANCE AND MONITORING
    # =============================================================================

    async def health_check(self, provider: Optional[str] = None) -> Dict[str, Any]:
        """Send a tiny prompt through the full retry machinery"""
        name = provider or self.default_provider
        result = await self.submit(
            GatewayPayload(prompt=HEALTH_CHECK_PROMPT, max_tokens=10),
            options=SubmitOptions(provider=name)
        )
        return {
            "provider": name,
            "healthy": result.success,
            "model": result.model_used,
            "attempts": len(result.attempts),
            "elapsed_ms": result.elapsed_ms,
            "message": result.content if result.success else result.message
        }

    def reset_rosters(self, provider: Optional[str] = None) -> None:
        """Restore the configured model order for one provider, or all of them"""
        handles = [self.get_provider(provider)] if provider else list(self.providers.values())
        for handle in handles:
            handle.roster.reset()

    def status(self) -> Dict[str, Any]:
        return {
            "default_provider": self.default_provider,
            "in_flight": sorted(self.guard.held_keys()),
            "providers": {
                name: {
                    "protocol": handle.settings.protocol.value,
                    "current_model": handle.roster.current().model_id,
                    "max_attempts": self.attempt_budget(handle),
                    "keys": handle.pool.snapshot(),
                    "models": handle.roster.snapshot()
                }
                for name, handle in self.providers.items()
            }
        }
