"""
Single-provider client: one model, many credentials, bounded retries.

Each logical request runs through an explicit state machine:

    SELECT -> ATTEMPT -> DONE                                  (success)
                      -> ROTATE_CREDENTIAL -> WAIT -> SELECT   (rate limited)
                      -> WAIT -> SELECT                        (transient, same credential)
                      -> ModelUnavailable raised               (permanent for this model)

The pool is shared with every other request to the provider; everything
else in a run belongs to the request that created it.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Any, Optional

from ..models.data_classes import (
    AttemptRecord, Credential, ModelEntry, ProviderReply, ProviderSettings,
    RetryPolicy, StreamChunk
)
from ..models.enums import FailureKind
from ..utils.logging import setup_logging
from .credential_pool import CredentialPool
from .errors import AttemptsExhausted, ModelUnavailable, ProviderError
from .failure_classifier import FailureClassifier
from .llm_client import LLMClient

logger = setup_logging()


class Step(str, Enum):
    SELECT = "select"
    ATTEMPT = "attempt"
    ROTATE_CREDENTIAL = "rotate_credential"
    WAIT = "wait"
    DONE = "done"


class AttemptTrail:
    """Attempt budget and diagnostic trail of one logical request"""

    def __init__(self, max_attempts: int):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.records: List[AttemptRecord] = []

    def __len__(self) -> int:
        return len(self.records)

    @property
    def exhausted(self) -> bool:
        return len(self.records) >= self.max_attempts

    @property
    def last_error(self) -> Optional[str]:
        for record in reversed(self.records):
            if record.error:
                return record.error
        return None

    def start(self, provider: str, model: str, credential_index: int, waited_seconds: float) -> AttemptRecord:
        record = AttemptRecord(
            provider=provider,
            model=model,
            credential_index=credential_index,
            waited_seconds=waited_seconds
        )
        self.records.append(record)
        return record

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.records]


@dataclass
class ProviderRequest:
    """Provider-ready request: messages plus already-capped generation options"""
    messages: List[Dict[str, str]]
    options: Dict[str, Any] = field(default_factory=dict)
    timeout_seconds: Optional[float] = None


@dataclass
class _Run:
    request: ProviderRequest
    model: ModelEntry
    trail: AttemptTrail
    credential: Optional[Credential] = None
    record: Optional[AttemptRecord] = None
    error: Optional[ProviderError] = None
    failed_credentials: int = 0
    transient_retries: int = 0
    wait: float = 0.0
    reply: Optional[ProviderReply] = None


class ProviderClient:
    """Drives retry-with-rotation against one provider"""

    def __init__(self, settings: ProviderSettings, pool: CredentialPool, transport: LLMClient,
                 policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.settings = settings
        self.pool = pool
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.settings.name

    async def execute(self, request: ProviderRequest, model: ModelEntry, trail: AttemptTrail) -> ProviderReply:
        """
        Resolve one request against one model

        Raises:
            ModelUnavailable: the model failed permanently or ran out of transient retries
            PoolExhausted: every credential is cooling down
            AttemptsExhausted: the request's attempt budget is spent
        """
        run = _Run(request=request, model=model, trail=trail)
        step = Step.SELECT
        while step is not Step.DONE:
            if step is Step.ATTEMPT:
                step = await self._attempt(run)
            else:
                step = await self._transition(step, run)
        return run.reply

    async def stream(self, request: ProviderRequest, model: ModelEntry,
                     trail: AttemptTrail) -> AsyncIterator[StreamChunk]:
        """
        Like execute, but yields text chunks; a failed attempt restarts from scratch.

        The per-call timeout bounds each read from the provider, so a stream
        that stops producing output fails like a hung call.
        """
        run = _Run(request=request, model=model, trail=trail)
        timeout = request.timeout_seconds or self.policy.request_timeout_seconds
        step = Step.SELECT
        while step is not Step.DONE:
            if step is not Step.ATTEMPT:
                step = await self._transition(step, run)
                continue

            attempt_number = len(run.trail)
            received = []
            chunks = self.transport.stream(
                self.settings, model.model_id, run.credential.secret,
                request.messages, request.options
            )
            try:
                while True:
                    try:
                        if timeout:
                            text = await asyncio.wait_for(chunks.__anext__(), timeout)
                        else:
                            text = await chunks.__anext__()
                    except StopAsyncIteration:
                        break
                    received.append(text)
                    yield StreamChunk(text=text, model=model.model_id, attempt=attempt_number)
                if not received:
                    raise ProviderError(f"{self.name} stream ended without content")
            except asyncio.TimeoutError:
                step = self._on_failure(run, ProviderError(f"Request timeout after {timeout}s"))
                continue
            except ProviderError as e:
                step = self._on_failure(run, e)
                continue
            except Exception as e:
                self._mark_unexpected(run, e)
                raise
            finally:
                await chunks.aclose()

            run.reply = ProviderReply(content="".join(received))
            step = self._on_success(run)

    async def _transition(self, step: Step, run: _Run) -> Step:
        if step is Step.SELECT:
            return self._select(run)
        if step is Step.ROTATE_CREDENTIAL:
            return self._rotate(run)
        if step is Step.WAIT:
            return await self._wait(run)
        raise ValueError(f"Unhandled step: {step}")

    def _select(self, run: _Run) -> Step:
        if run.trail.exhausted:
            raise AttemptsExhausted(run.trail.max_attempts, run.trail.last_error, run.trail.records)

        run.credential = self.pool.current()
        run.record = run.trail.start(self.name, run.model.model_id, run.credential.index, run.wait)
        run.wait = 0.0

        logger.info("Attempt",
                    provider=self.name,
                    model=run.model.model_id,
                    key=run.credential.index + 1,
                    total_attempts=len(run.trail),
                    max_attempts=run.trail.max_attempts)
        return Step.ATTEMPT

    async def _attempt(self, run: _Run) -> Step:
        timeout = run.request.timeout_seconds or self.policy.request_timeout_seconds
        call = self.transport.complete(
            self.settings, run.model.model_id, run.credential.secret,
            run.request.messages, run.request.options
        )
        try:
            if timeout:
                run.reply = await asyncio.wait_for(call, timeout)
            else:
                run.reply = await call
        except asyncio.TimeoutError:
            return self._on_failure(run, ProviderError(f"Request timeout after {timeout}s"))
        except ProviderError as e:
            return self._on_failure(run, e)
        except Exception as e:
            self._mark_unexpected(run, e)
            raise
        return self._on_success(run)

    def _on_success(self, run: _Run) -> Step:
        run.failed_credentials = 0
        run.transient_retries = 0
        logger.info("SUCCESS",
                    provider=self.name,
                    model=run.model.model_id,
                    key=run.credential.index + 1,
                    total_attempts=len(run.trail))
        return Step.DONE

    def _on_failure(self, run: _Run, error: ProviderError) -> Step:
        kind = FailureClassifier.classify(error)
        run.error = error
        run.record.kind = kind
        run.record.error = str(error)
        run.record.status_code = error.status_code

        logger.warning("Attempt failed",
                       provider=self.name,
                       model=run.model.model_id,
                       key=run.credential.index + 1,
                       kind=kind.value,
                       status_code=error.status_code,
                       error=str(error))

        if kind == FailureKind.RATE_LIMITED:
            return Step.ROTATE_CREDENTIAL

        if kind == FailureKind.PROVIDER_TRANSIENT:
            run.transient_retries += 1
            if run.transient_retries >= self.policy.max_retries_per_model:
                raise ModelUnavailable(
                    run.model.model_id,
                    f"{run.transient_retries} transient failures, last: {error}",
                    run.trail.records
                )
            run.wait = min(
                self.policy.transient_backoff_seconds * 2 ** (run.transient_retries - 1),
                self.policy.backoff_ceiling_seconds
            )
            return Step.WAIT

        raise ModelUnavailable(run.model.model_id, str(error), run.trail.records)

    def _rotate(self, run: _Run) -> Step:
        hint = FailureClassifier.extract_retry_delay(run.error)
        backoff = self.policy.backoff_base_seconds * 2 ** run.failed_credentials
        cooldown = min(hint if hint is not None else backoff, self.policy.max_cooldown_seconds)

        run.wait = min(backoff, cooldown, self.policy.backoff_ceiling_seconds)
        run.failed_credentials += 1

        logger.warning("Rate limit hit, rotating key",
                       provider=self.name,
                       key=run.credential.index + 1,
                       retry_hint_seconds=hint,
                       cooldown_seconds=cooldown)

        self.pool.mark_failed(run.credential.index, cooldown)
        return Step.WAIT

    async def _wait(self, run: _Run) -> Step:
        if run.trail.exhausted:
            raise AttemptsExhausted(run.trail.max_attempts, run.trail.last_error, run.trail.records)

        if run.wait > 0:
            logger.info("Retrying after wait",
                        provider=self.name,
                        model=run.model.model_id,
                        wait_seconds=run.wait)
            await self._sleep(run.wait)
        return Step.SELECT

    def _mark_unexpected(self, run: _Run, error: Exception) -> None:
        run.record.kind = FailureKind.UNEXPECTED
        run.record.error = f"Unexpected error: {error}"
