"""
Shared fakes for the relaygate test suite
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from relaygate.core.errors import ProviderError
from relaygate.core.gateway import Gateway
from relaygate.models.data_classes import ModelSpec, ProviderReply, ProviderSettings, RetryPolicy
from relaygate.models.enums import Protocol


class FakeClock:
    """Monotonic clock that only moves when told to"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records backoff waits and advances the fake clock instead of sleeping"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        self.clock.advance(seconds)
        await asyncio.sleep(0)


@dataclass
class Call:
    model: str
    api_key: str
    options: Dict[str, Any] = field(default_factory=dict)


class ScriptedTransport:
    """Stands in for LLMClient, replaying scripted outcomes per model.

    An outcome is a string (reply content), a ProviderReply, an exception to
    raise, or a callable taking (model, api_key) that returns one of those.
    Streaming outcomes are lists whose items are text chunks or exceptions.
    The "*" script applies to any model without its own entry.
    """

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None, default: Any = "ok",
                 gate: Optional[asyncio.Event] = None):
        self.script = {model: list(outcomes) for model, outcomes in (script or {}).items()}
        self.default = default
        self.gate = gate
        self.calls: List[Call] = []

    def _next(self, model: str, api_key: str) -> Any:
        queue = self.script.get(model, self.script.get("*"))
        outcome = queue.pop(0) if queue else self.default
        if callable(outcome) and not isinstance(outcome, BaseException):
            outcome = outcome(model, api_key)
        return outcome

    async def complete(self, settings, model, api_key, messages, options) -> ProviderReply:
        self.calls.append(Call(model=model, api_key=api_key, options=dict(options)))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)

        outcome = self._next(model, api_key)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, ProviderReply):
            return outcome
        return ProviderReply(
            content=outcome,
            usage={"input_tokens": 5, "output_tokens": 2, "total_tokens": 7},
            finish_reason="stop"
        )

    async def stream(self, settings, model, api_key, messages, options):
        self.calls.append(Call(model=model, api_key=api_key, options=dict(options)))
        outcome = self._next(model, api_key)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            outcome = [outcome]
        for item in outcome:
            await asyncio.sleep(0)
            if isinstance(item, BaseException):
                raise item
            yield item


def rate_limited(retry_after: Optional[float] = None) -> ProviderError:
    return ProviderError("groq API error 429: Rate limit reached", status_code=429, retry_after=retry_after)


def server_error() -> ProviderError:
    return ProviderError("groq API error 503: Service Unavailable", status_code=503)


def model_not_found(model: str = "A") -> ProviderError:
    return ProviderError(f"groq API error 404: The model `{model}` does not exist", status_code=404)


def make_settings(name: str = "groq", keys: int = 3, models=("A", "B", "C"),
                  protocol: Protocol = Protocol.OPENAI, **kwargs) -> ProviderSettings:
    return ProviderSettings(
        name=name,
        protocol=protocol,
        endpoint="https://api.example.test/v1/chat/completions",
        api_keys=[f"{name}-key-{i}" for i in range(keys)],
        models=[m if isinstance(m, ModelSpec) else ModelSpec(model_id=m) for m in models],
        **kwargs
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy()


@pytest.fixture
def build_gateway(clock, sleeper, policy):
    """Factory for gateways wired to the fake clock and sleep"""

    def _build(transport, providers=None, **overrides) -> Gateway:
        return Gateway(
            providers or [make_settings()],
            transport,
            policy=overrides.pop("policy", policy),
            clock=clock,
            sleep=sleeper,
            **overrides
        )

    return _build
