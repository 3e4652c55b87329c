"""
Exception hierarchy for the gateway.

Each exception carries the FailureKind it maps to so that the orchestrator
can normalize it without inspecting the class.
"""

from typing import Dict, List, Optional

from ..models.data_classes import AttemptRecord
from ..models.enums import FailureKind


class GatewayError(Exception):
    """Base exception for gateway errors."""
    kind = FailureKind.UNEXPECTED

    def __init__(self, message: str, trail: Optional[List[AttemptRecord]] = None):
        super().__init__(message)
        self.trail: List[AttemptRecord] = list(trail or [])


class ProviderError(GatewayError):
    """Raised by the transport for a failed call, before classification."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        provider_status: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after
        self.provider_status = provider_status
        self.headers = dict(headers or {})


class ModelUnavailable(GatewayError):
    """The attempted model is unusable for this request; advance the roster."""
    kind = FailureKind.MODEL_UNAVAILABLE

    def __init__(self, model: str, reason: str, trail: Optional[List[AttemptRecord]] = None):
        super().__init__(f"Model {model} unavailable: {reason}", trail)
        self.model = model
        self.reason = reason


class PoolExhausted(GatewayError):
    """Every credential of a provider is cooling down."""
    kind = FailureKind.POOL_EXHAUSTED

    def __init__(self, provider: str, size: int, trail: Optional[List[AttemptRecord]] = None):
        super().__init__(f"All {size} API keys for {provider} are currently rate limited", trail)
        self.provider = provider


class RosterExhausted(GatewayError):
    """Every model of a provider was tried and failed."""
    kind = FailureKind.ROSTER_EXHAUSTED

    def __init__(self, provider: str, models_tried: int, trail: Optional[List[AttemptRecord]] = None):
        super().__init__(f"All {models_tried} models for {provider} failed", trail)
        self.provider = provider
        self.models_tried = models_tried


class AttemptsExhausted(GatewayError):
    """The request's attempt budget ran out before any attempt succeeded."""
    kind = FailureKind.ATTEMPTS_EXHAUSTED

    def __init__(self, max_attempts: int, last_error: Optional[str] = None,
                 trail: Optional[List[AttemptRecord]] = None):
        message = f"Attempt budget of {max_attempts} exhausted"
        if last_error:
            message += f". Last error: {last_error}"
        super().__init__(message, trail)
        self.max_attempts = max_attempts
