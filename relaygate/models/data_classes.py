"""
Data classes for relaygate
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any

from .enums import FailureKind, Outcome, Protocol


@dataclass
class Credential:
    """One interchangeable API key inside a credential pool"""
    index: int
    secret: str = field(repr=False)
    cooldown_until: Optional[float] = None  # monotonic seconds

    def is_cooling(self, now: float) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


@dataclass
class ModelSpec:
    """Configured model with an optional output-token cap"""
    model_id: str
    max_tokens: Optional[int] = None


@dataclass
class ModelEntry:
    """Roster entry for a model; rank 0 is tried first"""
    model_id: str
    rank: int
    max_tokens: Optional[int] = None
    consecutive_failures: int = 0
    last_outcome: Optional[Outcome] = None

    def cap_tokens(self, requested: Optional[int]) -> Optional[int]:
        """Clamp a requested output size to this model's cap"""
        if self.max_tokens is None:
            return requested
        if requested is None:
            return self.max_tokens
        return min(requested, self.max_tokens)


@dataclass
class AttemptRecord:
    """A single provider call made while resolving one logical request"""
    provider: str
    model: str
    credential_index: int
    waited_seconds: float = 0.0
    kind: Optional[FailureKind] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.kind is None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value if self.kind else None
        data["waited_seconds"] = round(self.waited_seconds, 3)
        return data


@dataclass
class RetryPolicy:
    """Backoff, cooldown and budget knobs shared by every provider client"""
    backoff_base_seconds: float = 0.25
    backoff_ceiling_seconds: float = 5.0
    transient_backoff_seconds: float = 1.0
    max_retries_per_model: int = 3
    max_cooldown_seconds: float = 3600.0
    request_timeout_seconds: Optional[float] = None
    reset_roster_on_exhaustion: bool = True


@dataclass
class ProviderSettings:
    """Complete configuration for one provider"""
    name: str
    protocol: Protocol
    endpoint: str
    api_keys: List[str]
    models: List[ModelSpec]
    headers: Dict[str, str] = field(default_factory=dict)
    max_attempts: Optional[int] = None


@dataclass
class ProviderReply:
    """Parsed successful response from a provider"""
    content: str
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass
class StreamChunk:
    """Text fragment produced by one streaming attempt"""
    text: str
    model: str
    attempt: int
