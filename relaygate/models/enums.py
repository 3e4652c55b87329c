"""
Enums for relaygate
"""

from enum import Enum


class FailureKind(str, Enum):
    """Shared failure taxonomy used by every layer of the gateway"""
    RATE_LIMITED = "rate_limited"
    PROVIDER_TRANSIENT = "provider_transient"
    MODEL_UNAVAILABLE = "model_unavailable"
    POOL_EXHAUSTED = "pool_exhausted"
    ROSTER_EXHAUSTED = "roster_exhausted"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    BUSY = "busy"
    UNEXPECTED = "unexpected"


class Outcome(str, Enum):
    """Outcome reported to a model roster after trying a model"""
    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"


class ResultStatus(str, Enum):
    """Normalized terminal status returned to callers"""
    SUCCESS = "success"
    ALL_PROVIDERS_FAILED = "all_providers_failed"
    BUSY = "busy"


class Protocol(str, Enum):
    """Wire formats the transport knows how to speak"""
    OPENAI = "openai"   # OpenAI-compatible chat completions (OpenAI, Groq, OpenRouter)
    GEMINI = "gemini"


class StreamEventType(str, Enum):
    CHUNK = "chunk"
    RESTART = "restart"
    RESULT = "result"
