"""
Pydantic schemas for request/response models
"""

from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .enums import FailureKind, ResultStatus, StreamEventType


class Message(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    role: str = Field(..., description="Role: user, assistant, system")
    content: str = Field(..., description="Message content")


class GatewayPayload(BaseModel):
    """Provider-agnostic prompt plus generation parameters"""
    model_config = ConfigDict(protected_namespaces=())

    messages: List[Message] = Field(default_factory=list, description="Conversation messages")
    prompt: Optional[str] = Field(None, description="Shorthand for a single user message")
    temperature: Optional[float] = Field(0.7, description="Temperature for randomness")
    max_tokens: Optional[int] = Field(1024, description="Maximum tokens to generate")
    top_p: Optional[float] = Field(None, description="Top-p sampling parameter")
    stop: Optional[List[str]] = Field(None, description="Stop sequences")
    stream: bool = Field(False, description="Answer /llm/submit as a stream of NDJSON events")

    @model_validator(mode="after")
    def _prompt_to_messages(self):
        if not self.messages:
            if self.prompt is None:
                raise ValueError("either messages or prompt is required")
            self.messages = [Message(role="user", content=self.prompt)]
        return self


class SubmitOptions(BaseModel):
    """Per-call knobs for a gateway submission"""
    model_config = ConfigDict(protected_namespaces=())

    provider: Optional[str] = Field(None, description="Provider name (defaults to the first configured)")
    max_attempts: Optional[int] = Field(None, ge=1, description="Upper bound on provider calls")
    max_tokens: Optional[int] = Field(None, ge=1, description="Override the payload's max_tokens")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Per-attempt timeout")


class UsageInfo(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class GatewayResult(BaseModel):
    """Normalized terminal outcome of one submission"""
    model_config = ConfigDict(protected_namespaces=())

    status: ResultStatus
    request_id: str
    resource_key: Optional[str] = None
    provider_used: Optional[str] = None
    model_used: Optional[str] = None
    content: Optional[str] = None
    usage: Optional[UsageInfo] = None
    finish_reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    message: Optional[str] = None
    attempts: List[Dict[str, Any]] = Field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == ResultStatus.SUCCESS


class StreamEvent(BaseModel):
    """Event emitted by Gateway.stream"""
    model_config = ConfigDict(protected_namespaces=())

    type: StreamEventType
    text: Optional[str] = None
    model: Optional[str] = None
    attempt: Optional[int] = None
    result: Optional[GatewayResult] = None


class SubmitRequest(BaseModel):
    """HTTP body accepted by /llm/submit and /llm/stream"""
    model_config = ConfigDict(protected_namespaces=())

    resource_key: Optional[str] = Field(None, description="Single-flight key; omit to allow concurrent calls")
    payload: GatewayPayload
    options: Optional[SubmitOptions] = None
