"""
Models package - Data structures and schemas for relaygate
"""

from .enums import FailureKind, Outcome, ResultStatus, Protocol, StreamEventType
from .data_classes import (
    Credential, ModelSpec, ModelEntry, AttemptRecord,
    RetryPolicy, ProviderSettings, ProviderReply, StreamChunk
)
from .schemas import (
    Message, GatewayPayload, SubmitOptions, UsageInfo,
    GatewayResult, StreamEvent, SubmitRequest
)

__all__ = [
    # Enums
    'FailureKind',
    'Outcome',
    'ResultStatus',
    'Protocol',
    'StreamEventType',

    # Data classes
    'Credential',
    'ModelSpec',
    'ModelEntry',
    'AttemptRecord',
    'RetryPolicy',
    'ProviderSettings',
    'ProviderReply',
    'StreamChunk',

    # Pydantic schemas
    'Message',
    'GatewayPayload',
    'SubmitOptions',
    'UsageInfo',
    'GatewayResult',
    'StreamEvent',
    'SubmitRequest'
]
