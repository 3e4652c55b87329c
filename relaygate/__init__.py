"""
relaygate - Resilient Multi-Provider LLM Gateway

Keeps requests to external LLM providers succeeding despite per-key rate
limits, per-model unavailability and transient provider failures, by rotating
API keys, failing over across models and retrying with bounded backoff.
"""

__version__ = "1.0.0"
__description__ = "Resilient multi-provider LLM gateway with key rotation and model failover"

# Import main components for easy access
from .core.config import ConfigManager
from .core.llm_client import LLMClient
from .core.gateway import Gateway

from .models.enums import FailureKind, ResultStatus
from .models.schemas import GatewayPayload, GatewayResult, SubmitOptions, StreamEvent, Message

from .api.app import create_app
from .utils.transaction_logger import TransactionLogger, init_transaction_logger, get_transaction_logger

__all__ = [
    # Core managers
    'ConfigManager',
    'LLMClient',
    'Gateway',

    # Models and schemas
    'FailureKind',
    'ResultStatus',
    'GatewayPayload',
    'GatewayResult',
    'SubmitOptions',
    'StreamEvent',
    'Message',

    # Transaction logging
    'TransactionLogger',
    'init_transaction_logger',
    'get_transaction_logger',

    # App factory
    'create_app'
]
