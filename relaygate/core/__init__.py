"""
Core package - Retry, rotation and failover machinery for relaygate
"""

from .config import ConfigManager
from .credential_pool import CredentialPool
from .model_roster import ModelRoster
from .failure_classifier import FailureClassifier
from .inflight import InFlightGuard
from .llm_client import LLMClient
from .provider_client import ProviderClient, AttemptTrail, ProviderRequest
from .gateway import Gateway

__all__ = [
    'ConfigManager',
    'CredentialPool',
    'ModelRoster',
    'FailureClassifier',
    'InFlightGuard',
    'LLMClient',
    'ProviderClient',
    'AttemptTrail',
    'ProviderRequest',
    'Gateway'
]
