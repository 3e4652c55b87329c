"""
Configuration management for relaygate
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Any, Optional

import aiofiles

from ..models.data_classes import ModelSpec, ProviderSettings, RetryPolicy
from ..models.enums import Protocol
from ..utils.logging import setup_logging

logger = setup_logging()

# Values shipped in example configs that must never be used as real keys
PLACEHOLDER_MARKERS = ("your_", "your-", "changeme", "placeholder")


def is_placeholder_key(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return True
    lowered = value.strip().lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def load_retry_policy() -> RetryPolicy:
    """Build the retry policy from environment variables"""
    timeout = os.getenv("RELAYGATE_REQUEST_TIMEOUT_SECONDS")
    return RetryPolicy(
        backoff_base_seconds=float(os.getenv("RELAYGATE_BACKOFF_BASE_SECONDS", "0.25")),
        backoff_ceiling_seconds=float(os.getenv("RELAYGATE_BACKOFF_CEILING_SECONDS", "5")),
        transient_backoff_seconds=float(os.getenv("RELAYGATE_TRANSIENT_BACKOFF_SECONDS", "1")),
        max_retries_per_model=int(os.getenv("RELAYGATE_MAX_RETRIES_PER_MODEL", "3")),
        max_cooldown_seconds=float(os.getenv("RELAYGATE_MAX_COOLDOWN_SECONDS", "3600")),
        request_timeout_seconds=float(timeout) if timeout else None,
        reset_roster_on_exhaustion=os.getenv("RELAYGATE_RESET_ROSTER_ON_EXHAUSTION", "true").lower() == "true"
    )


def resolve_api_keys(provider_name: str, provider_data: Dict[str, Any]) -> List[str]:
    """
    Collect usable keys for a provider

    Keys may be given inline ("api_keys") or as environment variable names
    ("api_keys_env"). Empty and placeholder values are dropped.
    """
    candidates = list(provider_data.get("api_keys", []))
    for env_name in provider_data.get("api_keys_env", []):
        value = os.getenv(env_name)
        if value is None:
            logger.warning("API key environment variable not set", provider=provider_name, env_var=env_name)
        candidates.append(value)

    keys = [key.strip() for key in candidates if not is_placeholder_key(key)]
    dropped = len(candidates) - len(keys)
    if dropped:
        logger.info("Ignored empty or placeholder API keys", provider=provider_name, ignored=dropped)
    return keys


def parse_provider(provider_name: str, provider_data: Dict[str, Any]) -> ProviderSettings:
    models = []
    for model_data in provider_data.get("models", []):
        if isinstance(model_data, str):
            models.append(ModelSpec(model_id=model_data))
        else:
            models.append(ModelSpec(model_id=model_data["id"], max_tokens=model_data.get("max_tokens")))

    return ProviderSettings(
        name=provider_name,
        protocol=Protocol(provider_data.get("protocol", Protocol.OPENAI.value)),
        endpoint=provider_data["endpoint"],
        api_keys=resolve_api_keys(provider_name, provider_data),
        models=models,
        headers=dict(provider_data.get("headers", {})),
        max_attempts=provider_data.get("max_attempts")
    )


class ConfigManager:
    """Loads provider definitions from providers.json"""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir or os.getenv("RELAYGATE_CONFIG_DIR", "config"))
        self.providers: Dict[str, ProviderSettings] = {}
        self.policy = load_retry_policy()

    async def load_configs(self):
        """Load all configuration files"""
        await self._load_providers()

    async def _load_providers(self):
        providers_file = self.config_dir / "providers.json"

        if not providers_file.exists():
            logger.error("providers.json not found", file_path=str(providers_file))
            raise FileNotFoundError(f"Configuration file not found: {providers_file}")

        try:
            async with aiofiles.open(providers_file, 'r') as f:
                content = await f.read()
                data = json.loads(content)

            providers = {}
            for provider_name, provider_data in data.items():
                settings = parse_provider(provider_name, provider_data)
                if not settings.api_keys:
                    logger.warning("Skipping provider without usable API keys", provider=provider_name)
                    continue
                if not settings.models:
                    logger.warning("Skipping provider without models", provider=provider_name)
                    continue
                providers[provider_name] = settings

            self.providers = providers
            logger.info("Loaded providers configuration",
                        provider_count=len(self.providers),
                        providers=list(self.providers))

        except Exception as e:
            logger.error("Failed to load providers configuration", error=str(e))
            raise
