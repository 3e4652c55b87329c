"""
Tests for provider configuration loading
"""

import json

import pytest

from relaygate.core.config import ConfigManager, is_placeholder_key, load_retry_policy
from relaygate.core.gateway import Gateway
from relaygate.models.enums import Protocol

from conftest import ScriptedTransport

PROVIDERS = {
    "gemini": {
        "protocol": "gemini",
        "endpoint": "https://generativelanguage.googleapis.com/v1beta/models",
        "api_keys_env": ["TEST_GEMINI_KEY_1", "TEST_GEMINI_KEY_2", "TEST_GEMINI_KEY_3"],
        "models": [{"id": "gemini-2.5-flash", "max_tokens": 8192}]
    },
    "groq": {
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
        "api_keys": ["gsk_inline", "your_groq_api_key_here"],
        "models": [
            {"id": "llama-3.1-8b-instant", "max_tokens": 4000},
            {"id": "meta-llama/llama-guard-4-12b", "max_tokens": 1024},
            "qwen/qwen3-32b"
        ],
        "max_attempts": 12
    },
    "openrouter": {
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
        "api_keys": ["your_openrouter_api_key"],
        "headers": {"X-Title": "relaygate"},
        "models": ["openrouter/free"]
    }
}


@pytest.mark.parametrize("value, placeholder", [
    ("your_first_api_key", True),
    ("YOUR-KEY", True),
    ("", True),
    (None, True),
    ("   ", True),
    ("AIzaSyD-real-looking", False),
    ("gsk_abc123", False),
])
def test_placeholder_detection(value, placeholder):
    assert is_placeholder_key(value) is placeholder


@pytest.mark.asyncio
async def test_load_providers(tmp_path, monkeypatch):
    (tmp_path / "providers.json").write_text(json.dumps(PROVIDERS))
    monkeypatch.setenv("TEST_GEMINI_KEY_1", "AIza-one")
    monkeypatch.setenv("TEST_GEMINI_KEY_2", "your_second_api_key")
    monkeypatch.setenv("TEST_GEMINI_KEY_3", "AIza-three")

    config = ConfigManager(config_dir=str(tmp_path))
    await config.load_configs()

    # openrouter only has a placeholder key
    assert list(config.providers) == ["gemini", "groq"]

    gemini = config.providers["gemini"]
    assert gemini.protocol == Protocol.GEMINI
    assert gemini.api_keys == ["AIza-one", "AIza-three"]

    groq = config.providers["groq"]
    assert groq.protocol == Protocol.OPENAI
    assert groq.api_keys == ["gsk_inline"]
    assert [(m.model_id, m.max_tokens) for m in groq.models] == [
        ("llama-3.1-8b-instant", 4000),
        ("meta-llama/llama-guard-4-12b", 1024),
        ("qwen/qwen3-32b", None)
    ]
    assert groq.max_attempts == 12

    gateway = Gateway.from_config(config, ScriptedTransport())
    assert gateway.default_provider == "gemini"
    assert len(gateway.get_provider("gemini").pool) == 2


@pytest.mark.asyncio
async def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        await ConfigManager(config_dir=str(tmp_path)).load_configs()


def test_retry_policy_from_environment(monkeypatch):
    monkeypatch.setenv("RELAYGATE_BACKOFF_BASE_SECONDS", "0.5")
    monkeypatch.setenv("RELAYGATE_MAX_RETRIES_PER_MODEL", "5")
    monkeypatch.setenv("RELAYGATE_REQUEST_TIMEOUT_SECONDS", "45")
    monkeypatch.setenv("RELAYGATE_RESET_ROSTER_ON_EXHAUSTION", "false")

    policy = load_retry_policy()

    assert policy.backoff_base_seconds == 0.5
    assert policy.backoff_ceiling_seconds == 5.0
    assert policy.max_retries_per_model == 5
    assert policy.request_timeout_seconds == 45.0
    assert policy.reset_roster_on_exhaustion is False


def test_retry_policy_defaults(monkeypatch):
    for name in ("RELAYGATE_BACKOFF_BASE_SECONDS", "RELAYGATE_REQUEST_TIMEOUT_SECONDS",
                 "RELAYGATE_MAX_RETRIES_PER_MODEL"):
        monkeypatch.delenv(name, raising=False)
    policy = load_retry_policy()
    assert policy.backoff_base_seconds == 0.25
    assert policy.request_timeout_seconds is None
    assert policy.max_retries_per_model == 3
