"""
Failure classification and backoff hint extraction
"""

import re
import time
from typing import Mapping, Optional

from ..models.enums import FailureKind
from .errors import ProviderError


class FailureClassifier:
    """Maps provider errors onto the shared failure taxonomy"""

    RATE_LIMIT_MARKERS = (
        "rate limit", "rate_limit", "quota", "resource_exhausted", "too many requests"
    )

    # A bare 429 in the text, not digits inside a request id
    RATE_LIMIT_CODE = re.compile(r"\b429\b")

    MODEL_MARKERS = (
        "model_not_found", "model not found", "does not exist", "not found",
        "decommissioned", "no longer supported", "unknown model", "invalid model",
        "context_length_exceeded", "context length", "maximum context",
        "reduce the length", "max_tokens", "unavailable for this"
    )

    AUTH_MARKERS = (
        "unauthorized", "forbidden", "invalid api key", "invalid_api_key",
        "api key not valid", "authentication failed", "permission denied"
    )

    TRANSIENT_STATUS_CODES = {408, 409, 425}

    # Header names that may carry a backoff hint, most reliable first
    RETRY_HEADERS = ("Retry-After", "X-RateLimit-Reset", "X-Rate-Limit-Reset", "RateLimit-Reset")

    @classmethod
    def classify(cls, error: ProviderError) -> FailureKind:
        """
        Classify a transport error

        Args:
            error: Error raised by the provider transport

        Returns:
            RATE_LIMITED, PROVIDER_TRANSIENT or MODEL_UNAVAILABLE
        """
        status = error.status_code
        message = str(error).lower()
        provider_status = (error.provider_status or "").lower()

        if status == 429 or provider_status == "resource_exhausted":
            return FailureKind.RATE_LIMITED
        if any(marker in message for marker in cls.RATE_LIMIT_MARKERS) or cls.RATE_LIMIT_CODE.search(message):
            return FailureKind.RATE_LIMITED

        if status in (401, 403, 404):
            return FailureKind.MODEL_UNAVAILABLE
        if status is not None and (status >= 500 or status in cls.TRANSIENT_STATUS_CODES):
            return FailureKind.PROVIDER_TRANSIENT
        if status is not None and 400 <= status < 500:
            # Any other client error will not improve by resending the same body
            return FailureKind.MODEL_UNAVAILABLE

        # No HTTP status: connection problems, timeouts, malformed bodies
        if any(marker in message for marker in cls.MODEL_MARKERS + cls.AUTH_MARKERS):
            return FailureKind.MODEL_UNAVAILABLE
        return FailureKind.PROVIDER_TRANSIENT

    @classmethod
    def extract_retry_delay(cls, error: ProviderError) -> Optional[float]:
        """
        Extract a backoff hint from an error

        Args:
            error: Error raised by the provider transport

        Returns:
            Seconds to wait, or None if the provider gave no hint
        """
        if error.retry_after is not None:
            return max(0.0, error.retry_after)

        from_headers = cls.parse_retry_headers(error.headers)
        if from_headers is not None:
            return from_headers

        return cls.parse_retry_text(str(error))

    @classmethod
    def parse_retry_headers(cls, headers: Optional[Mapping[str, str]]) -> Optional[float]:
        if not headers:
            return None

        lowered = {key.lower(): value for key, value in headers.items()}
        for name in cls.RETRY_HEADERS:
            value = lowered.get(name.lower())
            if not value:
                continue
            try:
                seconds = float(value)
            except (ValueError, TypeError):
                continue

            # Large values are Unix timestamps rather than a delay
            if seconds > 1000000000:
                return max(0.0, seconds - time.time())
            return max(0.0, seconds)

        return None

    @classmethod
    def parse_retry_text(cls, message: str) -> Optional[float]:
        text = message.lower()

        # "Please retry in 43.217415972s" (Gemini)
        match = re.search(r'retry in ([\d.]+)\s*s', text)
        if match:
            return float(match.group(1))

        # "retryDelay": "43s" inside an embedded error body
        match = re.search(r'retrydelay["\']?\s*:\s*["\']?([\d.]+)s', text)
        if match:
            return float(match.group(1))

        # "try again in 1.5s" (OpenAI-compatible providers)
        match = re.search(r'try again in ([\d.]+)\s*s\b', text)
        if match:
            return float(match.group(1))

        match = re.search(r'retry after (\d+(?:\.\d+)?) seconds?', text)
        if match:
            return float(match.group(1))

        match = re.search(r'wait (\d+(?:\.\d+)?) seconds?', text)
        if match:
            return float(match.group(1))

        match = re.search(r'try again in (\d+) minutes?', text)
        if match:
            return int(match.group(1)) * 60.0

        return None
