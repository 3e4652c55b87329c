"""
Credential pool with cooldown-aware key rotation
"""

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Any

from ..models.data_classes import Credential
from ..utils.logging import setup_logging
from .errors import PoolExhausted

logger = setup_logging()


class CredentialPool:
    """Interchangeable API keys for one provider.

    Exactly one credential is selected at a time. A credential put in cooldown
    is skipped until its expiry passes; expired cooldowns are swept before the
    selection wraps all the way around.
    """

    def __init__(self, provider: str, secrets: List[str],
                 clock: Callable[[], float] = time.monotonic):
        if not secrets:
            raise ValueError(f"No valid API keys found for {provider}")

        self.provider = provider
        self._credentials = [Credential(index=i, secret=s) for i, s in enumerate(secrets)]
        self._index = 0
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def current_index(self) -> int:
        return self._index

    def current(self) -> Credential:
        """Return the selected credential, moving off it first if it is cooling"""
        with self._lock:
            now = self._clock()
            if self._credentials[self._index].is_cooling(now):
                self._advance(now)
            return replace(self._credentials[self._index])

    def mark_failed(self, index: int, cooldown_seconds: float = 0.0) -> None:
        """
        Put a credential in cooldown and rotate the selection past it

        Args:
            index: Credential index that failed
            cooldown_seconds: How long to keep it out of rotation (0 = no cooldown)

        Raises:
            PoolExhausted: every credential is cooling down
        """
        with self._lock:
            now = self._clock()
            credential = self._credentials[index]
            if cooldown_seconds > 0:
                credential.cooldown_until = now + cooldown_seconds

            # A concurrent request may already have rotated away from this key
            if index == self._index or self._credentials[self._index].is_cooling(now):
                previous = self._index
                self._advance(now)
                logger.info("Switched API key",
                            provider=self.provider,
                            from_key=previous + 1,
                            to_key=self._index + 1,
                            cooldown_seconds=cooldown_seconds)

    def is_available(self, index: int) -> bool:
        with self._lock:
            return not self._credentials[index].is_cooling(self._clock())

    def available_count(self) -> int:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            return sum(1 for c in self._credentials if not c.is_cooling(now))

    def snapshot(self) -> Dict[str, Any]:
        """Pool state for monitoring; secrets are never included"""
        with self._lock:
            now = self._clock()
            return {
                "size": len(self._credentials),
                "current_index": self._index,
                "cooling": {
                    c.index: round(c.cooldown_until - now, 3)
                    for c in self._credentials if c.is_cooling(now)
                }
            }

    def _advance(self, now: float) -> None:
        """Select the next usable index after the current one, wrapping once"""
        size = len(self._credentials)
        for step in range(1, size + 1):
            if step == size:
                self._sweep(now)
            candidate = (self._index + step) % size
            if not self._credentials[candidate].is_cooling(now):
                self._index = candidate
                return

        logger.warning("All API keys cooling down", provider=self.provider, size=size)
        raise PoolExhausted(self.provider, size)

    def _sweep(self, now: float) -> None:
        for credential in self._credentials:
            if credential.cooldown_until is not None and now >= credential.cooldown_until:
                credential.cooldown_until = None
