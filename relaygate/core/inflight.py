"""
Process-wide single-flight guard keyed by logical resource
"""

import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

from ..utils.logging import setup_logging

logger = setup_logging()


class InFlightGuard:
    """Admits at most one outstanding request per resource key.

    This is a rejection set, not a queue: a second claim on a held key fails
    immediately instead of waiting.
    """

    def __init__(self):
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, resource_key: str) -> bool:
        with self._lock:
            if resource_key in self._held:
                return False
            self._held.add(resource_key)
            return True

    def release(self, resource_key: str) -> None:
        with self._lock:
            self._held.discard(resource_key)

    def is_held(self, resource_key: str) -> bool:
        with self._lock:
            return resource_key in self._held

    def held_keys(self) -> Set[str]:
        with self._lock:
            return set(self._held)

    @asynccontextmanager
    async def claim(self, resource_key: Optional[str]) -> AsyncIterator[bool]:
        """
        Hold a resource key for the duration of the block

        Yields True when the key was acquired (or no key was given) and False
        when another request already holds it. The key is released on every
        exit path, including cancellation.
        """
        if resource_key is None:
            yield True
            return

        if not self.try_acquire(resource_key):
            logger.info("Rejected request for busy resource", resource_key=resource_key)
            yield False
            return

        try:
            yield True
        finally:
            self.release(resource_key)
