"""
Model roster with success promotion and failure demotion
"""

import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Any

from ..models.data_classes import ModelEntry, ModelSpec
from ..models.enums import Outcome
from ..utils.logging import setup_logging

logger = setup_logging()


class ModelRoster:
    """Ordered candidate models for one provider.

    Shared by every request to the provider. Requests walk it with their own
    exclusion set, so concurrent reordering never makes a request visit the
    same model twice.
    """

    def __init__(self, provider: str, models: List[ModelSpec]):
        if not models:
            raise ValueError(f"Model roster for {provider} must not be empty")

        ids = [m.model_id for m in models]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate model ids in roster for {provider}")

        self.provider = provider
        self._configured = list(models)
        self._lock = threading.Lock()
        self._order: List[ModelEntry] = []
        self._load_defaults()

    def __len__(self) -> int:
        return len(self._order)

    def _load_defaults(self) -> None:
        self._order = [
            ModelEntry(model_id=configured.model_id, rank=rank, max_tokens=configured.max_tokens)
            for rank, configured in enumerate(self._configured)
        ]

    def _rerank(self) -> None:
        for rank, entry in enumerate(self._order):
            entry.rank = rank

    def _position(self, model_id: str) -> int:
        for position, entry in enumerate(self._order):
            if entry.model_id == model_id:
                return position
        raise KeyError(f"Unknown model {model_id} for {self.provider}")

    def next(self, exclude: Iterable[str] = ()) -> Optional[ModelEntry]:
        """Return the highest-priority model not in exclude, or None"""
        excluded = set(exclude)
        with self._lock:
            for entry in self._order:
                if entry.model_id not in excluded:
                    return replace(entry)
        return None

    def current(self) -> ModelEntry:
        with self._lock:
            return replace(self._order[0])

    def entries(self) -> List[ModelEntry]:
        with self._lock:
            return [replace(entry) for entry in self._order]

    def order(self) -> List[str]:
        with self._lock:
            return [entry.model_id for entry in self._order]

    def record_outcome(self, model_id: str, outcome: Outcome) -> None:
        """
        Reorder the roster after a model was tried

        Args:
            model_id: Model that was tried
            outcome: SUCCESS moves it to the front; PERMANENT_FAILURE moves it
                below every model whose last outcome was a success
        """
        with self._lock:
            position = self._position(model_id)
            entry = self._order[position]

            if outcome == Outcome.SUCCESS:
                entry.consecutive_failures = 0
                entry.last_outcome = Outcome.SUCCESS
                if position > 0:
                    self._order.insert(0, self._order.pop(position))
                    self._rerank()
                    logger.info("Promoted model", provider=self.provider, model=model_id)
                return

            entry.consecutive_failures += 1
            entry.last_outcome = Outcome.PERMANENT_FAILURE

            last_working = -1
            for index, other in enumerate(self._order):
                if other is not entry and other.last_outcome == Outcome.SUCCESS:
                    last_working = index

            if position < last_working:
                self._order.insert(last_working, self._order.pop(position))
                self._rerank()

            logger.info("Demoted model",
                        provider=self.provider,
                        model=model_id,
                        consecutive_failures=entry.consecutive_failures,
                        rank=entry.rank)

    def set_priority(self, model_ids: List[str]) -> None:
        """Move the given models to the front, in the given order"""
        with self._lock:
            known = {entry.model_id: entry for entry in self._order}
            preferred = [known[m] for m in model_ids if m in known]
            if not preferred:
                return
            rest = [entry for entry in self._order if entry not in preferred]
            self._order = preferred + rest
            self._rerank()
            logger.info("Model priority updated",
                        provider=self.provider,
                        order=[entry.model_id for entry in self._order])

    def reset(self) -> None:
        """Restore the configured order and clear failure counters"""
        with self._lock:
            self._load_defaults()
        logger.info("Model roster reset", provider=self.provider)

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {
                    "model": entry.model_id,
                    "rank": entry.rank,
                    "max_tokens": entry.max_tokens,
                    "consecutive_failures": entry.consecutive_failures,
                    "last_outcome": entry.last_outcome.value if entry.last_outcome else None
                }
                for entry in self._order
            ]
