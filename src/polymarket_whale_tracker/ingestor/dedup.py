"""Bounded duplicate filter keyed by transaction identifier.

Both feeds can observe the same underlying trade. The gate admits the first
observation of a key and rejects later ones. Memory is bounded: once the
cache grows past ``max_keys`` it is trimmed to the ``retain_keys`` most
recently inserted keys, after which older keys may be admitted again. The
filter is therefore approximate over unbounded time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 10_000
DEFAULT_RETAIN_KEYS = 5_000


@dataclass
class DedupStats:
    accepted: int = 0
    duplicates: int = 0
    trims: int = 0


class TradeDeduplicator:
    """Thread-safe first-seen-wins gate."""

    def __init__(
        self,
        *,
        max_keys: int = DEFAULT_MAX_KEYS,
        retain_keys: int = DEFAULT_RETAIN_KEYS,
    ) -> None:
        if retain_keys <= 0 or retain_keys >= max_keys:
            raise ValueError("retain_keys must be positive and smaller than max_keys")
        self._max_keys = max_keys
        self._retain_keys = retain_keys
        # dict preserves insertion order, which defines recency here.
        self._keys: dict[str, None] = {}
        self._lock = threading.Lock()
        self._stats = DedupStats()

    @property
    def stats(self) -> DedupStats:
        return self._stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def is_new(self, key: str) -> bool:
        """Atomically test for and record ``key``.

        Returns:
            True the first time a key is seen (since it was last trimmed out),
            False for every re-observation.
        """
        with self._lock:
            if key in self._keys:
                self._stats.duplicates += 1
                return False
            self._keys[key] = None
            self._stats.accepted += 1
            if len(self._keys) > self._max_keys:
                self._trim()
            return True

    def _trim(self) -> None:
        keep = list(self._keys)[-self._retain_keys :]
        self._keys = dict.fromkeys(keep)
        self._stats.trims += 1
        logger.debug("Dedup cache trimmed to %d most recent keys", len(self._keys))

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
