"""Rolling statistical baselines (in-process, bounded).

Implements two families of FIFO windows over trade notional values:
- one global window shared by every market
- one window per market, created lazily on first observation

The engine owns every window. Callers only see the synchronized operations
below; no caller may read or iterate a window directly. Each window has its
own lock so a query observes a consistent snapshot even while another
producer is appending to it.
"""

from __future__ import annotations

import bisect
import logging
import math
import threading
from collections import deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)

GLOBAL = "__global__"

DEFAULT_GLOBAL_WINDOW = 5000
DEFAULT_MARKET_WINDOW = 500
DEFAULT_MIN_OBSERVATIONS = 10


class _Window:
    __slots__ = ("values", "lock")

    def __init__(self, capacity: int) -> None:
        self.values: deque[float] = deque(maxlen=capacity)
        self.lock = threading.Lock()


@dataclass(frozen=True)
class EngineStats:
    total_observations: int
    market_count: int
    global_window_size: int
    average_value: float


class RollingStatisticsEngine:
    """Global and per-market sliding windows of trade notional value.

    Example:
        ```python
        engine = RollingStatisticsEngine()
        engine.observe(trade.market_id, float(trade.notional_value))
        z = engine.z_score(GLOBAL, float(trade.notional_value))
        ```
    """

    def __init__(
        self,
        *,
        global_window: int = DEFAULT_GLOBAL_WINDOW,
        market_window: int = DEFAULT_MARKET_WINDOW,
        min_observations: int = DEFAULT_MIN_OBSERVATIONS,
    ) -> None:
        if global_window <= 0 or market_window <= 0:
            raise ValueError("window capacities must be positive")
        self._market_capacity = market_window
        self._min_observations = min_observations
        self._global = _Window(global_window)
        self._markets: dict[str, _Window] = {}
        self._registry_lock = threading.Lock()
        self._total_observations = 0

    def _window(self, key: str) -> _Window | None:
        if key == GLOBAL:
            return self._global
        with self._registry_lock:
            return self._markets.get(key)

    def _market_window(self, market_id: str) -> _Window:
        with self._registry_lock:
            window = self._markets.get(market_id)
            if window is None:
                window = _Window(self._market_capacity)
                self._markets[market_id] = window
            return window

    def observe(self, market_id: str, value: float) -> None:
        """Append ``value`` to the global window and to ``market_id``'s window."""
        if market_id == GLOBAL:
            raise ValueError(f"{GLOBAL!r} is reserved for the global window")
        with self._global.lock:
            self._global.values.append(value)
            self._total_observations += 1
        market = self._market_window(market_id)
        with market.lock:
            market.values.append(value)

    def _snapshot(self, key: str) -> list[float]:
        window = self._window(key)
        if window is None:
            return []
        with window.lock:
            return list(window.values)

    def z_score(self, key: str, value: float) -> float:
        """Standard deviations of ``value`` from the window mean.

        Returns 0.0 for cold windows (fewer than ``min_observations`` values)
        and for constant windows (population stddev of exactly 0).
        """
        values = self._snapshot(key)
        n = len(values)
        if n < self._min_observations:
            return 0.0
        mean = sum(values) / n
        variance = sum((v - mean) ** 2 for v in values) / n
        std_dev = math.sqrt(variance)
        if std_dev == 0:
            return 0.0
        return (value - mean) / std_dev

    def percentile(self, key: str, value: float) -> float:
        """Percentile rank in [0, 100] of ``value`` within the window.

        Rank is the index of the first element >= value in the sorted window,
        so a value larger than everything yields 100 and an empty window 50.
        """
        values = self._snapshot(key)
        if not values:
            return 50.0
        values.sort()
        rank = bisect.bisect_left(values, value)
        return 100.0 * rank / len(values)

    def window_size(self, key: str) -> int:
        window = self._window(key)
        if window is None:
            return 0
        with window.lock:
            return len(window.values)

    @property
    def market_count(self) -> int:
        with self._registry_lock:
            return len(self._markets)

    def stats(self) -> EngineStats:
        with self._global.lock:
            total = self._total_observations
            size = len(self._global.values)
            average = sum(self._global.values) / size if size else 0.0
        return EngineStats(
            total_observations=total,
            market_count=self.market_count,
            global_window_size=size,
            average_value=average,
        )

