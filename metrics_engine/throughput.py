"""
Metrics Engine - Exchange Throughput.

============================================================
COUNTER DELTA TRACKER
============================================================

The broker only reports absolute publish_in / publish_out
counters, which restart from zero when the broker restarts.
The tracker turns them into rolling totals since this process
started:

- First observation: remember the values, totals stay 0
- Afterwards: delta = max(0, current - previous), added to
  the total; current becomes previous

A counter reset therefore counts as "no growth" for that
interval. Totals never decrease.

============================================================
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from .models import ThroughputState

if TYPE_CHECKING:
    from sources.broker import BrokerManagementClient
    from sources.models import ExchangeCounters


logger = logging.getLogger(__name__)


def amplification_ratio(publish_in: int, publish_out: int) -> float:
    """publish_out / publish_in, 0.0 when nothing was published in."""
    if publish_in <= 0:
        return 0.0
    return publish_out / publish_in


class CounterDeltaTracker:
    """
    Rolling totals over monotonic-but-resettable counters.

    Thread-safe; a single periodic task is expected to call observe().
    """

    def __init__(self) -> None:
        self._state = ThroughputState()
        self._lock = threading.RLock()

    def observe(self, publish_in: int, publish_out: int) -> ThroughputState:
        """Record one absolute reading and return the updated state."""
        with self._lock:
            state = self._state
            if not state.initialized:
                state.previous_in = publish_in
                state.previous_out = publish_out
                state.rolling_total_in = 0
                state.rolling_total_out = 0
                state.initialized = True
                logger.info(
                    f"Exchange counters initialized at publish_in={publish_in}, "
                    f"publish_out={publish_out}"
                )
            else:
                state.rolling_total_in += max(0, publish_in - state.previous_in)
                state.rolling_total_out += max(0, publish_out - state.previous_out)
                state.previous_in = publish_in
                state.previous_out = publish_out
            return replace(state)

    def snapshot(self) -> ThroughputState:
        """Copy of the current state."""
        with self._lock:
            return replace(self._state)

    def reset(self) -> None:
        """Forget everything; the next observation re-initializes."""
        with self._lock:
            self._state = ThroughputState()


class ExchangeThroughputService:
    """
    Polls one exchange and keeps its throughput view current.

    poll() is driven by a periodic task; get_stats() only reads.
    """

    def __init__(
        self,
        broker: "BrokerManagementClient",
        exchange_name: str,
        tracker: Optional[CounterDeltaTracker] = None,
    ) -> None:
        self._broker = broker
        self._exchange_name = exchange_name
        self._tracker = tracker or CounterDeltaTracker()
        self._lock = threading.RLock()
        self._latest: Optional[Dict[str, Any]] = None

    @property
    def exchange_name(self) -> str:
        return self._exchange_name

    @property
    def tracker(self) -> CounterDeltaTracker:
        return self._tracker

    async def poll(self) -> Dict[str, Any]:
        """Fetch the exchange counters once and fold them into the tracker."""
        try:
            counters = await self._broker.get_exchange_counters(self._exchange_name)
        except Exception as e:
            logger.warning(f"[{self._exchange_name}] Exchange stats unavailable: {e}")
            stats = self._empty_stats(f"Exchange stats unavailable: {e}")
            self._store(stats)
            return stats

        if counters is None:
            stats = self._empty_stats("Exchange has no message stats yet")
        else:
            stats = self._stats_from(counters)
        self._store(stats)
        return stats

    def get_stats(self) -> Dict[str, Any]:
        """Latest throughput view; zero-valued before the first poll."""
        with self._lock:
            if self._latest is None:
                return self._empty_stats("No throughput poll has completed yet")
            return dict(self._latest)

    async def read_cached(self) -> Dict[str, Any]:
        """
        Async reader of the cached view, for baseline capture.

        Never touches the broker or the tracker; poll() stays the only writer.
        """
        return self.get_stats()

    def _store(self, stats: Dict[str, Any]) -> None:
        with self._lock:
            self._latest = stats

    def _stats_from(self, counters: "ExchangeCounters") -> Dict[str, Any]:
        state = self._tracker.observe(counters.publish_in, counters.publish_out)
        return {
            "exchange_name": self._exchange_name,
            "total_publish_in": state.rolling_total_in,
            "total_publish_out": state.rolling_total_out,
            "current_rate_in": counters.rate_in,
            "current_rate_out": counters.rate_out,
            "amplification_ratio": amplification_ratio(counters.publish_in, counters.publish_out),
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _empty_stats(self, reason: str) -> Dict[str, Any]:
        state = self._tracker.snapshot()
        return {
            "exchange_name": self._exchange_name,
            "total_publish_in": state.rolling_total_in,
            "total_publish_out": state.rolling_total_out,
            "current_rate_in": 0.0,
            "current_rate_out": 0.0,
            "amplification_ratio": 0.0,
            "status": "error",
            "error": reason,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
