"""
Monitoring Collectors.

============================================================
PURPOSE
============================================================
Read-only collectors feeding the monitoring API.

PRINCIPLES:
- All collectors are READ-ONLY
- safe_collect() never throws
- A failed read keeps the last known good value where one exists

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from .models import PipelineSnapshot, SnapshotStatus

if TYPE_CHECKING:
    from sources.broker import BrokerManagementClient


logger = logging.getLogger(__name__)


# ============================================================
# BASE COLLECTOR
# ============================================================

class BaseCollector(ABC):
    """
    Base class for all monitoring collectors.

    All collectors MUST be read-only.
    """

    def __init__(self, name: str):
        """Initialize collector."""
        self._name = name
        self._last_collection_time: Optional[datetime] = None
        self._collection_count = 0
        self._error_count = 0

    @property
    def name(self) -> str:
        """Collector name."""
        return self._name

    @property
    def collection_count(self) -> int:
        return self._collection_count

    @property
    def error_count(self) -> int:
        return self._error_count

    @abstractmethod
    async def collect(self) -> Any:
        """
        Collect data.

        MUST be read-only.
        """
        pass

    async def safe_collect(self) -> Any:
        """
        Safely collect data with error handling.

        Never throws, returns None on error.
        """
        try:
            self._last_collection_time = datetime.now(timezone.utc)
            self._collection_count += 1
            return await self.collect()
        except Exception as e:
            self._error_count += 1
            logger.error(f"Collector {self._name} error: {e}")
            return None


# ============================================================
# PIPELINE METRICS COLLECTOR
# ============================================================

class PipelineMetricsCollector(BaseCollector):
    """
    Periodic pipeline snapshot: work queue depth and broker health.

    A failed depth read reuses the last depth that was read
    successfully and marks it stale.
    """

    def __init__(self, broker: "BrokerManagementClient", queue_name: str):
        """Initialize pipeline collector."""
        super().__init__("pipeline_metrics")
        self._broker = broker
        self._queue_name = queue_name
        self._lock = threading.RLock()
        self._last_known_depth: Optional[int] = None
        self._latest = PipelineSnapshot.pending(queue_name)

    async def collect(self) -> PipelineSnapshot:
        """Read queue depth and broker aliveness once."""
        stale = False
        try:
            depth = await self._broker.get_queue_depth(self._queue_name)
            with self._lock:
                self._last_known_depth = depth
        except Exception as e:
            logger.warning(f"[{self._queue_name}] Queue depth unavailable, using last known value: {e}")
            with self._lock:
                depth = self._last_known_depth if self._last_known_depth is not None else -1
            stale = True

        try:
            broker_healthy = (await self._broker.check_aliveness()) == "ok"
        except Exception as e:
            logger.warning(f"[{self._name}] Broker health check failed: {e}")
            broker_healthy = False

        snapshot = PipelineSnapshot(
            queue_name=self._queue_name,
            queue_depth=depth,
            queue_depth_stale=stale,
            broker_healthy=broker_healthy,
            status=SnapshotStatus.REAL,
        )
        logger.debug(f"Collected metrics: queue={depth}, stale={stale}")
        return snapshot

    async def tick(self) -> PipelineSnapshot:
        """Collect and publish the snapshot; never raises."""
        snapshot = await self.safe_collect()
        if snapshot is None:
            snapshot = PipelineSnapshot.error_state(self._queue_name, "Collection failed")
        with self._lock:
            self._latest = snapshot
        return snapshot

    def get_current(self) -> PipelineSnapshot:
        """Latest snapshot (pending before the first tick)."""
        with self._lock:
            return self._latest
