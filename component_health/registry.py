"""
Component Health - Health Registry.

============================================================
SHARED COMPONENT HEALTH MAP
============================================================

Holds the last known health (True/False) of every component.

- Every configured component starts HEALTHY (optimistic
  bootstrap) so displays show no false alarms before the first
  check cycle
- Unknown components read as unhealthy
- Written only by the health check tick, read by requests

============================================================
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .models import FLOW_PATHS, DiscoveryMode, ProbeResult


logger = logging.getLogger(__name__)


class ComponentHealthRegistry:
    """
    Thread-safe component -> healthy map.

    Usage:
        registry = ComponentHealthRegistry(["generator", "processor"])
        registry.is_component_healthy("generator")  # True until probed
        registry.record(result)
    """

    def __init__(
        self,
        components: Iterable[str],
        mode: DiscoveryMode = DiscoveryMode.STATIC,
        optimistic: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._mode = mode
        self._status: Dict[str, bool] = {name: optimistic for name in components}
        self._results: Dict[str, ProbeResult] = {}
        self._last_check: Optional[datetime] = None

        logger.info(
            f"ComponentHealthRegistry initialized ({mode.value} mode) "
            f"for components: {sorted(self._status)}"
        )

    # =========================================================
    # WRITES
    # =========================================================

    def record(self, result: ProbeResult) -> None:
        """Overwrite the health of one component."""
        with self._lock:
            previous = self._status.get(result.component)
            self._status[result.component] = result.healthy
            self._results[result.component] = result
            self._last_check = result.checked_at

        if previous is not None and previous != result.healthy:
            state = "HEALTHY" if result.healthy else "UNHEALTHY"
            logger.info(f"[{result.component}] Health changed to {state}")

    def record_all(self, results: Iterable[ProbeResult]) -> None:
        """Overwrite the health of several components."""
        for result in results:
            self.record(result)
        with self._lock:
            self._last_check = datetime.now(timezone.utc)

    # =========================================================
    # QUERIES
    # =========================================================

    @property
    def mode(self) -> DiscoveryMode:
        return self._mode

    @property
    def components(self) -> List[str]:
        with self._lock:
            return list(self._status)

    @property
    def last_check(self) -> Optional[datetime]:
        with self._lock:
            return self._last_check

    def is_component_healthy(self, component: str) -> bool:
        """Last known health; False for components never configured."""
        with self._lock:
            return self._status.get(component, False)

    def get_all(self) -> Dict[str, bool]:
        """Copy of the whole map."""
        with self._lock:
            return dict(self._status)

    def get_result(self, component: str) -> Optional[ProbeResult]:
        """Detail of the last probe, None before the first one."""
        with self._lock:
            return self._results.get(component)

    def is_flow_path_healthy(self, source: str, target: str) -> bool:
        """A flow path is healthy when both ends are."""
        return self.is_component_healthy(source) and self.is_component_healthy(target)

    def get_flow_paths(self, paths: Optional[List[Tuple[str, str]]] = None) -> Dict[str, bool]:
        """Health of each ``source->target`` hop."""
        return {
            f"{source}->{target}": self.is_flow_path_healthy(source, target)
            for source, target in (paths if paths is not None else FLOW_PATHS)
        }

    def to_dict(self) -> Dict[str, object]:
        """Snapshot for the API."""
        with self._lock:
            last_check = self._last_check
            results = {name: r.to_dict() for name, r in self._results.items()}
        return {
            "components": self.get_all(),
            "discovery_mode": self._mode.value,
            "flow_paths": self.get_flow_paths(),
            "details": results,
            "last_check": last_check.isoformat() if last_check else None,
        }
