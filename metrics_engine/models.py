"""
Metrics Engine - Data Models.

============================================================
CORE DATA STRUCTURES
============================================================

- AggregationStatus: Outcome tag of a metrics aggregation
- InstanceHealthStatus: Fleet-level health of one service
- AggregatedMetrics: Counters summed across instances
- AggregatedHealth: Health rolled up across instances
- ThroughputState: Rolling totals of the delta tracker
- BaselineSet: Captured baseline values

All of it lives in memory only.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================
# ENUMS
# =============================================================


class AggregationStatus(str, Enum):
    """
    Outcome of a metrics aggregation.

    - HEALTHY: At least one instance answered
    - FALLBACK: Nobody answered; counters are zero
    - ERROR: The component could not be read at all
    """
    HEALTHY = "healthy"
    FALLBACK = "fallback"
    ERROR = "error"


class InstanceHealthStatus(str, Enum):
    """Health of a service across its instances."""
    UP = "UP"
    PARTIAL = "PARTIAL"
    DOWN = "DOWN"
    NO_INSTANCES = "NO_INSTANCES"

    @classmethod
    def from_counts(cls, healthy: int, total: int) -> "InstanceHealthStatus":
        """Roll up per-instance results."""
        if total == 0:
            return cls.NO_INSTANCES
        if healthy == total:
            return cls.UP
        if healthy > 0:
            return cls.PARTIAL
        return cls.DOWN


# =============================================================
# AGGREGATION RESULTS
# =============================================================


@dataclass
class AggregatedMetrics:
    """Counters of one service, summed over the instances that answered."""
    service_name: str
    counters: Dict[str, float]
    total_instances: int
    successful_instances: int
    status: AggregationStatus
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_fallback(self) -> bool:
        return self.status != AggregationStatus.HEALTHY

    def get(self, key: str) -> float:
        return self.counters.get(key, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = dict(self.counters)
        data.update({
            "service_name": self.service_name,
            "total_instances": self.total_instances,
            "successful_instances": self.successful_instances,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        })
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class InstanceHealthDetail:
    """Health answer of one instance."""
    url: str
    healthy: bool
    status: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"url": self.url, "healthy": self.healthy, "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AggregatedHealth:
    """Health of one service rolled up across its instances."""
    service_name: str
    status: InstanceHealthStatus
    total_instances: int
    healthy_instances: int
    instances: List[InstanceHealthDetail] = field(default_factory=list)
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def healthy(self) -> bool:
        """True when at least one instance is UP."""
        return self.healthy_instances > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "service_name": self.service_name,
            "healthy": self.healthy,
            "status": self.status.value,
            "total_instances": self.total_instances,
            "healthy_instances": self.healthy_instances,
            "instance_details": [i.to_dict() for i in self.instances],
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data


# =============================================================
# TRACKER STATE
# =============================================================


@dataclass
class ThroughputState:
    """
    Rolling totals kept by the counter delta tracker.

    rolling_total_* never decrease.
    """
    previous_in: int = 0
    previous_out: int = 0
    rolling_total_in: int = 0
    rolling_total_out: int = 0
    initialized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous_in": self.previous_in,
            "previous_out": self.previous_out,
            "rolling_total_in": self.rolling_total_in,
            "rolling_total_out": self.rolling_total_out,
            "initialized": self.initialized,
        }


@dataclass(frozen=True)
class BaselineSet:
    """Baseline key -> captured value, plus when it was captured."""
    values: Dict[str, float]
    captured_at: datetime = field(default_factory=_utcnow)

    def get(self, key: str) -> Optional[float]:
        return self.values.get(key)
