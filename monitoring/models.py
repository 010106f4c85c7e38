"""
Monitoring - Data Models.

============================================================
PURPOSE
============================================================
Snapshots served by the monitoring API.

RULES:
- Snapshots are immutable once built
- A failed read yields an explicit error state, never a guess

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SnapshotStatus(str, Enum):
    """How a pipeline snapshot was obtained."""
    REAL = "real"
    ERROR = "error"
    PENDING = "pending"


@dataclass(frozen=True)
class PipelineSnapshot:
    """
    Current pipeline view built by the metrics collector.

    queue_depth is -1 only when no depth has ever been read.
    """
    queue_name: str
    queue_depth: int
    queue_depth_stale: bool
    broker_healthy: bool
    status: SnapshotStatus
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def pending(cls, queue_name: str) -> "PipelineSnapshot":
        """Placeholder before the first collection."""
        return cls(
            queue_name=queue_name,
            queue_depth=-1,
            queue_depth_stale=True,
            broker_healthy=False,
            status=SnapshotStatus.PENDING,
            error="No collection has completed yet",
        )

    @classmethod
    def error_state(cls, queue_name: str, error: str) -> "PipelineSnapshot":
        return cls(
            queue_name=queue_name,
            queue_depth=-1,
            queue_depth_stale=True,
            broker_healthy=False,
            status=SnapshotStatus.ERROR,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "queue_name": self.queue_name,
            "queue_depth": self.queue_depth,
            "queue_depth_stale": self.queue_depth_stale,
            "broker_healthy": self.broker_healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data
