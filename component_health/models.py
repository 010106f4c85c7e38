"""
Component Health - Data Models.

============================================================
CORE DATA STRUCTURES
============================================================

- DiscoveryMode: How component health is probed
- ProbeResult: Outcome of one probe of one component

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DiscoveryMode(str, Enum):
    """
    Probing mode in effect.

    - DISCOVERY: Instances come from the service registry
    - STATIC: One configured health URL per component
    """
    DISCOVERY = "discovery"
    STATIC = "static"


@dataclass
class ProbeResult:
    """Outcome of probing one component once."""
    component: str
    healthy: bool
    status: str
    target: Optional[str] = None
    instances_checked: int = 0
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "component": self.component,
            "healthy": self.healthy,
            "status": self.status,
            "target": self.target,
            "instances_checked": self.instances_checked,
            "checked_at": self.checked_at.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data


# Ordered source -> target hops of the pipeline
FLOW_PATHS: List[Tuple[str, str]] = [
    ("generator", "processor"),
    ("generator", "hdfs"),
    ("processor", "jdbc"),
]
