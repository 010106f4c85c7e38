"""
Source Models - Shapes read from the broker, the registry and component endpoints.

Everything here is rebuilt on every poll; nothing is persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _number(data: dict[str, Any], key: str, default: float = 0.0) -> float:
    """Read a numeric field, treating missing or non-numeric values as the default."""
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default


def _rate(data: dict[str, Any], key: str) -> float:
    """Read ``<key>_details.rate`` from a broker stats object."""
    details = data.get(f"{key}_details")
    if isinstance(details, dict):
        return _number(details, "rate")
    return 0.0


@dataclass(frozen=True)
class ServiceInstance:
    """One network location of a logical service."""
    service_name: str
    host: str
    port: int
    secure: bool = False
    instance_id: Optional[str] = None
    uri: Optional[str] = None

    @property
    def base_url(self) -> str:
        """Base URL without trailing slash."""
        if self.uri:
            return self.uri.rstrip("/")
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service_name": self.service_name,
            "instance_id": self.instance_id,
            "host": self.host,
            "port": self.port,
            "secure": self.secure,
            "uri": self.base_url,
        }


@dataclass
class HealthReading:
    """Result of one ``/actuator/health`` probe against one instance."""
    url: str
    healthy: bool
    status: str
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def down(cls, url: str, error: str) -> "HealthReading":
        """Reading for an instance that could not be probed."""
        return cls(url=url, healthy=False, status="DOWN", error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = {
            "service_url": self.url,
            "healthy": self.healthy,
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
        }
        if self.details:
            data["details"] = self.details
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class QueueStats:
    """Depth and message stats of one broker queue."""
    name: str
    messages: int = 0
    messages_ready: int = 0
    messages_unacknowledged: int = 0
    messages_delivered: int = 0
    messages_published: int = 0
    delivery_rate: float = 0.0
    publish_rate: float = 0.0

    @classmethod
    def from_api(cls, name: str, payload: dict[str, Any]) -> "QueueStats":
        """Build from a management API queue object; missing fields read as zero."""
        stats = payload.get("message_stats")
        if not isinstance(stats, dict):
            stats = {}
        return cls(
            name=name,
            messages=int(_number(payload, "messages")),
            messages_ready=int(_number(payload, "messages_ready")),
            messages_unacknowledged=int(_number(payload, "messages_unacknowledged")),
            messages_delivered=int(_number(stats, "deliver_get")),
            messages_published=int(_number(stats, "publish")),
            delivery_rate=_rate(stats, "deliver_get"),
            publish_rate=_rate(stats, "publish"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "messages": self.messages,
            "messages_ready": self.messages_ready,
            "messages_unacknowledged": self.messages_unacknowledged,
            "messages_delivered": self.messages_delivered,
            "messages_published_to_queue": self.messages_published,
            "delivery_rate": self.delivery_rate,
            "publish_rate": self.publish_rate,
        }


@dataclass(frozen=True)
class ExchangeCounters:
    """Absolute publish counters and instantaneous rates of one exchange."""
    publish_in: int
    publish_out: int
    rate_in: float = 0.0
    rate_out: float = 0.0

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Optional["ExchangeCounters"]:
        """
        Build from a management API exchange object.

        Returns None when the exchange carries no ``message_stats`` yet
        (brokers omit it until the first publish).
        """
        stats = payload.get("message_stats")
        if not isinstance(stats, dict):
            return None
        return cls(
            publish_in=int(_number(stats, "publish_in")),
            publish_out=int(_number(stats, "publish_out")),
            rate_in=_rate(stats, "publish_in"),
            rate_out=_rate(stats, "publish_out"),
        )
