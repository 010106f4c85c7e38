"""
Instance Collector - Fetch metrics and health from one component instance.

Works against actuator-style endpoints:
- GET {base_url}/actuator/prometheus  (text exposition)
- GET {base_url}/actuator/health      (JSON, {"status": "UP"})
"""

import json
import logging
from typing import Optional

import aiohttp

from metrics_engine.exposition import parse_exposition
from sources.base import BaseHttpSource
from sources.exceptions import FetchError, ParseError
from sources.models import HealthReading


logger = logging.getLogger(__name__)


PROMETHEUS_PATH = "/actuator/prometheus"
HEALTH_PATH = "/actuator/health"


def is_up(status: Optional[str]) -> bool:
    """Actuator status check, case-insensitive."""
    return bool(status) and str(status).upper() == "UP"


class InstanceCollector(BaseHttpSource):
    """
    Per-instance fetcher shared by every component service.

    One collector serves all instances; the base URL is passed per call.
    """

    def __init__(
        self,
        connect_timeout: float = BaseHttpSource.DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = BaseHttpSource.DEFAULT_READ_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__("instance", connect_timeout, read_timeout, session)

    async def fetch_raw(self, base_url: str) -> str:
        """Raw exposition text. Raises FetchError."""
        return await self._request_text(base_url.rstrip("/") + PROMETHEUS_PATH, accept="text/plain")

    async def fetch_metrics(self, base_url: str) -> dict[str, float]:
        """Parsed metric snapshot of one instance. Raises FetchError."""
        text = await self.fetch_raw(base_url)
        snapshot = parse_exposition(text)
        logger.debug(f"[{self.name}] {base_url}: {len(snapshot)} metrics")
        return snapshot

    async def fetch_health(self, base_url: str) -> HealthReading:
        """Probe the health endpoint of an instance; never raises."""
        return await self.probe_url(base_url.rstrip("/") + HEALTH_PATH)

    async def probe_url(self, url: str) -> HealthReading:
        """
        Probe a full health URL.

        Never raises: transport failures become a DOWN reading. A non-2xx
        answer that still carries a status body (503 with DOWN) keeps
        the reported status.
        """
        try:
            data = await self._request_json(url)
        except FetchError as e:
            status = self._status_from_body(e.response_body)
            if status:
                return HealthReading(url=url, healthy=is_up(status), status=status, error=str(e))
            return HealthReading.down(url, e.message)
        except ParseError as e:
            return HealthReading.down(url, e.message)

        if not isinstance(data, dict):
            return HealthReading.down(url, "Health endpoint returned no status")

        status = str(data.get("status", "UNKNOWN"))
        details = data.get("components") or data.get("details") or {}
        return HealthReading(
            url=url,
            healthy=is_up(status),
            status=status.upper(),
            details=details if isinstance(details, dict) else {},
        )

    @staticmethod
    def _status_from_body(body: Optional[str]) -> Optional[str]:
        if not body:
            return None
        try:
            data = json.loads(body)
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("status"):
            return str(data["status"]).upper()
        return None
