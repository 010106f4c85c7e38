"""
Broker Management Client - Read-only access to the broker management HTTP API.

Endpoints used:
- GET /queues, /queues/{vhost}/{name}
- GET /exchanges/{vhost}/{name}, /exchanges/{vhost}/{name}/bindings/source
- GET /aliveness-test/{vhost}
- GET /overview

Errors are raised as FetchError / ParseError; callers decide how to degrade.
"""

import logging
import re
from typing import Any, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import aiohttp

from sources.base import BaseHttpSource
from sources.exceptions import ParseError
from sources.models import ExchangeCounters, QueueStats


logger = logging.getLogger(__name__)


DEFAULT_MANAGEMENT_PORT = 15672


def parse_queue_list(value: Optional[str]) -> list[str]:
    """Split a comma-separated queue allow-list, dropping blanks."""
    if not value:
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


def resolve_management_endpoint(
    api_url: Optional[str] = None,
    host: str = "localhost",
    management_port: int = DEFAULT_MANAGEMENT_PORT,
    username: str = "guest",
    password: str = "guest",
) -> tuple[str, Optional[str]]:
    """
    Work out the management API URL and the Authorization header to send.

    A configured ``api_url`` wins. Credentials embedded in it are stripped
    from the URL and moved into a Basic auth header; without embedded
    credentials the URL is used as-is and no header is sent.

    Otherwise the URL is built from ``host`` (a bare hostname or a full URL
    whose hostname is kept) and ``management_port``, authenticated with
    ``username`` / ``password``.
    """
    if api_url:
        parts = urlsplit(api_url)
        if parts.username is not None:
            netloc = parts.hostname or ""
            if parts.port:
                netloc = f"{netloc}:{parts.port}"
            clean_url = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
            auth = aiohttp.BasicAuth(parts.username, parts.password or "").encode()
            logger.info("Using management API URL with extracted Basic Auth credentials")
            return clean_url.rstrip("/"), auth
        return api_url.rstrip("/"), None

    if host.startswith("http"):
        hostname = urlsplit(host).hostname
        if hostname:
            url = f"http://{hostname}:{management_port}/api"
        else:
            logger.warning(f"Could not parse broker URL {host}, using as-is")
            url = host if host.endswith("/api") else host.rstrip("/") + "/api"
    else:
        url = f"http://{host}:{management_port}/api"

    return url, aiohttp.BasicAuth(username, password).encode()


def dashboard_url_for(api_url: str) -> str:
    """Management UI URL: the API URL without its ``/api`` suffix, slash-terminated."""
    url = re.sub(r"/api/?$", "", api_url)
    if not url.endswith("/"):
        url += "/"
    return url


class BrokerManagementClient(BaseHttpSource):
    """
    Client for the broker management API.

    Usage:
        client = BrokerManagementClient(host="broker", username="u", password="p")
        depth = await client.get_queue_depth("telematics_work_queue")
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        host: str = "localhost",
        management_port: int = DEFAULT_MANAGEMENT_PORT,
        username: str = "guest",
        password: str = "guest",
        vhost: str = "/",
        display_queues: Optional[list[str]] = None,
        connect_timeout: float = BaseHttpSource.DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = BaseHttpSource.DEFAULT_READ_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__("broker", connect_timeout, read_timeout, session)
        self._api_url, self._auth_header = resolve_management_endpoint(
            api_url, host, management_port, username, password,
        )
        self._vhost = vhost
        self._display_queues = list(display_queues or [])

        logger.info(f"[{self.name}] Management API at {self._api_url}")
        logger.info(
            f"[{self.name}] Display queues filter: "
            f"{self._display_queues if self._display_queues else 'showing all queues'}"
        )

    # ============================================================
    # PROPERTIES
    # ============================================================

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def dashboard_url(self) -> str:
        return dashboard_url_for(self._api_url)

    @property
    def vhost(self) -> str:
        return self._vhost

    @property
    def display_queues(self) -> list[str]:
        return list(self._display_queues)

    def _url(self, *segments: str) -> str:
        """Join path segments onto the API URL, percent-encoding each."""
        return "/".join([self._api_url] + [quote(s, safe="") for s in segments])

    async def _get(self, *segments: str) -> Any:
        headers = {"Authorization": self._auth_header} if self._auth_header else None
        return await self._request_json(self._url(*segments), headers=headers)

    async def _get_object(self, *segments: str) -> dict[str, Any]:
        data = await self._get(*segments)
        if not isinstance(data, dict):
            raise ParseError(
                message=f"Expected object from /{'/'.join(segments)}",
                source_name=self.name,
                raw_data=data,
            )
        return data

    # ============================================================
    # QUEUES
    # ============================================================

    async def get_queue(self, queue_name: str) -> QueueStats:
        """Fetch depth and message stats of one queue."""
        payload = await self._get_object("queues", self._vhost, queue_name)
        return QueueStats.from_api(queue_name, payload)

    async def get_queue_depth(self, queue_name: str) -> int:
        """Number of messages currently in a queue."""
        stats = await self.get_queue(queue_name)
        logger.debug(f"[{self.name}] Queue {queue_name} has {stats.messages} messages")
        return stats.messages

    async def list_queues(self) -> list[dict[str, Any]]:
        """All queues, restricted to the display allow-list when one is set."""
        data = await self._get("queues")
        if not isinstance(data, list):
            raise ParseError(
                message="Expected list from /queues",
                source_name=self.name,
                raw_data=data,
            )

        if not self._display_queues:
            logger.debug(f"[{self.name}] Found {len(data)} queues (showing all)")
            return data

        filtered = [q for q in data if isinstance(q, dict) and q.get("name") in self._display_queues]
        logger.debug(
            f"[{self.name}] Found {len(data)} queues, filtered to {len(filtered)} by allow-list"
        )
        return filtered

    # ============================================================
    # EXCHANGES
    # ============================================================

    async def get_exchange(self, exchange_name: str) -> dict[str, Any]:
        """Raw exchange object."""
        return await self._get_object("exchanges", self._vhost, exchange_name)

    async def get_exchange_counters(self, exchange_name: str) -> Optional[ExchangeCounters]:
        """Publish counters of an exchange, None before its first publish."""
        payload = await self.get_exchange(exchange_name)
        return ExchangeCounters.from_api(payload)

    async def get_bound_queues(self, exchange_name: str) -> list[str]:
        """Destinations of the exchange's outgoing bindings."""
        data = await self._get("exchanges", self._vhost, exchange_name, "bindings", "source")
        if not isinstance(data, list):
            raise ParseError(
                message="Expected list of bindings",
                source_name=self.name,
                raw_data=data,
            )
        destinations = []
        for binding in data:
            if not isinstance(binding, dict):
                continue
            destination = binding.get("destination")
            if destination and destination not in destinations:
                destinations.append(destination)
        return destinations

    # ============================================================
    # BROKER
    # ============================================================

    async def check_aliveness(self) -> str:
        """Run the aliveness test; returns the broker-reported status ("ok" when alive)."""
        data = await self._get_object("aliveness-test", self._vhost)
        return str(data.get("status", "unknown"))

    async def get_version(self) -> str:
        """Broker version from /overview."""
        data = await self._get_object("overview")
        version = data.get("rabbitmq_version")
        return str(version) if version else "unknown"
