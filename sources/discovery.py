"""
Instance Discovery - Resolve a logical service name to the base URLs to poll.

Two strategies:
- StaticInstanceDiscovery: one configured URL per service
- RegistryInstanceDiscovery: every instance a service registry knows about

resolve() never raises. An empty list means the service is currently
not reachable.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from sources.base import BaseHttpSource
from sources.exceptions import DiscoveryError, FetchError, SourceError
from sources.models import ServiceInstance


logger = logging.getLogger(__name__)


DEFAULT_SERVICE_MAPPINGS = {
    "generator": "imc-telematics-gen",
    "processor": "imc-telemetry-processor",
    "hdfs": "imc-hdfs-sink",
    "jdbc": "vehicle-events-sink",
}


def parse_service_mappings(value: Optional[str]) -> dict[str, str]:
    """
    Parse ``"component:service,component2:service2"``.

    Blank input yields the default mappings. Malformed pairs are logged
    and skipped.
    """
    if not value or not value.strip():
        logger.info("Using default service mappings")
        return dict(DEFAULT_SERVICE_MAPPINGS)

    mappings: dict[str, str] = {}
    for pair in value.split(","):
        parts = pair.strip().split(":")
        if len(parts) == 2 and parts[0].strip() and parts[1].strip():
            mappings[parts[0].strip()] = parts[1].strip()
        else:
            logger.warning(f"Invalid service mapping format: '{pair}'. Expected 'component:service'")
    return mappings


# ============================================================
# SERVICE REGISTRY
# ============================================================


class ServiceRegistry(ABC):
    """A registry that knows which instances of each service are up."""

    @abstractmethod
    async def get_instances(self, service_name: str) -> list[ServiceInstance]:
        """Registered instances of a service. Raises DiscoveryError on lookup failure."""
        pass

    @abstractmethod
    async def get_services(self) -> list[str]:
        """Names of every registered service."""
        pass


class EurekaServiceRegistry(BaseHttpSource, ServiceRegistry):
    """
    Eureka-style registry over its REST API.

    ``GET {url}/apps/{SERVICE}`` lists the instances of one application,
    ``GET {url}/apps`` lists all of them. Only instances with status UP
    are returned.
    """

    def __init__(
        self,
        registry_url: str,
        connect_timeout: float = BaseHttpSource.DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = BaseHttpSource.DEFAULT_READ_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__("registry", connect_timeout, read_timeout, session)
        self._registry_url = registry_url.rstrip("/")

    @property
    def registry_url(self) -> str:
        return self._registry_url

    async def get_instances(self, service_name: str) -> list[ServiceInstance]:
        url = f"{self._registry_url}/apps/{service_name.upper()}"
        try:
            data = await self._request_json(url)
        except FetchError as e:
            if e.status_code == 404:
                return []
            raise DiscoveryError(
                message=f"Registry lookup failed for {service_name}",
                service_name=service_name,
                original_error=e,
            )
        except SourceError as e:
            raise DiscoveryError(
                message=f"Unreadable registry answer for {service_name}",
                service_name=service_name,
                original_error=e,
            )

        application = data.get("application") if isinstance(data, dict) else None
        if not isinstance(application, dict):
            return []
        return self._parse_instances(service_name, application.get("instance"))

    async def get_services(self) -> list[str]:
        try:
            data = await self._request_json(f"{self._registry_url}/apps")
        except SourceError as e:
            raise DiscoveryError(message="Registry listing failed", original_error=e)

        applications = data.get("applications", {}) if isinstance(data, dict) else {}
        entries = applications.get("application", []) if isinstance(applications, dict) else []
        if isinstance(entries, dict):
            entries = [entries]
        return [str(app["name"]).lower() for app in entries if isinstance(app, dict) and app.get("name")]

    @staticmethod
    def _parse_instances(service_name: str, raw: Any) -> list[ServiceInstance]:
        # A single instance comes back as an object rather than a list
        if isinstance(raw, dict):
            raw = [raw]
        if not isinstance(raw, list):
            return []

        instances = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            if str(entry.get("status", "")).upper() != "UP":
                continue

            secure_port = entry.get("securePort") or {}
            secure = str(secure_port.get("@enabled", "false")).lower() == "true"
            port_info = secure_port if secure else (entry.get("port") or {})
            try:
                port = int(port_info.get("$", 0))
            except (TypeError, ValueError):
                port = 0

            instances.append(ServiceInstance(
                service_name=service_name,
                host=entry.get("hostName") or entry.get("ipAddr") or "",
                port=port,
                secure=secure,
                instance_id=entry.get("instanceId"),
            ))
        return instances


# ============================================================
# DISCOVERY STRATEGIES
# ============================================================


class InstanceDiscovery(ABC):
    """Resolves a service name to the base URLs of its instances."""

    mode: str = "unknown"

    @abstractmethod
    async def resolve(self, service_name: str) -> list[str]:
        """Base URLs to poll; never raises."""
        pass


class StaticInstanceDiscovery(InstanceDiscovery):
    """One configured base URL per service."""

    mode = "static"

    def __init__(self, urls: dict[str, str]) -> None:
        self._urls = {name: url.rstrip("/") for name, url in urls.items() if url}

    async def resolve(self, service_name: str) -> list[str]:
        url = self._urls.get(service_name)
        return [url] if url else []


class RegistryInstanceDiscovery(InstanceDiscovery):
    """Every UP instance the registry has for the service."""

    mode = "discovery"

    def __init__(self, registry: ServiceRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    async def resolve(self, service_name: str) -> list[str]:
        try:
            instances = await self._registry.get_instances(service_name)
        except SourceError as e:
            logger.warning(f"[discovery] Could not resolve {service_name}: {e}")
            return []

        if not instances:
            logger.debug(f"[discovery] No instances found for service: {service_name}")
        return [instance.base_url for instance in instances]
