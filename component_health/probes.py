"""
Component Health - Probe Strategies.

============================================================
ONE STRATEGY, CHOSEN AT STARTUP
============================================================

- StaticUrlHealthProbe: GET the configured health URL of each
  component; healthy when it reports UP
- DiscoveryHealthProbe: look the component's service up in the
  registry; healthy when ANY instance reports UP

Probes never raise; a failure is an unhealthy result.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List

from .models import DiscoveryMode, ProbeResult

if TYPE_CHECKING:
    from sources.discovery import ServiceRegistry
    from sources.instance import InstanceCollector


logger = logging.getLogger(__name__)


class HealthProbeStrategy(ABC):
    """Probes every configured component once per call."""

    mode: DiscoveryMode

    def __init__(self, collector: "InstanceCollector") -> None:
        self._collector = collector

    @property
    @abstractmethod
    def components(self) -> List[str]:
        """Component names this strategy probes."""
        pass

    @abstractmethod
    async def probe(self, component: str) -> ProbeResult:
        """Probe one component; never raises."""
        pass

    async def probe_all(self) -> List[ProbeResult]:
        """Probe every component concurrently."""
        results = await asyncio.gather(
            *(self.probe(name) for name in self.components),
            return_exceptions=True,
        )
        probed: List[ProbeResult] = []
        for name, result in zip(self.components, results):
            if isinstance(result, BaseException):
                logger.warning(f"[{name}] Health probe failed: {result}")
                probed.append(ProbeResult(component=name, healthy=False, status="DOWN", error=str(result)))
            else:
                probed.append(result)
        return probed


class StaticUrlHealthProbe(HealthProbeStrategy):
    """One fixed health URL per component."""

    mode = DiscoveryMode.STATIC

    def __init__(self, health_urls: Dict[str, str], collector: "InstanceCollector") -> None:
        super().__init__(collector)
        self._health_urls = dict(health_urls)
        for name, url in self._health_urls.items():
            logger.info(f"[{name}] Static health URL: {url}")

    @property
    def components(self) -> List[str]:
        return list(self._health_urls)

    @property
    def health_urls(self) -> Dict[str, str]:
        return dict(self._health_urls)

    async def probe(self, component: str) -> ProbeResult:
        url = self._health_urls.get(component)
        if not url:
            return ProbeResult(component=component, healthy=False, status="UNKNOWN", error="No health URL configured")

        reading = await self._collector.probe_url(url)
        if reading.error and not reading.healthy:
            logger.warning(f"[{component}] Health check failed: {reading.error}")
        else:
            logger.debug(f"[{component}] Health check: status={reading.status}, healthy={reading.healthy}")

        return ProbeResult(
            component=component,
            healthy=reading.healthy,
            status=reading.status,
            target=url,
            instances_checked=1,
            error=reading.error,
        )


class DiscoveryHealthProbe(HealthProbeStrategy):
    """Components resolved to services through the registry."""

    mode = DiscoveryMode.DISCOVERY

    def __init__(
        self,
        service_mappings: Dict[str, str],
        registry: "ServiceRegistry",
        collector: "InstanceCollector",
    ) -> None:
        super().__init__(collector)
        self._mappings = dict(service_mappings)
        self._registry = registry
        logger.info(f"Component to service mappings: {self._mappings}")

    @property
    def components(self) -> List[str]:
        return list(self._mappings)

    @property
    def service_mappings(self) -> Dict[str, str]:
        return dict(self._mappings)

    async def probe(self, component: str) -> ProbeResult:
        service_name = self._mappings.get(component)
        if not service_name:
            return ProbeResult(component=component, healthy=False, status="UNKNOWN", error="No service mapping configured")

        try:
            instances = await self._registry.get_instances(service_name)
        except Exception as e:
            logger.warning(f"[{component}] Failed to look up service {service_name}: {e}")
            return ProbeResult(component=component, healthy=False, status="DOWN", target=service_name, error=str(e))

        if not instances:
            logger.debug(f"[{component}] No instances found for service: {service_name}")
            return ProbeResult(
                component=component,
                healthy=False,
                status="NO_INSTANCES",
                target=service_name,
                error=f"No instances found for service {service_name}",
            )

        # First UP instance settles it
        for checked, instance in enumerate(instances, start=1):
            try:
                reading = await self._collector.fetch_health(instance.base_url)
            except Exception as e:
                logger.warning(
                    f"[{component}] Health check of instance {instance.instance_id} failed: {e}"
                )
                continue
            logger.debug(
                f"[{component}] Service {service_name} (instance {instance.instance_id}) "
                f"health: {reading.status}"
            )
            if reading.healthy:
                return ProbeResult(
                    component=component,
                    healthy=True,
                    status="UP",
                    target=service_name,
                    instances_checked=checked,
                )

        return ProbeResult(
            component=component,
            healthy=False,
            status="DOWN",
            target=service_name,
            instances_checked=len(instances),
            error="No healthy instances found",
        )

    # =========================================================
    # INTROSPECTION
    # =========================================================

    async def discovered_services(self) -> Dict[str, List[Dict[str, Any]]]:
        """Instances of every mapped service."""
        services: Dict[str, List[Dict[str, Any]]] = {}
        for service_name in self._mappings.values():
            try:
                instances = await self._registry.get_instances(service_name)
            except Exception as e:
                logger.debug(f"Failed to get instances for service {service_name}: {e}")
                continue
            services[service_name] = [i.to_dict() for i in instances]
        return services

    async def all_services(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every service the registry knows, with its instances."""
        services: Dict[str, List[Dict[str, Any]]] = {}
        try:
            names = await self._registry.get_services()
            for service_name in names:
                instances = await self._registry.get_instances(service_name)
                services[service_name] = [i.to_dict() for i in instances]
        except Exception as e:
            logger.error(f"Failed to get all available services: {e}")
        return services
