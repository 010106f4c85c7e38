"""
Component Health - Health Aggregator.

Runs one probe cycle per tick and writes the results into the
shared registry. Driven by a PeriodicTask (see monitoring.scheduler).
"""

import logging
from typing import List

from .models import DiscoveryMode, ProbeResult
from .probes import HealthProbeStrategy
from .registry import ComponentHealthRegistry


logger = logging.getLogger(__name__)


class HealthAggregator:
    """Probes all components through one strategy and records the outcome."""

    def __init__(self, registry: ComponentHealthRegistry, probe: HealthProbeStrategy) -> None:
        self._registry = registry
        self._probe = probe
        logger.info(f"Health checks use {probe.mode.value} mode")

    @property
    def registry(self) -> ComponentHealthRegistry:
        return self._registry

    @property
    def probe(self) -> HealthProbeStrategy:
        return self._probe

    @property
    def mode(self) -> DiscoveryMode:
        return self._probe.mode

    async def check_all(self) -> List[ProbeResult]:
        """One health check cycle."""
        logger.debug(f"Performing component health checks ({self._probe.mode.value})")
        results = await self._probe.probe_all()
        self._registry.record_all(results)
        return results
