"""
Metrics Engine - Multi-Instance Aggregator.

============================================================
RESPONSIBILITY
============================================================

For one logical service:
1. Resolve its instances through the discovery adapter
2. Fetch every instance concurrently
3. Sum counters over the instances that answered
4. Roll health up to UP / PARTIAL / DOWN / NO_INSTANCES

A failing instance is logged and left out; it never aborts the
others. Zero responders yield a zero-valued FALLBACK result.
Nothing here raises.

============================================================
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence

from .models import (
    AggregatedHealth,
    AggregatedMetrics,
    AggregationStatus,
    InstanceHealthDetail,
    InstanceHealthStatus,
)
from .resolver import resolve_metric

if TYPE_CHECKING:
    from sources.discovery import InstanceDiscovery
    from sources.instance import InstanceCollector


logger = logging.getLogger(__name__)


CounterPatterns = Mapping[str, Sequence[str]]


class MultiInstanceAggregator:
    """
    Sums counters and rolls up health across service instances.

    Usage:
        aggregator = MultiInstanceAggregator(discovery, collector)
        result = await aggregator.collect_metrics(
            "imc-telemetry-processor",
            {"messages_in": ["telemetry_messages_total"]},
        )
    """

    def __init__(
        self,
        discovery: "InstanceDiscovery",
        collector: "InstanceCollector",
    ) -> None:
        self._discovery = discovery
        self._collector = collector

    @property
    def discovery(self) -> "InstanceDiscovery":
        return self._discovery

    @property
    def collector(self) -> "InstanceCollector":
        return self._collector

    async def resolve(self, service_name: str) -> List[str]:
        """Instance base URLs; empty when discovery fails."""
        try:
            return await self._discovery.resolve(service_name)
        except Exception as e:
            logger.warning(f"[{service_name}] Discovery failed: {e}")
            return []

    async def collect_metrics(
        self,
        service_name: str,
        patterns: CounterPatterns,
    ) -> AggregatedMetrics:
        """
        Sum each logical counter across all instances.

        Args:
            service_name: Logical service to poll
            patterns: Logical counter key -> candidate metric names

        Returns:
            AggregatedMetrics, FALLBACK when no instance answered
        """
        urls = await self.resolve(service_name)
        if not urls:
            logger.warning(f"[{service_name}] No instances found")
            return self._fallback(service_name, patterns, 0, f"No instances found for service {service_name}")

        results = await asyncio.gather(
            *(self._collector.fetch_metrics(url) for url in urls),
            return_exceptions=True,
        )

        totals: Dict[str, float] = {key: 0.0 for key in patterns}
        successful = 0
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.warning(f"[{service_name}] Instance {url} failed: {result}")
                continue
            successful += 1
            for key, candidates in patterns.items():
                totals[key] += resolve_metric(result, candidates)

        if successful == 0:
            logger.error(f"[{service_name}] All {len(urls)} instances failed")
            return self._fallback(
                service_name, patterns, len(urls),
                f"All {len(urls)} instances of {service_name} failed to respond",
            )

        logger.debug(f"[{service_name}] Aggregated {successful}/{len(urls)} instances: {totals}")
        return AggregatedMetrics(
            service_name=service_name,
            counters=totals,
            total_instances=len(urls),
            successful_instances=successful,
            status=AggregationStatus.HEALTHY,
        )

    async def collect_health(self, service_name: str) -> AggregatedHealth:
        """Probe every instance's health endpoint and roll the answers up."""
        urls = await self.resolve(service_name)
        if not urls:
            return AggregatedHealth(
                service_name=service_name,
                status=InstanceHealthStatus.NO_INSTANCES,
                total_instances=0,
                healthy_instances=0,
                error=f"No instances found for service {service_name}",
            )

        results = await asyncio.gather(
            *(self._collector.fetch_health(url) for url in urls),
            return_exceptions=True,
        )

        details: List[InstanceHealthDetail] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                details.append(InstanceHealthDetail(url=url, healthy=False, status="DOWN", error=str(result)))
            else:
                details.append(InstanceHealthDetail(
                    url=url,
                    healthy=result.healthy,
                    status=result.status,
                    error=result.error,
                ))

        healthy = sum(1 for d in details if d.healthy)
        return AggregatedHealth(
            service_name=service_name,
            status=InstanceHealthStatus.from_counts(healthy, len(urls)),
            total_instances=len(urls),
            healthy_instances=healthy,
            instances=details,
        )

    async def first_instance(self, service_name: str) -> Optional[str]:
        """First resolved instance, for single-instance views."""
        urls = await self.resolve(service_name)
        return urls[0] if urls else None

    @staticmethod
    def _fallback(
        service_name: str,
        patterns: CounterPatterns,
        total: int,
        reason: str,
    ) -> AggregatedMetrics:
        return AggregatedMetrics(
            service_name=service_name,
            counters={key: 0.0 for key in patterns},
            total_instances=total,
            successful_instances=0,
            status=AggregationStatus.FALLBACK,
            error=reason,
        )
