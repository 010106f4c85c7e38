"""
Monitoring Service.

============================================================
PURPOSE
============================================================
Central service behind the monitoring API. Combines the
pipeline snapshot, broker reads, exchange throughput, metric
baselines, component health and score summaries.

PRINCIPLES:
- READ-ONLY towards the pipeline: nothing here writes to the
  broker, a component or the score database
- No read operation raises; failures come back as
  "error" / "fallback" payloads
- Figures derived from ratios are labelled as estimates

============================================================
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from component_health import DiscoveryHealthProbe, HealthAggregator, StaticUrlHealthProbe
from metrics_engine import BaselineService, ExchangeThroughputService, JdbcSinkMetricsService

from .collectors import PipelineMetricsCollector
from .config import MonitorConfig
from .scheduler import PeriodicTask

if TYPE_CHECKING:
    from scoring import ScoreSummaryRepository
    from sources.broker import BrokerManagementClient


logger = logging.getLogger(__name__)


# Pipeline component -> health registry key
HEALTH_KEYS: Dict[str, str] = {
    "telemetry_generator": "generator",
    "processor": "processor",
    "events_processor": "processor",
    "hdfs_sink": "hdfs",
    "jdbc_sink": "jdbc",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# MONITORING SERVICE
# ============================================================

class MonitoringService:
    """
    Read model for the monitoring API.

    All collaborators are built once by the application and passed in.
    Periodic tasks keep the snapshot, throughput and health views
    current; this service only reads them (plus a few live broker
    and component reads).
    """

    def __init__(
        self,
        config: MonitorConfig,
        broker: "BrokerManagementClient",
        pipeline_collector: PipelineMetricsCollector,
        throughput: ExchangeThroughputService,
        baseline: BaselineService,
        health: HealthAggregator,
        component_services: Dict[str, Any],
        scores: Optional["ScoreSummaryRepository"] = None,
        tasks: Optional[Sequence[PeriodicTask]] = None,
    ):
        """Initialize monitoring service."""
        self._config = config
        self._broker = broker
        self._pipeline = pipeline_collector
        self._throughput = throughput
        self._baseline = baseline
        self._health = health
        self._components = dict(component_services)
        self._scores = scores
        self._tasks = list(tasks or [])
        self._started_at = datetime.now(timezone.utc)

    @property
    def component_names(self) -> List[str]:
        return list(self._components)

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks)

    # --------------------------------------------------------
    # PIPELINE SNAPSHOT
    # --------------------------------------------------------

    async def get_current_metrics(self) -> Dict[str, Any]:
        """Latest snapshot from the periodic collector."""
        return self._pipeline.get_current().to_dict()

    # --------------------------------------------------------
    # BROKER
    # --------------------------------------------------------

    async def get_broker_health(self) -> Dict[str, Any]:
        """Aliveness test plus broker version."""
        vhost = self._broker.vhost
        try:
            aliveness = await self._broker.check_aliveness()
        except Exception as e:
            logger.error(f"Broker health check failed: {e}")
            return {
                "status": "DOWN",
                "vhost": vhost,
                "error": str(e),
                "timestamp": _now(),
            }

        try:
            version = await self._broker.get_version()
        except Exception as e:
            logger.warning(f"Broker version unavailable: {e}")
            version = "unknown"

        return {
            "status": "UP" if aliveness == "ok" else "DOWN",
            "aliveness": aliveness,
            "version": version,
            "vhost": vhost,
            "dashboard_url": self._broker.dashboard_url,
            "timestamp": _now(),
        }

    async def get_queue_depth(self, queue_name: Optional[str] = None) -> Dict[str, Any]:
        """Live depth of one queue (the work queue by default)."""
        queue_name = queue_name or self._config.broker.queue_name
        try:
            depth = await self._broker.get_queue_depth(queue_name)
        except Exception as e:
            logger.error(f"[{queue_name}] Failed to get queue depth: {e}")
            return {"queue_name": queue_name, "depth": -1, "status": "error", "error": str(e)}
        return {"queue_name": queue_name, "depth": depth, "status": "healthy"}

    async def get_all_queues(self) -> Dict[str, Any]:
        """Every queue, restricted to the display allow-list."""
        try:
            queues = await self._broker.list_queues()
        except Exception as e:
            logger.error(f"Failed to list queues: {e}")
            return {"queues": [], "count": 0, "status": "error", "error": str(e)}
        return {
            "queues": queues,
            "count": len(queues),
            "filtered": bool(self._broker.display_queues),
            "status": "healthy",
        }

    async def get_queue_metrics(self, queue_name: str) -> Dict[str, Any]:
        """Counters and rates of one queue."""
        try:
            stats = await self._broker.get_queue(queue_name)
        except Exception as e:
            logger.error(f"[{queue_name}] Failed to get queue metrics: {e}")
            return {"queue_name": queue_name, "status": "error", "error": str(e)}
        data = stats.to_dict()
        data["status"] = "healthy"
        return data

    async def get_events_queue_metrics(self) -> Dict[str, Any]:
        return await self.get_queue_metrics(self._config.broker.events_queue_name)

    async def get_dashboard_url(self) -> Dict[str, Any]:
        return {"dashboard_url": self._broker.dashboard_url}

    # --------------------------------------------------------
    # EXCHANGE
    # --------------------------------------------------------

    async def get_exchange_throughput(self) -> Dict[str, Any]:
        """Rolling exchange totals, baseline-adjusted."""
        return self._baseline.adjust("exchange", self._throughput.get_stats())

    async def get_bound_queue_metrics(self) -> Dict[str, Any]:
        """Metrics of every queue bound to the exchange."""
        exchange = self._throughput.exchange_name
        try:
            queue_names = await self._broker.get_bound_queues(exchange)
        except Exception as e:
            logger.error(f"[{exchange}] Failed to get bound queues: {e}")
            return {"exchange_name": exchange, "queues": [], "status": "error", "error": str(e)}

        results = await asyncio.gather(
            *(self.get_queue_metrics(name) for name in queue_names),
            return_exceptions=True,
        )
        queues = [r for r in results if not isinstance(r, BaseException)]
        return {
            "exchange_name": exchange,
            "queues": queues,
            "count": len(queues),
            "status": "healthy",
        }

    # --------------------------------------------------------
    # COMPONENT HEALTH
    # --------------------------------------------------------

    async def get_component_health(self) -> Dict[str, Any]:
        """Health map with discovery mode and flow paths."""
        return self._health.registry.to_dict()

    async def get_flow_paths(self) -> Dict[str, bool]:
        return self._health.registry.get_flow_paths()

    async def get_discovery_info(self) -> Dict[str, Any]:
        """How components are located, and what the registry currently knows."""
        probe = self._health.probe
        info: Dict[str, Any] = {"mode": probe.mode.value, "components": probe.components}

        if isinstance(probe, DiscoveryHealthProbe):
            discovered, available = await asyncio.gather(
                probe.discovered_services(),
                probe.all_services(),
                return_exceptions=True,
            )
            info["service_mappings"] = probe.service_mappings
            info["discovered_services"] = discovered if not isinstance(discovered, Exception) else {}
            info["all_services"] = available if not isinstance(available, Exception) else {}
        elif isinstance(probe, StaticUrlHealthProbe):
            info["health_urls"] = probe.health_urls
        return info

    # --------------------------------------------------------
    # COMPONENT METRICS
    # --------------------------------------------------------

    def has_component(self, component: str) -> bool:
        return component in self._components

    async def get_component_metrics(self, component: str) -> Optional[Dict[str, Any]]:
        """
        Baseline-adjusted metrics of one pipeline component.

        Returns None for an unknown component.
        """
        service = self._components.get(component)
        if service is None:
            return None
        try:
            raw = await service.get_metrics()
        except Exception as e:
            logger.error(f"[{component}] Failed to get metrics: {e}")
            raw = {"status": "error", "error": str(e), "timestamp": _now()}
        return self._baseline.adjust(component, raw)

    async def get_all_component_metrics(self) -> Dict[str, Any]:
        """Metrics of every component, fetched in parallel."""
        names = self.component_names
        results = await asyncio.gather(
            *(self.get_component_metrics(name) for name in names),
            return_exceptions=True,
        )
        return {
            name: result if not isinstance(result, Exception) else {"status": "error", "error": str(result)}
            for name, result in zip(names, results)
        }

    async def get_component_instance_health(self, component: str) -> Optional[Dict[str, Any]]:
        """
        Health of one component.

        Instance-backed components roll up every instance; estimated
        components report the last probe of the component they ride on.
        """
        service = self._components.get(component)
        if service is None:
            return None

        if hasattr(service, "get_health"):
            return await service.get_health()

        key = HEALTH_KEYS.get(component, component)
        registry = self._health.registry
        result = registry.get_result(key)
        if result is not None:
            data = result.to_dict()
        else:
            data = {"component": key, "healthy": registry.is_component_healthy(key)}
        data["status"] = "UP" if registry.is_component_healthy(key) else "DOWN"
        data["estimated"] = True
        return data

    async def get_jdbc_raw_metrics(self) -> Dict[str, Any]:
        """Debug view of the JDBC sink's exposition and pattern matches."""
        for service in self._components.values():
            if isinstance(service, JdbcSinkMetricsService):
                return await service.get_raw_metrics()
        return {"status": "error", "error": "JDBC sink is not configured"}

    # --------------------------------------------------------
    # BASELINES
    # --------------------------------------------------------

    async def capture_baseline(self) -> Dict[str, Any]:
        """Capture new baselines from every registered component."""
        try:
            await self._baseline.capture()
        except Exception as e:
            logger.error(f"Baseline capture failed: {e}")
            status = self._baseline.get_reset_status()
            status["error"] = str(e)
            return status
        return self._baseline.get_reset_status()

    async def clear_baseline(self) -> Dict[str, Any]:
        self._baseline.clear()
        return self._baseline.get_reset_status()

    async def get_reset_status(self) -> Dict[str, Any]:
        return self._baseline.get_reset_status()

    # --------------------------------------------------------
    # SCORES
    # --------------------------------------------------------

    async def get_score_health(self) -> Dict[str, Any]:
        if self._scores is None:
            return {"status": "DISABLED", "timestamp": _now()}
        return await asyncio.to_thread(self._scores.get_health)

    async def get_fleet_summary(self) -> Dict[str, Any]:
        if self._scores is None:
            return {"status": "error", "error": "Score summaries are not configured"}
        return await asyncio.to_thread(self._scores.get_fleet_summary)

    async def get_top_performers(self) -> List[Dict[str, Any]]:
        if self._scores is None:
            return []
        return await asyncio.to_thread(self._scores.get_top_performers)

    async def get_high_risk_drivers(self) -> List[Dict[str, Any]]:
        if self._scores is None:
            return []
        return await asyncio.to_thread(self._scores.get_high_risk_drivers)

    # --------------------------------------------------------
    # OVERVIEW
    # --------------------------------------------------------

    async def get_overview(self) -> Dict[str, Any]:
        """
        Everything the dashboard shows on its main page.

        Collected in parallel; a failing section is replaced by an
        error entry instead of failing the whole overview.
        """
        results = await asyncio.gather(
            self.get_current_metrics(),
            self.get_exchange_throughput(),
            self.get_component_health(),
            self.get_all_component_metrics(),
            self.get_reset_status(),
            return_exceptions=True,
        )

        def section(result: Any) -> Any:
            if isinstance(result, Exception):
                return {"status": "error", "error": str(result)}
            return result

        return {
            "pipeline": section(results[0]),
            "exchange": section(results[1]),
            "health": section(results[2]),
            "components": section(results[3]),
            "baseline": section(results[4]),
            "timestamp": _now(),
        }

    def get_status(self) -> Dict[str, Any]:
        """Monitor process status: uptime, tasks and effective config."""
        uptime = datetime.now(timezone.utc) - self._started_at
        return {
            "started_at": self._started_at.isoformat(),
            "uptime_seconds": int(uptime.total_seconds()),
            "discovery_mode": self._health.mode.value,
            "tasks": [task.to_dict() for task in self._tasks],
            "collector": {
                "collections": self._pipeline.collection_count,
                "errors": self._pipeline.error_count,
            },
            "config": self._config.to_dict(),
        }
