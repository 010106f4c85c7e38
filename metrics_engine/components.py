"""
Metrics Engine - Pipeline Component Services.

============================================================
ONE SERVICE PER PIPELINE STAGE
============================================================

Measured (from the components' own Prometheus endpoints):
- GeneratorMetricsService:   messages published, publish rate
- ProcessorMetricsService:   messages in/out, events, invalid
- JdbcSinkMetricsService:    rows inserted, database errors

Estimated (derived from exchange output, labelled estimated):
- EventsProcessorEstimateService
- HdfsSinkEstimateService

Every read returns a structurally complete dict with a
``status`` field. Errors are reported, never raised.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from .aggregator import MultiInstanceAggregator
from .baseline import round_half_up
from .models import AggregatedMetrics
from .patterns import (
    DATABASE_ERROR_PATTERNS,
    GENERATOR_RATE_PATTERNS,
    GENERATOR_SENT_PATTERNS,
    GENERATOR_SERVICE,
    JDBC_PROCESSED_COUNTER,
    JDBC_SINK_SERVICE,
    PROCESSOR_EVENTS_PATTERNS,
    PROCESSOR_INVALID_PATTERNS,
    PROCESSOR_MESSAGES_PATTERNS,
    PROCESSOR_SERVICE,
    RABBIT_CONSUMED_COUNTER,
    ROWS_INSERTED_PATTERNS,
)
from .resolver import describe_matches, resolve_metric
from .throughput import ExchangeThroughputService

if TYPE_CHECKING:
    from sources.broker import BrokerManagementClient


logger = logging.getLogger(__name__)


# Share of exchange output assumed to reach each consumer path
EXCHANGE_SPLIT = 2
# Messages per file assumed for the HDFS sink
HDFS_BATCH_SIZE = 1000


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _health_down(service_name: str, message: str) -> Dict[str, Any]:
    return {
        "service_name": service_name,
        "healthy": False,
        "status": "DOWN",
        "message": message,
        "timestamp": _now(),
    }


# =============================================================
# MEASURED COMPONENTS
# =============================================================


class ComponentMetricsService(ABC):
    """
    Base for components read from their own instances.

    Subclasses set ``component`` (the baseline component key) and
    implement ``_build_metrics``.
    """

    component: str = ""
    default_service: str = ""

    def __init__(
        self,
        aggregator: MultiInstanceAggregator,
        service_name: Optional[str] = None,
    ) -> None:
        self._aggregator = aggregator
        self._service_name = service_name or self.default_service

    @property
    def service_name(self) -> str:
        return self._service_name

    async def get_metrics(self) -> Dict[str, Any]:
        """Current metrics; never raises."""
        try:
            return await self._build_metrics()
        except Exception as e:
            logger.error(f"[{self._service_name}] Failed to fetch metrics: {e}")
            return self._error_metrics(f"Failed to fetch metrics: {e}")

    async def get_health(self) -> Dict[str, Any]:
        """Health rolled up over every instance; never raises."""
        try:
            health = await self._aggregator.collect_health(self._service_name)
        except Exception as e:
            logger.warning(f"[{self._service_name}] Health check failed: {e}")
            return _health_down(self._service_name, f"Health check failed: {e}")
        return health.to_dict()

    @abstractmethod
    async def _build_metrics(self) -> Dict[str, Any]:
        """Read the component; may raise."""
        pass

    @abstractmethod
    def _error_metrics(self, error: str) -> Dict[str, Any]:
        """Zero-valued payload carrying ``error``."""
        pass


class GeneratorMetricsService(ComponentMetricsService):
    """Publishing metrics of the telemetry generator."""

    component = "telemetry_generator"
    default_service = GENERATOR_SERVICE

    async def _build_metrics(self) -> Dict[str, Any]:
        result = await self._aggregator.collect_metrics(self._service_name, {
            "sent": GENERATOR_SENT_PATTERNS,
            "rate": GENERATOR_RATE_PATTERNS,
        })
        if result.is_fallback:
            return self._error_metrics(result.error or "Service not available")

        urls = await self._aggregator.resolve(self._service_name)
        return {
            "messages_published_total": round_half_up(result.get("sent")),
            "messages_rate_per_sec": result.get("rate"),
            "service_url": urls[0] if urls else None,
            "total_instances": result.total_instances,
            "successful_instances": result.successful_instances,
            "status": "healthy",
            "timestamp": _now(),
        }

    def _error_metrics(self, error: str) -> Dict[str, Any]:
        return {
            "messages_published_total": 0,
            "messages_rate_per_sec": 0.0,
            "status": "error",
            "error": error,
            "timestamp": _now(),
        }


class ProcessorMetricsService(ComponentMetricsService):
    """Telemetry processor counters summed across all instances."""

    component = "processor"
    default_service = PROCESSOR_SERVICE

    async def _build_metrics(self) -> Dict[str, Any]:
        result = await self._aggregator.collect_metrics(self._service_name, {
            "messages": PROCESSOR_MESSAGES_PATTERNS,
            "events": PROCESSOR_EVENTS_PATTERNS,
            "invalid": PROCESSOR_INVALID_PATTERNS,
        })
        if result.is_fallback:
            return self._fallback_metrics(result)

        total = result.get("messages")
        invalid = result.get("invalid")
        return {
            "messages_in": round_half_up(total),
            "events_captured": round_half_up(result.get("events")),
            "messages_out": round_half_up(max(0.0, total - invalid)),
            "invalid_messages": round_half_up(invalid),
            "total_instances": result.total_instances,
            "successful_instances": result.successful_instances,
            "status": "healthy",
            "timestamp": _now(),
        }

    def _fallback_metrics(self, result: AggregatedMetrics) -> Dict[str, Any]:
        data = self._error_metrics(result.error or "Service not available via discovery - using fallback")
        data.update({
            "total_instances": result.total_instances,
            "successful_instances": 0,
            "status": "fallback",
        })
        return data

    def _error_metrics(self, error: str) -> Dict[str, Any]:
        return {
            "messages_in": 0,
            "events_captured": 0,
            "messages_out": 0,
            "invalid_messages": 0,
            "status": "error",
            "error": error,
            "timestamp": _now(),
        }


class JdbcSinkMetricsService(ComponentMetricsService):
    """
    Vehicle events JDBC sink.

    Sink metric names vary across releases, so rows inserted and
    database errors resolve through long candidate lists.
    """

    component = "jdbc_sink"
    default_service = JDBC_SINK_SERVICE

    async def _build_metrics(self) -> Dict[str, Any]:
        url = await self._aggregator.first_instance(self._service_name)
        if url is None:
            logger.error(f"[{self._service_name}] No healthy instances found")
            return self._error_metrics(
                f"Service not available - check if {self._service_name} is running and registered"
            )

        snapshot = await self._aggregator.collector.fetch_metrics(url)
        rows_inserted = resolve_metric(snapshot, ROWS_INSERTED_PATTERNS)
        database_errors = resolve_metric(snapshot, DATABASE_ERROR_PATTERNS)

        logger.info(
            f"[{self._service_name}] rows={round_half_up(rows_inserted)}, "
            f"errors={round_half_up(database_errors)}, total_metrics={len(snapshot)}"
        )
        return {
            "rows_inserted": round_half_up(rows_inserted),
            "database_errors": round_half_up(database_errors),
            JDBC_PROCESSED_COUNTER: round_half_up(snapshot.get(JDBC_PROCESSED_COUNTER, 0.0)),
            RABBIT_CONSUMED_COUNTER: round_half_up(snapshot.get(RABBIT_CONSUMED_COUNTER, 0.0)),
            "service_url": url,
            "available_metrics_count": len(snapshot),
            "status": "healthy",
            "timestamp": _now(),
        }

    async def get_raw_metrics(self) -> Dict[str, Any]:
        """Debug view: which candidate names the sink actually exposes."""
        url = await self._aggregator.first_instance(self._service_name)
        if url is None:
            return {
                "service_name": self._service_name,
                "status": "error",
                "error": f"No service URL available for {self._service_name}",
            }

        try:
            snapshot = await self._aggregator.collector.fetch_metrics(url)
        except Exception as e:
            return {
                "service_name": self._service_name,
                "service_url": url,
                "status": "error",
                "error": f"Failed to fetch raw metrics: {e}",
            }

        return {
            "service_name": self._service_name,
            "service_url": url,
            "total_metrics": len(snapshot),
            "rows_inserted_matches": describe_matches(snapshot, ROWS_INSERTED_PATTERNS),
            "database_error_matches": describe_matches(snapshot, DATABASE_ERROR_PATTERNS),
            "status": "ok",
        }

    def _error_metrics(self, error: str) -> Dict[str, Any]:
        return {
            "rows_inserted": 0,
            "database_errors": 0,
            JDBC_PROCESSED_COUNTER: 0,
            RABBIT_CONSUMED_COUNTER: 0,
            "status": "error",
            "error": error,
            "timestamp": _now(),
        }


# =============================================================
# ESTIMATED COMPONENTS
# =============================================================


def _exchange_share(stats: Dict[str, Any]) -> int:
    total_out = stats.get("total_publish_out", 0)
    if isinstance(total_out, (int, float)) and not isinstance(total_out, bool):
        return int(total_out) // EXCHANGE_SPLIT
    return 0


class EventsProcessorEstimateService:
    """
    Events processor figures estimated from the broker.

    messages_in is half of the exchange's rolling output,
    events_captured is the publish count of the events queue.
    """

    component = "events_processor"

    def __init__(
        self,
        throughput: ExchangeThroughputService,
        broker: "BrokerManagementClient",
        events_queue: str,
    ) -> None:
        self._throughput = throughput
        self._broker = broker
        self._events_queue = events_queue

    async def get_metrics(self) -> Dict[str, Any]:
        """Estimated metrics; never raises."""
        messages_in = _exchange_share(self._throughput.get_stats())
        try:
            queue = await self._broker.get_queue(self._events_queue)
        except Exception as e:
            logger.error(f"[{self._events_queue}] Failed to get events queue metrics: {e}")
            return {
                "messages_in": messages_in,
                "messages_out": messages_in,
                "events_captured": 0,
                "estimated": True,
                "status": "error",
                "error": str(e),
                "timestamp": _now(),
            }

        return {
            "messages_in": messages_in,
            "messages_out": messages_in,
            "events_captured": queue.messages_published,
            "estimated": True,
            "status": "healthy",
            "timestamp": _now(),
        }


class HdfsSinkEstimateService:
    """
    HDFS sink figures estimated from the exchange.

    messages_in is half of the exchange's rolling output; one file
    is assumed per HDFS_BATCH_SIZE messages, at least one once any
    message arrived.
    """

    component = "hdfs_sink"

    def __init__(self, throughput: ExchangeThroughputService) -> None:
        self._throughput = throughput

    async def get_metrics(self) -> Dict[str, Any]:
        """Estimated metrics; never raises."""
        stats = self._throughput.get_stats()
        messages_in = _exchange_share(stats)
        files_written = messages_in // HDFS_BATCH_SIZE
        if messages_in > 0 and files_written == 0:
            files_written = 1

        result: Dict[str, Any] = {
            "messages_in": messages_in,
            "files_written": files_written,
            "estimated": True,
            "status": "healthy",
            "timestamp": _now(),
        }
        if stats.get("status") == "error" and stats.get("error"):
            result["note"] = stats["error"]
        return result
