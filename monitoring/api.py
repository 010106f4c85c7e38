"""
Monitoring API Endpoints.

============================================================
PURPOSE
============================================================
HTTP API for the pipeline monitor.

PRINCIPLES:
- Read endpoints never fail the request because a pipeline
  component is down; the payload carries the error instead
- The only non-read endpoints capture or clear metric
  baselines, which are display-only state of this process

============================================================
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable

from aiohttp import web

from .dashboard_service import MonitoringService


logger = logging.getLogger(__name__)


# ============================================================
# JSON ENCODER
# ============================================================

class DashboardEncoder(json.JSONEncoder):
    """JSON encoder for monitor payloads."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if hasattr(obj, "__dict__"):
            return {k: v for k, v in obj.__dict__.items() if not k.startswith("_")}
        return super().default(obj)


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data, cls=DashboardEncoder, indent=2),
        status=status,
        content_type="application/json",
    )


def ok(data: Any) -> web.Response:
    return json_response({"status": "ok", "data": data})


def error_response(message: str, status: int = 500) -> web.Response:
    return json_response({"status": "error", "error": message}, status=status)


# ============================================================
# API HANDLERS
# ============================================================

class MonitoringAPI:
    """
    HTTP API for the monitor.

    Every handler wraps one MonitoringService call.
    """

    def __init__(self, service: MonitoringService):
        """Initialize API."""
        self._service = service

    async def _serve(self, label: str, call: Callable[[], Awaitable[Any]]) -> web.Response:
        try:
            return ok(await call())
        except Exception as e:
            logger.error(f"Error getting {label}: {e}")
            return error_response(str(e))

    # --------------------------------------------------------
    # PIPELINE / BROKER
    # --------------------------------------------------------

    async def get_overview(self, request: web.Request) -> web.Response:
        """GET /api/overview"""
        return await self._serve("overview", self._service.get_overview)

    async def get_current_metrics(self, request: web.Request) -> web.Response:
        """
        GET /api/metrics/current

        Latest pipeline snapshot.
        """
        return await self._serve("current metrics", self._service.get_current_metrics)

    async def get_broker_health(self, request: web.Request) -> web.Response:
        """GET /api/broker/health"""
        return await self._serve("broker health", self._service.get_broker_health)

    async def get_queue_depth(self, request: web.Request) -> web.Response:
        """
        GET /api/broker/queue-depth?queue=<name>

        Defaults to the configured work queue.
        """
        queue_name = request.query.get("queue")
        return await self._serve("queue depth", lambda: self._service.get_queue_depth(queue_name))

    async def get_all_queues(self, request: web.Request) -> web.Response:
        """GET /api/broker/queues"""
        return await self._serve("queues", self._service.get_all_queues)

    async def get_queue_metrics(self, request: web.Request) -> web.Response:
        """GET /api/broker/queues/{name}"""
        queue_name = request.match_info["name"]
        return await self._serve("queue metrics", lambda: self._service.get_queue_metrics(queue_name))

    async def get_events_queue(self, request: web.Request) -> web.Response:
        """GET /api/broker/events-queue"""
        return await self._serve("events queue", self._service.get_events_queue_metrics)

    async def get_dashboard_url(self, request: web.Request) -> web.Response:
        """GET /api/broker/dashboard-url"""
        return await self._serve("dashboard url", self._service.get_dashboard_url)

    async def get_exchange_throughput(self, request: web.Request) -> web.Response:
        """
        GET /api/exchange/throughput

        Rolling totals since start (or since the last baseline).
        """
        return await self._serve("exchange throughput", self._service.get_exchange_throughput)

    async def get_bound_queues(self, request: web.Request) -> web.Response:
        """GET /api/exchange/queues"""
        return await self._serve("bound queues", self._service.get_bound_queue_metrics)

    # --------------------------------------------------------
    # HEALTH
    # --------------------------------------------------------

    async def get_component_health(self, request: web.Request) -> web.Response:
        """GET /api/health/components"""
        return await self._serve("component health", self._service.get_component_health)

    async def get_flow_paths(self, request: web.Request) -> web.Response:
        """GET /api/health/flow-paths"""
        return await self._serve("flow paths", self._service.get_flow_paths)

    async def get_discovery(self, request: web.Request) -> web.Response:
        """GET /api/health/discovery"""
        return await self._serve("discovery info", self._service.get_discovery_info)

    # --------------------------------------------------------
    # COMPONENTS
    # --------------------------------------------------------

    async def list_components(self, request: web.Request) -> web.Response:
        """GET /api/components"""
        return await self._serve("components", self._service.get_all_component_metrics)

    async def get_component_metrics(self, request: web.Request) -> web.Response:
        """GET /api/components/{component}/metrics"""
        component = request.match_info["component"]
        if not self._service.has_component(component):
            return error_response(f"Unknown component: {component}", status=404)
        return await self._serve(
            f"{component} metrics", lambda: self._service.get_component_metrics(component)
        )

    async def get_component_health_detail(self, request: web.Request) -> web.Response:
        """GET /api/components/{component}/health"""
        component = request.match_info["component"]
        if not self._service.has_component(component):
            return error_response(f"Unknown component: {component}", status=404)
        return await self._serve(
            f"{component} health", lambda: self._service.get_component_instance_health(component)
        )

    async def get_jdbc_raw_metrics(self, request: web.Request) -> web.Response:
        """
        GET /api/components/jdbc_sink/raw

        Exposition dump with the pattern-match summary.
        """
        return await self._serve("jdbc raw metrics", self._service.get_jdbc_raw_metrics)

    # --------------------------------------------------------
    # BASELINES
    # --------------------------------------------------------

    async def get_reset_status(self, request: web.Request) -> web.Response:
        """GET /api/baseline"""
        return await self._serve("reset status", self._service.get_reset_status)

    async def capture_baseline(self, request: web.Request) -> web.Response:
        """
        POST /api/baseline/capture

        Current totals become the new zero point for display.
        """
        return await self._serve("baseline capture", self._service.capture_baseline)

    async def clear_baseline(self, request: web.Request) -> web.Response:
        """POST /api/baseline/clear"""
        return await self._serve("baseline clear", self._service.clear_baseline)

    # --------------------------------------------------------
    # SCORES
    # --------------------------------------------------------

    async def get_score_health(self, request: web.Request) -> web.Response:
        """GET /api/scores/health"""
        return await self._serve("score health", self._service.get_score_health)

    async def get_fleet_summary(self, request: web.Request) -> web.Response:
        """GET /api/scores/fleet-summary"""
        return await self._serve("fleet summary", self._service.get_fleet_summary)

    async def get_top_performers(self, request: web.Request) -> web.Response:
        """GET /api/scores/top-performers"""
        return await self._serve("top performers", self._service.get_top_performers)

    async def get_high_risk_drivers(self, request: web.Request) -> web.Response:
        """GET /api/scores/high-risk"""
        return await self._serve("high-risk drivers", self._service.get_high_risk_drivers)

    # --------------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------------

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /api/health

        Monitor health check.
        """
        return json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "pipeline-monitor",
        })

    async def get_status(self, request: web.Request) -> web.Response:
        """GET /api/status"""
        try:
            return ok(self._service.get_status())
        except Exception as e:
            logger.error(f"Error getting status: {e}")
            return error_response(str(e))


# ============================================================
# ROUTER FACTORY
# ============================================================

def create_monitoring_router(service: MonitoringService) -> web.Application:
    """
    Create monitoring API application.

    Returns an aiohttp Application with all routes configured.
    """
    api = MonitoringAPI(service)

    app = web.Application()

    app.router.add_get("/health", api.health)
    app.router.add_get("/status", api.get_status)
    app.router.add_get("/overview", api.get_overview)
    app.router.add_get("/metrics/current", api.get_current_metrics)

    app.router.add_get("/broker/health", api.get_broker_health)
    app.router.add_get("/broker/queue-depth", api.get_queue_depth)
    app.router.add_get("/broker/queues", api.get_all_queues)
    app.router.add_get("/broker/queues/{name}", api.get_queue_metrics)
    app.router.add_get("/broker/events-queue", api.get_events_queue)
    app.router.add_get("/broker/dashboard-url", api.get_dashboard_url)

    app.router.add_get("/exchange/throughput", api.get_exchange_throughput)
    app.router.add_get("/exchange/queues", api.get_bound_queues)

    app.router.add_get("/health/components", api.get_component_health)
    app.router.add_get("/health/flow-paths", api.get_flow_paths)
    app.router.add_get("/health/discovery", api.get_discovery)

    app.router.add_get("/components", api.list_components)
    app.router.add_get("/components/jdbc_sink/raw", api.get_jdbc_raw_metrics)
    app.router.add_get("/components/{component}/metrics", api.get_component_metrics)
    app.router.add_get("/components/{component}/health", api.get_component_health_detail)

    app.router.add_get("/scores/health", api.get_score_health)
    app.router.add_get("/scores/fleet-summary", api.get_fleet_summary)
    app.router.add_get("/scores/top-performers", api.get_top_performers)
    app.router.add_get("/scores/high-risk", api.get_high_risk_drivers)

    # Display-only state; nothing in the pipeline is touched
    app.router.add_get("/baseline", api.get_reset_status)
    app.router.add_post("/baseline/capture", api.capture_baseline)
    app.router.add_post("/baseline/clear", api.clear_baseline)

    return app


def setup_monitoring_routes(
    app: web.Application,
    service: MonitoringService,
    prefix: str = "/api",
) -> None:
    """Add monitoring routes to an existing application."""
    app.add_subapp(prefix, create_monitoring_router(service))
