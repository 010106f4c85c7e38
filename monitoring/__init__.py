"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Read-only monitoring of the telemetry pipeline: the service
layer, its HTTP API, configuration and the periodic tasks that
keep the views current.

PRINCIPLES:
1. READ-ONLY - Nothing here writes to the pipeline
2. RESILIENT - A down component yields an error payload, never a failed request
3. EXPLICIT - Stale, fallback and estimated figures are labelled as such

============================================================
"""

from .models import PipelineSnapshot, SnapshotStatus
from .config import (
    BrokerConfig,
    ComponentConfig,
    DiscoveryConfig,
    HttpConfig,
    MonitorConfig,
    ScoringConfig,
)
from .collectors import BaseCollector, PipelineMetricsCollector
from .scheduler import PeriodicTask, start_all, stop_all
from .dashboard_service import MonitoringService
from .api import (
    DashboardEncoder,
    MonitoringAPI,
    create_monitoring_router,
    json_response,
    setup_monitoring_routes,
)


__all__ = [
    # Models
    "PipelineSnapshot",
    "SnapshotStatus",

    # Config
    "MonitorConfig",
    "BrokerConfig",
    "ComponentConfig",
    "DiscoveryConfig",
    "ScoringConfig",
    "HttpConfig",

    # Collection
    "BaseCollector",
    "PipelineMetricsCollector",
    "PeriodicTask",
    "start_all",
    "stop_all",

    # Service & API
    "MonitoringService",
    "MonitoringAPI",
    "DashboardEncoder",
    "json_response",
    "create_monitoring_router",
    "setup_monitoring_routes",
]
