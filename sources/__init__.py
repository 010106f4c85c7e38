"""
Sources Package - HTTP access to the monitored pipeline.

Provides read-only clients for:
- The broker management API (queues, exchanges, aliveness)
- Component actuator endpoints (Prometheus text, health)
- A Eureka-style service registry

Quick Start:
    from sources import BrokerManagementClient, InstanceCollector

    async def poll():
        async with BrokerManagementClient(host="broker") as broker:
            depth = await broker.get_queue_depth("telematics_work_queue")

        async with InstanceCollector() as collector:
            snapshot = await collector.fetch_metrics("http://processor:8080")

Every client raises SourceError subclasses; services above this layer
turn them into status-tagged results.
"""

from sources.base import BaseHttpSource
from sources.broker import (
    BrokerManagementClient,
    dashboard_url_for,
    parse_queue_list,
    resolve_management_endpoint,
)
from sources.discovery import (
    DEFAULT_SERVICE_MAPPINGS,
    EurekaServiceRegistry,
    InstanceDiscovery,
    RegistryInstanceDiscovery,
    ServiceRegistry,
    StaticInstanceDiscovery,
    parse_service_mappings,
)
from sources.exceptions import (
    ConfigurationError,
    DiscoveryError,
    FetchError,
    ParseError,
    SourceError,
)
from sources.instance import InstanceCollector, is_up
from sources.models import ExchangeCounters, HealthReading, QueueStats, ServiceInstance


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseHttpSource",

    # Clients
    "BrokerManagementClient",
    "InstanceCollector",
    "EurekaServiceRegistry",

    # Discovery
    "InstanceDiscovery",
    "StaticInstanceDiscovery",
    "RegistryInstanceDiscovery",
    "ServiceRegistry",
    "DEFAULT_SERVICE_MAPPINGS",
    "parse_service_mappings",

    # Helpers
    "resolve_management_endpoint",
    "dashboard_url_for",
    "parse_queue_list",
    "is_up",

    # Models
    "ServiceInstance",
    "HealthReading",
    "QueueStats",
    "ExchangeCounters",

    # Exceptions
    "SourceError",
    "FetchError",
    "ParseError",
    "DiscoveryError",
    "ConfigurationError",
]
