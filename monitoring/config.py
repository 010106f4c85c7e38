"""
Monitoring - Configuration.

============================================================
CONFIGURABLE MONITOR
============================================================

Everything the monitor needs to reach the pipeline:
- Broker management API (URL or host + credentials)
- Component health URLs and service names
- Service registry (optional, enables discovery mode)
- Score database (optional)
- Poll intervals and HTTP timeouts

Configuration can be loaded from:
- Default values
- YAML config file
- Environment variables (a .env file is honoured)

Later sources override earlier ones.

============================================================
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from sources.broker import DEFAULT_MANAGEMENT_PORT, parse_queue_list
from sources.discovery import DEFAULT_SERVICE_MAPPINGS, parse_service_mappings
from sources.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_HEALTH_URLS = {
    "generator": "http://localhost:8082/actuator/health",
    "processor": "http://localhost:8080/actuator/health",
    "hdfs": "http://localhost:8081/actuator/health",
    "jdbc": "http://localhost:8083/actuator/health",
}

HEALTH_SUFFIX = "/actuator/health"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================
# SECTIONS
# =============================================================


@dataclass
class BrokerConfig:
    """Broker management API access."""
    api_url: Optional[str] = None
    host: str = "localhost"
    management_port: int = DEFAULT_MANAGEMENT_PORT
    username: str = "guest"
    password: str = "guest"
    vhost: str = "/"
    display_queues: List[str] = field(default_factory=list)
    exchange_name: str = "telematics_exchange"
    queue_name: str = "telematics_work_queue"
    events_queue_name: str = "vehicle_events"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["password"] = "***" if self.password else ""
        if self.api_url and "@" in self.api_url:
            data["api_url"] = "***"
        return data


@dataclass
class ComponentConfig:
    """Pipeline components: static health URLs and metric service names."""
    health_urls: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEALTH_URLS))
    generator_service: str = "imc-telematics-gen"
    processor_service: str = "imc-telemetry-processor"
    jdbc_sink_service: str = "imc-jdbc-consumer"
    metrics_urls: Dict[str, str] = field(default_factory=dict)

    def static_metrics_urls(self) -> Dict[str, str]:
        """
        Service -> base URL used when discovery is off.

        Explicit ``metrics_urls`` win; otherwise the base of each
        component's health URL is used.
        """
        derived: Dict[str, str] = {}
        for component, service in (
            ("generator", self.generator_service),
            ("processor", self.processor_service),
            ("jdbc", self.jdbc_sink_service),
        ):
            url = self.health_urls.get(component)
            if url:
                derived[service] = url[: -len(HEALTH_SUFFIX)] if url.endswith(HEALTH_SUFFIX) else url
        derived.update(self.metrics_urls)
        return derived

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DiscoveryConfig:
    """Service registry; discovery mode is used when enabled."""
    enabled: bool = False
    registry_url: Optional[str] = None
    service_mappings: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SERVICE_MAPPINGS))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScoringConfig:
    """Relational source of driver score summaries."""
    enabled: bool = False
    database_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "database_url": "***" if self.database_url else None}


@dataclass
class HttpConfig:
    """Outbound HTTP timeouts, in seconds."""
    connect_timeout: float = 10.0
    read_timeout: float = 15.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================
# MONITOR CONFIG
# =============================================================


@dataclass
class MonitorConfig:
    """
    Complete monitor configuration.

    Usage:
        config = MonitorConfig.from_yaml("monitor.yaml").apply_env()
        config.validate()
    """
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    components: ComponentConfig = field(default_factory=ComponentConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    http: HttpConfig = field(default_factory=HttpConfig)

    # Poll intervals (seconds)
    collection_interval: float = 2.0
    health_interval: float = 8.0
    throughput_interval: float = 5.0

    # API server
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # =========================================================
    # LOADING
    # =========================================================

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "MonitorConfig":
        """Defaults overridden by the environment."""
        return cls().apply_env(env_file)

    def apply_env(self, env_file: Optional[Union[str, Path]] = None) -> "MonitorConfig":
        """
        Override fields from environment variables.

        Environment variables:
        - BROKER_API_URL, BROKER_HOST, BROKER_MANAGEMENT_PORT
        - BROKER_USERNAME, BROKER_PASSWORD, BROKER_VHOST
        - BROKER_DISPLAY_QUEUES (comma separated)
        - BROKER_EXCHANGE, BROKER_QUEUE, BROKER_EVENTS_QUEUE
        - COMPONENT_HEALTH_<GENERATOR|PROCESSOR|HDFS|JDBC>_URL
        - DISCOVERY_ENABLED, DISCOVERY_REGISTRY_URL
        - DISCOVERY_SERVICE_MAPPINGS ("component:service,...")
        - SCORING_ENABLED, SCORING_DATABASE_URL
        - HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT
        - METRICS_COLLECTION_INTERVAL, HEALTH_CHECK_INTERVAL, THROUGHPUT_INTERVAL
        - MONITOR_HOST, MONITOR_PORT, LOG_LEVEL
        """
        load_dotenv(env_file)

        try:
            broker = self.broker
            if os.getenv("BROKER_API_URL"):
                broker.api_url = os.getenv("BROKER_API_URL")
            if os.getenv("BROKER_HOST"):
                broker.host = os.getenv("BROKER_HOST")
            if os.getenv("BROKER_MANAGEMENT_PORT"):
                broker.management_port = int(os.getenv("BROKER_MANAGEMENT_PORT"))
            if os.getenv("BROKER_USERNAME"):
                broker.username = os.getenv("BROKER_USERNAME")
            if os.getenv("BROKER_PASSWORD"):
                broker.password = os.getenv("BROKER_PASSWORD")
            if os.getenv("BROKER_VHOST"):
                broker.vhost = os.getenv("BROKER_VHOST")
            if os.getenv("BROKER_DISPLAY_QUEUES") is not None:
                broker.display_queues = parse_queue_list(os.getenv("BROKER_DISPLAY_QUEUES"))
            if os.getenv("BROKER_EXCHANGE"):
                broker.exchange_name = os.getenv("BROKER_EXCHANGE")
            if os.getenv("BROKER_QUEUE"):
                broker.queue_name = os.getenv("BROKER_QUEUE")
            if os.getenv("BROKER_EVENTS_QUEUE"):
                broker.events_queue_name = os.getenv("BROKER_EVENTS_QUEUE")

            for component in list(self.components.health_urls) or list(DEFAULT_HEALTH_URLS):
                value = os.getenv(f"COMPONENT_HEALTH_{component.upper()}_URL")
                if value:
                    self.components.health_urls[component] = value

            if os.getenv("DISCOVERY_ENABLED"):
                self.discovery.enabled = _env_bool(os.getenv("DISCOVERY_ENABLED"))
            if os.getenv("DISCOVERY_REGISTRY_URL"):
                self.discovery.registry_url = os.getenv("DISCOVERY_REGISTRY_URL")
            if os.getenv("DISCOVERY_SERVICE_MAPPINGS"):
                self.discovery.service_mappings = parse_service_mappings(os.getenv("DISCOVERY_SERVICE_MAPPINGS"))

            if os.getenv("SCORING_ENABLED"):
                self.scoring.enabled = _env_bool(os.getenv("SCORING_ENABLED"))
            if os.getenv("SCORING_DATABASE_URL"):
                self.scoring.database_url = os.getenv("SCORING_DATABASE_URL")

            if os.getenv("HTTP_CONNECT_TIMEOUT"):
                self.http.connect_timeout = float(os.getenv("HTTP_CONNECT_TIMEOUT"))
            if os.getenv("HTTP_READ_TIMEOUT"):
                self.http.read_timeout = float(os.getenv("HTTP_READ_TIMEOUT"))

            if os.getenv("METRICS_COLLECTION_INTERVAL"):
                self.collection_interval = float(os.getenv("METRICS_COLLECTION_INTERVAL"))
            if os.getenv("HEALTH_CHECK_INTERVAL"):
                self.health_interval = float(os.getenv("HEALTH_CHECK_INTERVAL"))
            if os.getenv("THROUGHPUT_INTERVAL"):
                self.throughput_interval = float(os.getenv("THROUGHPUT_INTERVAL"))

            if os.getenv("MONITOR_HOST"):
                self.host = os.getenv("MONITOR_HOST")
            if os.getenv("MONITOR_PORT"):
                self.port = int(os.getenv("MONITOR_PORT"))
            if os.getenv("LOG_LEVEL"):
                self.log_level = os.getenv("LOG_LEVEL")
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment value: {e}", original_error=e)

        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "MonitorConfig":
        """Load configuration from a YAML file; missing keys keep defaults."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load YAML config from {path}", original_error=e)

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Build from a nested mapping (the YAML layout)."""
        config = cls()
        try:
            if "broker" in data:
                b = dict(data["broker"] or {})
                if isinstance(b.get("display_queues"), str):
                    b["display_queues"] = parse_queue_list(b["display_queues"])
                config.broker = BrokerConfig(**b)
            if "components" in data:
                c = dict(data["components"] or {})
                health_urls = dict(DEFAULT_HEALTH_URLS)
                health_urls.update(c.pop("health_urls", {}) or {})
                config.components = ComponentConfig(health_urls=health_urls, **c)
            if "discovery" in data:
                d = dict(data["discovery"] or {})
                if isinstance(d.get("service_mappings"), str):
                    d["service_mappings"] = parse_service_mappings(d["service_mappings"])
                config.discovery = DiscoveryConfig(**d)
            if "scoring" in data:
                config.scoring = ScoringConfig(**(data["scoring"] or {}))
            if "http" in data:
                config.http = HttpConfig(**(data["http"] or {}))
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}", original_error=e)

        for key in ("collection_interval", "health_interval", "throughput_interval", "host", "port", "log_level"):
            if key in data:
                setattr(config, key, data[key])
        return config

    # =========================================================
    # VALIDATION
    # =========================================================

    def validate(self) -> "MonitorConfig":
        """Raise ConfigurationError on unusable settings."""
        for key in ("collection_interval", "health_interval", "throughput_interval"):
            if float(getattr(self, key)) <= 0:
                raise ConfigurationError(f"{key} must be positive", config_key=key)
        if self.http.connect_timeout <= 0 or self.http.read_timeout <= 0:
            raise ConfigurationError("HTTP timeouts must be positive", config_key="http")
        if self.discovery.enabled and not self.discovery.registry_url:
            raise ConfigurationError(
                "Discovery is enabled but no registry URL is configured",
                config_key="discovery.registry_url",
            )
        if self.scoring.enabled and not self.scoring.database_url:
            raise ConfigurationError(
                "Scoring is enabled but no database URL is configured",
                config_key="scoring.database_url",
            )
        if not self.broker.exchange_name:
            raise ConfigurationError("An exchange name is required", config_key="broker.exchange_name")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, secrets masked."""
        return {
            "broker": self.broker.to_dict(),
            "components": self.components.to_dict(),
            "discovery": self.discovery.to_dict(),
            "scoring": self.scoring.to_dict(),
            "http": self.http.to_dict(),
            "collection_interval": self.collection_interval,
            "health_interval": self.health_interval,
            "throughput_interval": self.throughput_interval,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
        }
