"""
Tests for the Monitoring Package.

============================================================
PURPOSE
============================================================
Tests for configuration, periodic tasks, the pipeline
collector, the monitoring service and its HTTP API.

TEST PRINCIPLES:
- No read endpoint fails because a pipeline component is down
- Last known values are reused and flagged as stale
- Baseline capture / clear are safe to repeat

============================================================
"""

import asyncio
import json
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

import app as monitor_app
from component_health import (
    ComponentHealthRegistry,
    DiscoveryHealthProbe,
    HealthAggregator,
    ProbeResult,
    StaticUrlHealthProbe,
)
from metrics_engine import BaselineService, ExchangeThroughputService, HdfsSinkEstimateService
from monitoring import (
    DashboardEncoder,
    MonitorConfig,
    MonitoringService,
    PeriodicTask,
    PipelineMetricsCollector,
    SnapshotStatus,
    setup_monitoring_routes,
)
from monitoring.config import DEFAULT_HEALTH_URLS
from scoring import ScoreSummaryRepository
from sources import ConfigurationError, ExchangeCounters, FetchError, HealthReading, QueueStats


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def broker():
    """Broker client stub."""
    broker = MagicMock()
    broker.vhost = "/"
    broker.dashboard_url = "http://rabbit:15672/"
    broker.display_queues = []
    broker.check_aliveness = AsyncMock(return_value="ok")
    broker.get_version = AsyncMock(return_value="3.12.1")
    broker.get_queue_depth = AsyncMock(return_value=42)
    broker.get_queue = AsyncMock(side_effect=lambda name: QueueStats(name=name, messages=3, messages_published=9))
    broker.list_queues = AsyncMock(return_value=[{"name": "telematics_work_queue"}])
    broker.get_bound_queues = AsyncMock(return_value=["hdfs_queue", "jdbc_queue"])
    broker.get_exchange_counters = AsyncMock(side_effect=[
        ExchangeCounters(publish_in=100, publish_out=200),
        ExchangeCounters(publish_in=150, publish_out=300),
        ExchangeCounters(publish_in=200, publish_out=400),
    ])
    return broker


@pytest.fixture
def health():
    """Static-mode health aggregator whose collector reports every URL UP."""
    collector = MagicMock()
    collector.probe_url = AsyncMock(side_effect=lambda url: HealthReading(url=url, healthy=True, status="UP"))
    probe = StaticUrlHealthProbe(DEFAULT_HEALTH_URLS, collector)
    registry = ComponentHealthRegistry(probe.components, mode=probe.mode)
    return HealthAggregator(registry, probe)


@pytest.fixture
def service(broker, health):
    """MonitoringService over stubs; the processor is measured, the HDFS sink estimated."""
    config = MonitorConfig()
    throughput = ExchangeThroughputService(broker, config.broker.exchange_name)

    processor = MagicMock()
    processor.get_metrics = AsyncMock(return_value={
        "messages_in": 120,
        "events_captured": 30,
        "messages_out": 118,
        "invalid_messages": 2,
        "status": "healthy",
    })
    processor.get_health = AsyncMock(return_value={"service_name": "imc-telemetry-processor", "status": "UP"})

    baseline = BaselineService()
    baseline.register_source("exchange", throughput.read_cached)
    baseline.register_source("processor", processor.get_metrics)

    return MonitoringService(
        config=config,
        broker=broker,
        pipeline_collector=PipelineMetricsCollector(broker, config.broker.queue_name),
        throughput=throughput,
        baseline=baseline,
        health=health,
        component_services={
            "processor": processor,
            "hdfs_sink": HdfsSinkEstimateService(throughput),
        },
        scores=ScoreSummaryRepository(),
    )


def make_client(service):
    app = web.Application()
    setup_monitoring_routes(app, service)
    return TestClient(TestServer(app))


# ============================================================
# CONFIG TESTS
# ============================================================

class TestMonitorConfig:
    """Tests for MonitorConfig."""

    def test_defaults_are_valid(self):
        config = MonitorConfig().validate()

        assert config.broker.exchange_name == "telematics_exchange"
        assert config.collection_interval == 2.0
        assert config.http.read_timeout == 15.0

    def test_static_metrics_urls_derived_from_health_urls(self):
        urls = MonitorConfig().components.static_metrics_urls()

        assert urls == {
            "imc-telematics-gen": "http://localhost:8082",
            "imc-telemetry-processor": "http://localhost:8080",
            "imc-jdbc-consumer": "http://localhost:8083",
        }

    def test_explicit_metrics_urls_win(self):
        config = MonitorConfig.from_dict({
            "components": {"metrics_urls": {"imc-jdbc-consumer": "http://jdbc:9999"}},
        })

        assert config.components.static_metrics_urls()["imc-jdbc-consumer"] == "http://jdbc:9999"
        assert config.components.health_urls["generator"] == DEFAULT_HEALTH_URLS["generator"]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "monitor.yaml"
        path.write_text(
            "broker:\n"
            "  host: rabbit\n"
            "  display_queues: work, events\n"
            "discovery:\n"
            "  enabled: true\n"
            "  registry_url: http://eureka:8761/eureka\n"
            "  service_mappings: generator:gen-svc\n"
            "health_interval: 4\n"
        )

        config = MonitorConfig.from_yaml(path).validate()

        assert config.broker.host == "rabbit"
        assert config.broker.display_queues == ["work", "events"]
        assert config.discovery.service_mappings == {"generator": "gen-svc"}
        assert config.health_interval == 4

    def test_from_yaml_unknown_key(self, tmp_path):
        path = tmp_path / "monitor.yaml"
        path.write_text("broker:\n  colour: blue\n")

        with pytest.raises(ConfigurationError):
            MonitorConfig.from_yaml(path)

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_yaml(tmp_path / "nope.yaml")

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BROKER_API_URL", "http://u:p@rabbit:15672/api")
        monkeypatch.setenv("BROKER_DISPLAY_QUEUES", "a,b")
        monkeypatch.setenv("DISCOVERY_ENABLED", "true")
        monkeypatch.setenv("DISCOVERY_REGISTRY_URL", "http://eureka:8761/eureka")
        monkeypatch.setenv("HEALTH_CHECK_INTERVAL", "3.5")
        monkeypatch.setenv("COMPONENT_HEALTH_JDBC_URL", "http://jdbc:8083/actuator/health")

        config = MonitorConfig.from_env(tmp_path / "missing.env").validate()

        assert config.broker.api_url == "http://u:p@rabbit:15672/api"
        assert config.broker.display_queues == ["a", "b"]
        assert config.discovery.enabled is True
        assert config.health_interval == 3.5
        assert config.components.health_urls["jdbc"] == "http://jdbc:8083/actuator/health"

    def test_bad_numeric_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MONITOR_PORT", "eighty")

        with pytest.raises(ConfigurationError):
            MonitorConfig.from_env(tmp_path / "missing.env")

    def test_validation(self):
        config = MonitorConfig()
        config.discovery.enabled = True
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.config_key == "discovery.registry_url"

        config = MonitorConfig(collection_interval=0)
        with pytest.raises(ConfigurationError):
            config.validate()

        config = MonitorConfig()
        config.scoring.enabled = True
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_to_dict_masks_secrets(self):
        config = MonitorConfig()
        config.broker.api_url = "http://u:p@rabbit:15672/api"
        config.scoring.database_url = "postgresql://u:p@db/scores"

        data = config.to_dict()

        assert data["broker"]["password"] == "***"
        assert data["broker"]["api_url"] == "***"
        assert data["scoring"]["database_url"] == "***"


# ============================================================
# PERIODIC TASK TESTS
# ============================================================

class TestPeriodicTask:
    """Tests for PeriodicTask."""

    @pytest.mark.asyncio
    async def test_failing_tick_is_counted_not_raised(self):
        task = PeriodicTask("flaky", AsyncMock(side_effect=RuntimeError("boom")), interval=1.0)

        await task.run_once()

        assert task.ticks == 1
        assert task.failures == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        func = AsyncMock()
        task = PeriodicTask("fast", func, interval=0.01)

        await task.start()
        await asyncio.sleep(0.05)
        await task.stop()

        assert func.await_count >= 1
        assert task.is_running is False
        assert task.to_dict()["name"] == "fast"

    @pytest.mark.asyncio
    async def test_delayed_first_tick(self):
        func = AsyncMock()
        task = PeriodicTask("slow", func, interval=10.0, run_immediately=False)

        await task.start()
        await asyncio.sleep(0.01)
        await task.stop()

        func.assert_not_awaited()


# ============================================================
# COLLECTOR TESTS
# ============================================================

class TestPipelineMetricsCollector:
    """Tests for PipelineMetricsCollector."""

    @pytest.mark.asyncio
    async def test_pending_before_first_tick(self, broker):
        collector = PipelineMetricsCollector(broker, "telematics_work_queue")

        snapshot = collector.get_current()

        assert snapshot.status == SnapshotStatus.PENDING
        assert snapshot.queue_depth == -1

    @pytest.mark.asyncio
    async def test_tick_reads_depth_and_health(self, broker):
        collector = PipelineMetricsCollector(broker, "telematics_work_queue")

        snapshot = await collector.tick()

        assert snapshot.queue_depth == 42
        assert snapshot.queue_depth_stale is False
        assert snapshot.broker_healthy is True
        assert snapshot.status == SnapshotStatus.REAL
        assert collector.get_current() is snapshot

    @pytest.mark.asyncio
    async def test_failed_read_reuses_last_known_depth(self, broker):
        collector = PipelineMetricsCollector(broker, "telematics_work_queue")
        await collector.tick()

        broker.get_queue_depth = AsyncMock(side_effect=FetchError("refused"))
        broker.check_aliveness = AsyncMock(side_effect=FetchError("refused"))
        snapshot = await collector.tick()

        assert snapshot.queue_depth == 42
        assert snapshot.queue_depth_stale is True
        assert snapshot.broker_healthy is False

    @pytest.mark.asyncio
    async def test_failed_first_read(self, broker):
        broker.get_queue_depth = AsyncMock(side_effect=FetchError("refused"))
        collector = PipelineMetricsCollector(broker, "telematics_work_queue")

        snapshot = await collector.tick()

        assert snapshot.queue_depth == -1
        assert snapshot.queue_depth_stale is True


# ============================================================
# SERVICE TESTS
# ============================================================

class TestMonitoringService:
    """Tests for MonitoringService."""

    @pytest.mark.asyncio
    async def test_broker_health(self, service):
        health = await service.get_broker_health()

        assert health["status"] == "UP"
        assert health["version"] == "3.12.1"
        assert health["vhost"] == "/"

    @pytest.mark.asyncio
    async def test_broker_down(self, service, broker):
        broker.check_aliveness = AsyncMock(side_effect=FetchError("Connection error: refused"))

        health = await service.get_broker_health()

        assert health["status"] == "DOWN"
        assert "error" in health

    @pytest.mark.asyncio
    async def test_queue_reads_degrade(self, service, broker):
        broker.list_queues = AsyncMock(side_effect=FetchError("HTTP 401", status_code=401))
        broker.get_queue_depth = AsyncMock(side_effect=FetchError("HTTP 404", status_code=404))

        queues = await service.get_all_queues()
        depth = await service.get_queue_depth()

        assert queues["status"] == "error"
        assert queues["queues"] == []
        assert depth["depth"] == -1
        assert depth["queue_name"] == "telematics_work_queue"

    @pytest.mark.asyncio
    async def test_bound_queue_metrics(self, service):
        result = await service.get_bound_queue_metrics()

        assert [q["name"] for q in result["queues"]] == ["hdfs_queue", "jdbc_queue"]
        assert result["queues"][0]["messages_published_to_queue"] == 9

    @pytest.mark.asyncio
    async def test_exchange_throughput_is_baseline_adjusted(self, service, broker):
        throughput = service._throughput
        await throughput.poll()
        await throughput.poll()

        await service.capture_baseline()
        await throughput.poll()
        stats = await service.get_exchange_throughput()

        # Capture read the cached view; only the three polls reached the broker
        assert broker.get_exchange_counters.await_count == 3

        assert stats["total_publish_in"] == 50
        assert stats["total_publish_out"] == 100
        assert stats["baseline_captured"] is True

        await service.clear_baseline()
        raw = await service.get_exchange_throughput()

        assert raw["total_publish_out"] == 200
        assert "baseline_captured" not in raw

    @pytest.mark.asyncio
    async def test_component_metrics_adjusted(self, service):
        await service.capture_baseline()

        metrics = await service.get_component_metrics("processor")

        assert metrics["messages_in"] == 0
        assert metrics["baseline_captured"] is True

    @pytest.mark.asyncio
    async def test_unknown_component(self, service):
        assert await service.get_component_metrics("warp_drive") is None
        assert await service.get_component_instance_health("warp_drive") is None

    @pytest.mark.asyncio
    async def test_estimated_component_health(self, service, health):
        health.registry.record(ProbeResult(component="hdfs", healthy=False, status="DOWN"))

        result = await service.get_component_instance_health("hdfs_sink")

        assert result["status"] == "DOWN"
        assert result["estimated"] is True

    @pytest.mark.asyncio
    async def test_measured_component_health(self, service):
        result = await service.get_component_instance_health("processor")

        assert result["status"] == "UP"

    @pytest.mark.asyncio
    async def test_component_health_before_first_check(self, service):
        result = await service.get_component_health()

        assert result["discovery_mode"] == "static"
        assert all(result["components"].values())

    @pytest.mark.asyncio
    async def test_discovery_info_static(self, service):
        info = await service.get_discovery_info()

        assert info["mode"] == "static"
        assert info["health_urls"] == DEFAULT_HEALTH_URLS

    @pytest.mark.asyncio
    async def test_jdbc_raw_not_configured(self, service):
        raw = await service.get_jdbc_raw_metrics()

        assert raw["status"] == "error"

    @pytest.mark.asyncio
    async def test_scores(self, service):
        summary = await service.get_fleet_summary()
        top = await service.get_top_performers()

        assert summary["total_drivers"] == 15
        assert len(top) == 5

    @pytest.mark.asyncio
    async def test_overview(self, service):
        overview = await service.get_overview()

        assert set(overview) >= {"pipeline", "exchange", "health", "components", "baseline"}
        assert overview["components"]["hdfs_sink"]["estimated"] is True


# ============================================================
# API TESTS
# ============================================================

class TestMonitoringAPI:
    """Tests for the HTTP API."""

    @pytest.mark.asyncio
    async def test_health(self, service):
        async with make_client(service) as client:
            resp = await client.get("/api/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "ok"

    @pytest.mark.asyncio
    async def test_current_metrics(self, service):
        async with make_client(service) as client:
            resp = await client.get("/api/metrics/current")
            body = await resp.json()

        assert body["status"] == "ok"
        assert body["data"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_broker_down_still_answers(self, service, broker):
        broker.check_aliveness = AsyncMock(side_effect=FetchError("Request timed out", timeout=True))

        async with make_client(service) as client:
            resp = await client.get("/api/broker/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["data"]["status"] == "DOWN"

    @pytest.mark.asyncio
    async def test_unknown_component_404(self, service):
        async with make_client(service) as client:
            resp = await client.get("/api/components/warp_drive/metrics")

        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_component_metrics(self, service):
        async with make_client(service) as client:
            resp = await client.get("/api/components/processor/metrics")
            body = await resp.json()

        assert body["data"]["messages_in"] == 120

    @pytest.mark.asyncio
    async def test_capture_then_clear_twice(self, service):
        async with make_client(service) as client:
            captured = await (await client.post("/api/baseline/capture")).json()
            first = await (await client.post("/api/baseline/clear")).json()
            second = await (await client.post("/api/baseline/clear")).json()

        assert captured["data"]["baselines_captured"] is True
        assert first["data"] == second["data"]
        assert second["data"]["baselines_captured"] is False

    @pytest.mark.asyncio
    async def test_unexpected_fault_is_500(self, service):
        with patch.object(service, "get_flow_paths", AsyncMock(side_effect=RuntimeError("broken"))):
            async with make_client(service) as client:
                resp = await client.get("/api/health/flow-paths")
                body = await resp.json()

        assert resp.status == 500
        assert body == {"status": "error", "error": "broken"}

    def test_encoder(self):
        moment = datetime(2024, 5, 1, tzinfo=timezone.utc)
        text = json.dumps({"at": moment, "status": SnapshotStatus.REAL}, cls=DashboardEncoder)

        assert json.loads(text) == {"at": moment.isoformat(), "status": "real"}


# ============================================================
# APPLICATION WIRING TESTS
# ============================================================

class TestApplicationWiring:
    """Tests for app.build_runtime / build_application."""

    def test_static_mode(self):
        runtime = monitor_app.build_runtime(MonitorConfig())

        assert set(runtime.service.component_names) == {
            "telemetry_generator", "processor", "events_processor", "hdfs_sink", "jdbc_sink",
        }
        assert [t.name for t in runtime.tasks] == ["metrics-collection", "health-check", "exchange-throughput"]
        assert runtime.engine is None

    def test_discovery_mode(self):
        config = MonitorConfig()
        config.discovery.enabled = True
        config.discovery.registry_url = "http://eureka:8761/eureka"

        runtime = monitor_app.build_runtime(config)

        assert runtime.service.get_status()["discovery_mode"] == "discovery"
        assert isinstance(runtime.service._health.probe, DiscoveryHealthProbe)
        assert len(runtime.clients) == 3

    def test_cli_overrides(self, monkeypatch):
        monkeypatch.delenv("MONITOR_PORT", raising=False)
        args = monitor_app.create_parser().parse_args(["--port", "9100", "--log-level", "DEBUG"])

        config = monitor_app.load_config(args)

        assert config.port == 9100
        assert config.log_level == "DEBUG"
