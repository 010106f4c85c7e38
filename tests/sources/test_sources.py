"""
Tests for Pipeline Sources.

============================================================
PURPOSE
============================================================
Tests for the HTTP-facing layer: broker management client,
service registry, instance discovery and instance collector.

TEST PRINCIPLES:
- No network: the request helpers are replaced by AsyncMock
- Verify URL and credential handling
- Verify error classification

============================================================
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from sources import (
    DEFAULT_SERVICE_MAPPINGS,
    BrokerManagementClient,
    DiscoveryError,
    EurekaServiceRegistry,
    FetchError,
    InstanceCollector,
    ParseError,
    QueueStats,
    RegistryInstanceDiscovery,
    ServiceInstance,
    StaticInstanceDiscovery,
    dashboard_url_for,
    parse_queue_list,
    parse_service_mappings,
    resolve_management_endpoint,
)
from sources.models import ExchangeCounters


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def broker():
    """Broker client with no real session."""
    return BrokerManagementClient(host="rabbit", username="user", password="secret")


@pytest.fixture
def eureka_app():
    """Registry answer with one UP, one DOWN and one secure instance."""
    return {
        "application": {
            "name": "IMC-TELEMETRY-PROCESSOR",
            "instance": [
                {
                    "instanceId": "proc-1",
                    "hostName": "10.0.0.5",
                    "status": "UP",
                    "port": {"$": 8080, "@enabled": "true"},
                    "securePort": {"$": 8443, "@enabled": "false"},
                },
                {
                    "instanceId": "proc-2",
                    "hostName": "10.0.0.6",
                    "status": "DOWN",
                    "port": {"$": 8080, "@enabled": "true"},
                },
                {
                    "instanceId": "proc-3",
                    "ipAddr": "10.0.0.7",
                    "status": "UP",
                    "port": {"$": 8080, "@enabled": "true"},
                    "securePort": {"$": 8443, "@enabled": "true"},
                },
            ],
        }
    }


# ============================================================
# ENDPOINT RESOLUTION TESTS
# ============================================================

class TestManagementEndpoint:
    """Tests for resolve_management_endpoint."""

    def test_credentials_lifted_from_url(self):
        url, auth = resolve_management_endpoint(api_url="http://admin:pw@rabbit:15672/api")

        assert url == "http://rabbit:15672/api"
        assert auth == aiohttp.BasicAuth("admin", "pw").encode()

    def test_url_without_credentials_sends_no_header(self):
        url, auth = resolve_management_endpoint(api_url="http://rabbit:15672/api/")

        assert url == "http://rabbit:15672/api"
        assert auth is None

    def test_built_from_host_and_port(self):
        url, auth = resolve_management_endpoint(host="broker", management_port=15673,
                                                username="u", password="p")

        assert url == "http://broker:15673/api"
        assert auth == aiohttp.BasicAuth("u", "p").encode()

    def test_host_given_as_url_keeps_hostname(self):
        url, _ = resolve_management_endpoint(host="http://broker.local:5672", management_port=15672)

        assert url == "http://broker.local:15672/api"

    def test_dashboard_url(self):
        assert dashboard_url_for("http://rabbit:15672/api") == "http://rabbit:15672/"
        assert dashboard_url_for("http://rabbit:15672/api/") == "http://rabbit:15672/"
        assert dashboard_url_for("http://rabbit:15672/mgmt") == "http://rabbit:15672/mgmt/"


class TestConfigParsing:
    """Tests for the comma-separated config helpers."""

    def test_queue_list(self):
        assert parse_queue_list(" work , ,events") == ["work", "events"]
        assert parse_queue_list(None) == []
        assert parse_queue_list("") == []

    def test_blank_mappings_use_defaults(self):
        assert parse_service_mappings("") == DEFAULT_SERVICE_MAPPINGS
        assert parse_service_mappings(None) == DEFAULT_SERVICE_MAPPINGS

    def test_malformed_pairs_skipped(self):
        mappings = parse_service_mappings("generator:gen-svc, broken ,jdbc:sink-svc,a:b:c")

        assert mappings == {"generator": "gen-svc", "jdbc": "sink-svc"}


# ============================================================
# BROKER CLIENT TESTS
# ============================================================

class TestBrokerManagementClient:
    """Tests for BrokerManagementClient."""

    def test_url_segments_are_percent_encoded(self, broker):
        assert broker._url("queues", "/", "work queue") == "http://rabbit:15672/api/queues/%2F/work%20queue"

    def test_dashboard_url(self, broker):
        assert broker.dashboard_url == "http://rabbit:15672/"

    @pytest.mark.asyncio
    async def test_get_queue_sends_auth(self, broker):
        payload = {
            "messages": 12,
            "messages_ready": 10,
            "messages_unacknowledged": 2,
            "message_stats": {
                "publish": 500,
                "deliver_get": 488,
                "publish_details": {"rate": 4.5},
                "deliver_get_details": {"rate": 4.0},
            },
        }
        with patch.object(broker, "_request_json", AsyncMock(return_value=payload)) as request:
            stats = await broker.get_queue("telematics_work_queue")

        assert stats.messages == 12
        assert stats.messages_published == 500
        assert stats.messages_delivered == 488
        assert stats.publish_rate == 4.5

        args, kwargs = request.call_args
        assert args[0] == "http://rabbit:15672/api/queues/%2F/telematics_work_queue"
        assert kwargs["headers"] == {"Authorization": aiohttp.BasicAuth("user", "secret").encode()}

    @pytest.mark.asyncio
    async def test_queue_depth(self, broker):
        with patch.object(broker, "_request_json", AsyncMock(return_value={"messages": 7})):
            assert await broker.get_queue_depth("q") == 7

    @pytest.mark.asyncio
    async def test_list_queues_applies_allow_list(self):
        client = BrokerManagementClient(host="rabbit", display_queues=["a", "c"])
        queues = [{"name": "a"}, {"name": "b"}, {"name": "c"}]

        with patch.object(client, "_request_json", AsyncMock(return_value=queues)):
            result = await client.list_queues()

        assert [q["name"] for q in result] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_list_queues_without_allow_list(self, broker):
        queues = [{"name": "a"}, {"name": "b"}]
        with patch.object(broker, "_request_json", AsyncMock(return_value=queues)):
            assert await broker.list_queues() == queues

    @pytest.mark.asyncio
    async def test_exchange_counters(self, broker):
        payload = {
            "message_stats": {
                "publish_in": 100,
                "publish_out": 200,
                "publish_in_details": {"rate": 1.5},
                "publish_out_details": {"rate": 3.0},
            }
        }
        with patch.object(broker, "_request_json", AsyncMock(return_value=payload)):
            counters = await broker.get_exchange_counters("telematics_exchange")

        assert counters == ExchangeCounters(publish_in=100, publish_out=200, rate_in=1.5, rate_out=3.0)

    @pytest.mark.asyncio
    async def test_exchange_without_stats(self, broker):
        with patch.object(broker, "_request_json", AsyncMock(return_value={"name": "x"})):
            assert await broker.get_exchange_counters("x") is None

    @pytest.mark.asyncio
    async def test_bound_queues_deduplicated(self, broker):
        bindings = [
            {"destination": "hdfs_queue"},
            {"destination": "jdbc_queue"},
            {"destination": "hdfs_queue"},
            "garbage",
        ]
        with patch.object(broker, "_request_json", AsyncMock(return_value=bindings)) as request:
            result = await broker.get_bound_queues("telematics_exchange")

        assert result == ["hdfs_queue", "jdbc_queue"]
        assert request.call_args[0][0].endswith("/exchanges/%2F/telematics_exchange/bindings/source")

    @pytest.mark.asyncio
    async def test_aliveness_and_version(self, broker):
        with patch.object(broker, "_request_json", AsyncMock(return_value={"status": "ok"})):
            assert await broker.check_aliveness() == "ok"
        with patch.object(broker, "_request_json", AsyncMock(return_value={"rabbitmq_version": "3.12.1"})):
            assert await broker.get_version() == "3.12.1"

    @pytest.mark.asyncio
    async def test_fetch_errors_propagate(self, broker):
        error = FetchError("HTTP 503", source_name="broker", status_code=503)
        with patch.object(broker, "_request_json", AsyncMock(side_effect=error)):
            with pytest.raises(FetchError) as exc_info:
                await broker.get_queue_depth("q")

        assert exc_info.value.status_code == 503



class TestQueueStats:
    """Tests for QueueStats parsing."""

    def test_missing_fields_read_as_zero(self):
        stats = QueueStats.from_api("q", {"messages": "n/a"})

        assert stats.messages == 0
        assert stats.messages_published == 0
        assert stats.delivery_rate == 0.0

    def test_to_dict_keys(self):
        data = QueueStats(name="q", messages_published=3).to_dict()

        assert data["messages_published_to_queue"] == 3
        assert data["name"] == "q"


# ============================================================
# DISCOVERY TESTS
# ============================================================

class TestEurekaServiceRegistry:
    """Tests for EurekaServiceRegistry."""

    @pytest.mark.asyncio
    async def test_only_up_instances(self, eureka_app):
        registry = EurekaServiceRegistry("http://eureka:8761/eureka/")

        with patch.object(registry, "_request_json", AsyncMock(return_value=eureka_app)) as request:
            instances = await registry.get_instances("imc-telemetry-processor")

        assert request.call_args[0][0] == "http://eureka:8761/eureka/apps/IMC-TELEMETRY-PROCESSOR"
        assert [i.instance_id for i in instances] == ["proc-1", "proc-3"]
        assert instances[0].base_url == "http://10.0.0.5:8080"
        assert instances[1].base_url == "https://10.0.0.7:8443"

    @pytest.mark.asyncio
    async def test_single_instance_object(self):
        registry = EurekaServiceRegistry("http://eureka:8761/eureka")
        payload = {
            "application": {
                "instance": {"hostName": "gen", "status": "UP", "port": {"$": "8082"}},
            }
        }
        with patch.object(registry, "_request_json", AsyncMock(return_value=payload)):
            instances = await registry.get_instances("imc-telematics-gen")

        assert len(instances) == 1
        assert instances[0].base_url == "http://gen:8082"

    @pytest.mark.asyncio
    async def test_unknown_service_is_empty(self):
        registry = EurekaServiceRegistry("http://eureka:8761/eureka")
        error = FetchError("HTTP 404", status_code=404)

        with patch.object(registry, "_request_json", AsyncMock(side_effect=error)):
            assert await registry.get_instances("nope") == []

    @pytest.mark.asyncio
    async def test_registry_failure_raises_discovery_error(self):
        registry = EurekaServiceRegistry("http://eureka:8761/eureka")
        error = FetchError("HTTP 500", status_code=500)

        with patch.object(registry, "_request_json", AsyncMock(side_effect=error)):
            with pytest.raises(DiscoveryError):
                await registry.get_instances("imc-telematics-gen")

    @pytest.mark.asyncio
    async def test_get_services(self):
        registry = EurekaServiceRegistry("http://eureka:8761/eureka")
        payload = {"applications": {"application": [{"name": "IMC-HDFS-SINK"}, {"name": "IMC-TELEMATICS-GEN"}]}}

        with patch.object(registry, "_request_json", AsyncMock(return_value=payload)):
            assert await registry.get_services() == ["imc-hdfs-sink", "imc-telematics-gen"]


class TestInstanceDiscovery:
    """Tests for the discovery strategies."""

    @pytest.mark.asyncio
    async def test_static_discovery(self):
        discovery = StaticInstanceDiscovery({"svc": "http://svc:8080/", "empty": ""})

        assert discovery.mode == "static"
        assert await discovery.resolve("svc") == ["http://svc:8080"]
        assert await discovery.resolve("empty") == []
        assert await discovery.resolve("unknown") == []

    @pytest.mark.asyncio
    async def test_registry_discovery(self):
        registry = AsyncMock()
        registry.get_instances = AsyncMock(return_value=[
            ServiceInstance("svc", "a", 8080),
            ServiceInstance("svc", "b", 8081),
        ])
        discovery = RegistryInstanceDiscovery(registry)

        assert discovery.mode == "discovery"
        assert await discovery.resolve("svc") == ["http://a:8080", "http://b:8081"]

    @pytest.mark.asyncio
    async def test_registry_discovery_never_raises(self):
        registry = AsyncMock()
        registry.get_instances = AsyncMock(side_effect=DiscoveryError("down", service_name="svc"))
        discovery = RegistryInstanceDiscovery(registry)

        assert await discovery.resolve("svc") == []


# ============================================================
# INSTANCE COLLECTOR TESTS
# ============================================================

class TestInstanceCollector:
    """Tests for InstanceCollector."""

    @pytest.mark.asyncio
    async def test_fetch_metrics(self):
        collector = InstanceCollector()
        text = "# HELP x\nrows_total 42.0\nevents_total{app=\"p\"} 7\n"

        with patch.object(collector, "_request_text", AsyncMock(return_value=text)) as request:
            snapshot = await collector.fetch_metrics("http://p:8080/")

        assert request.call_args[0][0] == "http://p:8080/actuator/prometheus"
        assert snapshot == {"rows_total": 42.0, "events_total{app=\"p\"}": 7.0}

    @pytest.mark.asyncio
    async def test_health_up(self):
        collector = InstanceCollector()
        body = {"status": "UP", "components": {"db": {"status": "UP"}}}

        with patch.object(collector, "_request_json", AsyncMock(return_value=body)):
            reading = await collector.fetch_health("http://p:8080")

        assert reading.healthy is True
        assert reading.status == "UP"
        assert reading.url == "http://p:8080/actuator/health"
        assert "db" in reading.details

    @pytest.mark.asyncio
    async def test_health_503_keeps_reported_status(self):
        collector = InstanceCollector()
        error = FetchError("HTTP 503", status_code=503, response_body='{"status":"DOWN"}')

        with patch.object(collector, "_request_json", AsyncMock(side_effect=error)):
            reading = await collector.probe_url("http://p:8080/actuator/health")

        assert reading.healthy is False
        assert reading.status == "DOWN"

    @pytest.mark.asyncio
    async def test_health_connection_failure_is_down(self):
        collector = InstanceCollector()
        error = FetchError("Connection error: refused", source_name="instance")

        with patch.object(collector, "_request_json", AsyncMock(side_effect=error)):
            reading = await collector.probe_url("http://p:8080/actuator/health")

        assert reading.healthy is False
        assert reading.status == "DOWN"
        assert reading.error == "Connection error: refused"


class TestUndecodableBodies:
    """Bytes that are not valid UTF-8 never escape the collector."""

    @staticmethod
    def make_app():
        async def bad_health(request):
            return web.Response(body=b'{"status": "\xff\xfe"}', content_type="application/json", charset="utf-8")

        async def good_health(request):
            return web.json_response({"status": "UP"})

        async def metrics(request):
            return web.Response(
                body=b"rows_total 5\nerrors_total 3\xff\n",
                content_type="text/plain",
                charset="utf-8",
            )

        app = web.Application()
        app.router.add_get("/bad/actuator/health", bad_health)
        app.router.add_get("/good/actuator/health", good_health)
        app.router.add_get("/good/actuator/prometheus", metrics)
        return app

    @pytest.mark.asyncio
    async def test_health_reading_not_raised(self):
        collector = InstanceCollector()
        async with TestServer(self.make_app()) as server:
            bad = await collector.fetch_health(str(server.make_url("/bad")))
            good = await collector.fetch_health(str(server.make_url("/good")))
        await collector.close()

        assert bad.healthy is False
        assert good.healthy is True

    @pytest.mark.asyncio
    async def test_only_the_bad_metric_line_is_dropped(self):
        collector = InstanceCollector()
        async with TestServer(self.make_app()) as server:
            snapshot = await collector.fetch_metrics(str(server.make_url("/good")))
        await collector.close()

        assert snapshot == {"rows_total": 5.0}

    @pytest.mark.asyncio
    async def test_decode_failure_is_parse_error(self):
        collector = InstanceCollector()
        response = MagicMock()
        response.status = 200
        response.text = AsyncMock(side_effect=UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.closed = False
        session.get = MagicMock(return_value=context)
        collector._session = session

        with pytest.raises(ParseError):
            await collector.fetch_raw("http://p:8080")
