"""Tests for component wiring and logging setup."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from pathlib import Path

import httpx
import pytest
from support import RecordingTransport, json_response, nominatim_hit, ors_directions_body

from RideLink.MapServices import MapServices, MapServicesConfig
from RideLink.MapServices.bootstrap import FALLBACK_TILES, build_cache_store
from RideLink.MapServices.cache_store import MemoryCacheStore, SQLiteCacheStore
from RideLink.MapServices.config.models import CacheConfig
from RideLink.MapServices.logging_utils import JSONFormatter, mask_sensitive_data, setup_logging


def _config(**overrides) -> MapServicesConfig:
    data = {
        "cache": {"backend": "memory", "sweep_on_startup": False},
        "offline": {"probe_urls": ["https://probe.test"]},
    }
    data.update(overrides)
    return MapServicesConfig.model_validate(data)


def _router(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "probe.test":
        return httpx.Response(204)
    if host == "nominatim.openstreetmap.org":
        return json_response([nominatim_hit()])
    if host == "api.openrouteservice.org":
        return json_response(ors_directions_body())
    raise httpx.ConnectError("refused", request=request)


class TestWiring:
    """MapServices builds one graph per configuration."""

    def test_free_tier_only_without_google_key(self) -> None:
        services = MapServices(_config(), client=RecordingTransport(_router).client())
        assert services.google is None
        assert services.routing.fallback is None
        assert not services.orchestrator.fallback_enabled
        assert services.tiles.fallback is None
        assert isinstance(services.cache.store, MemoryCacheStore)

    def test_google_fallback_when_configured(self) -> None:
        services = MapServices(
            _config(google={"api_key": "g"}), client=RecordingTransport(_router).client()
        )
        assert services.google is not None
        assert services.geocoding.fallback is services.google
        assert services.routing.fallback is services.google
        assert [e.name for e in services.orchestrator.estimators] == [
            "openrouteservice",
            "google_maps",
        ]

    def test_fallback_disabled_ignores_key(self) -> None:
        services = MapServices(
            _config(google={"api_key": "g"}, enable_fallback=False),
            client=RecordingTransport(_router).client(),
        )
        assert services.google is None

    def test_fallback_tile_server(self) -> None:
        services = MapServices(
            _config(endpoints={"fallback_tile_url_template": "https://b.tile.test/{z}/{x}/{y}.png"}),
            client=RecordingTransport(_router).client(),
        )
        assert services.tiles.fallback is not None
        assert services.tiles.fallback.name == FALLBACK_TILES

    def test_ors_daily_limit_overrides_policy(self) -> None:
        services = MapServices(
            _config(openrouteservice={"api_key": "o", "daily_limit": 10}),
            client=RecordingTransport(_router).client(),
        )
        assert services.routing.remaining_daily_requests() == 10

    def test_cache_backends(self, tmp_path: Path) -> None:
        assert isinstance(build_cache_store(CacheConfig(backend="memory")), MemoryCacheStore)
        store = build_cache_store(CacheConfig(path=tmp_path / "c.sqlite"))
        try:
            assert isinstance(store, SQLiteCacheStore)
        finally:
            store.close()

    def test_unopenable_cache_falls_back_to_memory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        services = MapServices(
            _config(cache={"path": str(blocker / "sub" / "c.sqlite"), "sweep_on_startup": True}),
            client=RecordingTransport(_router).client(),
        )
        assert isinstance(services.cache.store, MemoryCacheStore)
        assert services.cache.get_stats()["total_entries"] == 0


class TestLifecycle:
    """Entering a session probes connectivity; leaving it stops background work."""

    def test_start_checks_connectivity(self) -> None:
        def offline_router(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async def scenario() -> bool:
            async with MapServices(
                _config(), client=RecordingTransport(offline_router).client()
            ) as services:
                return services.gate.is_online

        assert asyncio.run(scenario()) is False

    def test_startup_check_can_be_disabled(self) -> None:
        transport = RecordingTransport(_router)
        config = _config(
            offline={"probe_urls": ["https://probe.test"], "check_on_start": False}
        )

        async def scenario() -> bool:
            async with MapServices(config, client=transport.client()) as services:
                return services.gate.is_online

        assert asyncio.run(scenario()) is True
        assert transport.calls_to("probe.test") == []

    def test_monitoring_runs_while_session_is_open(self) -> None:
        transport = RecordingTransport(_router)
        config = _config(monitoring={"enabled": True, "interval_s": 0.01})

        async def scenario():
            async with MapServices(config, client=transport.client()) as services:
                assert services.monitor.is_running
                await asyncio.sleep(0.05)
                monitor = services.monitor
            return monitor

        monitor = asyncio.run(scenario())
        assert not monitor.is_running
        assert monitor.health.get("nominatim").total_requests >= 2


class TestEndToEnd:
    """A request travels through the whole graph."""

    def test_geocode_and_route(self) -> None:
        transport = RecordingTransport(_router)
        config = _config(openrouteservice={"api_key": "o"})

        async def scenario():
            async with MapServices(
                config, client=transport.client(), today=lambda: date(2024, 5, 1)
            ) as services:
                places = await services.geocoding.search("Connaught Place")
                route = await services.orchestrator.priced_route(
                    places[0].coordinates, places[0].coordinates
                )
                return places, route, services.analytics.get_analytics_summary()

        places, route, summary = asyncio.run(scenario())
        assert places[0].name == "Connaught Place"
        assert route.estimated_fare == pytest.approx(50.0 + 15.0 * 5.23 + 2.0 * 13)
        assert summary["total_requests"] == 2
        assert [r.url.host for r in transport.requests] == [
            "probe.test",
            "nominatim.openstreetmap.org",
            "api.openrouteservice.org",
        ]


class TestLogging:
    """Masking, JSON records and handler setup."""

    def test_mask_sensitive_data(self) -> None:
        masked = mask_sensitive_data(
            {
                "api_key": "secret",
                "nested": [{"Authorization": "token"}],
                "url": "https://maps.test/geocode/json?address=x&key=abc123",
            }
        )
        assert masked["api_key"] == "***"
        assert masked["nested"][0]["Authorization"] == "***"
        assert masked["url"] == "https://maps.test/geocode/json?address=x&key=***"

    def test_json_formatter_fields(self) -> None:
        record = logging.LogRecord(
            "RideLink.MapServices.fallback", logging.INFO, __file__, 1, "attempt %s", ("route",), None
        )
        record.op_id = "route"
        record.tier = "primary"
        record.latency_ms = 12
        record.outcome = "success"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "attempt route"
        assert entry["op_id"] == "route"
        assert entry["tier"] == "primary"
        assert entry["latency_ms"] == 12
        assert entry["outcome"] == "success"
        assert entry["timestamp"].endswith("Z")

    def test_setup_logging_writes_jsonl(self, tmp_path: Path) -> None:
        logger = setup_logging(level="DEBUG", log_dir=tmp_path)
        logging.getLogger("RideLink.MapServices.clients").info(
            "GET https://maps.test/?key=abc123", extra={"provider": "google_maps"}
        )
        for handler in logger.handlers:
            handler.flush()
        [log_file] = list(tmp_path.glob("mapservices-*.jsonl"))
        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["provider"] == "google_maps"
        assert "abc123" not in entry["message"]

    def test_setup_logging_is_idempotent(self) -> None:
        logger = setup_logging(level="WARNING")
        count = len(logger.handlers)
        setup_logging(level="WARNING")
        assert len(logger.handlers) == count
        assert logger.propagate is False
