"""Tests for MapServicesConfig models and the layered loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from RideLink.MapServices.config import (
    EndpointsConfig,
    FarePolicy,
    MapServicesConfig,
    ProviderRatePolicy,
    export_config_schema,
    load_config,
)


class TestModels:
    """Defaults, validation and helpers."""

    def test_defaults(self) -> None:
        config = MapServicesConfig()
        assert config.endpoints.nominatim_url == "https://nominatim.openstreetmap.org"
        assert config.fare == FarePolicy(base=50.0, per_km=15.0, per_minute=2.0, min_fare=25.0)
        assert config.rate_limits["nominatim"].rates == ["1/SECOND"]
        assert config.rate_limits["openrouteservice"].daily_quota == 2000
        assert config.enable_fallback is True

    def test_frozen(self) -> None:
        config = MapServicesConfig()
        with pytest.raises(ValidationError):
            config.enable_fallback = False  # type: ignore[misc]

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MapServicesConfig.model_validate({"enable_fallbak": True})

    def test_rate_policy_format(self) -> None:
        assert ProviderRatePolicy(rates=["40/minute"]).rates
        with pytest.raises(ValidationError):
            ProviderRatePolicy(rates=["forty per minute"])

    def test_tile_template_needs_placeholders(self) -> None:
        with pytest.raises(ValidationError):
            EndpointsConfig(tile_url_template="https://tiles.example/{z}/{x}.png")

    def test_fallback_requires_key(self) -> None:
        assert not MapServicesConfig().fallback_available
        keyed = MapServicesConfig.model_validate({"google": {"api_key": "g-key"}})
        assert keyed.fallback_available
        disabled = MapServicesConfig.model_validate(
            {"google": {"api_key": "g-key"}, "enable_fallback": False}
        )
        assert not disabled.fallback_available

    def test_presets(self) -> None:
        dev = MapServicesConfig.development()
        assert dev.http.timeout_s == 5.0
        assert dev.http.max_retries == 1
        assert not dev.enable_fallback
        assert MapServicesConfig.production().enable_fallback

    def test_config_hash_is_deterministic(self) -> None:
        assert MapServicesConfig().config_hash() == MapServicesConfig().config_hash()
        other = MapServicesConfig.model_validate({"enable_fallback": False})
        assert other.config_hash() != MapServicesConfig().config_hash()

    def test_redacted_masks_keys(self) -> None:
        config = MapServicesConfig.model_validate(
            {"google": {"api_key": "secret-g"}, "openrouteservice": {"api_key": "secret-o"}}
        )
        dumped = json.dumps(config.redacted())
        assert "secret-g" not in dumped
        assert "secret-o" not in dumped


class TestLoader:
    """File < environment < overrides."""

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "maps.yaml"
        path.write_text("fare:\n  base: 60\nenable_fallback: false\n", encoding="utf-8")
        config = load_config(path, environ={})
        assert config.fare.base == 60.0
        assert config.enable_fallback is False

    def test_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "maps.json"
        path.write_text(json.dumps({"http": {"timeout_s": 3}}), encoding="utf-8")
        assert load_config(path, environ={}).http.timeout_s == 3.0

    def test_environment_overrides_file(self, tmp_path: Path) -> None:
        path = tmp_path / "maps.yaml"
        path.write_text("fare:\n  base: 60\n", encoding="utf-8")
        config = load_config(
            path,
            environ={
                "RIDELINK_FARE__BASE": "70",
                "RIDELINK_GOOGLE__API_KEY": "12345",
                "RIDELINK_LOG_DIR": "/var/log/ridelink",
                "UNRELATED": "1",
            },
        )
        assert config.fare.base == 70.0
        assert config.google.api_key == "12345"

    def test_overrides_win(self, tmp_path: Path) -> None:
        config = load_config(
            environ={"RIDELINK_FARE__BASE": "70"}, overrides={"fare": {"base": 80}}
        )
        assert config.fare.base == 80.0
        assert config.fare.per_km == 15.0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="not found"):
            load_config(tmp_path / "absent.yaml", environ={})

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "maps.toml"
        path.write_text("x = 1", encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported"):
            load_config(path, environ={})

    def test_schema_export(self) -> None:
        schema = export_config_schema()
        assert "endpoints" in schema["properties"]
        assert "rate_limits" in schema["properties"]
