"""Tests for the ridelink-maps command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from RideLink.MapServices.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "mapservices.yaml"
    path.write_text(
        "cache:\n"
        "  backend: memory\n"
        "google:\n"
        "  api_key: super-secret\n"
        "fare:\n"
        "  base: 50\n",
        encoding="utf-8",
    )
    return path


def _json_stdout(output: str) -> dict:
    lines = [line for line in output.splitlines() if not line.startswith("# config hash")]
    return json.loads("\n".join(lines))


class TestFare:
    """Offline fare calculation."""

    def test_formula(self, config_file: Path) -> None:
        result = runner.invoke(
            app, ["--config", str(config_file), "fare", "--distance-km", "10", "--duration-min", "20"]
        )
        assert result.exit_code == 0, result.output
        assert "240.00" in result.output
        assert "20min (10.0 km)" in result.output

    def test_minimum_fare(self, config_file: Path) -> None:
        result = runner.invoke(
            app, ["-c", str(config_file), "fare", "--distance-km", "0.1", "--duration-min", "1"]
        )
        assert result.exit_code == 0, result.output
        assert "25.00" in result.output


class TestConfigCommands:
    """Inspection commands never leak credentials."""

    def test_show_json_is_redacted(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "config", "show", "--format", "json"])
        assert result.exit_code == 0, result.output
        assert "super-secret" not in result.output
        data = _json_stdout(result.stdout)
        assert data["google"]["api_key"] == "***"
        assert data["cache"]["backend"] == "memory"

    def test_show_yaml(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "config", "show"])
        assert result.exit_code == 0, result.output
        assert "backend: memory" in result.output

    def test_unknown_format(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "config", "show", "-f", "toml"])
        assert result.exit_code == 2

    def test_schema(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "config", "schema"])
        assert result.exit_code == 0, result.output
        assert "rate_limits" in json.loads(result.stdout)["properties"]

    def test_invalid_config_exits_2(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("cache:\n  backend: redis\n", encoding="utf-8")
        result = runner.invoke(app, ["-c", str(path), "config", "show"])
        assert result.exit_code == 2

    def test_missing_config_exits_2(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["-c", str(tmp_path / "absent.yaml"), "config", "show"])
        assert result.exit_code == 2


class TestCacheCommands:
    """Maintenance against an in-memory cache."""

    def test_stats(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "cache", "stats"])
        assert result.exit_code == 0, result.output
        assert "total" in result.output
        assert "geocode" in result.output

    def test_stats_with_unopenable_database(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        path = tmp_path / "sqlite.yaml"
        path.write_text(
            f"cache:\n  path: {(blocker / 'sub' / 'c.sqlite').as_posix()}\n", encoding="utf-8"
        )
        result = runner.invoke(app, ["-c", str(path), "cache", "stats"])
        assert result.exit_code == 0, result.output
        assert "total" in result.output

    def test_clear_with_yes(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "cache", "clear", "--yes"])
        assert result.exit_code == 0, result.output
        assert "Removed 0 entries" in result.output

    def test_clear_declined(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "cache", "clear"], input="n\n")
        assert result.exit_code == 1

    def test_clear_expired(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "cache", "clear-expired"])
        assert result.exit_code == 0, result.output
        assert "Removed 0 expired entries" in result.output


class TestArguments:
    """Argument validation."""

    def test_bad_point(self, config_file: Path) -> None:
        result = runner.invoke(app, ["-c", str(config_file), "route", "north", "28.5,77.1"])
        assert result.exit_code == 2
