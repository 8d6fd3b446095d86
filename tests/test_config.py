"""Tests for monitor configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from transit_monitor.data.config import MonitorConfig, Thresholds, get_monitor_config
from transit_monitor.exceptions import ConfigurationError

ENV_VARS = [
    "API_TOKEN",
    "GTFS_BASE_URL",
    "GTFS_AGENCY",
    "TRANSIT_DB_PATH",
    "FETCH_INTERVAL",
    "MONITOR_INTERVAL",
    "BATCH_SIZE",
    "FEED_TIMEOUT",
    "STOPPED_THRESHOLD_MINUTES",
    "BUNCHING_DISTANCE_KM",
    "MINIMUM_VEHICLES_PER_ROUTE",
    "OFFLINE_THRESHOLD_MINUTES",
    "ALERT_CAPACITY",
    "QUIET_MODE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_monitor_config.cache_clear()
    yield
    get_monitor_config.cache_clear()


def test_defaults():
    config = MonitorConfig(_env_file=None)

    assert config.fetch_interval_seconds == 30
    assert config.monitor_interval_seconds == 60
    assert config.batch_size == 100
    assert config.alert_capacity == 100
    assert config.quiet_mode is True
    assert config.db_path == Path("data/transit.db")
    assert config.thresholds() == Thresholds()


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("API_TOKEN", "abc")
    monkeypatch.setenv("GTFS_BASE_URL", "https://api.example.com/vehiclepositions")
    monkeypatch.setenv("GTFS_AGENCY", "SF")
    monkeypatch.setenv("FETCH_INTERVAL", "15")
    monkeypatch.setenv("BUNCHING_DISTANCE_KM", "0.5")
    monkeypatch.setenv("QUIET_MODE", "false")

    config = MonitorConfig(_env_file=None)

    assert config.api_token == "abc"
    assert config.fetch_interval_seconds == 15
    assert config.bunching_distance_km == 0.5
    assert config.quiet_mode is False
    assert config.is_feed_configured is True


def test_reads_env_file(tmp_path: Path):
    env_file = tmp_path / ".env"
    env_file.write_text("API_TOKEN=from-file\nGTFS_AGENCY=AC\nMINIMUM_VEHICLES_PER_ROUTE=3\n")

    config = MonitorConfig(_env_file=env_file)

    assert config.api_token == "from-file"
    assert config.agency == "AC"
    assert config.thresholds().minimum_vehicles_per_route == 3


def test_feed_url():
    config = MonitorConfig(
        _env_file=None,
        api_token="abc",
        base_url="https://api.example.com/vehiclepositions",
        agency="SF",
    )

    assert config.feed_url == "https://api.example.com/vehiclepositions?api_key=abc&agency=SF"
    assert config.require_feed() == config.feed_url


def test_require_feed_lists_missing_settings():
    config = MonitorConfig(_env_file=None, base_url="https://api.example.com")

    assert config.is_feed_configured is False
    assert config.feed_url is None
    with pytest.raises(ConfigurationError) as exc_info:
        config.require_feed()

    message = str(exc_info.value)
    assert "API_TOKEN" in message
    assert "GTFS_AGENCY" in message
    assert "GTFS_BASE_URL" not in message


def test_empty_values_count_as_missing():
    config = MonitorConfig(_env_file=None, api_token="", base_url="x", agency="SF")
    assert config.missing_feed_settings == ["API_TOKEN"]


def test_batch_size_must_be_positive():
    with pytest.raises(ValidationError):
        MonitorConfig(_env_file=None, batch_size=0)


def test_thresholds_validate_ranges():
    with pytest.raises(ValidationError):
        Thresholds(minimum_vehicles_per_route=0)
    with pytest.raises(ValidationError):
        Thresholds(bunching_distance_km=-1.0)


def test_get_monitor_config_is_cached(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    assert get_monitor_config() is get_monitor_config()
