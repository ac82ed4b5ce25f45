"""
Tests for configuration management in `dosecore/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Analytics and runner overrides from the environment
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog

from dosecore.config import (
    AnalyticsConfig,
    AppConfig,
    LoggingConfig,
    RunnerConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)

ENV_VARS = (
    "ENVIRONMENT",
    "LOG_LEVEL",
    "VARIABILITY_WINDOW_DAYS",
    "MIN_HISTORY_DAYS",
    "KA_KE_EPSILON",
    "DEFAULT_CURVE_POINTS",
    "DOSE_LOOKBACK_DAYS",
    "DOSE_INTERVAL_MIN_SAMPLES",
    "DEFAULT_DOSES_PER_DAY",
    "MAX_CONCURRENT_ANALYSES",
    "ANALYSIS_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start every test from an empty environment and a cold config cache."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults() -> None:
    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.logging.level == "INFO"
    assert config.analytics == AnalyticsConfig()
    assert config.runner == RunnerConfig()


@pytest.mark.parametrize(
    "raw,expected",
    [("prod", "production"), ("staging", "staging"), ("stage", "staging"), ("DEV", "development")],
)
def test_environment_aliases(
    monkeypatch: pytest.MonkeyPatch, raw: str, expected: str
) -> None:
    monkeypatch.setenv("ENVIRONMENT", raw)
    config = load_config_from_env()

    assert config.environment == expected
    assert config.debug is (expected == "development")
    assert config.logging.format == ("console" if expected == "development" else "json")


def test_log_level_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert load_config_from_env().logging.level == "DEBUG"

    monkeypatch.setenv("LOG_LEVEL", "verbose")
    assert load_config_from_env().logging.level == "INFO"


def test_analytics_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VARIABILITY_WINDOW_DAYS", "5")
    monkeypatch.setenv("MIN_HISTORY_DAYS", "21")
    monkeypatch.setenv("KA_KE_EPSILON", "1e-8")
    monkeypatch.setenv("DOSE_INTERVAL_MIN_SAMPLES", "4")
    monkeypatch.setenv("DEFAULT_DOSES_PER_DAY", "2")
    monkeypatch.setenv("DEFAULT_CURVE_POINTS", "48")
    monkeypatch.setenv("DOSE_LOOKBACK_DAYS", "10")
    monkeypatch.setenv("MAX_CONCURRENT_ANALYSES", "8")
    monkeypatch.setenv("ANALYSIS_TIMEOUT_SECONDS", "2.5")

    config = load_config_from_env()

    assert config.analytics.variability_window_days == 5
    assert config.analytics.min_history_days == 21.0
    assert config.analytics.ka_ke_epsilon == 1e-8
    assert config.analytics.dose_interval_min_samples == 4
    assert config.analytics.default_doses_per_day == 2
    assert config.analytics.default_curve_points == 48
    assert config.analytics.dose_lookback_days == 10.0
    assert config.runner.max_concurrent_analyses == 8
    assert config.runner.analysis_timeout_seconds == 2.5


def test_invalid_override_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VARIABILITY_WINDOW_DAYS", "0")
    with pytest.raises(ValueError):
        load_config_from_env()


def test_get_config_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_config()
    monkeypatch.setenv("ENVIRONMENT", "production")

    assert get_config() is first

    get_config.cache_clear()
    assert get_config().environment == "production"


def test_debug_only_allowed_in_development() -> None:
    with pytest.raises(ValueError, match="debug mode"):
        AppConfig(environment="production", debug=True)

    assert AppConfig(environment="development", debug=True).debug is True


def test_configure_logging_accepts_both_formats() -> None:
    configure_logging(LoggingConfig(level="WARNING", format="json"))
    configure_logging(LoggingConfig(level="DEBUG", format="console"))

    structlog.get_logger("dosecore.test").info("logging_configured")
