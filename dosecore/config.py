"""
Configuration management with environment variable support and validation.

Design principles:
- Analytics thresholds are data, not constants buried in analyzers
- Validation at startup (fail fast)
- Type safety with Pydantic
- Analyzers accept an explicit config and otherwise read the cached get_config()
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class RedFlagConfig(BaseModel):
    """Thresholds of the recent-pattern screen, on the 0-10 mood scales."""

    window_days: float = Field(default=7.0, gt=0.0, description="How far back the screen looks")
    min_entries: int = Field(default=3, ge=1, description="Mood entries needed to screen at all")
    low_mood_score: float = Field(default=4.0, ge=0.0, le=10.0)
    low_mood_entries: int = Field(default=3, ge=1)
    low_mood_alert_entries: int = Field(default=5, ge=1)
    high_anxiety_level: float = Field(default=7.0, ge=0.0, le=10.0)
    high_anxiety_entries: int = Field(default=2, ge=1)
    high_anxiety_alert_entries: int = Field(default=4, ge=1)
    low_energy_level: float = Field(default=3.0, ge=0.0, le=10.0)
    low_energy_entries: int = Field(default=3, ge=1)
    volatility_cv: float = Field(
        default=0.4, gt=0.0, description="Mood coefficient of variation that flags volatility"
    )
    volatility_alert_cv: float = Field(default=0.5, gt=0.0)
    volatility_min_entries: int = Field(default=5, ge=2)
    adherence_warning_rate: float = Field(
        default=5 / 7, gt=0.0, le=1.0, description="Taken / expected doses below this warns"
    )
    adherence_alert_rate: float = Field(default=3 / 7, gt=0.0, le=1.0)


class AnalyticsConfig(BaseModel):
    """Thresholds and cadences shared by the simulator and the analyzers."""

    ka_ke_epsilon: float = Field(
        default=1e-6, gt=0.0, description="Below this |Ka-Ke| the limiting PK form is used"
    )
    default_curve_points: int = Field(
        default=100, ge=1, description="Samples per curve when the caller gives none"
    )
    dose_lookback_days: float = Field(
        default=7.0, ge=0.0, description="Doses read before the analysis range start"
    )
    lookback_half_lives: float = Field(
        default=5.0, ge=0.0, description="Lookback floor in half-lives of the medication"
    )

    # Variability analysis
    variability_window_days: int = Field(default=7, gt=0, description="Analysis window length")
    sample_interval_hours: float = Field(
        default=1.0, gt=0.0, description="Concentration sampling cadence inside a window"
    )
    min_history_days: float = Field(
        default=14.0, ge=0.0, description="Minimum combined dose+mood history span"
    )
    min_windows_per_class: int = Field(
        default=2, ge=1, description="Minimum stable and varying windows"
    )
    near_zero_concentration: float = Field(
        default=1e-3, ge=0.0, description="Windows with a lower mean concentration are dropped"
    )

    # Dose interval analysis
    dose_interval_min_samples: int = Field(
        default=3, ge=1, description="Minimum mood entries for a bin to be eligible"
    )

    # Concentration-mood insights
    insight_min_mood_entries: int = Field(
        default=5, ge=1, description="Mood entries in range needed before correlating"
    )
    insight_min_pairs: int = Field(
        default=5, ge=3, description="Concentration/mood hourly pairs needed per lag"
    )
    chronic_lag_hours: tuple[int, ...] = Field(
        default=(24, 48), min_length=1, description="Lags tried for chronic medications"
    )
    acute_lag_hours: tuple[int, ...] = Field(
        default=(0, 1, 2, 4, 6), min_length=1, description="Lags tried for other medications"
    )
    red_flags: RedFlagConfig = Field(default_factory=RedFlagConfig)

    # Adherence analysis
    default_doses_per_day: int = Field(default=1, ge=1)
    timing_spread_minutes: float = Field(
        default=240.0, gt=0.0, description="Dose-time std dev that maps to 0% consistency"
    )
    on_time_tolerance_minutes: float = Field(default=30.0, ge=0.0)
    on_track_adherence_rate: float = Field(default=80.0, ge=0.0, le=100.0)


class RunnerConfig(BaseModel):
    """Concurrency limits for the per-medication analysis runner."""

    max_concurrent_analyses: int = Field(
        default=4, gt=0, description="Maximum number of medications analyzed at once"
    )
    analysis_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout for a single medication's analysis"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    analytics_config = AnalyticsConfig(
        variability_window_days=int(os.getenv("VARIABILITY_WINDOW_DAYS", "7")),
        min_history_days=float(os.getenv("MIN_HISTORY_DAYS", "14")),
        ka_ke_epsilon=float(os.getenv("KA_KE_EPSILON", "1e-6")),
        default_curve_points=int(os.getenv("DEFAULT_CURVE_POINTS", "100")),
        dose_lookback_days=float(os.getenv("DOSE_LOOKBACK_DAYS", "7")),
        dose_interval_min_samples=int(os.getenv("DOSE_INTERVAL_MIN_SAMPLES", "3")),
        default_doses_per_day=int(os.getenv("DEFAULT_DOSES_PER_DAY", "1")),
    )

    runner_config = RunnerConfig(
        max_concurrent_analyses=int(os.getenv("MAX_CONCURRENT_ANALYSES", "4")),
        analysis_timeout_seconds=float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "30.0")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        analytics=analytics_config,
        runner=runner_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog for the process (JSON in production, console in development)."""
    config = config or get_config().logging
    logging.basicConfig(format="%(message)s", level=getattr(logging, config.level))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nANALYTICS CONFIGURATION")
    print(f"Variability Window: {config.analytics.variability_window_days}d")
    print(f"Minimum History: {config.analytics.min_history_days}d")
    print(f"Ka/Ke Epsilon: {config.analytics.ka_ke_epsilon:g}")
    print(f"Dose Lookback: {config.analytics.dose_lookback_days}d")
    print(f"Dose Interval Min Samples: {config.analytics.dose_interval_min_samples}")

    print("\nRUNNER CONFIGURATION")
    print(f"Max Concurrent Analyses: {config.runner.max_concurrent_analyses}")
    print(f"Analysis Timeout: {config.runner.analysis_timeout_seconds}s")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
