"""
Analytics services.

Concentration simulation, statistical primitives, the variability, dose-interval,
adherence and concentration-mood analyzers, the red flag screen, and the
concurrent per-medication runner.
"""

from .adherence import analyze_adherence, analyze_temporal_adherence, summarize_adherence
from .analysis_runner import (
    AnalysisRunner,
    EventLogReader,
    EventSnapshot,
    Result,
    compute_medication_insights,
    dose_lookback_ms,
)
from .dose_interval import analyze_dose_interval
from .mood_insights import (
    calculate_stability_metrics,
    detect_red_flags,
    generate_concentration_mood_insights,
)
from .pharmacokinetics import concentration_at, generate_concentration_curve
from .stats import pearson_correlation, spearman_correlation, welch_t_test
from .variability import analyze_concentration_variability

__all__ = [
    "AnalysisRunner",
    "EventLogReader",
    "EventSnapshot",
    "Result",
    "analyze_adherence",
    "analyze_concentration_variability",
    "analyze_dose_interval",
    "analyze_temporal_adherence",
    "calculate_stability_metrics",
    "compute_medication_insights",
    "concentration_at",
    "detect_red_flags",
    "dose_lookback_ms",
    "generate_concentration_curve",
    "generate_concentration_mood_insights",
    "pearson_correlation",
    "spearman_correlation",
    "summarize_adherence",
    "welch_t_test",
]
