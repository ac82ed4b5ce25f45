"""
Mood-side insights: how each mood dimension follows a medication's simulated
concentration, a screen for concerning recent patterns, and per-dimension
stability.

Concentration and mood are aligned on an hourly grid. Chronic medications are
compared through their smoothed trend level at day-scale lags; others through
the instantaneous level at lags of a few hours. Only the best lag per dimension
is reported, ranked by impact score.
"""

import math
from collections import defaultdict
from collections.abc import Sequence
from typing import Literal

import structlog

from dosecore.config import AnalyticsConfig, get_config
from dosecore.domain.models import (
    MOOD_DIMENSIONS,
    ConcentrationMoodInsight,
    DoseEvent,
    LaggedCorrelation,
    Medication,
    MoodDimension,
    MoodEntry,
    RedFlag,
    StabilityMetrics,
)
from dosecore.services.adherence import analyze_adherence
from dosecore.services.pharmacokinetics import (
    HOUR_MS,
    sample_concentration_at_times,
    sample_trend_concentration_at_times,
)
from dosecore.services.stats import describe_strength, descriptive_stats, lagged_correlation, mean

logger = structlog.get_logger(__name__)

DAY_MS = 24 * HOUR_MS

DIMENSION_LABELS: dict[MoodDimension, str] = {
    "mood": "Mood",
    "anxiety": "Anxiety",
    "energy": "Energy",
    "focus": "Focus",
}

# Dimensions where a lower value is the better outcome
LOWER_IS_BETTER: frozenset[MoodDimension] = frozenset({"anxiety"})

# Coefficient-of-variation cutoffs between stable / variable / volatile
STABLE_CV = 0.2
VOLATILE_CV = 0.4

# Floor on p before -log10 in the impact score
_MIN_IMPACT_P = 1e-4


def impact_score(correlation: float, p_value: float) -> float:
    """|r| scaled by -log10(p), so strong and well-supported findings rank first."""
    significance_factor = -math.log10(max(p_value, _MIN_IMPACT_P)) if p_value > 0 else 4.0
    return abs(correlation) * significance_factor


def hourly_grid(start_ms: float, end_ms: float) -> list[float]:
    """Whole-hour instants covering [start_ms, end_ms]."""
    first = math.floor(start_ms / HOUR_MS)
    last = math.ceil(end_ms / HOUR_MS)
    return [hour * HOUR_MS for hour in range(first, last + 1)]


def hourly_dimension_series(
    moods: Sequence[MoodEntry], times_ms: Sequence[float], dimension: MoodDimension
) -> list[float | None]:
    """Mean value of one dimension per grid hour, None for hours without entries."""
    if not times_ms:
        return []
    first = math.floor(times_ms[0] / HOUR_MS)
    by_hour: dict[int, list[float]] = defaultdict(list)
    for entry in moods:
        value = entry.dimension(dimension)
        if value is not None:
            by_hour[math.floor(entry.timestamp_ms / HOUR_MS) - first].append(value)
    return [mean(by_hour[i]) if i in by_hour else None for i in range(len(times_ms))]


def _interpretation(correlation: LaggedCorrelation) -> str:
    r, p = correlation.correlation, correlation.p_value
    direction = "positive" if r > 0 else "negative"
    if p < 0.01:
        confidence = "high confidence"
    elif p < 0.05:
        confidence = "moderate confidence"
    else:
        confidence = "low confidence"
    parts = [
        f"{describe_strength(r).capitalize()} {direction} correlation (r={r:.2f})",
        f"{confidence} (p={p:.3f})",
        f"n={correlation.sample_size}",
    ]
    if correlation.lag:
        parts.append(f"lag +{correlation.lag}h")
    parts.append("spearman")
    return ", ".join(parts)


def _recommendation(medication_name: str, dimension: MoodDimension, is_desirable: bool) -> str:
    label = DIMENSION_LABELS[dimension].lower()
    if is_desirable:
        if dimension in LOWER_IS_BETTER:
            return (
                f"{medication_name} is associated with lower {label}. Keep taking it as "
                f"prescribed."
            )
        return (
            f"{medication_name} is associated with better {label}. Keep monitoring to confirm "
            f"the pattern."
        )
    if dimension in LOWER_IS_BETTER:
        return f"{medication_name} may be raising your {label}. Discuss it with your prescriber."
    return (
        f"{medication_name} may be lowering your {label}. Keep logging and talk to your "
        f"prescriber."
    )


def generate_concentration_mood_insights(
    medication: Medication,
    doses: Sequence[DoseEvent],
    moods: Sequence[MoodEntry],
    start_ms: float,
    end_ms: float,
    config: AnalyticsConfig | None = None,
) -> list[ConcentrationMoodInsight]:
    """
    Correlate each mood dimension with the concentration of one medication.

    Args:
        medication: Medication whose doses are simulated.
        doses: Dose log. Doses before start_ms raise the starting level, so
            callers pass a lookback; doses after end_ms are ignored.
        moods: Mood log; only entries in [start_ms, end_ms] are used.
        start_ms: Range start (inclusive).
        end_ms: Range end (inclusive).
        config: Analytics thresholds (defaults to the cached environment config).

    Returns:
        list[ConcentrationMoodInsight]: At most one per dimension, highest
        impact first. Empty when there are too few moods or doses.
    """
    config = config or get_config().analytics
    log = logger.bind(component="mood_insights", medication_id=medication.id)

    in_range = [m for m in moods if start_ms <= m.timestamp_ms <= end_ms]
    med_doses = [
        d for d in doses if d.medication_id == medication.id and d.timestamp_ms <= end_ms
    ]
    if len(in_range) < config.insight_min_mood_entries or len(med_doses) < 2:
        log.info(
            "mood_insights_insufficient_data",
            moods=len(in_range),
            doses=len(med_doses),
            min_moods=config.insight_min_mood_entries,
        )
        return []

    times = hourly_grid(start_ms, end_ms)
    if medication.is_chronic:
        concentrations = sample_trend_concentration_at_times(medication, med_doses, times)
        lags = config.chronic_lag_hours
    else:
        concentrations = sample_concentration_at_times(medication.pk, med_doses, times)
        lags = config.acute_lag_hours

    insights: list[ConcentrationMoodInsight] = []
    for dimension in MOOD_DIMENSIONS:
        series = hourly_dimension_series(in_range, times, dimension)

        candidates = [
            c
            for c in (
                lagged_correlation(times, concentrations, series, lag, method="spearman")
                for lag in lags
            )
            if c.sample_size >= config.insight_min_pairs
        ]
        if not candidates and medication.is_chronic:
            same_hour = lagged_correlation(times, concentrations, series, 0, method="spearman")
            if same_hour.sample_size >= config.insight_min_pairs:
                candidates = [same_hour]
        if not candidates:
            continue

        best = max(candidates, key=lambda c: abs(c.correlation))
        is_desirable = (
            best.correlation < 0 if dimension in LOWER_IS_BETTER else best.correlation > 0
        )
        insights.append(
            ConcentrationMoodInsight(
                medication_id=medication.id,
                medication_name=medication.name,
                dimension=dimension,
                correlation=best.correlation,
                p_value=best.p_value,
                sample_size=best.sample_size,
                lag_hours=best.lag,
                significance=best.significance,
                direction="positive" if best.correlation > 0 else "negative",
                impact_score=impact_score(best.correlation, best.p_value),
                is_desirable=is_desirable,
                interpretation=_interpretation(best),
                recommendation=_recommendation(medication.name, dimension, is_desirable),
            )
        )

    insights.sort(key=lambda i: i.impact_score, reverse=True)
    log.info("mood_insights_generated", insights=len(insights), hours=len(times))
    return insights


def _severity(alert: bool) -> Literal["warning", "alert"]:
    return "alert" if alert else "warning"


def detect_red_flags(
    moods: Sequence[MoodEntry],
    doses: Sequence[DoseEvent],
    medications: Sequence[Medication],
    end_ms: float,
    config: AnalyticsConfig | None = None,
) -> list[RedFlag]:
    """
    Screen the last few days before end_ms for concerning patterns.

    Flags persistent low mood, high anxiety, low energy, volatile mood, and
    medications taken well below their expected rate. Returns [] when the
    window holds fewer mood entries than the screen needs.
    """
    config = config or get_config().analytics
    thresholds = config.red_flags
    window_start = end_ms - thresholds.window_days * DAY_MS
    recent = [m for m in moods if window_start <= m.timestamp_ms <= end_ms]
    if len(recent) < thresholds.min_entries:
        return []

    flags: list[RedFlag] = []

    low_mood = [m.mood_score for m in recent if m.mood_score <= thresholds.low_mood_score]
    if len(low_mood) >= thresholds.low_mood_entries:
        flags.append(
            RedFlag(
                kind="mood_low",
                severity=_severity(len(low_mood) >= thresholds.low_mood_alert_entries),
                title="Persistently low mood",
                description=(
                    f"Mood was at or below {thresholds.low_mood_score:g}/10 in "
                    f"{len(low_mood)} recent entries."
                ),
                dimension="mood",
                value=mean(low_mood),
                threshold=thresholds.low_mood_score,
                occurrences=len(low_mood),
                suggestion=(
                    "Consider talking to your prescriber and noting what preceded the low days."
                ),
            )
        )

    high_anxiety = [
        m.anxiety_level
        for m in recent
        if m.anxiety_level is not None and m.anxiety_level >= thresholds.high_anxiety_level
    ]
    if len(high_anxiety) >= thresholds.high_anxiety_entries:
        flags.append(
            RedFlag(
                kind="anxiety_high",
                severity=_severity(len(high_anxiety) >= thresholds.high_anxiety_alert_entries),
                title="Elevated anxiety",
                description=(
                    f"Anxiety was at or above {thresholds.high_anxiety_level:g}/10 in "
                    f"{len(high_anxiety)} recent entries."
                ),
                dimension="anxiety",
                value=mean(high_anxiety),
                threshold=thresholds.high_anxiety_level,
                occurrences=len(high_anxiety),
                suggestion=(
                    "Try relaxation techniques; if it persists, ask about a dose adjustment."
                ),
            )
        )

    low_energy = [
        m.energy_level
        for m in recent
        if m.energy_level is not None and m.energy_level <= thresholds.low_energy_level
    ]
    if len(low_energy) >= thresholds.low_energy_entries:
        flags.append(
            RedFlag(
                kind="energy_low",
                severity="warning",
                title="Persistently low energy",
                description=(
                    f"Energy was at or below {thresholds.low_energy_level:g}/10 in "
                    f"{len(low_energy)} recent entries."
                ),
                dimension="energy",
                value=mean(low_energy),
                threshold=thresholds.low_energy_level,
                occurrences=len(low_energy),
                suggestion=(
                    "Check sleep and meals; it can also point at a stimulant that needs review."
                ),
            )
        )

    scores = [m.mood_score for m in recent]
    if len(scores) >= thresholds.volatility_min_entries:
        stats = descriptive_stats(scores)
        cv = stats.std_dev / stats.mean if stats.mean > 0 else 0.0
        if cv > thresholds.volatility_cv:
            flags.append(
                RedFlag(
                    kind="volatility",
                    severity=_severity(cv > thresholds.volatility_alert_cv),
                    title="Volatile mood",
                    description=f"Mood swings widely (CV={cv * 100:.0f}%).",
                    dimension="mood",
                    value=cv,
                    threshold=thresholds.volatility_cv,
                    occurrences=len(scores),
                    suggestion=(
                        "Look for triggers behind the swings and bring the pattern to your "
                        "next visit."
                    ),
                )
            )

    for report in analyze_adherence(medications, doses, window_start, end_ms, config=config):
        if report.actual_doses == 0 or report.expected_doses == 0:
            continue
        rate = report.actual_doses / report.expected_doses
        if rate < thresholds.adherence_warning_rate:
            flags.append(
                RedFlag(
                    kind="adherence",
                    severity=_severity(rate < thresholds.adherence_alert_rate),
                    title=f"Low adherence: {report.medication_name}",
                    description=(
                        f"Only {report.actual_doses} of {report.expected_doses} expected doses "
                        f"of {report.medication_name} were logged."
                    ),
                    medication_id=report.medication_id,
                    value=rate,
                    threshold=thresholds.adherence_warning_rate,
                    occurrences=report.missed_doses,
                    suggestion="Regular dosing keeps the therapeutic effect consistent.",
                )
            )

    if flags:
        logger.info(
            "red_flags_detected",
            component="mood_insights",
            flags=[f.kind for f in flags],
        )
    return flags


def _stability(cv: float) -> Literal["stable", "variable", "volatile"]:
    if cv < STABLE_CV:
        return "stable"
    if cv < VOLATILE_CV:
        return "variable"
    return "volatile"


def calculate_stability_metrics(
    moods: Sequence[MoodEntry], start_ms: float, end_ms: float
) -> list[StabilityMetrics]:
    """Spread and short-term trend of every mood dimension with at least three values."""
    entries = sorted(
        (m for m in moods if start_ms <= m.timestamp_ms <= end_ms), key=lambda m: m.timestamp_ms
    )
    if len(entries) < 3:
        return []

    week_start = end_ms - 7 * DAY_MS
    month_start = end_ms - 30 * DAY_MS
    metrics: list[StabilityMetrics] = []

    for dimension in MOOD_DIMENSIONS:
        points: list[tuple[float, float]] = []
        for entry in entries:
            value = entry.dimension(dimension)
            if value is not None:
                points.append((entry.timestamp_ms, value))
        if len(points) < 3:
            continue

        stats = descriptive_stats([v for _, v in points])
        cv = stats.std_dev / stats.mean if stats.mean > 0 else 0.0

        recent = [v for t, v in points if t >= week_start]
        older = [v for t, v in points if t < week_start]
        trend_7d = mean(recent) - mean(older) if recent and older else 0.0

        month = [v for t, v in points if t >= month_start]
        half = len(month) // 2
        trend_30d = mean(month[half:]) - mean(month[:half]) if half else 0.0

        metrics.append(
            StabilityMetrics(
                dimension=dimension,
                mean=stats.mean,
                std_dev=stats.std_dev,
                coefficient_of_variation=cv,
                stability=_stability(cv),
                trend_7d=trend_7d,
                trend_30d=trend_30d,
                data_points=len(points),
            )
        )
    return metrics
