"""
Concentration variability (stability) analysis.

Asks whether mood differs between periods where a medication's simulated plasma
level is steady and periods where it swings. The dosing timeline is cut into
consecutive fixed-length windows; each window's coefficient of variation
(std dev / mean of hourly concentration samples) classifies it as stable (below
the medication's own median CV) or varying. Mood entries from the two classes
are then compared with Welch's t-test, and per-window CV is correlated with
per-window mean mood.

Insufficient data is an expected outcome and is returned as None, never raised.
"""

from bisect import bisect_left
from collections.abc import Sequence

import numpy as np
import structlog

from dosecore.config import AnalyticsConfig, get_config
from dosecore.domain.models import (
    AnalysisWindow,
    DoseEvent,
    Medication,
    MoodEntry,
    SignificanceTier,
    TTestResult,
    VariabilityResult,
)
from dosecore.services.pharmacokinetics import HOUR_MS, concentration_series
from dosecore.services.stats import mean, median, pearson_correlation, welch_t_test

logger = structlog.get_logger(__name__)

DAY_MS = 24 * HOUR_MS


def _describe(
    medication_name: str, mood_difference: float, t_test: TTestResult
) -> tuple[str, str]:
    """Pick interpretation and recommendation text by effect direction and tier."""
    magnitude = abs(mood_difference)
    stats_note = f"p={t_test.p_value:.2f}, d={t_test.effect_size:.2f}"

    if t_test.significance is SignificanceTier.NONE or mood_difference == 0:
        return (
            f"No meaningful mood difference between stable and varying "
            f"{medication_name} levels ({stats_note}).",
            "Continue monitoring. More data may reveal a pattern.",
        )

    if t_test.significance is SignificanceTier.WEAK:
        period = "stable" if mood_difference > 0 else "varying"
        return (
            f"Mood tends to be {magnitude:.1f} points higher while {medication_name} "
            f"levels are {period}, but the evidence is weak ({stats_note}).",
            "Keep logging doses and mood; a few more weeks of data will confirm "
            "or rule out this trend.",
        )

    if mood_difference > 0:
        return (
            f"Mood is {magnitude:.1f} points higher while {medication_name} levels "
            f"are stable ({stats_note}).",
            f"Prioritize consistent dosing of {medication_name}. Stable levels "
            f"coincide with better mood.",
        )
    return (
        f"Mood is {magnitude:.1f} points higher while {medication_name} levels "
        f"are varying ({stats_note}).",
        "Unusual pattern: peak-to-trough swings coincide with better mood. "
        "Discuss it with your prescriber before changing anything.",
    )


def analyze_concentration_variability(
    medication: Medication,
    doses: Sequence[DoseEvent],
    moods: Sequence[MoodEntry],
    window_days: int | None = None,
    config: AnalyticsConfig | None = None,
    start_ms: float | None = None,
) -> VariabilityResult | None:
    """
    Compare mood between stable and varying concentration windows.

    Args:
        medication: Medication whose doses are simulated.
        doses: Dose log; events of other medications are ignored.
        moods: Mood log.
        window_days: Window length in days (defaults to config, 7).
        config: Analytics thresholds (defaults to the cached environment config).
        start_ms: Start of the analysis range. Doses before it still contribute
            concentration but no window opens earlier than it.

    Returns:
        VariabilityResult, or None when the history spans less than the minimum
        number of days or either window class is too small.
    """
    config = config or get_config().analytics
    window_days = window_days or config.variability_window_days
    log = logger.bind(component="variability_analyzer", medication_id=medication.id)

    med_doses = sorted(
        (d for d in doses if d.medication_id == medication.id), key=lambda d: d.timestamp_ms
    )
    sorted_moods = sorted(moods, key=lambda m: m.timestamp_ms)

    if not med_doses or not sorted_moods:
        log.info("variability_insufficient_data", reason="no_doses_or_moods")
        return None

    first_window_start = med_doses[0].timestamp_ms
    if start_ms is not None:
        first_window_start = max(first_window_start, start_ms)
        sorted_moods = [m for m in sorted_moods if m.timestamp_ms >= start_ms]
        if not sorted_moods:
            log.info("variability_insufficient_data", reason="no_moods_in_range")
            return None

    first_event = min(first_window_start, sorted_moods[0].timestamp_ms)
    last_event = max(med_doses[-1].timestamp_ms, sorted_moods[-1].timestamp_ms)
    span_days = (last_event - first_event) / DAY_MS
    if span_days < config.min_history_days:
        log.info(
            "variability_insufficient_data",
            reason="history_too_short",
            span_days=round(span_days, 2),
            required_days=config.min_history_days,
        )
        return None

    window_ms = window_days * DAY_MS
    step_ms = config.sample_interval_hours * HOUR_MS
    samples_per_window = max(1, int(round(window_ms / step_ms)))
    mood_times = [m.timestamp_ms for m in sorted_moods]

    # (start, end, concentration mean, cv, mood scores)
    candidates: list[tuple[float, float, float, float, list[float]]] = []
    window_start = first_window_start
    while window_start + window_ms <= last_event:
        window_end = window_start + window_ms
        _, concentrations = concentration_series(
            medication.pk,
            med_doses,
            window_start,
            window_end - step_ms,
            samples_per_window,
            config.ka_ke_epsilon,
        )
        concentration_mean = float(concentrations.mean())
        if concentration_mean >= config.near_zero_concentration:
            sd = float(np.std(concentrations, ddof=1)) if concentrations.size > 1 else 0.0
            lo = bisect_left(mood_times, window_start)
            hi = bisect_left(mood_times, window_end)
            scores = [m.mood_score for m in sorted_moods[lo:hi]]
            candidates.append(
                (window_start, window_end, concentration_mean, sd / concentration_mean, scores)
            )
        window_start = window_end

    cvs = [c[3] for c in candidates]
    median_cv = median(cvs)
    windows = [
        AnalysisWindow(
            start_ms=start,
            end_ms=end,
            concentration_mean=conc_mean,
            cv=cv,
            mood_mean=mean(scores) if scores else None,
            mood_count=len(scores),
            is_stable=cv < median_cv,
        )
        for start, end, conc_mean, cv, scores in candidates
    ]

    stable = [w for w in windows if w.is_stable]
    varying = [w for w in windows if not w.is_stable]
    if len(stable) < config.min_windows_per_class or len(varying) < config.min_windows_per_class:
        log.info(
            "variability_insufficient_data",
            reason="too_few_windows",
            stable_windows=len(stable),
            varying_windows=len(varying),
        )
        return None

    stable_scores = [s for c in candidates if c[3] < median_cv for s in c[4]]
    varying_scores = [s for c in candidates if c[3] >= median_cv for s in c[4]]
    if len(stable_scores) < 2 or len(varying_scores) < 2:
        log.info(
            "variability_insufficient_data",
            reason="too_few_moods_per_class",
            stable_moods=len(stable_scores),
            varying_moods=len(varying_scores),
        )
        return None

    t_test = welch_t_test(stable_scores, varying_scores)
    stable_mean = mean(stable_scores)
    varying_mean = mean(varying_scores)
    mood_difference = stable_mean - varying_mean

    with_mood = [w for w in windows if w.mood_mean is not None]
    correlation = pearson_correlation(
        [w.cv for w in with_mood], [w.mood_mean for w in with_mood if w.mood_mean is not None]
    )
    interpretation, recommendation = _describe(medication.name, mood_difference, t_test)

    log.info(
        "variability_analyzed",
        windows=len(windows),
        median_cv=round(median_cv, 4),
        mood_difference=round(mood_difference, 3),
        significance=t_test.significance.value,
    )

    return VariabilityResult(
        medication_id=medication.id,
        medication_name=medication.name,
        window_days=window_days,
        total_windows=len(windows),
        stable_windows=len(stable),
        varying_windows=len(varying),
        median_cv=median_cv,
        stable_mood_mean=stable_mean,
        varying_mood_mean=varying_mean,
        mood_difference=mood_difference,
        cv_mood_correlation=correlation,
        t_test=t_test,
        significance=t_test.significance,
        interpretation=interpretation,
        recommendation=recommendation,
        windows=windows,
    )
