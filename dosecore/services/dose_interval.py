"""
Dose-interval analysis: how mood varies with the time elapsed since the most
recent dose of a medication.
"""

from bisect import bisect_right
from collections.abc import Sequence

import structlog

from dosecore.config import AnalyticsConfig, get_config
from dosecore.domain.models import (
    DoseEvent,
    DoseIntervalBin,
    DoseIntervalResult,
    Medication,
    MoodEntry,
    SignificanceTier,
)
from dosecore.services.pharmacokinetics import HOUR_MS
from dosecore.services.stats import mean, pearson_correlation, std_dev

logger = structlog.get_logger(__name__)

# (label, lower bound inclusive, upper bound exclusive) in hours
INTERVAL_BINS: tuple[tuple[str, float, float | None], ...] = (
    ("0–4h", 0.0, 4.0),
    ("4–8h", 4.0, 8.0),
    ("8–12h", 8.0, 12.0),
    ("12–24h", 12.0, 24.0),
    (">24h", 24.0, None),
)


def bin_label_for_hours(hours: float) -> str:
    """Label of the interval bin containing `hours` since the last dose."""
    for label, lower, upper in INTERVAL_BINS:
        if hours >= lower and (upper is None or hours < upper):
            return label
    raise ValueError(f"hours since dose must be >= 0, got {hours}")


def hours_since_last_dose(
    dose_times_ms: Sequence[float], timestamp_ms: float
) -> float | None:
    """Hours from the latest dose at or before timestamp_ms; None if there is none."""
    index = bisect_right(dose_times_ms, timestamp_ms) - 1
    if index < 0:
        return None
    return (timestamp_ms - dose_times_ms[index]) / HOUR_MS


def _describe(
    medication_name: str, optimal: DoseIntervalBin, r: float, significance: SignificanceTier
) -> tuple[str, str]:
    best = f"{optimal.label} after a dose ({optimal.mood_mean:.1f}/10)"
    if significance in (SignificanceTier.STRONG, SignificanceTier.MODERATE) and r < 0:
        return (
            f"Mood is better shortly after taking {medication_name} (r={r:.2f}).",
            f"Mood peaks {best}. Plan demanding tasks inside that window.",
        )
    if significance in (SignificanceTier.STRONG, SignificanceTier.MODERATE) and r > 0:
        return (
            f"Mood improves as time since the last dose of {medication_name} grows (r={r:.2f}).",
            f"Best average mood {best}. Mention the pattern to your prescriber.",
        )
    return (
        f"No clear relationship between time since the last dose of {medication_name} "
        f"and mood (r={r:.2f}).",
        f"Best average mood so far {best}. Keep logging to confirm.",
    )


def analyze_dose_interval(
    medication: Medication,
    doses: Sequence[DoseEvent],
    moods: Sequence[MoodEntry],
    config: AnalyticsConfig | None = None,
) -> DoseIntervalResult | None:
    """
    Bin mood entries by hours since the last dose and find the best interval.

    The optimal bin is the one with the highest mean mood among bins holding at
    least `dose_interval_min_samples` entries; ties go to the shorter interval.
    Returns None when no bin reaches the minimum.
    """
    config = config or get_config().analytics
    log = logger.bind(component="dose_interval_analyzer", medication_id=medication.id)

    dose_times = sorted(d.timestamp_ms for d in doses if d.medication_id == medication.id)
    binned: dict[str, list[float]] = {label: [] for label, _, _ in INTERVAL_BINS}
    hours_list: list[float] = []
    scores: list[float] = []

    for entry in moods:
        hours = hours_since_last_dose(dose_times, entry.timestamp_ms)
        if hours is None:
            continue
        binned[bin_label_for_hours(hours)].append(entry.mood_score)
        hours_list.append(hours)
        scores.append(entry.mood_score)

    bins = [
        DoseIntervalBin(
            label=label,
            min_hours=lower,
            max_hours=upper,
            count=len(binned[label]),
            mood_mean=mean(binned[label]) if binned[label] else None,
            mood_std_dev=std_dev(binned[label]) if binned[label] else None,
        )
        for label, lower, upper in INTERVAL_BINS
    ]

    optimal: DoseIntervalBin | None = None
    for candidate in bins:
        if candidate.count < config.dose_interval_min_samples or candidate.mood_mean is None:
            continue
        if optimal is None or candidate.mood_mean > (optimal.mood_mean or 0.0):
            optimal = candidate

    if optimal is None or optimal.mood_mean is None:
        log.info(
            "dose_interval_insufficient_data",
            samples=len(scores),
            min_samples=config.dose_interval_min_samples,
        )
        return None

    correlation = pearson_correlation(hours_list, scores)
    interpretation, recommendation = _describe(
        medication.name, optimal, correlation.r, correlation.significance
    )
    optimal_hours = (
        optimal.min_hours
        if optimal.max_hours is None
        else (optimal.min_hours + optimal.max_hours) / 2
    )

    log.info(
        "dose_interval_analyzed",
        samples=len(scores),
        optimal_interval=optimal.label,
        correlation=round(correlation.r, 3),
    )

    return DoseIntervalResult(
        medication_id=medication.id,
        medication_name=medication.name,
        total_samples=len(scores),
        bins=bins,
        optimal_interval_label=optimal.label,
        optimal_interval_hours=optimal_hours,
        optimal_mood_mean=optimal.mood_mean,
        interval_mood_correlation=correlation,
        interpretation=interpretation,
        recommendation=recommendation,
    )
