"""
Adherence analysis: dose counts against expectation and consistency of dose timing.
"""

import math
from bisect import bisect_right
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, tzinfo

import structlog

from dosecore.config import AnalyticsConfig, get_config
from dosecore.domain.models import (
    AdherenceReport,
    AdherenceSummary,
    DoseDeviation,
    DoseEvent,
    Medication,
    MoodEntry,
    TemporalAdherenceReport,
)
from dosecore.services.pharmacokinetics import HOUR_MS
from dosecore.services.stats import mean, pearson_correlation, std_dev

logger = structlog.get_logger(__name__)

DAY_MS = 24 * HOUR_MS
MINUTES_PER_DAY = 24 * 60

# Mood entries this long after a dose count as "mood after dose"
MOOD_AFTER_DOSE_MIN_HOURS = 0.5
MOOD_AFTER_DOSE_MAX_HOURS = 8.0


def minutes_since_midnight(timestamp_ms: float, tz: tzinfo = UTC) -> int:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)
    return moment.hour * 60 + moment.minute


def timing_consistency(
    timestamps_ms: Sequence[float],
    tz: tzinfo = UTC,
    spread_minutes: float = 240.0,
) -> float:
    """
    0-100 score from the spread of dose times of day.

    Identical times score 100; a sample std dev of `spread_minutes` or more
    scores 0. Fewer than two doses carry no timing information and score 0.
    """
    if len(timestamps_ms) < 2:
        return 0.0
    minutes = [minutes_since_midnight(ts, tz) for ts in timestamps_ms]
    return max(0.0, 100.0 - (std_dev(minutes) / spread_minutes) * 100.0)


def _expected_per_day(
    medication: Medication, override: int | Mapping[str, int] | None, default: int
) -> int:
    if isinstance(override, Mapping) and medication.id in override:
        return override[medication.id]
    if isinstance(override, int):
        return override
    return medication.expected_doses_per_day or default


def analyze_adherence(
    medications: Sequence[Medication],
    doses: Sequence[DoseEvent],
    start_ms: float,
    end_ms: float,
    expected_per_day: int | Mapping[str, int] | None = None,
    tz: tzinfo = UTC,
    config: AnalyticsConfig | None = None,
) -> list[AdherenceReport]:
    """
    One adherence report per medication over [start_ms, end_ms].

    Args:
        medications: Medications to report on; an empty list yields [].
        doses: Dose log for any medications.
        start_ms: Range start (inclusive).
        end_ms: Range end (inclusive).
        expected_per_day: Either one rate for all medications or a mapping of
            medication id to rate. Otherwise a medication's own
            `expected_doses_per_day` applies, then the configured default.
        tz: Time zone in which dose times of day are measured.
        config: Analytics thresholds (defaults to the cached environment config).
    """
    config = config or get_config().analytics
    days = math.ceil((end_ms - start_ms) / DAY_MS) if end_ms > start_ms else 0
    reports: list[AdherenceReport] = []

    for medication in medications:
        in_range = sorted(
            d.timestamp_ms
            for d in doses
            if d.medication_id == medication.id and start_ms <= d.timestamp_ms <= end_ms
        )
        expected = days * _expected_per_day(
            medication, expected_per_day, config.default_doses_per_day
        )
        actual = len(in_range)
        rate = min(100.0, actual / expected * 100.0) if expected > 0 else 0.0

        reports.append(
            AdherenceReport(
                medication_id=medication.id,
                medication_name=medication.name,
                expected_doses=expected,
                actual_doses=actual,
                missed_doses=max(0, expected - actual),
                adherence_rate=rate,
                timing_consistency=timing_consistency(in_range, tz, config.timing_spread_minutes),
                last_dose_ms=in_range[-1] if in_range else None,
            )
        )

    logger.info(
        "adherence_analyzed",
        component="adherence_analyzer",
        medications=len(reports),
        days=days,
    )
    return reports


def summarize_adherence(
    reports: Sequence[AdherenceReport], config: AnalyticsConfig | None = None
) -> AdherenceSummary:
    """Aggregate adherence across medications."""
    config = config or get_config().analytics
    if not reports:
        return AdherenceSummary(
            average_adherence=0.0,
            total_missed_doses=0,
            average_timing_consistency=0.0,
            medications_on_track=0,
        )
    return AdherenceSummary(
        average_adherence=mean([r.adherence_rate for r in reports]),
        total_missed_doses=sum(r.missed_doses for r in reports),
        average_timing_consistency=mean([r.timing_consistency for r in reports]),
        medications_on_track=sum(
            1 for r in reports if r.adherence_rate >= config.on_track_adherence_rate
        ),
    )


def deviation_minutes(dose_minutes: float, scheduled_minutes: float) -> float:
    """Signed deviation from the scheduled time, wrapped to [-720, 720]."""
    diff = dose_minutes - scheduled_minutes
    if diff > MINUTES_PER_DAY / 2:
        diff -= MINUTES_PER_DAY
    elif diff < -MINUTES_PER_DAY / 2:
        diff += MINUTES_PER_DAY
    return diff


def analyze_temporal_adherence(
    medications: Sequence[Medication],
    doses: Sequence[DoseEvent],
    moods: Sequence[MoodEntry],
    tz: tzinfo = UTC,
    config: AnalyticsConfig | None = None,
) -> list[TemporalAdherenceReport]:
    """
    Punctuality against each medication's scheduled time of day.

    Medications without a scheduled time, or with fewer than three doses, are
    skipped.
    """
    config = config or get_config().analytics
    tolerance = config.on_time_tolerance_minutes
    sorted_moods = sorted(moods, key=lambda m: m.timestamp_ms)
    mood_times = [m.timestamp_ms for m in sorted_moods]
    reports: list[TemporalAdherenceReport] = []

    for medication in medications:
        if medication.scheduled_time is None:
            continue
        med_doses = sorted(
            (d for d in doses if d.medication_id == medication.id),
            key=lambda d: d.timestamp_ms,
        )
        if len(med_doses) < 3:
            continue

        scheduled = medication.scheduled_time.hour * 60 + medication.scheduled_time.minute
        deviations: list[DoseDeviation] = []
        on_time = late = early = 0

        for dose in med_doses:
            deviation = deviation_minutes(minutes_since_midnight(dose.timestamp_ms, tz), scheduled)
            if abs(deviation) <= tolerance:
                on_time += 1
            elif deviation > 0:
                late += 1
            else:
                early += 1

            mood_after: float | None = None
            earliest = dose.timestamp_ms + MOOD_AFTER_DOSE_MIN_HOURS * HOUR_MS
            index = bisect_right(mood_times, earliest)
            if (
                index < len(sorted_moods)
                and mood_times[index] < dose.timestamp_ms + MOOD_AFTER_DOSE_MAX_HOURS * HOUR_MS
            ):
                mood_after = sorted_moods[index].mood_score

            deviations.append(
                DoseDeviation(
                    timestamp_ms=dose.timestamp_ms,
                    deviation_minutes=deviation,
                    mood_after=mood_after,
                )
            )

        average_deviation = mean([abs(d.deviation_minutes) for d in deviations])
        score = max(0.0, 100.0 - (average_deviation / 60.0) * 20.0)

        if average_deviation > 60:
            pattern = "irregular"
        elif average_deviation > 30:
            pattern = "variable"
        else:
            pattern = "consistent"

        trend = "insufficient_data"
        if len(deviations) >= 6:
            recent = mean([abs(d.deviation_minutes) for d in deviations[-3:]])
            older = mean([abs(d.deviation_minutes) for d in deviations[-6:-3]])
            if recent < older - 10:
                trend = "improving"
            elif recent > older + 10:
                trend = "declining"
            else:
                trend = "stable"

        paired = [d for d in deviations if d.mood_after is not None]
        correlation = None
        if len(paired) >= 5:
            correlation = pearson_correlation(
                [abs(d.deviation_minutes) for d in paired],
                [d.mood_after for d in paired if d.mood_after is not None],
            )

        reports.append(
            TemporalAdherenceReport(
                medication_id=medication.id,
                medication_name=medication.name,
                scheduled_time=medication.scheduled_time,
                total_doses=len(med_doses),
                on_time_doses=on_time,
                late_doses=late,
                early_doses=early,
                average_deviation_minutes=average_deviation,
                adherence_score=score,
                pattern=pattern,
                recent_trend=trend,
                deviations=deviations,
                deviation_mood_correlation=correlation,
            )
        )

    return reports
