"""
Tests for `dosecore/services/adherence.py`.

Covers:
- Expected vs. actual dose counts and the adherence rate
- Timing consistency from dose times of day
- Per-medication expected-dose overrides
- Summary aggregation
- Temporal adherence against a scheduled time
"""

from datetime import UTC, datetime, time, timedelta, timezone

import pytest

from dosecore.config import AnalyticsConfig
from dosecore.domain.models import DoseEvent, Medication, MedicationPK, MoodEntry
from dosecore.services.adherence import (
    DAY_MS,
    analyze_adherence,
    analyze_temporal_adherence,
    deviation_minutes,
    minutes_since_midnight,
    summarize_adherence,
    timing_consistency,
)
from dosecore.services.pharmacokinetics import HOUR_MS

MIDNIGHT_MS = datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000
MINUTE_MS = 60_000.0

PK = MedicationPK(
    half_life_hours=26.0,
    volume_of_distribution=20.0,
    bioavailability=0.44,
    absorption_rate_ka=0.5,
)


def make_medication(med_id: str, **kwargs) -> Medication:
    return Medication(id=med_id, name=med_id.title(), pk=PK, **kwargs)


def dose_at(med_id: str, day: int, hour: int, minute: int = 0) -> DoseEvent:
    return DoseEvent(
        medication_id=med_id,
        timestamp_ms=MIDNIGHT_MS + day * DAY_MS + hour * HOUR_MS + minute * MINUTE_MS,
        amount_mg=50.0,
    )


class TestAnalyzeAdherence:
    def test_perfect_month(self) -> None:
        medication = make_medication("sertraline")
        doses = [dose_at("sertraline", day, 8) for day in range(30)]

        (report,) = analyze_adherence(
            [medication], doses, MIDNIGHT_MS, MIDNIGHT_MS + 30 * DAY_MS
        )

        assert report.expected_doses == 30
        assert report.actual_doses == 30
        assert report.missed_doses == 0
        assert report.adherence_rate == 100.0
        assert report.timing_consistency == 100.0
        assert report.last_dose_ms == doses[-1].timestamp_ms

    def test_missed_doses_lower_the_rate(self) -> None:
        medication = make_medication("sertraline")
        doses = [dose_at("sertraline", day, 8) for day in range(0, 30, 2)]

        (report,) = analyze_adherence(
            [medication], doses, MIDNIGHT_MS, MIDNIGHT_MS + 30 * DAY_MS
        )

        assert report.actual_doses == 15
        assert report.missed_doses == 15
        assert report.adherence_rate == pytest.approx(50.0)

    def test_extra_doses_are_capped_at_100_percent(self) -> None:
        medication = make_medication("ibuprofen")
        doses = [dose_at("ibuprofen", day, h) for day in range(7) for h in (8, 20)]

        (report,) = analyze_adherence([medication], doses, MIDNIGHT_MS, MIDNIGHT_MS + 7 * DAY_MS)

        assert report.actual_doses == 14
        assert report.missed_doses == 0
        assert report.adherence_rate == 100.0

    def test_partial_day_rounds_up(self) -> None:
        medication = make_medication("sertraline")
        (report,) = analyze_adherence(
            [medication], [], MIDNIGHT_MS, MIDNIGHT_MS + 2.5 * DAY_MS
        )
        assert report.expected_doses == 3
        assert report.adherence_rate == 0.0
        assert report.timing_consistency == 0.0
        assert report.last_dose_ms is None

    def test_empty_range_expects_nothing(self) -> None:
        (report,) = analyze_adherence(
            [make_medication("sertraline")], [], MIDNIGHT_MS, MIDNIGHT_MS
        )
        assert report.expected_doses == 0
        assert report.adherence_rate == 0.0

    def test_no_medications_yields_empty_list(self) -> None:
        assert analyze_adherence([], [], MIDNIGHT_MS, MIDNIGHT_MS + DAY_MS) == []

    def test_expected_per_day_precedence(self) -> None:
        twice = make_medication("metformin", expected_doses_per_day=2)
        unset = make_medication("sertraline")
        start, end = MIDNIGHT_MS, MIDNIGHT_MS + 10 * DAY_MS

        by_id = {r.medication_id: r for r in analyze_adherence([twice, unset], [], start, end)}
        assert by_id["metformin"].expected_doses == 20
        assert by_id["sertraline"].expected_doses == 10

        overridden = analyze_adherence([twice, unset], [], start, end, expected_per_day=3)
        assert [r.expected_doses for r in overridden] == [30, 30]

        mapped = analyze_adherence(
            [twice, unset], [], start, end, expected_per_day={"sertraline": 4}
        )
        assert [r.expected_doses for r in mapped] == [20, 40]

        config = AnalyticsConfig(default_doses_per_day=2)
        (report,) = analyze_adherence([unset], [], start, end, config=config)
        assert report.expected_doses == 20

    def test_doses_outside_range_and_other_medications_are_ignored(self) -> None:
        medication = make_medication("sertraline")
        doses = [
            dose_at("sertraline", -1, 8),
            dose_at("sertraline", 0, 8),
            dose_at("bupropion", 0, 8),
            dose_at("sertraline", 5, 8),
        ]
        (report,) = analyze_adherence([medication], doses, MIDNIGHT_MS, MIDNIGHT_MS + 3 * DAY_MS)
        assert report.actual_doses == 1


class TestTimingConsistency:
    def test_single_dose_has_no_consistency(self) -> None:
        assert timing_consistency([MIDNIGHT_MS]) == 0.0

    def test_scattered_times_score_lower(self) -> None:
        tight = [dose_at("m", d, 8, d % 3).timestamp_ms for d in range(10)]
        loose = [dose_at("m", d, 6 + (d % 5) * 2).timestamp_ms for d in range(10)]
        assert 90.0 < timing_consistency(tight) <= 100.0
        assert timing_consistency(loose) < timing_consistency(tight)

    def test_very_scattered_times_floor_at_zero(self) -> None:
        times = [dose_at("m", d, 0 if d % 2 else 23).timestamp_ms for d in range(10)]
        assert timing_consistency(times) == 0.0

    def test_time_zone_is_respected(self) -> None:
        tz = timezone(timedelta(hours=-5))
        assert minutes_since_midnight(MIDNIGHT_MS + 8 * HOUR_MS) == 480
        assert minutes_since_midnight(MIDNIGHT_MS + 8 * HOUR_MS, tz) == 180


class TestSummary:
    def test_summary_of_reports(self) -> None:
        meds = [make_medication("a"), make_medication("b")]
        doses = [dose_at("a", d, 8) for d in range(10)] + [dose_at("b", d, 8) for d in range(5)]
        reports = analyze_adherence(meds, doses, MIDNIGHT_MS, MIDNIGHT_MS + 10 * DAY_MS)

        summary = summarize_adherence(reports)

        assert summary.average_adherence == pytest.approx(75.0)
        assert summary.total_missed_doses == 5
        assert summary.medications_on_track == 1

    def test_empty_summary(self) -> None:
        summary = summarize_adherence([])
        assert summary.average_adherence == 0.0
        assert summary.medications_on_track == 0


class TestTemporalAdherence:
    def test_deviation_wraps_around_midnight(self) -> None:
        assert deviation_minutes(10, 23 * 60 + 50) == 20
        assert deviation_minutes(23 * 60 + 50, 10) == -20
        assert deviation_minutes(9 * 60, 8 * 60) == 60

    def test_on_time_late_and_early_counts(self) -> None:
        medication = make_medication("sertraline", scheduled_time=time(8, 0))
        doses = [
            dose_at("sertraline", 0, 8, 0),
            dose_at("sertraline", 1, 8, 45),
            dose_at("sertraline", 2, 7, 0),
            dose_at("sertraline", 3, 8, 10),
        ]

        (report,) = analyze_temporal_adherence([medication], doses, [])

        assert report.total_doses == 4
        assert report.on_time_doses == 2
        assert report.late_doses == 1
        assert report.early_doses == 1
        assert report.average_deviation_minutes == pytest.approx(28.75)
        assert report.adherence_score == pytest.approx(100 - 28.75 / 60 * 20)
        assert report.pattern == "consistent"
        assert report.recent_trend == "insufficient_data"
        assert report.deviation_mood_correlation is None

    def test_unscheduled_or_sparse_medications_are_skipped(self) -> None:
        unscheduled = make_medication("a")
        sparse = make_medication("b", scheduled_time=time(9, 0))
        doses = [dose_at("a", d, 8) for d in range(5)] + [dose_at("b", d, 9) for d in range(2)]

        assert analyze_temporal_adherence([unscheduled, sparse], doses, []) == []

    def test_improving_trend_and_irregular_pattern(self) -> None:
        medication = make_medication("sertraline", scheduled_time=time(8, 0))
        late_hours = [11, 11, 11, 8, 8, 8]
        doses = [dose_at("sertraline", d, h) for d, h in enumerate(late_hours)]

        (report,) = analyze_temporal_adherence([medication], doses, [])

        assert report.recent_trend == "improving"
        assert report.average_deviation_minutes == pytest.approx(90.0)
        assert report.pattern == "irregular"
        assert report.adherence_score == pytest.approx(70.0)

    def test_mood_after_dose_and_correlation(self) -> None:
        medication = make_medication("sertraline", scheduled_time=time(8, 0))
        offsets = [0, 15, 30, 60, 90, 120]
        doses = [dose_at("sertraline", d, 8, m) for d, m in enumerate(offsets)]
        moods = [
            MoodEntry(
                timestamp_ms=dose.timestamp_ms + 2 * HOUR_MS,
                mood_score=9.0 - i,
            )
            for i, dose in enumerate(doses)
        ]
        # too soon after the dose to count
        moods.append(
            MoodEntry(timestamp_ms=doses[0].timestamp_ms + 10 * MINUTE_MS, mood_score=1.0)
        )

        (report,) = analyze_temporal_adherence([medication], doses, moods)

        assert [d.mood_after for d in report.deviations] == [9.0, 8.0, 7.0, 6.0, 5.0, 4.0]
        assert report.deviation_mood_correlation is not None
        assert report.deviation_mood_correlation.r < -0.9
        assert report.recent_trend == "declining"
