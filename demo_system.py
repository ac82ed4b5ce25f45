"""
End-to-end demo of the dose analytics pipeline over synthetic data.

This script exercises:
1. Configuration loading and validation
2. Concentration curve generation
3. Per-medication insights through the concurrent runner
4. Adherence and temporal adherence reports
5. Red flags and mood stability
6. Parameter validation errors

Run with: uv run python demo_system.py
"""

import asyncio
import random
from datetime import UTC, datetime, time
from functools import partial

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory.event_log import InMemoryEventLog
from dosecore.config import configure_logging, get_config, print_config_summary, validate_config
from dosecore.domain.errors import InvalidParameterError
from dosecore.domain.models import DoseEvent, Medication, MedicationPK, MoodEntry
from dosecore.services.adherence import (
    analyze_adherence,
    analyze_temporal_adherence,
    summarize_adherence,
)
from dosecore.services.analysis_runner import AnalysisRunner
from dosecore.services.mood_insights import calculate_stability_metrics, detect_red_flags
from dosecore.services.pharmacokinetics import HOUR_MS, generate_concentration_curve

console = Console()

DAY_MS = 24 * HOUR_MS
HISTORY_DAYS = 42
START_MS = datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000
END_MS = START_MS + HISTORY_DAYS * DAY_MS

MEDICATIONS = [
    Medication(
        id="sertraline",
        name="Sertraline",
        category="SSRI",
        scheduled_time=time(8, 0),
        pk=MedicationPK(
            half_life_hours=26.0,
            volume_of_distribution=20.0,
            bioavailability=0.44,
            absorption_rate_ka=0.5,
        ),
    ),
    Medication(
        id="lamotrigine",
        name="Lamotrigine",
        category="Mood Stabilizer",
        scheduled_time=time(21, 0),
        pk=MedicationPK(
            half_life_hours=12.0,
            volume_of_distribution=1.1,
            bioavailability=0.98,
            absorption_rate_ka=1.0,
        ),
    ),
    Medication(
        id="methylphenidate",
        name="Methylphenidate",
        category="Stimulant",
        expected_doses_per_day=2,
        pk=MedicationPK(
            half_life_hours=3.0,
            volume_of_distribution=2.0,
            bioavailability=0.3,
            absorption_rate_ka=1.5,
        ),
    ),
]


def build_event_log(seed: int = 7) -> InMemoryEventLog:
    """Six weeks of doses and moods; every other week is dosed irregularly."""
    rng = random.Random(seed)
    doses: list[DoseEvent] = []
    moods: list[MoodEntry] = []

    for day in range(HISTORY_DAYS):
        day_ms = START_MS + day * DAY_MS
        irregular_week = (day // 7) % 2 == 1

        if not (irregular_week and day % 2):
            jitter = rng.uniform(-0.5, 3.0) if irregular_week else rng.uniform(-0.2, 0.3)
            doses.append(
                DoseEvent(
                    medication_id="lamotrigine",
                    timestamp_ms=day_ms + (21 + jitter) * HOUR_MS,
                    amount_mg=100.0,
                )
            )
        if rng.random() > 0.05:
            doses.append(
                DoseEvent(
                    medication_id="sertraline",
                    timestamp_ms=day_ms + (8 + rng.uniform(-0.3, 0.6)) * HOUR_MS,
                    amount_mg=50.0,
                )
            )
        for hour in (7.5, 12.5):
            if rng.random() > 0.15:
                doses.append(
                    DoseEvent(
                        medication_id="methylphenidate",
                        timestamp_ms=day_ms + hour * HOUR_MS,
                        amount_mg=10.0,
                    )
                )

        base = 5.0 if irregular_week else 7.0
        for hour in (9, 13, 17, 22):
            # mood peaks a few hours after the morning stimulant dose
            lift = 1.0 if hour in (9, 13) else 0.0
            moods.append(
                MoodEntry(
                    timestamp_ms=day_ms + hour * HOUR_MS,
                    mood_score=min(10.0, max(0.0, base + lift + rng.gauss(0, 0.7))),
                    energy_level=min(10.0, max(0.0, base + rng.gauss(0, 1.0))),
                    anxiety_level=min(10.0, max(0.0, 9.0 - base - lift + rng.gauss(0, 0.8))),
                )
            )

    return InMemoryEventLog(doses=doses, moods=moods)


async def demo_configuration() -> bool:
    """Load and print the configuration."""
    console.print(Panel("🔧 Configuration", style="blue"))

    try:
        validate_config()
        configure_logging()
        print_config_summary()
        console.print("✅ Configuration loaded successfully", style="green")
        return True
    except Exception as e:
        console.print(f"❌ Configuration failed: {e}", style="red")
        return False


async def demo_concentration_curve(event_log: InMemoryEventLog) -> bool:
    """Render a coarse concentration curve for the first days of one medication."""
    console.print(Panel("💊 Concentration Curve", style="blue"))

    try:
        medication = MEDICATIONS[1]
        doses = event_log.query_doses(START_MS, END_MS, medication.id)
        curve = generate_concentration_curve(
            medication.pk, doses, START_MS, START_MS + 3 * DAY_MS, sample_count=13
        )

        table = Table(title=f"{medication.name} (first 3 days)")
        table.add_column("Hour", style="cyan")
        table.add_column("ng/mL", style="green")
        table.add_column("", style="magenta")

        peak = max(s.concentration for s in curve) or 1.0
        for sample in curve:
            hours = (sample.time_ms - START_MS) / HOUR_MS
            bar = "█" * int(20 * sample.concentration / peak)
            table.add_row(f"{hours:.0f}", f"{sample.concentration:.2f}", bar)

        console.print(table)
        return True
    except Exception as e:
        console.print(f"❌ Curve generation failed: {e}", style="red")
        return False


async def demo_insights(event_log: InMemoryEventLog) -> bool:
    """Run every analyzer for every medication through the runner."""
    console.print(Panel("📈 Medication Insights", style="blue"))

    try:
        runner = AnalysisRunner(event_log, get_config())
        results = await runner.analyze_all(MEDICATIONS, START_MS, END_MS)

        table = Table(title="Insights")
        table.add_column("Medication", style="cyan")
        table.add_column("Stability", style="magenta")
        table.add_column("Best interval", style="green")
        table.add_column("Adherence", style="yellow")

        for medication_id, result in results.items():
            if result.is_err():
                table.add_row(medication_id, f"error: {result.unwrap_err()}", "-", "-")
                continue
            insights = result.unwrap()
            stability = (
                f"{insights.variability.mood_difference:+.2f} "
                f"({insights.variability.significance.value})"
                if insights.variability
                else "insufficient data"
            )
            interval = (
                f"{insights.dose_interval.optimal_interval_label} "
                f"({insights.dose_interval.optimal_mood_mean:.1f}/10)"
                if insights.dose_interval
                else "insufficient data"
            )
            adherence = (
                f"{insights.adherence.adherence_rate:.0f}%" if insights.adherence else "-"
            )
            table.add_row(insights.medication_name, stability, interval, adherence)

        console.print(table)

        for result in results.values():
            if result.is_ok() and result.unwrap().variability:
                variability = result.unwrap().variability
                console.print(f"\n🔍 {variability.medication_name}:", style="bold")
                console.print(f"  {variability.interpretation}")
                console.print(f"  {variability.recommendation}", style="yellow")

        for result in results.values():
            if result.is_ok() and result.unwrap().concentration_mood:
                top = result.unwrap().concentration_mood[0]
                console.print(
                    f"\n💡 {top.medication_name} vs {top.dimension}: {top.interpretation}",
                    style="bold",
                )
                console.print(f"  {top.recommendation}", style="yellow")

        return all(r.is_ok() for r in results.values())
    except Exception as e:
        console.print(f"❌ Insight analysis failed: {e}", style="red")
        return False


async def demo_adherence(event_log: InMemoryEventLog) -> bool:
    """Adherence summary and punctuality against scheduled times."""
    console.print(Panel("⏰ Adherence", style="blue"))

    try:
        doses = event_log.query_doses(START_MS, END_MS)
        moods = event_log.query_moods(START_MS, END_MS)
        reports = analyze_adherence(MEDICATIONS, doses, START_MS, END_MS)
        summary = summarize_adherence(reports)

        table = Table(title="Adherence")
        table.add_column("Medication", style="cyan")
        table.add_column("Taken / expected", style="green")
        table.add_column("Rate", style="yellow")
        table.add_column("Timing", style="magenta")
        for report in reports:
            table.add_row(
                report.medication_name,
                f"{report.actual_doses}/{report.expected_doses}",
                f"{report.adherence_rate:.0f}%",
                f"{report.timing_consistency:.0f}",
            )
        console.print(table)
        console.print(
            f"Average adherence {summary.average_adherence:.0f}%, "
            f"{summary.medications_on_track}/{len(reports)} medications on track"
        )

        for temporal in analyze_temporal_adherence(MEDICATIONS, doses, moods):
            console.print(
                f"  {temporal.medication_name}: {temporal.on_time_doses}/{temporal.total_doses} "
                f"on time, pattern {temporal.pattern}, trend {temporal.recent_trend}"
            )
        return True
    except Exception as e:
        console.print(f"❌ Adherence analysis failed: {e}", style="red")
        return False


async def demo_wellbeing(event_log: InMemoryEventLog) -> bool:
    """Red flags over the last week and per-dimension stability over the whole history."""
    console.print(Panel("🚩 Red Flags & Stability", style="blue"))

    try:
        moods = event_log.query_moods(START_MS, END_MS)
        doses = event_log.query_doses(START_MS, END_MS)

        flags = detect_red_flags(moods, doses, MEDICATIONS, END_MS)
        for flag in flags:
            style = "red" if flag.severity == "alert" else "yellow"
            console.print(f"  [{flag.severity}] {flag.title}: {flag.description}", style=style)
        if not flags:
            console.print("  No red flags in the last week", style="green")

        table = Table(title="Stability")
        table.add_column("Dimension", style="cyan")
        table.add_column("Mean", style="green")
        table.add_column("CV", style="magenta")
        table.add_column("Stability", style="yellow")
        table.add_column("7d trend", style="white")
        for metrics in calculate_stability_metrics(moods, START_MS, END_MS):
            table.add_row(
                metrics.dimension,
                f"{metrics.mean:.1f}",
                f"{metrics.coefficient_of_variation:.2f}",
                metrics.stability,
                f"{metrics.trend_7d:+.2f}",
            )
        console.print(table)
        return True
    except Exception as e:
        console.print(f"❌ Red flag screen failed: {e}", style="red")
        return False


async def demo_error_handling() -> bool:
    """Out-of-domain PK parameters are rejected with the offending field."""
    console.print(Panel("🛡️ Error Handling", style="blue"))

    try:
        MedicationPK(
            half_life_hours=12.0,
            volume_of_distribution=1.0,
            bioavailability=1.4,
            absorption_rate_ka=1.0,
        )
    except InvalidParameterError as e:
        console.print(f"✅ Rejected {e.field}: {e.reason}", style="green")
        return True

    console.print("❌ Invalid bioavailability was accepted", style="red")
    return False


async def run_demo() -> None:
    """Run every demo section and print a summary."""

    console.print(Panel("🧪 Dose Analytics - System Demo", style="bold blue"))

    event_log = build_event_log()
    sections = [
        ("Configuration", demo_configuration),
        ("Concentration Curve", partial(demo_concentration_curve, event_log)),
        ("Medication Insights", partial(demo_insights, event_log)),
        ("Adherence", partial(demo_adherence, event_log)),
        ("Red Flags & Stability", partial(demo_wellbeing, event_log)),
        ("Error Handling", demo_error_handling),
    ]

    results = []
    for name, section in sections:
        console.print(f"\n{'=' * 60}")
        results.append((name, await section()))

    console.print(f"\n{'=' * 60}")
    summary_table = Table()
    summary_table.add_column("Section", style="cyan")
    summary_table.add_column("Result", style="white")

    passed = 0
    for name, ok in results:
        summary_table.add_row(name, "✅ OK" if ok else "❌ FAILED")
        passed += ok

    console.print(summary_table)
    console.print(f"\n🎯 {passed}/{len(results)} sections completed")


if __name__ == "__main__":
    try:
        asyncio.run(run_demo())
    except KeyboardInterrupt:
        console.print("\n👋 Demo stopped by user", style="yellow")
