"""
Per-medication analysis orchestration.

Reads one immutable snapshot of the event log through the `EventLogReader`
protocol, then fans the pure analyzers out across medications with structured
concurrency. A failure or timeout for one medication is captured as an error
`Result` and never cancels the others.
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

import structlog

from dosecore.config import AnalyticsConfig, AppConfig, get_config
from dosecore.domain.models import DoseEvent, Medication, MedicationInsights, MoodEntry
from dosecore.services.adherence import analyze_adherence
from dosecore.services.dose_interval import analyze_dose_interval
from dosecore.services.mood_insights import generate_concentration_mood_insights
from dosecore.services.pharmacokinetics import HOUR_MS
from dosecore.services.variability import analyze_concentration_variability

logger = structlog.get_logger(__name__)

ValueT = TypeVar("ValueT")


class Result(Generic[ValueT]):
    """
    Explicit outcome of an operation whose failure is expected, not exceptional.

    Holds exactly one of a value or an exception.
    """

    def __init__(self, value: ValueT | None = None, error: Exception | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: Exception | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: Exception) -> "Result[ValueT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def unwrap_err(self) -> Exception:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class EventLogReader(Protocol):
    """
    Read access to the dose and mood log.

    Implementations return sequences the caller may keep; later writes to the
    log must not show through them.
    """

    def query_doses(
        self, start_ms: float, end_ms: float, medication_id: str | None = None
    ) -> Sequence[DoseEvent]: ...

    def query_moods(self, start_ms: float, end_ms: float) -> Sequence[MoodEntry]: ...


@dataclass(frozen=True)
class EventSnapshot:
    """
    Doses and moods read once for a time range, shared by every analysis.

    Moods lie in [start_ms, end_ms]; doses may reach back before start_ms so the
    simulated level at the range start reflects earlier dosing.
    """

    start_ms: float
    end_ms: float
    doses: tuple[DoseEvent, ...]
    moods: tuple[MoodEntry, ...]


def dose_lookback_ms(medication: Medication, config: AnalyticsConfig | None = None) -> float:
    """How far before a range start doses still matter: a fixed floor or a few half-lives."""
    config = config or get_config().analytics
    return max(
        config.dose_lookback_days * 24 * HOUR_MS,
        config.lookback_half_lives * medication.pk.half_life_hours * HOUR_MS,
    )


def compute_medication_insights(
    medication: Medication,
    snapshot: EventSnapshot,
    config: AnalyticsConfig | None = None,
) -> MedicationInsights:
    """
    Run every per-medication analysis over one snapshot.

    Doses older than the medication's own lookback are dropped; the remaining
    pre-range doses feed the simulation and the time-since-last-dose lookup but
    are never counted for adherence.
    """
    config = config or get_config().analytics
    history_start = snapshot.start_ms - dose_lookback_ms(medication, config)
    doses = [
        d
        for d in snapshot.doses
        if d.medication_id == medication.id
        and history_start <= d.timestamp_ms <= snapshot.end_ms
    ]
    adherence = analyze_adherence(
        [medication], doses, snapshot.start_ms, snapshot.end_ms, config=config
    )
    return MedicationInsights(
        medication_id=medication.id,
        medication_name=medication.name,
        variability=analyze_concentration_variability(
            medication, doses, snapshot.moods, config=config, start_ms=snapshot.start_ms
        ),
        dose_interval=analyze_dose_interval(medication, doses, snapshot.moods, config=config),
        adherence=adherence[0] if adherence else None,
        concentration_mood=generate_concentration_mood_insights(
            medication, doses, snapshot.moods, snapshot.start_ms, snapshot.end_ms, config
        ),
    )


class AnalysisRunner:
    """
    Runs per-medication insights concurrently over a single snapshot.

    CPU-bound analysis goes to worker threads; a semaphore bounds how many run
    at once and each one is subject to the configured timeout.
    """

    def __init__(self, reader: EventLogReader, config: AppConfig | None = None) -> None:
        self.reader = reader
        self.config = config or get_config()
        self.logger = logger.bind(component="analysis_runner")

    def read_snapshot(
        self, start_ms: float, end_ms: float, lookback_ms: float = 0.0
    ) -> EventSnapshot:
        """Read moods in [start_ms, end_ms] and doses from lookback_ms earlier."""
        return EventSnapshot(
            start_ms=start_ms,
            end_ms=end_ms,
            doses=tuple(self.reader.query_doses(start_ms - lookback_ms, end_ms)),
            moods=tuple(self.reader.query_moods(start_ms, end_ms)),
        )

    async def _analyze_one(
        self,
        medication: Medication,
        snapshot: EventSnapshot,
        semaphore: asyncio.Semaphore,
    ) -> Result[MedicationInsights]:
        async with semaphore:
            work = asyncio.ensure_future(
                asyncio.to_thread(
                    compute_medication_insights, medication, snapshot, self.config.analytics
                )
            )
            try:
                insights = await asyncio.wait_for(
                    asyncio.shield(work), timeout=self.config.runner.analysis_timeout_seconds
                )
                return Result.ok(insights)
            except TimeoutError as e:
                self.logger.warning(
                    "medication_analysis_timeout",
                    medication_id=medication.id,
                    timeout_seconds=self.config.runner.analysis_timeout_seconds,
                )
                # a worker thread cannot be interrupted; its slot stays taken until it returns
                await asyncio.wait([work])
                if not work.cancelled() and work.exception() is not None:
                    self.logger.warning(
                        "timed_out_analysis_failed",
                        medication_id=medication.id,
                        error=str(work.exception()),
                    )
                return Result.err(e)
            except Exception as e:
                self.logger.exception(
                    "medication_analysis_failed", medication_id=medication.id, error=str(e)
                )
                return Result.err(e)

    async def analyze_all(
        self,
        medications: Sequence[Medication],
        start_ms: float,
        end_ms: float,
    ) -> dict[str, Result[MedicationInsights]]:
        """
        Analyze every medication over [start_ms, end_ms].

        Doses are read from the longest per-medication lookback before
        start_ms. A timed-out analysis is reported as a TimeoutError but keeps
        its concurrency slot until its worker thread finishes.

        Returns:
            dict[str, Result[MedicationInsights]]: Keyed by medication id, in
            input order.
        """
        start_time = time.perf_counter()
        lookback_ms = max(
            (dose_lookback_ms(m, self.config.analytics) for m in medications), default=0.0
        )
        snapshot = self.read_snapshot(start_ms, end_ms, lookback_ms)
        semaphore = asyncio.Semaphore(self.config.runner.max_concurrent_analyses)

        async with asyncio.TaskGroup() as task_group:
            tasks = {
                medication.id: task_group.create_task(
                    self._analyze_one(medication, snapshot, semaphore),
                    name=f"analyze-{medication.id}",
                )
                for medication in medications
            }

        results = {medication_id: task.result() for medication_id, task in tasks.items()}
        succeeded = sum(1 for r in results.values() if r.is_ok())

        self.logger.info(
            "analysis_completed",
            medications=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            doses=len(snapshot.doses),
            moods=len(snapshot.moods),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return results
