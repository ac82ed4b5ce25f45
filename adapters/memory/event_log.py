"""In-memory dose and mood log, for tests, demos and embedding callers."""

import threading
from bisect import insort
from collections.abc import Iterable

import structlog

from dosecore.domain.models import DoseEvent, MoodEntry

logger = structlog.get_logger(__name__)


class InMemoryEventLog:
    """
    Time-ordered event store satisfying the `EventLogReader` protocol.

    Queries are inclusive on both ends and return tuples, so a snapshot taken
    by a reader is unaffected by later writes.
    """

    def __init__(
        self,
        doses: Iterable[DoseEvent] = (),
        moods: Iterable[MoodEntry] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._doses: list[DoseEvent] = []
        self._moods: list[MoodEntry] = []
        self.logger = logger.bind(component="in_memory_event_log")
        self.extend(doses, moods)

    def record_dose(self, dose: DoseEvent) -> None:
        with self._lock:
            insort(self._doses, dose, key=lambda d: d.timestamp_ms)

    def record_mood(self, entry: MoodEntry) -> None:
        with self._lock:
            insort(self._moods, entry, key=lambda m: m.timestamp_ms)

    def extend(self, doses: Iterable[DoseEvent] = (), moods: Iterable[MoodEntry] = ()) -> None:
        """Bulk insert; cheaper than repeated record_* calls."""
        new_doses = list(doses)
        new_moods = list(moods)
        with self._lock:
            self._doses.extend(new_doses)
            self._doses.sort(key=lambda d: d.timestamp_ms)
            self._moods.extend(new_moods)
            self._moods.sort(key=lambda m: m.timestamp_ms)
        if new_doses or new_moods:
            self.logger.debug("events_loaded", doses=len(new_doses), moods=len(new_moods))

    def query_doses(
        self, start_ms: float, end_ms: float, medication_id: str | None = None
    ) -> tuple[DoseEvent, ...]:
        with self._lock:
            return tuple(
                d
                for d in self._doses
                if start_ms <= d.timestamp_ms <= end_ms
                and (medication_id is None or d.medication_id == medication_id)
            )

    def query_moods(self, start_ms: float, end_ms: float) -> tuple[MoodEntry, ...]:
        with self._lock:
            return tuple(m for m in self._moods if start_ms <= m.timestamp_ms <= end_ms)

    def __len__(self) -> int:
        with self._lock:
            return len(self._doses) + len(self._moods)
