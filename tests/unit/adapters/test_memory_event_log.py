"""Tests for `adapters/memory/event_log.py`."""

import threading

import pytest

from adapters.memory.event_log import InMemoryEventLog
from dosecore.domain.models import DoseEvent, MoodEntry
from dosecore.services.analysis_runner import EventLogReader


def dose(ts: float, med_id: str = "m1") -> DoseEvent:
    return DoseEvent(medication_id=med_id, timestamp_ms=ts, amount_mg=10.0)


def mood(ts: float, score: float = 5.0) -> MoodEntry:
    return MoodEntry(timestamp_ms=ts, mood_score=score)


@pytest.fixture
def log() -> InMemoryEventLog:
    return InMemoryEventLog(
        doses=[dose(30.0), dose(10.0), dose(20.0, "m2")],
        moods=[mood(25.0), mood(5.0)],
    )


def test_satisfies_reader_protocol(log: InMemoryEventLog) -> None:
    reader: EventLogReader = log
    assert reader.query_moods(0.0, 100.0)


def test_queries_are_time_ordered_and_inclusive(log: InMemoryEventLog) -> None:
    assert [d.timestamp_ms for d in log.query_doses(10.0, 30.0)] == [10.0, 20.0, 30.0]
    assert [m.timestamp_ms for m in log.query_moods(5.0, 25.0)] == [5.0, 25.0]
    assert log.query_doses(11.0, 19.0) == ()


def test_filter_by_medication(log: InMemoryEventLog) -> None:
    assert [d.timestamp_ms for d in log.query_doses(0.0, 100.0, "m2")] == [20.0]


def test_record_keeps_order(log: InMemoryEventLog) -> None:
    log.record_dose(dose(15.0))
    log.record_mood(mood(1.0))

    assert [d.timestamp_ms for d in log.query_doses(0.0, 100.0)] == [10.0, 15.0, 20.0, 30.0]
    assert log.query_moods(0.0, 100.0)[0].timestamp_ms == 1.0
    assert len(log) == 7


def test_query_results_are_snapshots(log: InMemoryEventLog) -> None:
    snapshot = log.query_doses(0.0, 100.0)
    log.extend(doses=[dose(40.0)])

    assert isinstance(snapshot, tuple)
    assert len(snapshot) == 3
    assert len(log.query_doses(0.0, 100.0)) == 4


def test_concurrent_writers() -> None:
    log = InMemoryEventLog()

    def writer(offset: int) -> None:
        for i in range(200):
            log.record_dose(dose(float(i * 10 + offset)))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    times = [d.timestamp_ms for d in log.query_doses(0.0, 10_000.0)]
    assert len(times) == 800
    assert times == sorted(times)
