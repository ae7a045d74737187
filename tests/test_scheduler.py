from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from models.records import FetchOutcome, PersistOutcome
from models.schemas import CycleStatus
from services.scheduler import Scheduler, next_run_after


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StubFetcher:
    def __init__(self, outcomes: List[FetchOutcome], clock: Optional[FakeClock] = None, cost: float = 0) -> None:
        self.outcomes = list(outcomes)
        self.clock = clock
        self.cost = cost
        self.calls = 0

    def fetch(self) -> FetchOutcome:
        self.calls += 1
        if self.clock is not None:
            self.clock.sleep(self.cost)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        pass


class StubEngine:
    def __init__(self) -> None:
        self.payloads: List[str] = []

    def persist(self, payload: str) -> PersistOutcome:
        self.payloads.append(payload)
        return PersistOutcome(period="2024", row_number=len(self.payloads) + 1, written=1)


def _ok(payload: str = '"T1":"68.5"') -> FetchOutcome:
    return FetchOutcome(payload=payload, attempts=1)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2024, 8, 12, 10, 3, 20), datetime(2024, 8, 12, 10, 5)),
        (datetime(2024, 8, 12, 10, 4, 59), datetime(2024, 8, 12, 10, 5)),
        (datetime(2024, 8, 12, 10, 5, 0), datetime(2024, 8, 12, 10, 10)),
        (datetime(2024, 8, 12, 10, 5, 0, 1), datetime(2024, 8, 12, 10, 10)),
        (datetime(2024, 12, 31, 23, 58, 0), datetime(2025, 1, 1, 0, 0)),
    ],
)
def test_next_run_examples(now: datetime, expected: datetime) -> None:
    aware = now.replace(tzinfo=timezone.utc)

    assert next_run_after(aware) == expected.replace(tzinfo=timezone.utc)


def test_next_run_is_aligned_and_strictly_later() -> None:
    start = datetime(2024, 3, 10, 0, 0, tzinfo=timezone.utc)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    for step in range(0, 24 * 3600, 37):
        now = start + timedelta(seconds=step, microseconds=step % 1000)
        target = next_run_after(now)

        assert target > now
        assert (target - epoch).total_seconds() % 300 == 0
        assert target - now <= timedelta(minutes=5)


def test_next_run_honours_interval_and_validates() -> None:
    now = datetime(2024, 8, 12, 10, 3, 20, tzinfo=timezone.utc)

    assert next_run_after(now, interval_minutes=15) == datetime(2024, 8, 12, 10, 15, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        next_run_after(now, interval_minutes=0)


def test_run_forever_waits_for_aligned_slots() -> None:
    clock = FakeClock(datetime(2024, 8, 12, 10, 3, 20, tzinfo=timezone.utc))
    sleeps: List[float] = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.sleep(seconds)

    engine = StubEngine()
    scheduler = Scheduler(StubFetcher([_ok(), _ok()]), engine, clock=clock, sleep=sleep)

    completed = scheduler.run_forever(max_cycles=2)

    assert completed == 2
    assert sleeps == [100.0, 300.0]
    assert clock.now == datetime(2024, 8, 12, 10, 10, tzinfo=timezone.utc)
    assert len(engine.payloads) == 2


def test_long_cycle_skips_to_next_free_slot() -> None:
    clock = FakeClock(datetime(2024, 8, 12, 10, 4, 0, tzinfo=timezone.utc))
    sleeps: List[float] = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.sleep(seconds)

    fetcher = StubFetcher([_ok(), _ok()], clock=clock, cost=7 * 60)
    scheduler = Scheduler(fetcher, StubEngine(), clock=clock, sleep=sleep)

    scheduler.run_forever(max_cycles=2)

    # first slot 10:05, cycle ends 10:12, next slot 10:15 (10:10 is not replayed)
    assert sleeps == [60.0, 180.0]


def test_failed_fetch_is_reported_and_loop_continues(caplog) -> None:
    clock = FakeClock(datetime(2024, 8, 12, 10, 0, 30, tzinfo=timezone.utc))
    engine = StubEngine()
    fetcher = StubFetcher(
        [FetchOutcome(payload=None, attempts=4, error="Received error status code 503"), _ok()]
    )
    reports = []
    scheduler = Scheduler(fetcher, engine, clock=clock, sleep=clock.sleep)

    with caplog.at_level(logging.ERROR, logger="services.scheduler"):
        scheduler.run_forever(max_cycles=2, on_cycle=reports.append)

    assert [r.status for r in reports] == [CycleStatus.no_data, CycleStatus.written]
    assert reports[0].fetch_attempts == 4
    assert reports[0].error == "Received error status code 503"
    assert engine.payloads == ['"T1":"68.5"']
    assert any("empty values" in r.getMessage() for r in caplog.records)


def test_unexpected_exception_does_not_stop_scheduling() -> None:
    clock = FakeClock(datetime(2024, 8, 12, 10, 0, 30, tzinfo=timezone.utc))
    fetcher = StubFetcher([RuntimeError("kaboom"), _ok()])
    reports = []
    scheduler = Scheduler(fetcher, StubEngine(), clock=clock, sleep=clock.sleep)

    scheduler.run_forever(max_cycles=2, on_cycle=reports.append)

    assert fetcher.calls == 2
    assert reports[0].status is CycleStatus.failed
    assert reports[0].error == "kaboom"
    assert reports[1].status is CycleStatus.written


def test_run_cycle_builds_report_from_persist_outcome() -> None:
    clock = FakeClock(datetime(2024, 8, 12, 10, 0, tzinfo=timezone.utc))
    scheduler = Scheduler(StubFetcher([_ok()]), StubEngine(), clock=clock, sleep=clock.sleep)

    report = scheduler.run_cycle()

    assert report.status is CycleStatus.written
    assert report.period == "2024"
    assert report.row_number == 2
    assert report.fields_written == 1
    assert report.fetch_attempts == 1
    assert report.duration_ms is not None
