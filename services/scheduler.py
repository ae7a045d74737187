"""Wall-clock-aligned poll loop: fetch, then persist, every N minutes."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from models.schemas import CycleReport, CycleStatus
from services.fetcher import ResilientFetcher
from services.sync import SyncEngine

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_run_after(now: datetime, interval_minutes: int = 5) -> datetime:
    """Nearest future instant on an epoch-aligned ``interval_minutes`` boundary.

    Truncates ``now`` to the minute, adds one interval, then truncates to
    the interval. The result is always strictly later than ``now``.
    """
    if interval_minutes < 1:
        raise ValueError("interval_minutes must be >= 1")
    step = interval_minutes * 60
    seconds = int(now.timestamp() // 60) * 60 + step
    seconds -= seconds % step
    return datetime.fromtimestamp(seconds, tz=now.tzinfo)


class Scheduler:
    """Runs one fetch/persist cycle per slot, forever.

    The next slot is always computed from the current time after a cycle
    finishes, so an overrunning cycle skips to the next free slot instead
    of queueing missed runs.
    """

    def __init__(
        self,
        fetcher: ResilientFetcher,
        engine: SyncEngine,
        interval_minutes: int = 5,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.engine = engine
        self.interval_minutes = interval_minutes
        self._clock = clock
        self._sleep = sleep

    def next_run(self) -> datetime:
        return next_run_after(self._clock(), self.interval_minutes)

    def wait_for_next_slot(self) -> datetime:
        target = self.next_run()
        logger.info("Next poll scheduled", extra={"next_run": target.isoformat()})
        delay = (target - self._clock()).total_seconds()
        if delay > 0:
            self._sleep(delay)
        return target

    def run_cycle(self) -> CycleReport:
        started_at = self._clock()
        started = time.perf_counter()
        logger.info("Poll cycle started")

        report = CycleReport(status=CycleStatus.failed, started_at=started_at)
        try:
            fetched = self.fetcher.fetch()
            report.fetch_attempts = fetched.attempts
            if not fetched.ok:
                logger.error("API request resulted in empty values: %s", fetched.error)
                report.status = CycleStatus.no_data
                report.error = fetched.error
            else:
                outcome = self.engine.persist(fetched.payload)
                report.period = outcome.period
                report.row_number = outcome.row_number
                report.fields_written = outcome.written
                report.skipped_fields = list(outcome.skipped)
                report.error = outcome.error
                report.status = CycleStatus.written if outcome.ok else CycleStatus.failed
        except Exception as exc:  # noqa: BLE001
            logger.exception("Poll cycle crashed")
            report.status = CycleStatus.failed
            report.error = str(exc) or exc.__class__.__name__

        report.finished_at = self._clock()
        report.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Poll cycle finished",
            extra={"status": report.status.value, "period": report.period, "row_number": report.row_number},
        )
        return report

    def run_forever(
        self,
        max_cycles: Optional[int] = None,
        on_cycle: Optional[Callable[[CycleReport], None]] = None,
    ) -> int:
        """Loop ``IDLE -> WAITING -> RUNNING``; ``max_cycles`` bounds it for tests and one-offs."""
        completed = 0
        while max_cycles is None or completed < max_cycles:
            self.wait_for_next_slot()
            report = self.run_cycle()
            completed += 1
            if on_cycle is not None:
                on_cycle(report)
        return completed
