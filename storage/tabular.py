"""Idempotent, retry-wrapped primitives over a remote spreadsheet backend."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional, Protocol, Sequence, Set, TypeVar

from services.retry import RetryExhaustedError, RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Rows = List[List[Any]]


class BackendError(Exception):
    """A backend call failed; callers may retry."""


class TabularBackend(Protocol):
    """Capability set every spreadsheet backend provides.

    Ranges are A1 notation relative to the named sheet (``A2``, ``A:C``).
    Implementations raise :class:`BackendError` for any failed call.
    """

    def list_destinations(self) -> List[str]:
        ...

    def create_destination(self, title: str) -> int:
        ...

    def freeze_rows(self, title: str, row_count: int) -> None:
        ...

    def get_values(self, title: str, range_spec: str) -> Rows:
        ...

    def update_values(self, title: str, range_spec: str, rows: Sequence[Sequence[Any]]) -> None:
        ...


def _is_blank(rows: Rows) -> bool:
    return not any(cell not in (None, "") for row in rows for cell in row)


class TabularStore:
    """Wraps a :class:`TabularBackend` with the shared retry policy.

    Every primitive returns a sentinel (``False``/``None``) instead of
    raising once retries are exhausted.
    """

    def __init__(
        self,
        backend: TabularBackend,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._headed: Set[str] = set()

    def _call(self, description: str, func: Callable[[], T]) -> T:
        result, _ = run_with_retry(
            func,
            policy=self.policy,
            description=description,
            retry_on=(BackendError,),
            sleep=self._sleep,
        )
        return result

    def ensure_exists(self, period: str) -> bool:
        """Create the period's sheet (and freeze its header row) if missing."""
        try:
            titles = self._call("list sheets", self.backend.list_destinations)
        except RetryExhaustedError as exc:
            logger.error("Unable to list sheets: %s", exc, extra={"period": period})
            return False

        if period in titles:
            return True

        logger.info("Creating sheet for period %s", period, extra={"period": period})
        try:
            self._call("create sheet", lambda: self.backend.create_destination(period))
        except RetryExhaustedError as exc:
            logger.error("Unable to create sheet: %s", exc, extra={"period": period})
            return False

        try:
            self._call("freeze header row", lambda: self.backend.freeze_rows(period, 1))
        except RetryExhaustedError as exc:
            logger.error("Unable to freeze header row: %s", exc, extra={"period": period})

        logger.info("Sheet created", extra={"period": period})
        return True

    def ensure_header(self, period: str, header: Sequence[Any]) -> bool:
        """Write ``header`` to row 1 unless it already holds values.

        Checked once per period per process, so a sheet left without a
        header by an interrupted first cycle is repaired on next access.
        """
        if period in self._headed:
            return True

        existing = self.read_range(period, "1:1")
        if existing is None:
            return False
        if _is_blank(existing):
            logger.info("Writing header row", extra={"period": period, "row_number": 1})
            if not self.write_rows(period, "A1", [list(header)]):
                return False

        self._headed.add(period)
        return True

    def read_range(self, period: str, range_spec: str) -> Optional[Rows]:
        try:
            return self._call("read values", lambda: self.backend.get_values(period, range_spec))
        except RetryExhaustedError as exc:
            logger.error("Unable to read %s: %s", range_spec, exc, extra={"period": period})
            return None

    def write_rows(self, period: str, range_spec: str, rows: Sequence[Sequence[Any]]) -> bool:
        """Positional write; retries target the same range so they cannot duplicate rows."""
        try:
            self._call(
                "write values",
                lambda: self.backend.update_values(period, range_spec, rows),
            )
        except RetryExhaustedError as exc:
            logger.error("Unable to write %s: %s", range_spec, exc, extra={"period": period})
            return False
        return True
