from __future__ import annotations

from typing import Any, Dict, List, Sequence

from services.retry import RetryPolicy
from storage.mock_sheets import MockSpreadsheet
from storage.tabular import BackendError, Rows, TabularStore


class RecordingSpreadsheet(MockSpreadsheet):
    """Mock backend that counts calls and can fail selected operations."""

    def __init__(self, failures: Dict[str, int] | None = None) -> None:
        super().__init__(name="test")
        self.calls: List[str] = []
        self.failures = dict(failures or {})

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self.failures.get(operation, 0)
        if remaining:
            self.failures[operation] = remaining - 1
            raise BackendError(f"{operation} unavailable")

    def list_destinations(self) -> List[str]:
        self._record("list")
        return super().list_destinations()

    def create_destination(self, title: str) -> int:
        self._record("create")
        return super().create_destination(title)

    def freeze_rows(self, title: str, row_count: int) -> None:
        self._record("freeze")
        super().freeze_rows(title, row_count)

    def get_values(self, title: str, range_spec: str) -> Rows:
        self._record("get")
        return super().get_values(title, range_spec)

    def update_values(self, title: str, range_spec: str, rows: Sequence[Sequence[Any]]) -> None:
        self._record("update")
        super().update_values(title, range_spec, rows)


def _store(backend: RecordingSpreadsheet, sleeps: List[float] | None = None) -> TabularStore:
    recorder = sleeps if sleeps is not None else []
    return TabularStore(backend, policy=RetryPolicy(), sleep=recorder.append)


def test_ensure_exists_is_idempotent() -> None:
    backend = RecordingSpreadsheet()
    store = _store(backend)

    assert store.ensure_exists("2024") is True
    first = list(backend.calls)
    backend.calls.clear()
    assert store.ensure_exists("2024") is True

    assert first == ["list", "create", "freeze"]
    assert backend.calls == ["list"]
    assert backend.snapshot("2024").frozen_rows == 1


def test_ensure_exists_detects_existing_unheadered_sheet() -> None:
    backend = RecordingSpreadsheet()
    backend.create_destination("2024")
    backend.calls.clear()

    assert _store(backend).ensure_exists("2024") is True
    assert "create" not in backend.calls


def test_ensure_exists_returns_false_when_creation_exhausts_retries() -> None:
    backend = RecordingSpreadsheet(failures={"create": 4})
    sleeps: List[float] = []

    assert _store(backend, sleeps).ensure_exists("2024") is False
    assert backend.calls.count("create") == 4
    assert "freeze" not in backend.calls
    assert sleeps == [10, 20, 30]


def test_ensure_exists_recovers_from_transient_create_failure() -> None:
    backend = RecordingSpreadsheet(failures={"create": 1})

    assert _store(backend).ensure_exists("2024") is True
    assert backend.list_destinations() == ["2024"]


def test_failed_freeze_does_not_make_period_unusable() -> None:
    backend = RecordingSpreadsheet(failures={"freeze": 4})

    assert _store(backend).ensure_exists("2024") is True


def test_read_range_returns_none_after_retries() -> None:
    backend = RecordingSpreadsheet(failures={"get": 4})
    backend.create_destination("2024")

    assert _store(backend).read_range("2024", "A:A") is None
    assert backend.calls.count("get") == 4


def test_write_rows_retries_same_range() -> None:
    backend = RecordingSpreadsheet(failures={"update": 2})
    backend.create_destination("2024")

    assert _store(backend).write_rows("2024", "A2", [["68.5"]]) is True
    assert backend.calls.count("update") == 3
    assert backend.get_values("2024", "A:A") == [[], ["68.5"]]


def test_write_rows_returns_false_when_exhausted() -> None:
    backend = RecordingSpreadsheet(failures={"update": 4})
    backend.create_destination("2024")

    assert _store(backend).write_rows("2024", "A2", [["68.5"]]) is False


def test_ensure_header_writes_only_when_row_one_is_blank() -> None:
    backend = RecordingSpreadsheet()
    backend.create_destination("2024")
    store = _store(backend)

    assert store.ensure_header("2024", ["Temp", ""]) is True
    assert backend.get_values("2024", "1:1") == [["Temp"]]

    backend.calls.clear()
    assert store.ensure_header("2024", ["Other"]) is True
    assert backend.calls == []


def test_ensure_header_keeps_existing_header() -> None:
    backend = RecordingSpreadsheet()
    backend.create_destination("2024")
    backend.update_values("2024", "A1", [["Existing"]])
    backend.calls.clear()

    assert _store(backend).ensure_header("2024", ["Temp"]) is True
    assert backend.calls == ["get"]
    assert backend.get_values("2024", "1:1") == [["Existing"]]
