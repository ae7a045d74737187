from __future__ import annotations
import json
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence

from models.schemas import SheetState
from storage.a1 import parse_range
from storage.tabular import BackendError, Rows


def _trim(rows: List[List[Any]]) -> List[List[Any]]:
    trimmed: List[List[Any]] = []
    for row in rows:
        cells = list(row)
        while cells and cells[-1] in (None, ""):
            cells.pop()
        trimmed.append(cells)
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    return trimmed


class MockSpreadsheet:
    """In-process spreadsheet backend with optional JSON persistence.

    Mirrors the Sheets API value semantics: reads drop trailing blank
    cells and rows, writes are anchored at the range's top-left cell.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._sheets: Dict[str, SheetState] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def list_destinations(self) -> List[str]:
        with self._lock:
            return list(self._sheets)

    def create_destination(self, title: str) -> int:
        with self._lock:
            if title in self._sheets:
                raise BackendError(f"A sheet with the name {title!r} already exists.")
            sheet_id = max((s.sheet_id for s in self._sheets.values()), default=0) + 1
            self._sheets[title] = SheetState(sheet_id=sheet_id, title=title)
            self._persist()
            return sheet_id

    def freeze_rows(self, title: str, row_count: int) -> None:
        with self._lock:
            sheet = self._require(title)
            sheet.frozen_rows = row_count
            self._persist()

    def get_values(self, title: str, range_spec: str) -> Rows:
        grid = parse_range(range_spec)
        with self._lock:
            sheet = self._require(title)
            rows = sheet.rows[grid.start_row:grid.end_row]
            window = [row[grid.start_column:grid.end_column] for row in rows]
        return _trim(window)

    def update_values(self, title: str, range_spec: str, rows: Sequence[Sequence[Any]]) -> None:
        grid = parse_range(range_spec)
        with self._lock:
            sheet = self._require(title)
            for offset, values in enumerate(rows):
                index = grid.start_row + offset
                while len(sheet.rows) <= index:
                    sheet.rows.append([])
                target = sheet.rows[index]
                end = grid.start_column + len(values)
                if len(target) < end:
                    target.extend([""] * (end - len(target)))
                target[grid.start_column:end] = list(values)
            self._persist()

    def snapshot(self, title: str) -> Optional[SheetState]:
        """Return a deep copy of one sheet, or ``None`` if it does not exist."""
        with self._lock:
            sheet = self._sheets.get(title)
            return sheet.model_copy(deep=True) if sheet is not None else None

    def _require(self, title: str) -> SheetState:
        sheet = self._sheets.get(title)
        if sheet is None:
            raise BackendError(f"Unable to parse range: sheet {title!r} not found.")
        return sheet

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {title: sheet.model_dump(mode="json") for title, sheet in self._sheets.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for title, payload in data.items():
            self._sheets[title] = SheetState.model_validate(payload)
