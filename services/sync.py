"""Map one raw reading onto catalog columns and write it to the period's sheet."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from models.records import PersistOutcome, Reading
from services.catalog import SensorCatalog
from storage.a1 import column_letter
from storage.tabular import TabularStore

logger = logging.getLogger(__name__)

_OPENERS = {"{": "}", "[": "]"}


def split_top_level(text: str, separator: str, maxsplit: int = -1) -> List[str]:
    """Split on ``separator`` outside of JSON strings and nested brackets."""
    parts: List[str] = []
    depth: List[str] = []
    in_string = False
    escaped = False
    start = 0
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _OPENERS:
            depth.append(_OPENERS[char])
        elif depth and char == depth[-1]:
            depth.pop()
        elif char == separator and not depth:
            if maxsplit >= 0 and len(parts) >= maxsplit:
                break
            parts.append(text[start:index])
            start = index + 1
    parts.append(text[start:])
    return parts


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return value


def parse_reading(payload: str) -> Reading:
    """Parse a flat ``"key":value,...`` body into ordered sensor/value pairs.

    Fields that do not decode are collected in ``Reading.malformed`` rather
    than failing the whole payload.
    """
    reading = Reading()
    for raw_field in split_top_level(payload, ","):
        text = raw_field.strip()
        if not text:
            continue
        pieces = split_top_level(text, ":", maxsplit=1)
        if len(pieces) != 2:
            reading.malformed.append(text)
            continue
        raw_key, raw_value = (piece.strip() for piece in pieces)
        try:
            key = json.loads(raw_key)
            value = json.loads(raw_value)
        except json.JSONDecodeError:
            reading.malformed.append(text)
            continue
        if not isinstance(key, str):
            reading.malformed.append(text)
            continue
        reading.fields.append((key, _cell_value(value)))
    return reading


class SyncEngine:
    """Stateless per-reading orchestration over a :class:`TabularStore`."""

    def __init__(
        self,
        store: TabularStore,
        catalog: SensorCatalog,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self._clock = clock or (lambda: datetime.now().astimezone())

    def current_period(self) -> str:
        return str(self._clock().year)

    def build_row(self, reading: Reading, skipped: Optional[List[str]] = None) -> tuple[List[Any], int]:
        """Place each known sensor's value at its column; returns the row and fields placed."""
        row: List[Any] = self.catalog.blank_row()
        placed = 0
        for name, value in reading.fields:
            descriptor = self.catalog.get(name)
            if descriptor is None:
                logger.warning("Skipping unknown sensor %r", name, extra={"sensor": name})
                if skipped is not None:
                    skipped.append(name)
                continue
            row[descriptor.column] = value
            placed += 1
        return row, placed

    def persist(self, payload: Optional[str]) -> PersistOutcome:
        outcome = PersistOutcome()
        if not payload:
            logger.error("No data to write; fetch returned an empty payload")
            outcome.error = "empty payload"
            return outcome

        period = self.current_period()
        outcome.period = period

        reading = parse_reading(payload)
        for text in reading.malformed:
            logger.warning("Skipping malformed field %r", text, extra={"period": period})
        outcome.skipped.extend(reading.malformed)

        row, placed = self.build_row(reading, skipped=outcome.skipped)
        if not placed:
            logger.error("Reading has no catalog sensors; nothing to write", extra={"period": period})
            outcome.error = "no catalog sensors in reading"
            return outcome

        if not self.store.ensure_exists(period):
            outcome.error = f"sheet {period} is unavailable"
            return outcome
        if not self.store.ensure_header(period, self.catalog.header_row()):
            outcome.error = f"header row for {period} could not be verified"
            return outcome

        last_column = column_letter(max(self.catalog.width - 1, 0))
        existing = self.store.read_range(period, f"A:{last_column}")
        if existing is None:
            logger.error("Response from sheet is empty; unable to write data", extra={"period": period})
            outcome.error = f"unable to read rows of {period}"
            return outcome
        row_number = max(len(existing), 1) + 1

        if not self.store.write_rows(period, f"A{row_number}", [row]):
            outcome.error = f"unable to write row {row_number} of {period}"
            return outcome

        outcome.row_number = row_number
        outcome.written = placed
        logger.info(
            "Wrote reading with %d fields",
            placed,
            extra={"period": period, "row_number": row_number},
        )
        return outcome
