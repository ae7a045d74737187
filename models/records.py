"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple


@dataclass(frozen=True, slots=True)
class SensorDescriptor:
    """A catalog entry: where a sensor's values land in the sheet."""

    name: str
    column: int
    description: str


@dataclass(slots=True)
class Reading:
    """Ordered ``(sensor name, value)`` pairs parsed from one payload."""

    fields: List[Tuple[str, Any]] = field(default_factory=list)
    malformed: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.fields)


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """Result of one logical fetch, after all retries."""

    payload: Optional[str]
    attempts: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.payload)


@dataclass(slots=True)
class PersistOutcome:
    """Result of writing one reading to its period's sheet."""

    period: Optional[str] = None
    row_number: Optional[int] = None
    written: int = 0
    skipped: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
