"""Pydantic schemas for reports and persisted backend state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class CycleStatus(str, Enum):
    """Outcome of one poll-fetch-persist cycle."""

    written = "written"
    no_data = "no_data"
    failed = "failed"


class CycleReport(BaseModel):
    """Summary of a single scheduler cycle."""

    status: CycleStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from fetch to write."
    )
    fetch_attempts: int = Field(default=0, ge=0)
    period: Optional[str] = None
    row_number: Optional[int] = Field(default=None, ge=1)
    fields_written: int = Field(default=0, ge=0)
    skipped_fields: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class SheetState(BaseModel):
    """One tab of the mock spreadsheet, as stored on disk."""

    sheet_id: int
    title: str
    frozen_rows: int = Field(default=0, ge=0)
    rows: List[List[Any]] = Field(default_factory=list)
