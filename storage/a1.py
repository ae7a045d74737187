"""A1 notation helpers (column letters, ranges, quoted sheet titles)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_SIMPLE_TITLE_RE = re.compile(r"^[A-Za-z0-9_]+$")
_CELL_RE = re.compile(r"^([A-Za-z]*)(\d*)$")


def column_index(letters: str) -> int:
    """Convert a base-26 column code (``A``, ``Z``, ``AA``) to a zero-based ordinal."""
    code = letters.strip().upper()
    if not code or not code.isascii() or not code.isalpha():
        raise ValueError(f"Invalid column code: {letters!r}")
    result = 0
    for letter in code:
        result = result * 26 + (ord(letter) - ord("A") + 1)
    return result - 1


def column_letter(index: int) -> str:
    """Inverse of :func:`column_index`."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    index += 1
    label = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        label = chr(65 + remainder) + label
    return label


def quote_title(title: str) -> str:
    """Return a sheet title safely formatted for an A1 range prefix."""
    normalised = (title or "").strip()
    if not normalised:
        raise ValueError("Sheet title must not be empty.")
    if _SIMPLE_TITLE_RE.match(normalised) and not normalised.isdigit():
        return normalised
    return "'" + normalised.replace("'", "''") + "'"


def qualified_range(title: str, range_spec: str) -> str:
    return f"{quote_title(title)}!{range_spec}"


@dataclass(frozen=True)
class GridRange:
    """Zero-based, end-exclusive bounds; ``None`` means unbounded."""

    start_row: int
    end_row: Optional[int]
    start_column: int
    end_column: Optional[int]


def _parse_cell(text: str) -> tuple[Optional[int], Optional[int]]:
    match = _CELL_RE.match(text.strip())
    if not match or not (match.group(1) or match.group(2)):
        raise ValueError(f"Invalid A1 reference: {text!r}")
    letters, digits = match.groups()
    column = column_index(letters) if letters else None
    row = int(digits) - 1 if digits else None
    if row is not None and row < 0:
        raise ValueError(f"Row numbers start at 1: {text!r}")
    return row, column


def parse_range(range_spec: str) -> GridRange:
    """Parse ``A1``, ``A2:C2``, ``A:C`` or ``1:1`` into a :class:`GridRange`.

    A single cell such as ``A2`` is treated as an anchor: the range extends
    right and down from it, which is how positional writes address a row.
    """
    spec = range_spec.split("!", 1)[-1]
    if ":" not in spec:
        row, column = _parse_cell(spec)
        return GridRange(
            start_row=row or 0,
            end_row=None,
            start_column=column or 0,
            end_column=None,
        )

    left, right = spec.split(":", 1)
    start_row, start_column = _parse_cell(left)
    end_row, end_column = _parse_cell(right)
    return GridRange(
        start_row=start_row or 0,
        end_row=end_row + 1 if end_row is not None else None,
        start_column=start_column or 0,
        end_column=end_column + 1 if end_column is not None else None,
    )
