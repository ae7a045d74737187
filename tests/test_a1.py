from __future__ import annotations

import pytest

from storage.a1 import GridRange, parse_range, qualified_range, quote_title


def test_parse_single_cell_is_an_anchor() -> None:
    assert parse_range("A2") == GridRange(start_row=1, end_row=None, start_column=0, end_column=None)
    assert parse_range("C10") == GridRange(start_row=9, end_row=None, start_column=2, end_column=None)


def test_parse_column_and_row_ranges() -> None:
    assert parse_range("A:C") == GridRange(start_row=0, end_row=None, start_column=0, end_column=3)
    assert parse_range("1:1") == GridRange(start_row=0, end_row=1, start_column=0, end_column=None)
    assert parse_range("B2:D3") == GridRange(start_row=1, end_row=3, start_column=1, end_column=4)


def test_parse_ignores_sheet_prefix() -> None:
    assert parse_range("'2024'!A:A") == parse_range("A:A")


@pytest.mark.parametrize("spec", ["", "A0", "?", "A1:?"])
def test_parse_rejects_invalid_references(spec: str) -> None:
    with pytest.raises(ValueError):
        parse_range(spec)


def test_quote_title() -> None:
    assert quote_title("Data") == "Data"
    assert quote_title("2024") == "'2024'"
    assert quote_title("Bob's sheet") == "'Bob''s sheet'"
    assert qualified_range("2024", "A2") == "'2024'!A2"
