"""Sensor catalog: maps provider sensor names to sheet columns."""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from models.records import SensorDescriptor
from storage.a1 import column_index

logger = logging.getLogger(__name__)


class CatalogError(RuntimeError):
    """Raised when the catalog source cannot be read at all."""


class SensorCatalog:
    """Read-only ``name -> SensorDescriptor`` mapping built once at startup."""

    def __init__(self, descriptors: Iterable[SensorDescriptor]) -> None:
        entries: Dict[str, SensorDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in entries:
                logger.warning(
                    "Duplicate sensor %r in catalog; keeping the later entry",
                    descriptor.name,
                    extra={"sensor": descriptor.name},
                )
            entries[descriptor.name] = descriptor
        self._entries: Mapping[str, SensorDescriptor] = MappingProxyType(entries)
        self._width = max((d.column for d in entries.values()), default=-1) + 1

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "SensorCatalog":
        """Parse ``name, columnCode, description`` lines, skipping invalid ones."""
        descriptors: List[SensorDescriptor] = []
        for line_number, line in enumerate(lines, start=1):
            text = line.strip()
            if not text:
                continue
            parts = text.split(",", 2)
            if len(parts) < 3:
                logger.warning(
                    "Skipping catalog line %d: expected 'name, column, description'",
                    line_number,
                    extra={"row_number": line_number},
                )
                continue
            name, code, description = (part.strip() for part in parts)
            try:
                column = column_index(code)
            except ValueError:
                logger.warning(
                    "Skipping catalog line %d: invalid column code %r",
                    line_number,
                    code,
                    extra={"row_number": line_number, "sensor": name},
                )
                continue
            if not name:
                logger.warning(
                    "Skipping catalog line %d: missing sensor name",
                    line_number,
                    extra={"row_number": line_number},
                )
                continue
            descriptors.append(SensorDescriptor(name=name, column=column, description=description))
        return cls(descriptors)

    @classmethod
    def load(cls, path: str | Path) -> "SensorCatalog":
        catalog_path = Path(path)
        try:
            text = catalog_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CatalogError(f"Unable to read sensor catalog {catalog_path}: {exc}") from exc
        catalog = cls.from_lines(text.splitlines())
        logger.info("Loaded %d sensors from %s", len(catalog), catalog_path)
        return catalog

    def get(self, name: str) -> Optional[SensorDescriptor]:
        return self._entries.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[SensorDescriptor]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def width(self) -> int:
        """Row width: highest column ordinal + 1."""
        return self._width

    def blank_row(self) -> List[str]:
        return [""] * self._width

    def header_row(self) -> List[str]:
        """Descriptions at their column ordinals; unmapped columns blank."""
        row = self.blank_row()
        for descriptor in self._entries.values():
            row[descriptor.column] = descriptor.description
        return row
