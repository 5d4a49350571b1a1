"""
Flat-file source adapters (CSV and JSON exports).

A file is a single page. A missing, unreadable or malformed file is a
ParseError for the unit; there is nothing to retry.
"""

import csv
import json
from pathlib import Path

from facility_etl.core.errors import ParseError
from facility_etl.core.models import QueryUnit

from .base import PageResult, ResponseShape, SourceAdapter, canonicalize_record, resolve_shape


def _require_path(unit: QueryUnit) -> Path:
    if not unit.is_file:
        raise ParseError(f"Query unit {unit.name!r} is not a file unit")
    return Path(unit.path)


class CsvFileSource(SourceAdapter):
    """
    Reads a CSV export with a header row.

    Column names are mapped onto canonical fields the same way API fields are.
    """

    def __init__(self, delimiter: str = ",", encoding: str = "utf-8-sig"):
        super().__init__(max_pages=1)
        self.delimiter = delimiter
        self.encoding = encoding

    def fetch_page(self, unit: QueryUnit, page: int, page_size: int) -> PageResult:
        path = _require_path(unit)
        try:
            with path.open(newline="", encoding=self.encoding) as handle:
                reader = csv.DictReader(handle, delimiter=self.delimiter)
                if not reader.fieldnames:
                    raise ParseError(f"CSV file {path} has no header row", payload_size=0)
                records = [canonicalize_record(row) for row in reader]
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise ParseError(f"Cannot read CSV file {path}: {exc}", payload_size=_size(path)) from exc

        return PageResult(records=records, shape=ResponseShape.LEGACY_ARRAY, payload_size=_size(path))


class JsonFileSource(SourceAdapter):
    """
    Reads a JSON export: a bare array, a {rows: [...]} object, or JSON Lines
    (.jsonl, one object per line).
    """

    def __init__(self, encoding: str = "utf-8-sig"):
        super().__init__(max_pages=1)
        self.encoding = encoding

    def fetch_page(self, unit: QueryUnit, page: int, page_size: int) -> PageResult:
        path = _require_path(unit)
        size = _size(path)
        try:
            text = path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f"Cannot read JSON file {path}: {exc}", payload_size=size) from exc

        try:
            if path.suffix.lower() == ".jsonl":
                payload = [json.loads(line) for line in text.splitlines() if line.strip()]
            else:
                payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Malformed JSON in {path}: {exc.msg}", payload_size=size) from exc

        result = resolve_shape(payload, size)
        # A file is always a single page, even when it carries totalPages
        return PageResult(records=result.records, shape=ResponseShape.LEGACY_ARRAY, payload_size=size)


def _size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
