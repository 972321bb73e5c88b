from __future__ import annotations
import csv, io, logging, re
from typing import Any, Dict, List, Literal, Mapping, Sequence, Set, Union

from bs4 import BeautifulSoup

from ..core.types import BinaryInput, Table
from ..core.errors import ExtractionError
from ..core.utils import _ensure_bytes, _maybe_gunzip
from ..core.constants import _DATA_TABLE_CLASS, _MAX_DELIMITED_ROWS

logger = logging.getLogger(__name__)

SourceKind = Literal["html", "delimited", "query"]

_FOOTNOTE_RE = re.compile(r"\[.*?\]")
_WHITESPACE_RE = re.compile(r"\s+")


class _HeaderNormalizer:
    """Normalizes and deduplicates column headers."""

    def __init__(self) -> None:
        self._base_counts: Dict[str, int] = {}
        self._used: Set[str] = set()

    def _clean(self, raw: Any, index: int) -> str:
        text = "" if raw is None else str(raw)
        text = text.lstrip("\ufeff").strip()
        if not text:
            return f"column_{index + 1}"
        return text

    def _allocate(self, base: str) -> str:
        count = self._base_counts.get(base, 0)
        candidate = base if count == 0 else f"{base}_{count + 1}"
        while candidate in self._used:
            count += 1
            candidate = f"{base}_{count + 1}"
        self._base_counts[base] = count + 1
        self._used.add(candidate)
        return candidate

    def normalize(self, fieldnames: Sequence[Any]) -> List[str]:
        return [self._allocate(self._clean(name, index)) for index, name in enumerate(fieldnames)]


def clean_cell(text: str) -> str:
    """Drop bracketed citation markers and collapse internal whitespace."""
    text = _FOOTNOTE_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_html_table(markup: Union[str, bytes], table_class: str = _DATA_TABLE_CLASS) -> Table:
    """First ``<table class="{table_class}">`` on the page as a :class:`Table`.

    The first row supplies the headers. Short rows are padded with ``""``;
    cells beyond the header count are ignored.
    """
    soup = BeautifulSoup(markup, "html.parser")
    table = soup.find("table", class_=table_class)
    if table is None:
        raise ExtractionError(ExtractionError.NO_TABLE_FOUND, f"no table.{table_class} on page")

    rows = table.find_all("tr")
    if not rows:
        raise ExtractionError(ExtractionError.EMPTY_SOURCE, "data table has no rows")

    header_cells = rows[0].find_all(["th", "td"])
    headers = _HeaderNormalizer().normalize(
        [clean_cell(cell.get_text(" ", strip=True)) for cell in header_cells]
    )

    records: List[Dict[str, Any]] = []
    for row in rows[1:]:
        cells = [clean_cell(cell.get_text(" ", strip=True)) for cell in row.find_all(["td", "th"])]
        if not cells:
            continue
        if len(cells) != len(headers):
            logger.debug("padding mismatched row", extra={"cells": len(cells), "headers": len(headers)})
        records.append({name: cells[index] if index < len(cells) else "" for index, name in enumerate(headers)})

    logger.info("extracted html table", extra={"rows": len(records), "columns": len(headers)})
    return Table.from_rows(headers, records, source_format="html")


def _delimiter_for(key: str) -> str:
    lowered = key.lower()
    if lowered.endswith(".tsv") or lowered.endswith(".tab"):
        return "\t"
    return ","


def extract_delimited(
    body: Union[BinaryInput, str],
    key: str = "dataset.csv",
    max_rows: int = _MAX_DELIMITED_ROWS,
) -> Table:
    """Header row plus data rows; rows beyond ``max_rows`` are truncated.

    Undecodable gzip bodies and rows the CSV reader rejects raise
    ``ExtractionError(MalformedSource)``.
    """
    try:
        key, data = _maybe_gunzip(key, _ensure_bytes(body))
    except ValueError as exc:
        raise ExtractionError(ExtractionError.MALFORMED_SOURCE, str(exc)) from exc
    text = data.decode("utf-8-sig", errors="replace")
    reader = csv.reader(io.StringIO(text), delimiter=_delimiter_for(key))
    try:
        return _read_delimited(reader, key, max_rows)
    except csv.Error as exc:
        raise ExtractionError(ExtractionError.MALFORMED_SOURCE, f"{key} line {reader.line_num}: {exc}") from exc


def _read_delimited(reader: Any, key: str, max_rows: int) -> Table:
    try:
        first_row = next(reader)
    except StopIteration:
        raise ExtractionError(ExtractionError.EMPTY_SOURCE, f"{key} is empty") from None

    normalizer = _HeaderNormalizer()
    headers = normalizer.normalize(first_row)
    records: List[Dict[str, Any]] = []
    truncated = False
    for raw_row in reader:
        if not raw_row or all(cell.strip() == "" for cell in raw_row):
            continue
        if len(records) >= max_rows:
            truncated = True
            break
        row = list(raw_row)
        if len(row) < len(headers):
            row.extend([""] * (len(headers) - len(row)))
        records.append({headers[index]: row[index] for index in range(len(headers))})

    if truncated:
        logger.warning("delimited input truncated", extra={"key": key, "max_rows": max_rows})
    source_format = "tsv" if _delimiter_for(key) == "\t" else "csv"
    return Table.from_rows(headers, records, source_format=source_format)


def table_from_query_rows(columns: Sequence[str], rows: Sequence[Union[Sequence[Any], Mapping[str, Any]]]) -> Table:
    """Query result rows, unchanged, in the table shape."""
    names = list(columns)
    records: List[Mapping[str, Any]] = []
    for row in rows:
        if isinstance(row, Mapping):
            records.append(row)
        else:
            records.append(dict(zip(names, row)))
    return Table.from_rows(names, records, source_format="query")


def extract_table(source_kind: SourceKind, payload: Any, **options: Any) -> Table:
    """Dispatch a raw payload to the extractor for ``source_kind``.

    ``html`` takes markup, ``delimited`` takes text/bytes, ``query`` takes a
    ``(columns, rows)`` pair.
    """
    if source_kind == "html":
        return extract_html_table(payload, **options)
    if source_kind == "delimited":
        return extract_delimited(payload, **options)
    if source_kind == "query":
        columns, rows = payload
        return table_from_query_rows(columns, rows)
    raise ValueError(f"Unsupported source kind: {source_kind}")
