"""Heuristic mapping of semantic roles onto free-form table headers."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple
import logging
import math
import re

from .constants import _NULL_SENTINELS
from .types import Scalar, Table

logger = logging.getLogger(__name__)

ROW_ORDER = "@row_order"

ValueKind = Literal["number", "year", "text", "raw"]

_NUMBER_RE = re.compile(r"\d[\d,]*")
_YEAR_RE = re.compile(r"\d{4}")


@dataclass(frozen=True)
class RoleSpec:
    """One semantic role and the header keywords that identify its column.

    ``fallback`` lists, in order, other role names (or :data:`ROW_ORDER`) whose
    value is used when this role resolves to null for a row.
    """

    name: str
    hints: Tuple[str, ...]
    kind: ValueKind = "number"
    essential: bool = False
    fallback: Tuple[str, ...] = ()
    first_column_default: bool = False


@dataclass(frozen=True)
class ResolvedRecords:
    records: Tuple[Dict[str, Scalar], ...]
    columns: Dict[str, Optional[str]]
    excluded: int = 0
    source_rows: int = 0

    def values(self, role: str) -> List[Scalar]:
        return [record.get(role) for record in self.records]


def extract_number(value: Any) -> Optional[int | float]:
    """First run of digits (commas allowed) in a cell, as a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    match = _NUMBER_RE.search(str(value))
    if not match:
        return None
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else None


def extract_year(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if value is None:
        return None
    match = _YEAR_RE.search(str(value))
    return int(match.group(0)) if match else None


def _extract_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if text in _NULL_SENTINELS:
        return None
    return text


def _extract_raw(value: Any) -> Scalar:
    if isinstance(value, str) and value.strip() in _NULL_SENTINELS:
        return None
    return value


_EXTRACTORS = {
    "number": extract_number,
    "year": extract_year,
    "text": _extract_text,
    "raw": _extract_raw,
}


class ColumnResolver:
    """Resolves an ordered list of :class:`RoleSpec` against a table.

    Column choice is deterministic: roles are evaluated in configuration
    order, and each takes the first header (in table order) that contains any
    of its hints, case-insensitively.
    """

    def __init__(self, roles: Sequence[RoleSpec]) -> None:
        names = [role.name for role in roles]
        if len(set(names)) != len(names):
            raise ValueError("role names must be unique")
        self.roles: Tuple[RoleSpec, ...] = tuple(roles)

    def resolve_columns(self, columns: Sequence[str]) -> Dict[str, Optional[str]]:
        lowered = [(name, name.lower()) for name in columns]
        mapping: Dict[str, Optional[str]] = {}
        for role in self.roles:
            chosen: Optional[str] = None
            for name, lower in lowered:
                if any(hint.lower() in lower for hint in role.hints):
                    chosen = name
                    break
            if chosen is None and role.first_column_default and columns:
                chosen = columns[0]
            mapping[role.name] = chosen
        return mapping

    def resolve(self, table: Table, essential: Optional[Iterable[str]] = None) -> ResolvedRecords:
        """Build typed records; rows missing an essential role are excluded."""
        essential_roles = (
            set(essential) if essential is not None else {r.name for r in self.roles if r.essential}
        )
        mapping = self.resolve_columns(table.columns)
        records: List[Dict[str, Scalar]] = []
        excluded = 0

        for row in table.rows:
            record: Dict[str, Scalar] = {}
            for role in self.roles:
                column = mapping[role.name]
                value = _EXTRACTORS[role.kind](row.get(column)) if column else None
                if value is None:
                    value = self._fallback_value(role, record, len(records))
                record[role.name] = value

            if any(record.get(name) is None for name in essential_roles):
                excluded += 1
                continue
            records.append(record)

        if excluded:
            logger.debug(
                "excluded rows missing essential roles",
                extra={"excluded": excluded, "essential": sorted(essential_roles)},
            )
        return ResolvedRecords(
            records=tuple(records),
            columns=mapping,
            excluded=excluded,
            source_rows=table.row_count,
        )

    @staticmethod
    def _fallback_value(role: RoleSpec, record: Mapping[str, Scalar], emitted: int) -> Scalar:
        for source in role.fallback:
            if source == ROW_ORDER:
                return emitted + 1
            value = record.get(source)
            if value is not None:
                return value
        return None


FILM_ROLES: Tuple[RoleSpec, ...] = (
    RoleSpec("title", ("title", "film", "movie"), kind="text", essential=True, first_column_default=True),
    RoleSpec("revenue", ("worldwide", "gross", "box office", "revenue"), kind="number", essential=True),
    RoleSpec("year", ("year", "released"), kind="year"),
    RoleSpec("rank", ("rank", "position"), kind="number", fallback=(ROW_ORDER,)),
    RoleSpec("peak", ("peak",), kind="number", fallback=("rank", ROW_ORDER)),
)

COURT_CASE_ROLES: Tuple[RoleSpec, ...] = (
    RoleSpec("court", ("court",), kind="text"),
    RoleSpec("year", ("year",), kind="year", essential=True),
    RoleSpec("registered", ("registration",), kind="raw"),
    RoleSpec("decided", ("decision",), kind="raw"),
    RoleSpec("delay", ("delay",), kind="raw"),
)

COURT_COUNT_ROLES: Tuple[RoleSpec, ...] = (
    RoleSpec("court", ("court",), kind="text", essential=True),
    RoleSpec("year", ("year",), kind="year"),
    RoleSpec("cases", ("case_count", "cases", "count"), kind="number", essential=True),
)


__all__ = [
    "COURT_CASE_ROLES",
    "COURT_COUNT_ROLES",
    "ColumnResolver",
    "FILM_ROLES",
    "ROW_ORDER",
    "ResolvedRecords",
    "RoleSpec",
    "extract_number",
    "extract_year",
]
