from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, NamedTuple, Optional, Sequence, Tuple, Union, IO
import math

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# type alias used across the code
BinaryInput = Union[bytes, bytearray, IO[bytes]]
Scalar = Union[str, int, float, None]
Record = Mapping[str, Scalar]

ChartKind = Literal["scatter", "bar", "line"]


@dataclass(frozen=True)
class Table:
    """Uniform header + rows model produced by every extractor.

    Every row carries exactly the table's column set; missing cells are
    ``None`` (or ``""`` where the source itself had an empty cell).
    """

    columns: Tuple[str, ...]
    rows: Tuple[Dict[str, Scalar], ...]
    source_format: str = "unknown"

    @classmethod
    def from_rows(
        cls,
        columns: Sequence[str],
        rows: Sequence[Mapping[str, Any]],
        source_format: str = "unknown",
    ) -> "Table":
        names = tuple(columns)
        if len(set(names)) != len(names):
            raise ValueError("table column names must be unique")
        normalized = tuple({name: row.get(name) for name in names} for row in rows)
        return cls(columns=names, rows=normalized, source_format=source_format)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_values(self, name: str) -> List[Scalar]:
        return [row[name] for row in self.rows]

    def preview(self, n: int) -> List[Dict[str, Scalar]]:
        return [dict(row) for row in self.rows[:n]]


class Point2D(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class CleanPoints:
    """Paired values that survived numeric coercion, plus how many did not."""

    points: Tuple[Point2D, ...]
    dropped: int = 0

    @property
    def clean_count(self) -> int:
        return len(self.points)

    @property
    def xs(self) -> List[float]:
        return [p.x for p in self.points]

    @property
    def ys(self) -> List[float]:
        return [p.y for p in self.points]


@dataclass(frozen=True)
class RegressionResult:
    slope: float
    intercept: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


@dataclass(frozen=True)
class DescriptiveStats:
    count: int
    mean: float
    median: float
    min: float
    max: float
    stddev: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "mean": self.mean,
            "median": self.median,
            "min": self.min,
            "max": self.max,
            "stddev": self.stddev,
        }


@dataclass(frozen=True)
class ChartSpec:
    series: Tuple[Point2D, ...]
    x_label: str
    y_label: str
    title: str
    overlay: Optional[Tuple[Point2D, ...]] = None
    slope: Optional[float] = None
    categories: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        for point in self.series:
            if not (math.isfinite(point.x) and math.isfinite(point.y)):
                raise ValueError("chart series must contain finite points only")


@dataclass(frozen=True)
class ChartRequest:
    kind: ChartKind
    spec: ChartSpec
    image_format: str = "png"


class TaskIntent(BaseModel):
    """Structured classification of a free-text analysis request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    data_source: Literal["wikipedia", "court_data", "csv", "unknown"] = "unknown"
    analysis_type: Literal[
        "correlation", "regression", "count", "visualization", "statistical_summary"
    ] = "statistical_summary"
    expected_output_format: Literal["json_array", "json_object", "base64_image"] = "json_array"
    visualization_needed: bool = False
    questions: List[str] = Field(default_factory=list)
    statistical_operations: List[str] = Field(default_factory=list)

    def with_questions(self, questions: Sequence[str]) -> "TaskIntent":
        return self.model_copy(update={"questions": list(questions)})


@dataclass
class PipelineResult:
    answer: Any
    intent: TaskIntent
    results: Dict[str, Any]
    fallbacks: List[str] = field(default_factory=list)
    phases: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def used_fallback(self) -> bool:
        return bool(self.fallbacks)
