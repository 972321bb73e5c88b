"""Summary analysis for arbitrary uploaded or scraped tables."""
from __future__ import annotations
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from ..core.charts import bar_spec, scatter_spec
from ..core.constants import _MAX_PREVIEW_ROWS
from ..core.errors import ExtractionError, InsufficientDataError
from ..core.resolver import _extract_text
from ..core.stats import clean_points, descriptive_stats, group_count, linear_regression, most_common, pearson, to_float
from ..core.types import ChartRequest, Table
from ..core.utils import _format_preview
from ..io.ingest import extract_delimited, extract_html_table
from .base import AnalysisContext, AnalysisOutcome, SourceAnalysis, find_url, image_format_for

logger = logging.getLogger(__name__)

# a column is numeric when at least this share of its non-empty cells coerce
_NUMERIC_SHARE = 0.5
_MAX_BAR_CATEGORIES = 20


@dataclass
class TypedColumns:
    table: Table
    numeric: Dict[str, List[Optional[float]]] = field(default_factory=dict)
    categorical: Dict[str, List[Optional[str]]] = field(default_factory=dict)


@dataclass(frozen=True)
class PairCorrelation:
    left: str
    right: str
    coefficient: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left": self.left,
            "right": self.right,
            "correlation": round(self.coefficient, 3),
            "sampleSize": self.sample_size,
        }


def type_columns(table: Table) -> TypedColumns:
    typed = TypedColumns(table=table)
    for name in table.columns:
        raw = table.column_values(name)
        texts = [_extract_text(value) for value in raw]
        present = [text for text in texts if text is not None]
        numbers = [to_float(value) for value in raw]
        parsed = sum(1 for number in numbers if number is not None)
        if present and parsed / len(present) >= _NUMERIC_SHARE:
            typed.numeric[name] = numbers
        else:
            typed.categorical[name] = texts
    return typed


def strongest_correlation(numeric: Mapping[str, List[Optional[float]]]) -> Optional[PairCorrelation]:
    """Pair of numeric columns with the largest absolute Pearson coefficient.

    Pairs are visited in column order and only a strictly larger magnitude
    replaces the current best.
    """
    best: Optional[PairCorrelation] = None
    for left, right in combinations(numeric, 2):
        cleaned = clean_points(numeric[left], numeric[right])
        try:
            coefficient = pearson(cleaned.xs, cleaned.ys)
        except InsufficientDataError:
            continue
        if best is None or abs(coefficient) > abs(best.coefficient):
            best = PairCorrelation(left, right, coefficient, cleaned.clean_count)
    return best


class TabularAnalysis(SourceAnalysis):
    name = "table"
    allows_fallback = False

    def __init__(self, url: Optional[str] = None) -> None:
        self.url = url

    async def extract(self, ctx: AnalysisContext) -> Dict[str, Table]:
        if ctx.payload is not None:
            table = extract_delimited(
                ctx.payload.body,
                key=ctx.payload.filename,
                max_rows=ctx.deps.settings.max_delimited_rows,
            )
            return {"table": table}

        url = self.url or find_url(ctx.task)
        if url is None:
            raise ExtractionError(ExtractionError.NO_DATA_SOURCE, "task names no data source")
        if ctx.deps.fetcher is None:
            raise ExtractionError(ExtractionError.NO_DATA_SOURCE, "no page fetcher configured")
        markup = await ctx.deps.fetcher.fetch_text(url)
        return {"table": extract_html_table(markup)}

    def resolve(self, tables: Mapping[str, Table]) -> TypedColumns:
        typed = type_columns(tables["table"])
        logger.info(
            "typed table columns",
            extra={"numeric": list(typed.numeric), "categorical": list(typed.categorical)},
        )
        return typed

    def compute(self, typed: TypedColumns, ctx: AnalysisContext) -> AnalysisOutcome:
        table = typed.table
        intent = ctx.intent
        outcome = AnalysisOutcome()
        outcome.results["rows"] = table.row_count
        outcome.results["columns"] = list(table.columns)
        outcome.diagnostics["preview"] = [
            {key: _format_preview(value) for key, value in row.items()}
            for row in table.preview(_MAX_PREVIEW_ROWS)
        ]

        summary: Dict[str, Any] = {}
        for name, values in typed.numeric.items():
            try:
                summary[name] = descriptive_stats(values).to_dict()
            except InsufficientDataError:
                continue
        if summary:
            outcome.results["summary"] = summary

        pair = strongest_correlation(typed.numeric)
        if pair is not None:
            outcome.results["correlation"] = pair.to_dict()
            wants_regression = intent.analysis_type == "regression" or "regression" in intent.statistical_operations
            if wants_regression:
                cleaned = clean_points(typed.numeric[pair.left], typed.numeric[pair.right])
                regression = linear_regression(cleaned.points)
                outcome.results["regression"] = {
                    "x": pair.left,
                    "y": pair.right,
                    "slope": regression.slope,
                    "intercept": regression.intercept,
                }

        counts: Dict[Any, float] = {}
        if typed.categorical:
            column = next(iter(typed.categorical))
            counts = group_count(({"value": value} for value in typed.categorical[column]), "value")
            best = most_common(counts)
            if best is not None:
                outcome.results["most_common"] = {"column": column, "value": best[0], "count": int(best[1])}

        if intent.visualization_needed:
            outcome.add_chart("chart", self._chart(typed, pair, counts, ctx.task))
        return outcome

    def _chart(
        self,
        typed: TypedColumns,
        pair: Optional[PairCorrelation],
        counts: Mapping[Any, float],
        task: str,
    ) -> Optional[ChartRequest]:
        image_format = image_format_for(task)
        if pair is not None:
            cleaned = clean_points(typed.numeric[pair.left], typed.numeric[pair.right])
            try:
                spec = scatter_spec(cleaned.points, pair.left, pair.right, f"{pair.left} vs {pair.right}")
            except InsufficientDataError:
                spec = None
            if spec is not None:
                return ChartRequest("scatter", spec, image_format=image_format)
        if counts:
            column = next(iter(typed.categorical))
            items: List[Tuple[Any, float]] = list(counts.items())[:_MAX_BAR_CATEGORIES]
            spec = bar_spec(
                [str(label) for label, _count in items],
                [count for _label, count in items],
                column,
                "Count",
                f"{column} frequency",
            )
            return ChartRequest("bar", spec, image_format=image_format)
        logger.warning("no chartable columns in table")
        return None
