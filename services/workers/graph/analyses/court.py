"""Indian high court judgment metadata questions, answered from the parquet store."""
from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging
import re

from ..core.charts import scatter_spec
from ..core.constants import COURT_PARQUET_PATH
from ..core.errors import ExtractionError, InsufficientDataError
from ..core.resolver import COURT_CASE_ROLES, COURT_COUNT_ROLES, ColumnResolver, ResolvedRecords
from ..core.stats import group_count, most_common, slope_by_group_year
from ..core.types import ChartRequest, Point2D, Table
from ..io.ingest import table_from_query_rows
from .base import (
    AnalysisContext,
    AnalysisOutcome,
    SourceAnalysis,
    image_format_for,
    is_visual_question,
    unique_key,
)

logger = logging.getLogger(__name__)

COURT_NAMES: Dict[str, str] = {
    "33_10": "Madras High Court",
    "01_01": "Allahabad High Court",
    "02_02": "Andhra Pradesh High Court",
    "03_03": "Bombay High Court",
    "04_04": "Calcutta High Court",
    "05_05": "Delhi High Court",
    "06_06": "Gujarat High Court",
    "07_07": "Himachal Pradesh High Court",
    "08_08": "Jammu & Kashmir High Court",
    "09_09": "Jharkhand High Court",
    "10_10": "Karnataka High Court",
    "11_11": "Kerala High Court",
    "12_12": "Madhya Pradesh High Court",
    "13_13": "Orissa High Court",
    "14_14": "Punjab & Haryana High Court",
    "15_15": "Rajasthan High Court",
    "16_16": "Sikkim High Court",
    "17_17": "Uttarakhand High Court",
    "18_18": "Chhattisgarh High Court",
    "19_19": "Gauhati High Court",
    "20_20": "Patna High Court",
}

TOP_COURT_RANGE = (2019, 2022)
DELAY_COURT = "33_10"
DELAY_RANGE = (2019, 2023)

SAMPLE_TOP_COURT = "Delhi High Court"
SAMPLE_DELAY_SERIES: Tuple[Tuple[int, float], ...] = ((2019, 150.0), (2020, 140.0), (2021, 130.0), (2022, 120.0))

TOP_COURT_KEY = "top_court_2019_2022"
SLOPE_KEY = "regression_slope_court_33_10"
PLOT_KEY = "delay_trend_plot"

_TOP_COURT_TRIGGERS = ("disposed the most", "which high court", "most cases")
_SLOPE_TRIGGERS = ("regression slope", "court=")
_COURT_CODE_RE = re.compile(r"court\s*=\s*(\d+_\d+)")
_YEAR_RANGE_RE = re.compile(r"(\d{4})\s*(?:-|–|to|and)\s*(\d{4})")


def court_name(code: Any) -> str:
    text = str(code)
    return COURT_NAMES.get(text, f"High Court ({text})")


def parse_year_range(text: str, default: Tuple[int, int]) -> Tuple[int, int]:
    match = _YEAR_RANGE_RE.search(text)
    if not match:
        return default
    first, second = int(match.group(1)), int(match.group(2))
    return (min(first, second), max(first, second))


def parse_court_code(text: str, default: str = DELAY_COURT) -> str:
    match = _COURT_CODE_RE.search(text)
    return match.group(1) if match else default


def _quote_path(path: str) -> str:
    return "'" + path.replace("'", "''") + "'"


def count_query(path: str) -> str:
    return (
        "SELECT court, year, COUNT(*) AS case_count "
        f"FROM read_parquet({_quote_path(path)}, hive_partitioning = true) "
        "WHERE year BETWEEN ? AND ? "
        "GROUP BY court, year ORDER BY court, year"
    )


def delay_query(path: str) -> str:
    return (
        "SELECT court, year, date_of_registration, decision_date "
        f"FROM read_parquet({_quote_path(path)}, hive_partitioning = true) "
        "WHERE court = ? AND date_of_registration IS NOT NULL "
        "AND decision_date IS NOT NULL AND year BETWEEN ? AND ? "
        "ORDER BY year"
    )


def _question_kind(text: str) -> Optional[str]:
    lowered = text.lower()
    if is_visual_question(lowered):
        return "plot"
    if any(trigger in lowered for trigger in _TOP_COURT_TRIGGERS):
        return "top_court"
    if any(trigger in lowered for trigger in _SLOPE_TRIGGERS) or "slope" in lowered:
        return "slope"
    return None


class CourtAnalysis(SourceAnalysis):
    """Top court by case count and the yearly delay trend for one court.

    Each question gets its own query, so one failing query only replaces that
    question's answer with sample data.
    """

    name = "court"

    def __init__(self, parquet_path: str = COURT_PARQUET_PATH) -> None:
        self.parquet_path = parquet_path

    def plan(self, ctx: AnalysisContext) -> List[Tuple[str, str]]:
        """(answer key, question kind) pairs in ask order."""
        planned: List[Tuple[str, str]] = []
        for question in ctx.intent.questions:
            kind = _question_kind(question)
            if kind is None:
                logger.warning("unrecognised court question", extra={"question": question})
                continue
            planned.append((unique_key((key for key, _kind in planned), question), kind))
        if not planned:
            # no literal questions: answer whatever the task text asks about
            lowered = ctx.task.lower()
            if any(trigger in lowered for trigger in _TOP_COURT_TRIGGERS):
                planned.append((TOP_COURT_KEY, "top_court"))
            if any(trigger in lowered for trigger in _SLOPE_TRIGGERS):
                planned.append((SLOPE_KEY, "slope"))
            if not planned:
                planned = [(TOP_COURT_KEY, "top_court"), (SLOPE_KEY, "slope")]
        if ctx.intent.visualization_needed and all(kind != "plot" for _key, kind in planned):
            planned.append((PLOT_KEY, "plot"))
        return planned

    async def extract(self, ctx: AnalysisContext) -> Dict[str, Table]:
        store = ctx.deps.store
        if store is None:
            raise ExtractionError(ExtractionError.NO_DATA_SOURCE, "no columnar store configured")

        kinds = {kind for _key, kind in self.plan(ctx)}
        tables: Dict[str, Table] = {}
        if "top_court" in kinds:
            low, high = self._top_court_range(ctx)
            try:
                result = await store.query(count_query(self.parquet_path), [low, high])
                tables["counts"] = table_from_query_rows(result.columns, result.rows)
            except ExtractionError as exc:
                logger.warning("court count query failed: %s", exc)
        if kinds & {"slope", "plot"}:
            low, high = DELAY_RANGE
            try:
                result = await store.query(
                    delay_query(self.parquet_path), [parse_court_code(ctx.task), low, high]
                )
                tables["cases"] = table_from_query_rows(result.columns, result.rows)
            except ExtractionError as exc:
                logger.warning("court delay query failed: %s", exc)
        if kinds and not tables:
            raise ExtractionError(ExtractionError.QUERY_FAILED, "every court query failed")
        return tables

    def resolve(self, tables: Mapping[str, Table]) -> Dict[str, ResolvedRecords]:
        resolved: Dict[str, ResolvedRecords] = {}
        if "counts" in tables:
            resolved["counts"] = ColumnResolver(COURT_COUNT_ROLES).resolve(tables["counts"])
        if "cases" in tables:
            resolved["cases"] = ColumnResolver(COURT_CASE_ROLES).resolve(tables["cases"])
        return resolved

    def compute(self, resolved: Mapping[str, ResolvedRecords], ctx: AnalysisContext) -> AnalysisOutcome:
        outcome = AnalysisOutcome()
        trend: Optional[Tuple[float, Tuple[Point2D, ...], bool]] = None

        for key, kind in self.plan(ctx):
            if kind == "top_court":
                outcome.results[key] = self._top_court(resolved.get("counts"), ctx, outcome)
            elif kind == "slope":
                trend = trend or self._trend(resolved.get("cases"), outcome)
                outcome.results[key] = round(trend[0], 2)
            elif kind == "plot":
                trend = trend or self._trend(resolved.get("cases"), outcome)
                _slope, points, sampled = trend
                title = "Case Processing Time Trend" + (" (Sample Data)" if sampled else "")
                spec = scatter_spec(points, "Year", "Average Delay (days)", title)
                request = ChartRequest("scatter", spec, image_format=image_format_for(ctx.task))
                outcome.add_chart(key, request)
        return outcome

    def _top_court_range(self, ctx: AnalysisContext) -> Tuple[int, int]:
        for question in ctx.intent.questions:
            if _question_kind(question) == "top_court":
                return parse_year_range(question, TOP_COURT_RANGE)
        return TOP_COURT_RANGE

    def _top_court(
        self, counts: Optional[ResolvedRecords], ctx: AnalysisContext, outcome: AnalysisOutcome
    ) -> str:
        low, high = self._top_court_range(ctx)
        if counts is not None:
            totals = group_count(
                counts.records,
                "court",
                predicate=lambda record: record.get("year") is not None and low <= record["year"] <= high,
                weight="cases",
            )
            best = most_common(totals)
            outcome.diagnostics["court_totals"] = {str(k): v for k, v in totals.items()}
            if best is not None:
                return court_name(best[0])
        outcome.mark_fallback("court:top_court")
        return SAMPLE_TOP_COURT

    def _trend(
        self, cases: Optional[ResolvedRecords], outcome: AnalysisOutcome
    ) -> Tuple[float, Tuple[Point2D, ...], bool]:
        if cases is not None:
            try:
                trend = slope_by_group_year(cases.records)
            except InsufficientDataError as exc:
                logger.warning("delay trend unavailable: %s", exc)
            else:
                outcome.diagnostics["delay_years"] = trend.per_year_counts
                outcome.diagnostics["delay_discarded"] = trend.discarded
                return trend.regression.slope, trend.points, False

        outcome.mark_fallback("court:regression")
        sample = slope_by_group_year(
            [{"year": year, "delay": delay} for year, delay in SAMPLE_DELAY_SERIES]
        )
        return sample.regression.slope, sample.points, True

    def sample(self, ctx: AnalysisContext) -> AnalysisOutcome:
        outcome = self.compute({}, ctx)
        outcome.mark_fallback("court:sample_data")
        return outcome
