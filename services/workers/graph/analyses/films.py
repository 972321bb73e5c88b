"""Highest-grossing films questions answered from a scraped data table."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import re

from ..core.charts import scatter_spec
from ..core.constants import FILMS_URL
from ..core.errors import ExtractionError, InsufficientDataError
from ..core.resolver import FILM_ROLES, ColumnResolver, ResolvedRecords
from ..core.stats import clean_points, pearson
from ..core.types import ChartRequest, Record, Table
from ..io.ingest import extract_html_table
from .base import (
    AnalysisContext,
    AnalysisOutcome,
    SourceAnalysis,
    find_url,
    image_format_for,
    is_visual_question,
)

logger = logging.getLogger(__name__)

_FILMS_KEYWORDS = ("highest-grossing", "films")
_AMOUNT_RE = re.compile(r"\$\s*([0-9]+(?:\.[0-9]+)?)\s*(bn|billion|b|m|million)\b", re.IGNORECASE)
_BEFORE_RE = re.compile(r"before\s+(\d{4})", re.IGNORECASE)

DEFAULT_COUNT_THRESHOLD = 2_000_000_000
DEFAULT_COUNT_BEFORE = 2000
DEFAULT_EARLIEST_THRESHOLD = 1_500_000_000

DEFAULT_QUESTIONS = (
    "How many $2 bn movies were released before 2000?",
    "Which is the earliest film that grossed over $1.5 bn?",
    "What's the correlation between the Rank and Peak?",
)
DEFAULT_CHART_QUESTION = "Draw a scatterplot of Rank and Peak along with a dotted red regression line through it."

SAMPLE_FILM_RECORDS: Tuple[Dict[str, Any], ...] = (
    {"title": "Avatar", "revenue": 2_923_706_026, "year": 2009, "rank": 1, "peak": 1},
    {"title": "Avengers: Endgame", "revenue": 2_797_501_328, "year": 2019, "rank": 2, "peak": 1},
    {"title": "Avatar: The Way of Water", "revenue": 2_320_250_281, "year": 2022, "rank": 3, "peak": 3},
    {"title": "Titanic", "revenue": 2_264_750_694, "year": 1997, "rank": 4, "peak": 1},
    {"title": "Star Wars: The Force Awakens", "revenue": 2_071_310_218, "year": 2015, "rank": 5, "peak": 3},
    {"title": "Avengers: Infinity War", "revenue": 2_052_415_039, "year": 2018, "rank": 6, "peak": 4},
)


def determine_url(task: str) -> str:
    """Films keywords win, then the first URL in the task, then the films list."""
    lowered = task.lower()
    if any(keyword in lowered for keyword in _FILMS_KEYWORDS):
        return FILMS_URL
    return find_url(task) or FILMS_URL


def is_films_task(task: str) -> bool:
    lowered = task.lower()
    if any(keyword in lowered for keyword in _FILMS_KEYWORDS):
        return True
    return find_url(task) is None


def parse_amount(text: str, default: float) -> float:
    match = _AMOUNT_RE.search(text)
    if not match:
        return default
    scale = 1e6 if match.group(2).lower() in ("m", "million") else 1e9
    return float(match.group(1)) * scale


def parse_before_year(text: str, default: int) -> int:
    match = _BEFORE_RE.search(text)
    return int(match.group(1)) if match else default


def count_films(records: Sequence[Record], threshold: float, before: int) -> int:
    return sum(
        1
        for record in records
        if (record.get("revenue") or 0) >= threshold
        and record.get("year")
        and record["year"] < before
    )


def earliest_film(records: Sequence[Record], threshold: float) -> Optional[Record]:
    """Earliest-released film at or above ``threshold``; ties keep the last row."""
    best: Optional[Record] = None
    for record in records:
        if (record.get("revenue") or 0) < threshold or not record.get("year"):
            continue
        if best is None or record["year"] <= best["year"]:
            best = record
    return best


def _format_billions(amount: float) -> str:
    return f"${amount / 1e9:g}bn"


@dataclass(frozen=True)
class _Question:
    kind: str
    text: str


def _classify_question(text: str) -> _Question:
    lowered = text.lower()
    if is_visual_question(lowered):
        return _Question("chart", text)
    if "correlation" in lowered:
        return _Question("correlation", text)
    if "earliest" in lowered or "first film" in lowered:
        return _Question("earliest", text)
    if "how many" in lowered or "count" in lowered:
        return _Question("count", text)
    return _Question("unknown", text)


class FilmsAnalysis(SourceAnalysis):
    name = "films"

    def __init__(self, url: str = FILMS_URL) -> None:
        self.url = url

    async def extract(self, ctx: AnalysisContext) -> Dict[str, Table]:
        fetcher = ctx.deps.fetcher
        if fetcher is None:
            raise ExtractionError(ExtractionError.NO_DATA_SOURCE, "no page fetcher configured")
        markup = await fetcher.fetch_text(self.url)
        return {"films": extract_html_table(markup)}

    def resolve(self, tables: Mapping[str, Table]) -> ResolvedRecords:
        resolved = ColumnResolver(FILM_ROLES).resolve(tables["films"])
        logger.info(
            "resolved film records",
            extra={"records": len(resolved.records), "excluded": resolved.excluded},
        )
        return resolved

    def compute(self, resolved: ResolvedRecords, ctx: AnalysisContext) -> AnalysisOutcome:
        outcome = AnalysisOutcome()
        outcome.diagnostics.update(
            {"records": len(resolved.records), "excluded": resolved.excluded, "columns": resolved.columns}
        )
        if not resolved.records:
            raise InsufficientDataError(1, 0, "film records")

        questions: List[str] = list(ctx.intent.questions) or list(DEFAULT_QUESTIONS)
        asked_chart = False
        for question in map(_classify_question, questions):
            key = outcome.answer_key(question.text)
            if question.kind == "count":
                threshold = parse_amount(question.text, DEFAULT_COUNT_THRESHOLD)
                before = parse_before_year(question.text, DEFAULT_COUNT_BEFORE)
                outcome.results[key] = count_films(resolved.records, threshold, before)
            elif question.kind == "earliest":
                threshold = parse_amount(question.text, DEFAULT_EARLIEST_THRESHOLD)
                film = earliest_film(resolved.records, threshold)
                outcome.results[key] = (
                    f"{film['title']} ({film['year']})"
                    if film is not None
                    else f"No films found over {_format_billions(threshold)}"
                )
            elif question.kind == "correlation":
                outcome.results[key] = self._rank_peak_correlation(resolved, outcome)
            elif question.kind == "chart":
                asked_chart = True
                outcome.add_chart(key, self._rank_peak_chart(resolved, outcome, question.text))
            else:
                logger.warning("unrecognised films question", extra={"question": question.text})
                outcome.results[key] = None

        if ctx.intent.visualization_needed and not asked_chart:
            outcome.add_chart(DEFAULT_CHART_QUESTION, self._rank_peak_chart(resolved, outcome, ctx.task))
        return outcome

    def _rank_peak_correlation(self, resolved: ResolvedRecords, outcome: AnalysisOutcome) -> float:
        cleaned = clean_points(resolved.values("rank"), resolved.values("peak"))
        outcome.diagnostics["correlation_points"] = cleaned.clean_count
        outcome.diagnostics["correlation_dropped"] = cleaned.dropped
        try:
            return round(pearson(cleaned.xs, cleaned.ys), 3)
        except InsufficientDataError:
            outcome.mark_fallback("films:correlation")
            return 0.0

    def _rank_peak_chart(
        self, resolved: ResolvedRecords, outcome: AnalysisOutcome, text: str
    ) -> Optional[ChartRequest]:
        cleaned = clean_points(resolved.values("rank"), resolved.values("peak"))
        try:
            spec = scatter_spec(cleaned.points, "Rank", "Peak", "Rank vs Peak Correlation")
        except InsufficientDataError:
            outcome.mark_fallback("films:chart")
            return None
        return ChartRequest("scatter", spec, image_format=image_format_for(text))

    def sample(self, ctx: AnalysisContext) -> AnalysisOutcome:
        sample_records = ResolvedRecords(
            records=tuple(dict(record) for record in SAMPLE_FILM_RECORDS),
            columns={role.name: role.name for role in FILM_ROLES},
            excluded=0,
            source_rows=len(SAMPLE_FILM_RECORDS),
        )
        outcome = self.compute(sample_records, ctx)
        outcome.mark_fallback("films:sample_data")
        return outcome
