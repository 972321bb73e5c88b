from typing import Optional

from ..core.config import Settings
from ..core.types import TaskIntent
from .base import AnalysisContext, AnalysisOutcome, PipelineDeps, SourceAnalysis, SourcePayload, find_url
from .court import CourtAnalysis
from .films import FilmsAnalysis, determine_url, is_films_task
from .tabular import TabularAnalysis


def select_analysis(
    intent: TaskIntent,
    task: str,
    settings: Settings,
    payload: Optional[SourcePayload] = None,
) -> SourceAnalysis:
    """Pick the analysis for a classified task; uploaded data wins over scraping."""
    if intent.data_source == "court_data":
        return CourtAnalysis(settings.court_parquet_path)
    if payload is not None:
        return TabularAnalysis()
    if intent.data_source == "wikipedia" and is_films_task(task):
        return FilmsAnalysis(determine_url(task))
    return TabularAnalysis(find_url(task))


__all__ = [
    "AnalysisContext",
    "AnalysisOutcome",
    "CourtAnalysis",
    "FilmsAnalysis",
    "PipelineDeps",
    "SourceAnalysis",
    "SourcePayload",
    "TabularAnalysis",
    "select_analysis",
]
