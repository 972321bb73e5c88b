"""Shared plumbing for the per-data-source analyses."""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging
import re

from ..core.charts import ChartRenderer
from ..core.config import Settings
from ..core.types import ChartRequest, Table, TaskIntent
from ..io.columnar import QueryCollaborator
from ..io.fetch import PageFetcher

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s\"'<>]+")
_VISUAL_QUESTION_KEYWORDS = ("plot", "scatter", "chart", "draw", "graph", "visuali")


@dataclass(frozen=True)
class SourcePayload:
    """Uploaded delimited data accompanying a task."""

    body: bytes
    filename: str = "dataset.csv"


@dataclass
class PipelineDeps:
    settings: Settings
    fetcher: Optional[PageFetcher] = None
    store: Optional[QueryCollaborator] = None
    renderer: Optional[ChartRenderer] = None


@dataclass(frozen=True)
class AnalysisContext:
    task: str
    intent: TaskIntent
    deps: PipelineDeps
    payload: Optional[SourcePayload] = None


@dataclass
class AnalysisOutcome:
    """Named answers in ask order, pending charts and fallback markers."""

    results: Dict[str, Any] = field(default_factory=dict)
    charts: Dict[str, ChartRequest] = field(default_factory=dict)
    fallbacks: List[str] = field(default_factory=list)
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def add_chart(self, name: str, request: Optional[ChartRequest]) -> None:
        # placeholder keeps the answer's position until the render stage fills it
        self.results[name] = ""
        if request is not None:
            self.charts[name] = request

    def answer_key(self, text: str) -> str:
        """``text``, suffixed when an identical question was already answered."""
        return unique_key(self.results, text)

    def mark_fallback(self, marker: str) -> None:
        if marker not in self.fallbacks:
            self.fallbacks.append(marker)
            logger.warning("sample value substituted", extra={"marker": marker})


def unique_key(existing: Iterable[str], text: str) -> str:
    taken = set(existing)
    if text not in taken:
        return text
    index = 2
    while f"{text} ({index})" in taken:
        index += 1
    return f"{text} ({index})"


def find_url(text: str) -> Optional[str]:
    match = _URL_RE.search(text)
    return match.group(0).rstrip(".,)") if match else None


def is_visual_question(question: str) -> bool:
    lowered = question.lower()
    return any(keyword in lowered for keyword in _VISUAL_QUESTION_KEYWORDS)


def image_format_for(text: str) -> str:
    return "webp" if "webp" in text.lower() else "png"


class SourceAnalysis(ABC):
    """Extraction, resolution and computation for one kind of data source.

    ``allows_fallback`` decides whether extraction failures are replaced by
    :meth:`sample` or propagate to the caller.
    """

    name: str = "source"
    allows_fallback: bool = True

    @abstractmethod
    async def extract(self, ctx: AnalysisContext) -> Dict[str, Table]:
        ...

    @abstractmethod
    def resolve(self, tables: Mapping[str, Table]) -> Any:
        ...

    @abstractmethod
    def compute(self, resolved: Any, ctx: AnalysisContext) -> AnalysisOutcome:
        ...

    def sample(self, ctx: AnalysisContext) -> AnalysisOutcome:
        raise NotImplementedError(f"{self.name} has no sample data")
