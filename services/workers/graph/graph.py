"""LangGraph task-to-answer pipeline for TaskFoundry."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from langgraph.graph import END, StateGraph

from .analyses import PipelineDeps, SourcePayload
from .core.charts import ChartRenderer
from .core.classifier import TaskClassifier, build_classifier
from .core.config import Settings
from .core.errors import TaskTimeoutError
from .core.state import PhaseCallback, TaskState
from .core.types import PipelineResult
from .io.columnar import ColumnarStore, QueryCollaborator
from .io.fetch import HttpPageFetcher, PageFetcher
from .nodes import (
    assemble_node,
    classify_node,
    compute_node,
    extract_node,
    render_node,
    resolve_node,
)

logger = logging.getLogger(__name__)


def build_graph():
    g = StateGraph(TaskState)
    g.add_node("classify", classify_node)
    g.add_node("extract", extract_node)
    g.add_node("resolve", resolve_node)
    g.add_node("compute", compute_node)
    g.add_node("render", render_node)
    g.add_node("assemble", assemble_node)

    g.set_entry_point("classify")
    g.add_edge("classify", "extract")
    g.add_edge("extract", "resolve")
    g.add_edge("resolve", "compute")
    g.add_edge("compute", "render")
    g.add_edge("render", "assemble")
    g.add_edge("assemble", END)
    return g.compile()


PIPELINE = build_graph()


async def run_task(
    task: str,
    *,
    payload: Optional[SourcePayload] = None,
    settings: Optional[Settings] = None,
    classifier: Optional[TaskClassifier] = None,
    fetcher: Optional[PageFetcher] = None,
    store: Optional[QueryCollaborator] = None,
    renderer: Optional[ChartRenderer] = None,
    on_phase: Optional[PhaseCallback] = None,
) -> PipelineResult:
    """Run one task through classify, extract, resolve, compute, render and assemble.

    Collaborators left as ``None`` are built from ``settings``. A columnar
    store created here lives only for this call; pass a shared one to reuse
    its connection across tasks.
    """
    settings = settings or Settings.from_env()
    owned_store: Optional[ColumnarStore] = None
    if store is None:
        owned_store = ColumnarStore(timeout=settings.query_timeout)
        store = owned_store

    deps = PipelineDeps(
        settings=settings,
        fetcher=fetcher or HttpPageFetcher(timeout=settings.scrape_timeout),
        store=store,
        renderer=renderer or ChartRenderer(max_bytes=settings.max_image_bytes),
    )
    initial_state: Dict[str, Any] = {
        "task": task,
        "deps": deps,
        "classifier": classifier or build_classifier(settings),
        "payload": payload,
        "fallbacks": [],
        "phase_outputs": {},
    }
    if on_phase:
        initial_state["_callback"] = on_phase

    try:
        final_state = await asyncio.wait_for(PIPELINE.ainvoke(initial_state), timeout=settings.task_timeout)
    except asyncio.TimeoutError as exc:
        logger.error("task timed out", extra={"timeout": settings.task_timeout})
        raise TaskTimeoutError(settings.task_timeout) from exc
    finally:
        if owned_store is not None:
            await owned_store.close()

    result = PipelineResult(
        answer=final_state.get("answer"),
        intent=final_state["intent"],
        results=final_state.get("results", {}),
        fallbacks=list(final_state.get("fallbacks", [])),
        phases=final_state.get("phase_outputs", {}),
    )
    if result.used_fallback:
        logger.warning("answer includes sample values", extra={"fallbacks": result.fallbacks})
    return result


__all__ = ["PIPELINE", "build_graph", "run_task"]
