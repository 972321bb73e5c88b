from __future__ import annotations
from typing import Any, Dict, MutableMapping
import logging

from ..analyses import AnalysisContext, select_analysis
from ..core.state import _with_phase, _emit_callback

logger = logging.getLogger(__name__)


async def classify_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    deps = state["deps"]
    task: str = state["task"]
    classifier = state["classifier"]

    intent = await classifier.analyze(task)
    analysis = select_analysis(intent, task, deps.settings, state.get("payload"))
    context = AnalysisContext(task=task, intent=intent, deps=deps, payload=state.get("payload"))
    logger.info(
        "task classified",
        extra={"data_source": intent.data_source, "analysis": analysis.name, "questions": len(intent.questions)},
    )

    payload = {
        "intent": intent.model_dump(by_alias=True),
        "analysis": analysis.name,
    }
    update = _with_phase(state, "classify", payload, intent=intent, analysis=analysis, context=context)
    _emit_callback(state, "classify", payload)
    return update
