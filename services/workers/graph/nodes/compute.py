from __future__ import annotations
from typing import Any, Dict, MutableMapping
import logging

from ..core.errors import ExtractionError, InsufficientDataError
from ..core.state import _merge_fallbacks, _with_phase, _emit_callback
from ..core.utils import _to_jsonable

logger = logging.getLogger(__name__)


def compute_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    analysis = state["analysis"]
    context = state["context"]
    resolved = state.get("resolved")

    if resolved is None:
        outcome = analysis.sample(context)
    else:
        try:
            outcome = analysis.compute(resolved, context)
        except (ExtractionError, InsufficientDataError) as exc:
            if not analysis.allows_fallback:
                raise
            logger.warning("computation failed, using sample data: %s", exc)
            outcome = analysis.sample(context)

    payload = {
        "answers": list(outcome.results),
        "charts": list(outcome.charts),
        "fallbacks": list(outcome.fallbacks),
        "diagnostics": _to_jsonable(outcome.diagnostics),
    }
    update = _with_phase(
        state,
        "compute",
        payload,
        outcome=outcome,
        results=dict(outcome.results),
        fallbacks=_merge_fallbacks(state, outcome.fallbacks),
    )
    _emit_callback(state, "compute", payload)
    return update
