from __future__ import annotations
from typing import Any, Dict, MutableMapping

from services.common.pipeline import assemble_answer

from ..core.state import _with_phase, _emit_callback


def assemble_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    intent = state["intent"]
    results = state.get("results", {})
    answer = assemble_answer(results, intent.expected_output_format)

    payload = {
        "outputFormat": intent.expected_output_format,
        "answerType": type(answer).__name__,
        "fallbacks": list(state.get("fallbacks", [])),
    }
    update = _with_phase(state, "assemble", payload, answer=answer)
    _emit_callback(state, "assemble", payload)
    return update
