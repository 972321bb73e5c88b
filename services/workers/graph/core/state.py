from __future__ import annotations
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, TypedDict

from .constants import PHASE_ORDER
from .types import Table, TaskIntent

PhaseCallback = Callable[[str, Mapping[str, Any], int, int], None]


class TaskState(TypedDict, total=False):
    task: str
    deps: Any
    classifier: Any
    payload: Any
    intent: TaskIntent
    analysis: Any
    context: Any
    tables: Dict[str, Table]
    resolved: Any
    extraction_error: Optional[str]
    outcome: Any
    results: Dict[str, Any]
    answer: Any
    fallbacks: List[str]
    phase_outputs: Dict[str, Dict[str, Any]]
    _callback: Optional[PhaseCallback]


def _with_phase(state: MutableMapping[str, Any], phase: str, payload: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    phases = dict(state.get("phase_outputs", {}))
    phases[phase] = payload
    update: Dict[str, Any] = {"phase_outputs": phases}
    update.update(extra)
    return update


def _emit_callback(state: Mapping[str, Any], phase: str, payload: Mapping[str, Any]) -> None:
    callback = state.get("_callback")
    if not callable(callback):
        return
    index = PHASE_ORDER.index(phase)
    callback(phase, payload, index, len(PHASE_ORDER))


def _merge_fallbacks(state: Mapping[str, Any], markers: List[str]) -> List[str]:
    merged = list(state.get("fallbacks", []))
    for marker in markers:
        if marker not in merged:
            merged.append(marker)
    return merged
