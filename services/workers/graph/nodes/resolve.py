from __future__ import annotations
from typing import Any, Dict, MutableMapping

from ..core.state import _with_phase, _emit_callback


def resolve_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    tables = state.get("tables") or {}
    if state.get("extraction_error") or not tables:
        payload = {"skipped": True}
        update = _with_phase(state, "resolve", payload, resolved=None)
        _emit_callback(state, "resolve", payload)
        return update

    resolved = state["analysis"].resolve(tables)
    payload = {"skipped": False, "kind": type(resolved).__name__}
    update = _with_phase(state, "resolve", payload, resolved=resolved)
    _emit_callback(state, "resolve", payload)
    return update
