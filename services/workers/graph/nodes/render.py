from __future__ import annotations
from typing import Any, Dict, List, MutableMapping
import asyncio
import logging

from ..core.state import _merge_fallbacks, _with_phase, _emit_callback

logger = logging.getLogger(__name__)


async def render_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    """Encode every pending chart; an empty string means no chart was produced."""
    outcome = state["outcome"]
    renderer = state["deps"].renderer
    results = dict(state.get("results", {}))
    markers: List[str] = []

    names = list(outcome.charts)
    if renderer is not None and names:
        encoded = await asyncio.gather(*(renderer.render_async(outcome.charts[name]) for name in names))
    else:
        encoded = [""] * len(names)

    sizes: Dict[str, int] = {}
    for name, uri in zip(names, encoded):
        results[name] = uri
        sizes[name] = len(uri)
        if not uri:
            logger.warning("chart unavailable", extra={"answer": name})
            markers.append(f"{state['analysis'].name}:chart")

    payload = {"charts": sizes}
    update = _with_phase(
        state, "render", payload, results=results, fallbacks=_merge_fallbacks(state, markers)
    )
    _emit_callback(state, "render", payload)
    return update
