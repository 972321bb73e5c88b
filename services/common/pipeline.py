"""Helpers for shaping TaskFoundry pipeline outputs into responses."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import only for static typing
    from services.workers.graph.core.types import PipelineResult
else:  # pragma: no cover - at runtime we treat PipelineResult as ``Any``
    PipelineResult = Any  # type: ignore[misc,assignment]


ANALYSIS_VERSION = "2024.05"
FALLBACK_HEADER = "X-TaskFoundry-Fallbacks"
_DATA_URI_PREFIX = "data:image/"


def _first_image(results: Mapping[str, Any]) -> Optional[str]:
    for value in results.values():
        if isinstance(value, str) and value.startswith(_DATA_URI_PREFIX):
            return value
    return None


def assemble_answer(results: Mapping[str, Any], output_format: str) -> Any:
    """Shape named results into the declared output.

    ``json_array`` keeps ask order as a positional list. Otherwise a single
    result is returned bare and several results as a name to value mapping.
    ``base64_image`` returns the first chart data URI when one was rendered.
    """
    if output_format == "base64_image":
        image = _first_image(results)
        if image is not None:
            return image
    if output_format == "json_array":
        return list(results.values())
    if len(results) == 1:
        return next(iter(results.values()))
    return dict(results)


def fallback_header_value(fallbacks: Sequence[str]) -> str:
    return ",".join(fallbacks)


def summarize_phase_payload(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    summary: Dict[str, Any] = {}
    for key in ("analysis", "answers", "fallbacks", "outputFormat", "error"):
        value = payload.get(key)
        if value:
            summary[key] = value
    charts = payload.get("charts")
    if isinstance(charts, Mapping):
        summary["charts"] = dict(charts)
    if summary:
        return summary
    keys = list(payload.keys())[:5]
    return {"fields": keys}


def build_response_payload(
    task_id: str,
    result: "PipelineResult",
    *,
    include_phases: bool = False,
    analysis_version: str = ANALYSIS_VERSION,
) -> Dict[str, Any]:
    """Envelope with the answer, its intent and how it was produced."""
    phases: List[Dict[str, Any]] = [
        {"phase": phase, **summarize_phase_payload(payload)} for phase, payload in result.phases.items()
    ]
    payload: Dict[str, Any] = {
        "taskId": task_id,
        "analysisVersion": analysis_version,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "answer": result.answer,
        "intent": result.intent.model_dump(by_alias=True),
        "fallbacks": list(result.fallbacks),
        "usedFallback": result.used_fallback,
    }
    if include_phases:
        payload["phases"] = phases
    return payload


__all__ = [
    "ANALYSIS_VERSION",
    "FALLBACK_HEADER",
    "assemble_answer",
    "build_response_payload",
    "fallback_header_value",
    "summarize_phase_payload",
]
