from __future__ import annotations
from typing import Any, Dict, MutableMapping
import logging

from ..core.errors import ExtractionError
from ..core.state import _with_phase, _emit_callback

logger = logging.getLogger(__name__)


async def extract_node(state: MutableMapping[str, Any]) -> Dict[str, Any]:
    """Obtain raw tables for the selected analysis.

    Domain analyses record the failure and continue so that the compute phase
    can substitute sample data; the generic table path re-raises.
    """
    analysis = state["analysis"]
    try:
        tables = await analysis.extract(state["context"])
    except ExtractionError as exc:
        if not analysis.allows_fallback:
            raise
        logger.warning("extraction failed, sample data will be used: %s", exc, extra={"reason": exc.reason})
        payload = {"tables": {}, "error": str(exc)}
        update = _with_phase(state, "extract", payload, tables={}, extraction_error=str(exc))
        _emit_callback(state, "extract", payload)
        return update

    payload = {
        "tables": {
            name: {"rows": table.row_count, "columns": list(table.columns), "sourceFormat": table.source_format}
            for name, table in tables.items()
        }
    }
    update = _with_phase(state, "extract", payload, tables=tables, extraction_error=None)
    _emit_callback(state, "extract", payload)
    return update
