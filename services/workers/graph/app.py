from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from services.common.pipeline import build_response_payload

from .analyses import SourcePayload
from .core.config import Settings
from .core.utils import _to_jsonable
from .graph import run_task

logger = logging.getLogger(__name__)


def _payload_from_event(event: Mapping[str, Any]) -> Optional[SourcePayload]:
    body = event.get("csv")
    if body is None:
        return None
    filename = event.get("filename") or "dataset.csv"
    # Accept base64-encoded string (flagged) or raw text/bytes
    if isinstance(body, str):
        body_bytes = base64.b64decode(body) if event.get("csvBase64") else body.encode("utf-8")
    elif isinstance(body, (bytes, bytearray, memoryview)):
        body_bytes = bytes(body)
    else:
        raise TypeError("csv must be text, bytes or base64-encoded string")
    return SourcePayload(body=body_bytes, filename=filename)


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    task = event.get("task")
    if not task:
        raise ValueError("task is required")

    task_id = event.get("taskId") or str(uuid.uuid4())
    result = asyncio.run(run_task(task, payload=_payload_from_event(event), settings=Settings.from_env()))
    return _to_jsonable(build_response_payload(task_id, result, include_phases=True))


def _print_phase(phase: str, payload: Mapping[str, Any], index: int, total: int) -> None:
    print(f"[{index + 1}/{total}] {phase}", file=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a TaskFoundry analysis task.")
    parser.add_argument("task", help="task text, or @path to read it from a file")
    parser.add_argument("--csv", type=Path, help="delimited data file to analyse")
    parser.add_argument("--full", action="store_true", help="print the full response envelope")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    task = args.task
    if task.startswith("@"):
        task = Path(task[1:]).read_text(encoding="utf-8")
    payload = None
    if args.csv is not None:
        payload = SourcePayload(body=args.csv.read_bytes(), filename=args.csv.name)

    result = asyncio.run(run_task(task, payload=payload, on_phase=_print_phase))
    output = build_response_payload(str(uuid.uuid4()), result) if args.full else result.answer
    print(json.dumps(_to_jsonable(output), indent=2))
    if result.used_fallback:
        print(f"fallbacks: {', '.join(result.fallbacks)}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
