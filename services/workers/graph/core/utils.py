from __future__ import annotations
import io, gzip, logging, math, zlib
from datetime import date, datetime
from typing import Any, Mapping, Tuple, IO, cast

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from .types import BinaryInput
from .constants import _TEMPLATE_DIR

logger = logging.getLogger(__name__)

_JINJA_ENV = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


def render_template(name: str, **context: Any) -> str:
    return _JINJA_ENV.get_template(name).render(**context).strip()


def _open_binary_stream(body: BinaryInput) -> Tuple[IO[bytes], bool]:
    if isinstance(body, bytes):
        return io.BytesIO(body), True
    if isinstance(body, bytearray):
        return io.BytesIO(bytes(body)), True
    if hasattr(body, "read"):
        return cast(IO[bytes], body), False
    raise TypeError("body must be bytes-like or a binary stream")


def _ensure_bytes(body: BinaryInput | str) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, bytes):
        return body
    if isinstance(body, bytearray):
        return bytes(body)
    data = cast(IO[bytes], body).read()
    return data


def _maybe_gunzip(key: str, body: bytes) -> Tuple[str, bytes]:
    lowered = key.lower()
    for suffix in (".gzip", ".gz"):
        if lowered.endswith(suffix):
            try:
                return key[: -len(suffix)], gzip.decompress(body)
            except (OSError, EOFError, zlib.error) as exc:
                raise ValueError(f"Invalid GZIP payload: {key}") from exc
    return key, body


def _format_preview(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) > 80:
        return text[:77] + "..."
    return text


def _to_jsonable(value: Any) -> Any:
    """Convert answers to JSON-safe values (dates to ISO, non-finite floats to 0)."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool) or value is None or isinstance(value, (str, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0.0
    if isinstance(value, Mapping):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if hasattr(value, "to_dict"):
        return _to_jsonable(value.to_dict())
    return str(value)
