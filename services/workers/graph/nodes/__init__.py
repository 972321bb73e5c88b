from .classify import classify_node
from .extract import extract_node
from .resolve import resolve_node
from .compute import compute_node
from .render import render_node
from .assemble import assemble_node

__all__ = [
    "classify_node",
    "extract_node",
    "resolve_node",
    "compute_node",
    "render_node",
    "assemble_node",
]
