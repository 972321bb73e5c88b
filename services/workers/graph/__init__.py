"""LangGraph task-to-answer pipeline for TaskFoundry."""
from .graph import build_graph, run_task

__all__ = ["build_graph", "run_task"]
