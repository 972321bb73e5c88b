"""Chart rendering to size-bounded base64 data URIs.

Rendering uses the object-oriented matplotlib API (``Figure`` plus the Agg
canvas) rather than ``pyplot`` so that concurrent renders in worker threads do
not share global figure state.
"""
from __future__ import annotations
from typing import List, Sequence, Tuple
import asyncio
import base64
import io
import logging

import matplotlib
matplotlib.use("Agg")  # safe headless backend
from matplotlib.figure import Figure

from .constants import _MAX_IMAGE_BYTES, _RENDER_DPI, _RESOLUTION_TIERS
from .errors import InsufficientDataError, RenderError
from .stats import linear_regression, regression_line
from .types import ChartRequest, ChartSpec, Point2D

logger = logging.getLogger(__name__)

_SUPPORTED_FORMATS = {"png", "webp"}


def scatter_spec(
    points: Sequence[Point2D],
    x_label: str,
    y_label: str,
    title: str,
) -> ChartSpec:
    """Scatter spec with its two-point regression overlay precomputed."""
    if len(points) < 2:
        raise InsufficientDataError(2, len(points))
    regression = linear_regression(points)
    return ChartSpec(
        series=tuple(points),
        x_label=x_label,
        y_label=y_label,
        title=title,
        overlay=regression_line(points, regression),
        slope=regression.slope,
    )


def data_uri(payload: bytes, image_format: str = "png") -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:image/{image_format};base64,{encoded}"


class ChartRenderer:
    """Renders a :class:`ChartRequest` under a maximum data URI length.

    The budget is measured on the complete ``data:image/...;base64,...``
    string, so the encoded payload is always smaller than ``max_bytes``.
    Resolution tiers are tried in order; the last tier is accepted whatever
    its size.
    """

    def __init__(
        self,
        max_bytes: int = _MAX_IMAGE_BYTES,
        tiers: Sequence[Tuple[int, int]] = tuple(_RESOLUTION_TIERS),
        dpi: int = _RENDER_DPI,
    ) -> None:
        if not tiers:
            raise ValueError("at least one resolution tier is required")
        self.max_bytes = max_bytes
        self.tiers = tuple(tiers)
        self.dpi = dpi

    def render(self, request: ChartRequest) -> str:
        """Data URI for ``request``, or ``""`` when no chart could be produced."""
        try:
            return self.encode(request)
        except (RenderError, InsufficientDataError) as exc:
            logger.warning("chart unavailable: %s", exc, extra={"title": request.spec.title})
            return ""

    async def render_async(self, request: ChartRequest) -> str:
        return await asyncio.to_thread(self.render, request)

    def encode(self, request: ChartRequest) -> str:
        image_format = request.image_format.lower()
        if image_format not in _SUPPORTED_FORMATS:
            raise RenderError(f"unsupported image format: {request.image_format}")
        needed = 1 if request.kind == "bar" else 2
        if len(request.spec.series) < needed:
            raise InsufficientDataError(needed, len(request.spec.series))

        uri = ""
        for index, (width, height) in enumerate(self.tiers):
            try:
                payload = self._draw(request, width, height)
            except Exception as exc:
                raise RenderError(f"rendering failed at {width}x{height}: {exc}") from exc
            uri = data_uri(payload, image_format)
            if len(uri) <= self.max_bytes:
                logger.info(
                    "rendered chart",
                    extra={"kind": request.kind, "width": width, "height": height, "size": len(uri)},
                )
                return uri
            if index < len(self.tiers) - 1:
                logger.info(
                    "chart over budget, retrying smaller",
                    extra={"size": len(uri), "budget": self.max_bytes, "width": width, "height": height},
                )
        logger.warning("chart still over budget at smallest tier", extra={"size": len(uri)})
        return uri

    def _draw(self, request: ChartRequest, width: int, height: int) -> bytes:
        spec = request.spec
        fig = Figure(figsize=(width / self.dpi, height / self.dpi), dpi=self.dpi)
        ax = fig.add_subplot()
        if request.kind == "scatter":
            self._draw_scatter(ax, spec)
        elif request.kind == "bar":
            self._draw_bar(ax, spec)
        elif request.kind == "line":
            self._draw_line(ax, spec)
        else:
            raise ValueError(f"unknown chart kind: {request.kind}")

        ax.set_title(spec.title)
        ax.set_xlabel(spec.x_label)
        ax.set_ylabel(spec.y_label)
        fig.tight_layout()

        buffer = io.BytesIO()
        fig.savefig(buffer, format=request.image_format.lower(), dpi=self.dpi)
        buffer.seek(0)
        return buffer.getvalue()

    @staticmethod
    def _draw_scatter(ax, spec: ChartSpec) -> None:
        points = list(spec.series)
        overlay = spec.overlay
        slope = spec.slope
        if overlay is None:
            regression = linear_regression(points)
            overlay = regression_line(points, regression)
            slope = regression.slope

        ax.scatter([p.x for p in points], [p.y for p in points], s=24, alpha=0.75,
                   c="#7c3aed", edgecolors="none", label="Data Points")
        ax.plot(
            [p.x for p in overlay],
            [p.y for p in overlay],
            linestyle="--",
            linewidth=2,
            color="#dc2626",
            label=f"Regression Line (slope: {(slope or 0.0):.3f})",
        )
        ax.legend(loc="best")
        ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.4)

    @staticmethod
    def _draw_bar(ax, spec: ChartSpec) -> None:
        positions = [p.x for p in spec.series]
        ax.bar(positions, [p.y for p in spec.series], color="#2563eb", edgecolor="white", alpha=0.85)
        if spec.categories:
            labels: List[str] = list(spec.categories)
            ax.set_xticks(positions)
            ax.set_xticklabels(labels, rotation=45, ha="right")
        ax.grid(True, axis="y", linestyle="--", linewidth=0.5, alpha=0.5)

    @staticmethod
    def _draw_line(ax, spec: ChartSpec) -> None:
        ordered = sorted(spec.series, key=lambda p: p.x)
        ax.plot([p.x for p in ordered], [p.y for p in ordered], marker="o", linewidth=2, color="#22c55e")
        ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.4)


def bar_spec(labels: Sequence[str], values: Sequence[float], x_label: str, y_label: str, title: str) -> ChartSpec:
    points = tuple(Point2D(float(index), float(value)) for index, value in enumerate(values))
    return ChartSpec(series=points, x_label=x_label, y_label=y_label, title=title,
                     categories=tuple(str(label) for label in labels))


__all__ = ["ChartRenderer", "bar_spec", "data_uri", "scatter_spec"]
