"""Pure statistical helpers shared by every analysis.

All functions are stateless. Any intermediate division that yields NaN or an
infinity is normalised to ``0`` before it reaches a caller.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple
import math

from .constants import _SANE_DELAY_WINDOW
from .errors import InsufficientDataError
from .types import CleanPoints, DescriptiveStats, Point2D, Record, RegressionResult


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def to_float(value: Any) -> Optional[float]:
    """Coerce a scalar to a finite float, or ``None`` when that is not possible."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None
    return result if math.isfinite(result) else None


def clean_points(xs: Sequence[Any], ys: Sequence[Any]) -> CleanPoints:
    """Pair values positionally, dropping pairs where either side is not numeric."""
    if len(xs) != len(ys):
        raise ValueError("x and y sequences must have the same length")
    points: List[Point2D] = []
    dropped = 0
    for raw_x, raw_y in zip(xs, ys):
        x = to_float(raw_x)
        y = to_float(raw_y)
        if x is None or y is None:
            dropped += 1
            continue
        points.append(Point2D(x, y))
    return CleanPoints(points=tuple(points), dropped=dropped)


@dataclass
class RunningStats:
    """Numerically stable streaming mean/variance tracker."""

    count: int = 0
    mean: float = 0.0
    m2: float = 0.0
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def update(self, value: float) -> None:
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        delta2 = value - self.mean
        self.m2 += delta * delta2
        self.min_value = value if self.min_value is None else min(self.min_value, value)
        self.max_value = value if self.max_value is None else max(self.max_value, value)

    @property
    def population_variance(self) -> float:
        if self.count == 0:
            return 0.0
        return self.m2 / self.count

    @property
    def population_stddev(self) -> float:
        return math.sqrt(max(self.population_variance, 0.0))


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation coefficient; ``0`` when either side has no variance."""
    if len(xs) != len(ys):
        raise ValueError("x and y sequences must have the same length")
    count = len(xs)
    if count < 2:
        raise InsufficientDataError(2, count)

    sum_x = sum_y = sum_x2 = sum_y2 = sum_xy = 0.0
    for x, y in zip(xs, ys):
        sum_x += x
        sum_y += y
        sum_x2 += x * x
        sum_y2 += y * y
        sum_xy += x * y

    numerator = count * sum_xy - sum_x * sum_y
    denom_left = count * sum_x2 - sum_x * sum_x
    denom_right = count * sum_y2 - sum_y * sum_y
    product = denom_left * denom_right
    if product <= 0 or not math.isfinite(product):
        return 0.0
    corr = _finite_or_zero(numerator / math.sqrt(product))
    return max(-1.0, min(1.0, corr))


def linear_regression(points: Sequence[Point2D]) -> RegressionResult:
    """Ordinary least squares fit of ``y = slope * x + intercept``.

    Fewer than two points, or a constant x, yields ``slope=0`` and
    ``intercept=mean(y)``.
    """
    count = len(points)
    if count == 0:
        raise InsufficientDataError(1, 0)

    sum_x = sum(p.x for p in points)
    sum_y = sum(p.y for p in points)
    mean_y = sum_y / count
    xs = [p.x for p in points]
    if count < 2 or min(xs) == max(xs):
        return RegressionResult(slope=0.0, intercept=_finite_or_zero(mean_y))

    sum_xy = sum(p.x * p.y for p in points)
    sum_x2 = sum(p.x * p.x for p in points)
    denominator = count * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return RegressionResult(slope=0.0, intercept=_finite_or_zero(mean_y))

    slope = _finite_or_zero((count * sum_xy - sum_x * sum_y) / denominator)
    intercept = _finite_or_zero((sum_y - slope * sum_x) / count)
    return RegressionResult(slope=slope, intercept=intercept)


def regression_line(points: Sequence[Point2D], regression: RegressionResult) -> Tuple[Point2D, Point2D]:
    """Two endpoints of the fitted line, at min(x) and max(x)."""
    if not points:
        raise InsufficientDataError(1, 0)
    min_x = min(p.x for p in points)
    max_x = max(p.x for p in points)
    return (
        Point2D(min_x, _finite_or_zero(regression.predict(min_x))),
        Point2D(max_x, _finite_or_zero(regression.predict(max_x))),
    )


def group_count(
    records: Iterable[Record],
    group_by: str,
    predicate: Optional[Callable[[Record], bool]] = None,
    weight: Optional[str] = None,
) -> Dict[Hashable, float]:
    """Count records per distinct ``group_by`` value.

    The returned dict preserves first-encountered group order, which is what
    :func:`most_common` relies on to break ties. ``weight`` names a field to
    sum instead of counting 1 per record (pre-aggregated query rows).
    """
    counts: Dict[Hashable, float] = {}
    for record in records:
        if predicate is not None and not predicate(record):
            continue
        key = record.get(group_by)
        if key is None:
            continue
        amount = 1.0
        if weight is not None:
            amount = to_float(record.get(weight)) or 0.0
        counts[key] = counts.get(key, 0.0) + amount
    return counts


def most_common(counts: Mapping[Hashable, float]) -> Optional[Tuple[Hashable, float]]:
    """Largest group; ties go to the group encountered first."""
    best: Optional[Tuple[Hashable, float]] = None
    for key, count in counts.items():
        if best is None or count > best[1]:
            best = (key, count)
    return best


def descriptive_stats(values: Iterable[Any]) -> DescriptiveStats:
    """Count, mean, median, min, max and population standard deviation.

    The median is the element at index ``n // 2`` of the ascending sort, so an
    even-length input reports the upper of the two middle values.
    """
    numbers = [v for v in (to_float(value) for value in values) if v is not None]
    if not numbers:
        raise InsufficientDataError(1, 0, "values")

    running = RunningStats()
    for value in numbers:
        running.update(value)
    ordered = sorted(numbers)
    return DescriptiveStats(
        count=running.count,
        mean=running.mean,
        median=ordered[len(ordered) // 2],
        min=ordered[0],
        max=ordered[-1],
        stddev=running.population_stddev,
    )


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()[:10]
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def delay_days(record: Record) -> Optional[float]:
    """Days between ``registered`` and ``decided``, or a precomputed ``delay``."""
    precomputed = to_float(record.get("delay"))
    if precomputed is not None:
        return precomputed
    registered = _as_date(record.get("registered"))
    decided = _as_date(record.get("decided"))
    if registered is None or decided is None:
        return None
    return float((decided - registered).days)


@dataclass(frozen=True)
class YearlyTrend:
    regression: RegressionResult
    points: Tuple[Point2D, ...]
    discarded: int = 0
    per_year_counts: Dict[int, int] = field(default_factory=dict)


def slope_by_group_year(
    records: Iterable[Record],
    delay: Callable[[Record], Optional[float]] = delay_days,
    window: Tuple[float, float] = _SANE_DELAY_WINDOW,
) -> YearlyTrend:
    """Average delay per calendar year, then regress delay against year.

    Delays outside ``window`` (inclusive) or that cannot be derived are
    discarded before averaging.
    """
    low, high = window
    per_year: Dict[int, RunningStats] = {}
    discarded = 0
    for record in records:
        year = to_float(record.get("year"))
        value = delay(record)
        if year is None or value is None or not (low <= value <= high):
            discarded += 1
            continue
        per_year.setdefault(int(year), RunningStats()).update(value)

    points = tuple(Point2D(float(year), per_year[year].mean) for year in sorted(per_year))
    if len(points) < 2:
        raise InsufficientDataError(2, len(points), "years")
    return YearlyTrend(
        regression=linear_regression(points),
        points=points,
        discarded=discarded,
        per_year_counts={year: per_year[year].count for year in sorted(per_year)},
    )


__all__ = [
    "RunningStats",
    "YearlyTrend",
    "clean_points",
    "delay_days",
    "descriptive_stats",
    "group_count",
    "linear_regression",
    "most_common",
    "pearson",
    "regression_line",
    "slope_by_group_year",
    "to_float",
]
