import math
from datetime import date

import pytest

from services.workers.graph.core.errors import InsufficientDataError
from services.workers.graph.core.stats import (
    clean_points,
    delay_days,
    descriptive_stats,
    group_count,
    linear_regression,
    most_common,
    pearson,
    regression_line,
    slope_by_group_year,
)
from services.workers.graph.core.types import Point2D


def test_pearson_is_symmetric():
    xs = [1.0, 2.0, 4.0, 7.0, 11.0]
    ys = [3.0, 1.0, 4.0, 1.0, 5.0]
    assert pearson(xs, ys) == pytest.approx(pearson(ys, xs))


def test_pearson_of_series_with_itself_is_one():
    xs = [2.0, 9.0, 4.0, 4.5, 100.0]
    assert pearson(xs, xs) == pytest.approx(1.0)


def test_pearson_perfect_negative():
    assert pearson([1, 2, 3], [6, 4, 2]) == pytest.approx(-1.0)


def test_pearson_zero_variance_returns_zero():
    assert pearson([1, 1, 1], [1, 2, 3]) == 0.0


def test_pearson_needs_two_points():
    with pytest.raises(InsufficientDataError):
        pearson([1.0], [2.0])


def test_linear_regression_identity_line():
    result = linear_regression([Point2D(1, 1), Point2D(2, 2), Point2D(3, 3)])
    assert result.slope == pytest.approx(1.0)
    assert result.intercept == pytest.approx(0.0)


def test_linear_regression_constant_x_has_zero_slope():
    result = linear_regression([Point2D(5, 1), Point2D(5, 2), Point2D(5, 3)])
    assert result.slope == 0.0
    assert result.intercept == pytest.approx(2.0)
    assert math.isfinite(result.intercept)


def test_linear_regression_single_point():
    result = linear_regression([Point2D(4, 9)])
    assert result.slope == 0.0
    assert result.intercept == 9.0


def test_linear_regression_without_points():
    with pytest.raises(InsufficientDataError):
        linear_regression([])


def test_regression_line_spans_min_and_max_x():
    points = [Point2D(3, 7), Point2D(1, 3), Point2D(2, 5)]
    start, end = regression_line(points, linear_regression(points))
    assert (start.x, end.x) == (1, 3)
    assert start.y == pytest.approx(3.0)
    assert end.y == pytest.approx(7.0)


def test_clean_points_drops_and_counts_unusable_pairs():
    cleaned = clean_points(["1", "2", "x", None, "5"], [10, "n/a", 30, 40, "50"])
    assert cleaned.points == (Point2D(1.0, 10.0), Point2D(5.0, 50.0))
    assert cleaned.clean_count == 2
    assert cleaned.dropped == 3


def test_descriptive_stats_uses_upper_middle_median():
    stats = descriptive_stats([4, 1, 3, 2])
    assert stats.median == 3
    assert stats.mean == pytest.approx(2.5)
    assert stats.min == 1
    assert stats.max == 4
    assert stats.count == 4
    assert stats.stddev == pytest.approx(math.sqrt(1.25))


def test_descriptive_stats_ignores_non_numeric():
    stats = descriptive_stats(["7", None, "", "abc", 9])
    assert stats.count == 2
    assert stats.median == 9


def test_group_count_with_predicate_and_weight():
    records = [
        {"court": "b", "year": 2019, "cases": 5},
        {"court": "a", "year": 2019, "cases": 2},
        {"court": "b", "year": 2018, "cases": 100},
        {"court": "a", "year": 2020, "cases": 3},
    ]
    counts = group_count(records, "court", predicate=lambda r: r["year"] >= 2019, weight="cases")
    assert list(counts.items()) == [("b", 5.0), ("a", 5.0)]


def test_most_common_breaks_ties_by_first_encountered_group():
    counts = group_count([{"g": "y"}, {"g": "x"}, {"g": "x"}, {"g": "y"}], "g")
    assert most_common(counts) == ("y", 2.0)
    assert most_common({}) is None


def test_delay_days_from_dates_and_strings():
    assert delay_days({"registered": date(2020, 1, 1), "decided": date(2020, 1, 31)}) == 30.0
    assert delay_days({"registered": "2021-03-01", "decided": "10-03-2021"}) == 9.0
    assert delay_days({"delay": "12"}) == 12.0
    assert delay_days({"registered": None, "decided": "2021-03-01"}) is None


def test_slope_by_group_year_averages_and_discards_outliers():
    records = [
        {"year": 2019, "delay": 100},
        {"year": 2019, "delay": 120},
        {"year": 2019, "delay": -5},
        {"year": 2020, "delay": 90},
        {"year": 2021, "delay": 70},
        {"year": 2021, "delay": 9999},
    ]
    trend = slope_by_group_year(records)
    assert trend.points == (Point2D(2019.0, 110.0), Point2D(2020.0, 90.0), Point2D(2021.0, 70.0))
    assert trend.regression.slope == pytest.approx(-20.0)
    assert trend.discarded == 2
    assert trend.per_year_counts == {2019: 2, 2020: 1, 2021: 1}


def test_slope_by_group_year_needs_two_years():
    with pytest.raises(InsufficientDataError):
        slope_by_group_year([{"year": 2019, "delay": 10}, {"year": 2019, "delay": 20}])
