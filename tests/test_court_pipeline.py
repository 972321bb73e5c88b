from datetime import date

import anyio
import pytest

from services.workers.graph import run_task
from services.workers.graph.analyses.court import count_query, court_name, delay_query, parse_year_range
from services.workers.graph.core.errors import ExtractionError

TOP_COURT_Q = "Which high court disposed the most cases from 2019 - 2022?"
SLOPE_Q = "What's the regression slope of the date_of_registration - decision_date by year in the court=33_10?"


@pytest.fixture
def court_store(make_store, query_result):
    counts = query_result(
        ["court", "year", "case_count"],
        [("33_10", 2019, 50), ("05_05", 2019, 70), ("33_10", 2020, 40), ("05_05", 2020, 10)],
    )
    cases = query_result(
        ["court", "year", "date_of_registration", "decision_date"],
        [
            ("33_10", 2019, date(2019, 1, 1), date(2019, 1, 11)),
            ("33_10", 2020, date(2020, 1, 1), date(2020, 1, 31)),
            ("33_10", 2020, date(2020, 2, 1), date(2020, 1, 1)),
            ("33_10", 2021, date(2021, 1, 1), date(2021, 2, 20)),
        ],
    )
    return make_store({"COUNT(*)": counts, "date_of_registration": cases})


def _run(task, **kwargs):
    return anyio.run(lambda: run_task(task, **kwargs))


def test_court_task_answers_every_question(court_task, court_store, settings):
    res = _run(court_task, settings=settings, store=court_store)

    assert res.intent.data_source == "court_data"
    assert res.fallbacks == []
    answer = res.answer
    assert isinstance(answer, dict)
    keys = list(answer)
    assert keys[:2] == [TOP_COURT_Q, SLOPE_Q]
    assert answer[TOP_COURT_Q] == "Madras High Court"
    assert answer[SLOPE_Q] == pytest.approx(20.0)
    assert answer[keys[2]].startswith("data:image/webp;base64,")

    count_call, delay_call = court_store.calls
    assert count_call[1] == [2019, 2022]
    assert delay_call[1] == ["33_10", 2019, 2023]
    assert res.phases["compute"]["diagnostics"]["delay_discarded"] == 1


def test_failed_store_falls_back_to_samples(court_task, make_store, settings):
    store = make_store(error=ExtractionError(ExtractionError.QUERY_FAILED, "httpfs unavailable"))
    res = _run(court_task, settings=settings, store=store)

    assert res.fallbacks == ["court:top_court", "court:regression", "court:sample_data"]
    answer = res.answer
    assert answer[TOP_COURT_Q] == "Delhi High Court"
    assert answer[SLOPE_Q] == pytest.approx(-10.0)
    plot = [value for key, value in answer.items() if key.startswith("Plot")][0]
    assert plot.startswith("data:image/webp;base64,")


def test_one_failed_query_only_replaces_its_answer(court_task, make_store, query_result, settings):
    cases = query_result(
        ["court", "year", "date_of_registration", "decision_date"],
        [("33_10", 2019, "2019-01-01", "2019-01-21"), ("33_10", 2020, "2020-01-01", "2020-01-11")],
    )
    store = make_store(
        {"COUNT(*)": ExtractionError(ExtractionError.QUERY_FAILED, "timeout"), "date_of_registration": cases}
    )
    res = _run(court_task, settings=settings, store=store)
    assert res.fallbacks == ["court:top_court"]
    assert res.answer[TOP_COURT_Q] == "Delhi High Court"
    assert res.answer[SLOPE_Q] == pytest.approx(-10.0)


def test_court_task_without_questions_answers_from_task_text(make_store, query_result, settings):
    counts = query_result(["court", "year", "case_count"], [("99_99", 2021, 5)])
    store = make_store({"COUNT(*)": counts})
    task = "Which high court disposed the most cases? Use the court dataset and respond with a JSON object."
    res = _run(task, settings=settings, store=store)
    assert res.answer == "High Court (99_99)"
    assert len(store.calls) == 1


def test_court_helpers():
    assert court_name("05_05") == "Delhi High Court"
    assert court_name("42_01") == "High Court (42_01)"
    assert parse_year_range("from 2022 to 2019", (2000, 2001)) == (2019, 2022)
    assert parse_year_range("no years here", (2000, 2001)) == (2000, 2001)
    assert "read_parquet('s3://b/it''s/*.parquet', hive_partitioning = true)" in count_query("s3://b/it's/*.parquet")
    assert "WHERE court = ?" in delay_query("s3://b/x.parquet")
