# tests/test_pipeline_smoke.py
import anyio
import pytest

from services.workers.graph import run_task
from services.workers.graph.analyses.base import unique_key
from services.workers.graph.analyses.films import earliest_film
from services.workers.graph.core.constants import FILMS_URL, PHASE_ORDER
from services.workers.graph.core.errors import ExtractionError, TaskTimeoutError


def _run(task, **kwargs):
    return anyio.run(lambda: run_task(task, **kwargs))


def test_films_task_end_to_end(films_task, films_fetcher, settings):
    seen = []
    res = _run(
        films_task,
        settings=settings,
        fetcher=films_fetcher,
        on_phase=lambda phase, payload, index, total: seen.append((phase, index, total)),
    )

    assert films_fetcher.calls == [FILMS_URL]
    assert res.intent.data_source == "wikipedia"
    assert res.fallbacks == []

    count, earliest, correlation, chart = res.answer
    assert count == 1
    assert earliest == "A (1995)"
    assert correlation == pytest.approx(1.0)
    assert chart.startswith("data:image/png;base64,")
    assert len(chart) <= settings.max_image_bytes

    # Phases present & ordered
    assert list(res.phases.keys()) == PHASE_ORDER
    assert [phase for phase, _index, _total in seen] == PHASE_ORDER
    assert seen[-1][1:] == (len(PHASE_ORDER) - 1, len(PHASE_ORDER))
    assert res.phases["compute"]["diagnostics"]["correlation_points"] == 2


def test_films_task_uses_sample_data_when_scrape_fails(films_task, make_fetcher, settings):
    fetcher = make_fetcher(error=ExtractionError(ExtractionError.FETCH_FAILED, "timed out"))
    res = _run(films_task, settings=settings, fetcher=fetcher)

    assert "films:sample_data" in res.fallbacks
    assert res.used_fallback
    assert res.phases["extract"]["error"].startswith("FetchFailed")
    assert res.phases["resolve"]["skipped"] is True
    # answer keeps its declared shape
    count, earliest, correlation, chart = res.answer
    assert count == 1
    assert earliest == "Titanic (1997)"
    assert -1.0 <= correlation <= 1.0
    assert chart.startswith("data:image/png;base64,")


def test_films_page_without_table_falls_back(films_task, make_fetcher, settings):
    from services.workers.graph.core.constants import FILMS_URL as url

    fetcher = make_fetcher({url: "<html><p>maintenance</p></html>"})
    res = _run(films_task, settings=settings, fetcher=fetcher)
    assert res.fallbacks == ["films:sample_data"]
    assert res.phases["extract"]["error"].startswith("NoTableFound")


def test_questions_with_other_thresholds(films_fetcher, settings):
    task = (
        "Use the highest-grossing films table. Respond with a JSON object.\n"
        "1. How many $1.5 bn movies were released before 2005?\n"
        "2. Which is the earliest film that grossed over $3 bn?\n"
    )
    res = _run(task, settings=settings, fetcher=films_fetcher)
    assert res.answer == {
        "How many $1.5 bn movies were released before 2005?": 2,
        "Which is the earliest film that grossed over $3 bn?": "No films found over $3bn",
    }


def test_repeated_questions_keep_every_position(films_fetcher, settings):
    question = "How many $2 bn movies were released before 2000?"
    task = f"Use the highest-grossing films table. Respond with a JSON array.\n1. {question}\n2. {question}\n"
    res = _run(task, settings=settings, fetcher=films_fetcher)
    assert res.answer == [1, 1]
    assert list(res.results) == [question, f"{question} (2)"]


def test_earliest_film_tie_keeps_the_later_row():
    records = [
        {"title": "First", "revenue": 2e9, "year": 1997},
        {"title": "Second", "revenue": 3e9, "year": 1997},
        {"title": "Later", "revenue": 4e9, "year": 2001},
    ]
    assert earliest_film(records, 1.5e9)["title"] == "Second"
    assert earliest_film(records, 5e9) is None


def test_unique_key_suffixes_repeats():
    assert unique_key([], "q") == "q"
    assert unique_key(["q"], "q") == "q (2)"
    assert unique_key(["q", "q (2)"], "q") == "q (3)"


def test_single_result_is_returned_bare(films_fetcher, settings):
    task = "From the highest-grossing films, respond with a JSON object. 1. What's the correlation between Rank and Peak?"
    res = _run(task, settings=settings, fetcher=films_fetcher)
    assert res.answer == pytest.approx(1.0)


def test_generic_url_task_answers_from_scraped_table(make_fetcher, settings):
    url = "https://en.wikipedia.org/wiki/List_of_tallest_buildings"
    markup = """
    <table class="wikitable">
      <tr><th>Name</th><th>Height (m)</th><th>Floors</th></tr>
      <tr><td>Tower A</td><td>828</td><td>163</td></tr>
      <tr><td>Tower B</td><td>679</td><td>128</td></tr>
      <tr><td>Tower C</td><td>632</td><td>128</td></tr>
    </table>
    """
    task = f"Scrape {url} from wikipedia and respond with a JSON object summarising the table."
    res = _run(task, settings=settings, fetcher=make_fetcher({url: markup}))
    assert res.answer["rows"] == 3
    assert res.answer["columns"] == ["Name", "Height (m)", "Floors"]
    assert res.answer["correlation"]["left"] == "Height (m)"
    assert res.answer["correlation"]["right"] == "Floors"
    assert res.answer["most_common"] == {"column": "Name", "value": "Tower A", "count": 1}


def test_generic_url_fetch_failure_propagates(make_fetcher, settings):
    task = "Summarise the table at https://example.org/data as a JSON object"
    with pytest.raises(ExtractionError) as info:
        _run(task, settings=settings, fetcher=make_fetcher({}))
    assert info.value.reason == ExtractionError.FETCH_FAILED


def test_task_timeout(films_task, settings):
    from dataclasses import replace

    class SlowFetcher:
        async def fetch_text(self, url):
            await anyio.sleep(5)

    with pytest.raises(TaskTimeoutError):
        _run(films_task, settings=replace(settings, task_timeout=0.05), fetcher=SlowFetcher())
