import pytest

from services.workers.graph.core.config import Settings
from services.workers.graph.core.constants import FILMS_URL
from services.workers.graph.core.errors import ExtractionError
from services.workers.graph.io.columnar import QueryResult


FILMS_HTML = """
<html><body>
<table class="infobox"><tr><th>Not this one</th></tr></table>
<table class="wikitable sortable">
  <tr><th>Rank</th><th>Peak</th><th>Title</th><th>Worldwide gross</th><th>Year</th></tr>
  <tr><td>1</td><td>1</td><td>A</td><td>$2,500,000,000</td><td>1995</td></tr>
  <tr><td>2</td><td>3</td><td>B</td><td>$1,600,000,000[# 1]</td><td>2001</td></tr>
</table>
</body></html>
"""

FILMS_TASK = """Scrape the list of highest grossing films from Wikipedia. It is at the URL:
https://en.wikipedia.org/wiki/List_of_highest-grossing_films

Answer the following questions and respond with a JSON array of strings containing the answer.

1. How many $2 bn movies were released before 2000?
2. Which is the earliest film that grossed over $1.5 bn?
3. What's the correlation between the Rank and Peak?
4. Draw a scatterplot of Rank and Peak along with a dotted red regression line through it.
   Return as a base-64 encoded data URI, `"data:image/png;base64,iVBORw0KG..."` under 100,000 bytes.
"""

COURT_TASK = """The Indian high court judgement dataset contains judgements from the Indian High Courts,
stored as parquet partitioned by year, court and bench.

Answer the following questions and respond with a JSON object containing the answer.

{
  "Which high court disposed the most cases from 2019 - 2022?": "...",
  "What's the regression slope of the date_of_registration - decision_date by year in the court=33_10?": "...",
  "Plot the year and # of days of delay from the above question as a scatterplot with a regression line. Encode as a base64 data URI under 100,000 characters": "data:image/webp:base64,..."
}
"""


class FakeFetcher:
    def __init__(self, pages=None, error=None):
        self.pages = dict(pages or {})
        self.error = error
        self.calls = []

    async def fetch_text(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if url not in self.pages:
            raise ExtractionError(ExtractionError.FETCH_FAILED, f"{url}: 404")
        return self.pages[url]


class FakeStore:
    """Answers queries by matching a SQL fragment to a canned result."""

    def __init__(self, responses=None, error=None):
        self.responses = dict(responses or {})
        self.error = error
        self.calls = []

    async def query(self, sql, params=()):
        self.calls.append((sql, list(params)))
        if self.error is not None:
            raise self.error
        for fragment, result in self.responses.items():
            if fragment in sql:
                if isinstance(result, Exception):
                    raise result
                return result
        raise ExtractionError(ExtractionError.QUERY_FAILED, "no canned result")


class FakeGenerator:
    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def complete(self, prompt, *, system=None, max_tokens=500):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def settings():
    return Settings(disable_llm=True)


@pytest.fixture
def films_fetcher():
    return FakeFetcher({FILMS_URL: FILMS_HTML})


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def make_store():
    return FakeStore


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def query_result():
    def build(columns, rows):
        return QueryResult(columns=tuple(columns), rows=tuple(tuple(row) for row in rows))

    return build


@pytest.fixture
def films_html():
    return FILMS_HTML


@pytest.fixture
def films_task():
    return FILMS_TASK


@pytest.fixture
def court_task():
    return COURT_TASK
