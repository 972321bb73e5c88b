import importlib

import anyio
import httpx
import pytest

from services.workers.graph.core.classifier import KeywordTaskClassifier
from services.workers.graph.core.errors import ExtractionError

FILMS_URL = "https://en.wikipedia.org/wiki/List_of_highest-grossing_films"

FILMS_PAGE = """
<html><body>
<table class="wikitable sortable">
  <tr><th>Rank</th><th>Peak</th><th>Title</th><th>Worldwide gross</th><th>Year</th></tr>
  <tr><td>1</td><td>1</td><td>Alpha</td><td>$2,500,000,000</td><td>1995</td></tr>
  <tr><td>2</td><td>3</td><td>Beta</td><td>$1,600,000,000</td><td>2001</td></tr>
</table>
</body></html>
"""


class FakeFetcher:
    def __init__(self, pages=None, delay=0.0):
        self.pages = dict(pages or {})
        self.delay = delay
        self.calls = []

    async def fetch_text(self, url):
        self.calls.append(url)
        if self.delay:
            await anyio.sleep(self.delay)
        if url not in self.pages:
            raise ExtractionError(ExtractionError.FETCH_FAILED, url)
        return self.pages[url]


class FailingStore:
    def __init__(self):
        self.calls = 0

    async def query(self, sql, params=()):
        self.calls += 1
        raise ExtractionError(ExtractionError.QUERY_FAILED, "store offline")


@pytest.fixture()
def api_app(monkeypatch):
    monkeypatch.setenv("TF_DISABLE_LLM", "1")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    from services.api import app as app_module

    importlib.reload(app_module)

    fetcher = FakeFetcher({FILMS_URL: FILMS_PAGE})
    store = FailingStore()
    app_module.classifier = KeywordTaskClassifier()
    app_module.page_fetcher = fetcher
    app_module.columnar_store = store

    transport = httpx.ASGITransport(app=app_module.app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    class SyncClient:
        def request(self, method: str, url: str, **kwargs):
            return anyio.run(lambda: async_client.request(method, url, **kwargs))

        def get(self, url: str, **kwargs):
            return self.request("GET", url, **kwargs)

        def post(self, url: str, **kwargs):
            return self.request("POST", url, **kwargs)

    try:
        yield {
            "client": SyncClient(),
            "module": app_module,
            "fetcher": fetcher,
            "store": store,
        }
    finally:
        anyio.run(async_client.aclose)
