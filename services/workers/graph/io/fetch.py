"""Async page fetching for the scrape step."""
from __future__ import annotations
from typing import Mapping, Optional, Protocol
import logging

import httpx

from ..core.constants import USER_AGENT, _SCRAPE_TIMEOUT
from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    async def fetch_text(self, url: str) -> str:
        ...


class HttpPageFetcher:
    """Fetches a page body with an explicit timeout.

    Pass ``client`` to reuse a shared :class:`httpx.AsyncClient`; otherwise a
    short-lived client is opened per call.
    """

    def __init__(
        self,
        timeout: float = _SCRAPE_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.headers = {"User-Agent": USER_AGENT, **dict(headers or {})}
        self._client = client

    async def fetch_text(self, url: str) -> str:
        logger.info("fetching page", extra={"url": url})
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url, headers=self.headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ExtractionError(ExtractionError.FETCH_FAILED, f"timed out fetching {url}") from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(ExtractionError.FETCH_FAILED, f"{url}: {exc}") from exc
        return response.text
