"""Web search provider for the research stage.

This module provides the search-and-extract call used by the research
executor: one query returns up to N documents published inside a date
window, each with its page text already extracted.

Backend: Exa search API (https://docs.exa.ai), called over aiohttp.

Error Handling:
    - API error status or malformed response: Raises SearchError (hard)
    - Timeout: Raises SearchError (the caller treats it as a failed query)
    - No results: Returns an empty list (soft - query may be too narrow)
    - Results without URL: Dropped
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Protocol

import aiohttp

from models.research import SearchDocument
from tools.utils import USER_AGENT, create_ssl_context

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """Raised when the search API fails with a non-recoverable error.

    Examples:
    - Invalid API key
    - Quota exceeded
    - API returned error status
    - Request timed out
    """
    pass


class WebSearchProvider(Protocol):
    """Search-and-extract interface used by the research executor."""

    async def search_and_extract(
        self,
        query: str,
        result_count: int,
        start_date: datetime,
        end_date: datetime,
    ) -> list[SearchDocument]: ...


def _iso(dt: datetime) -> str:
    """Format a datetime the way Exa expects (UTC, millisecond precision)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _build_request(query: str, result_count: int, start_date: datetime, end_date: datetime) -> dict:
    """Request body for /search. Moderation filters unsafe results server-side."""
    return {
        "query": query,
        "numResults": result_count,
        "startPublishedDate": _iso(start_date),
        "endPublishedDate": _iso(end_date),
        "type": "auto",
        "moderation": True,
        "contents": {"text": True},
    }


def _parse_results(data: dict) -> list[SearchDocument]:
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        raise SearchError("Exa response missing 'results'")

    documents = []
    for item in data["results"]:
        url = (item.get("url") or "").strip()
        if not url:
            continue
        documents.append(SearchDocument(
            title=item.get("title") or "",
            url=url,
            text=item.get("text") or "",
            author=item.get("author") or None,
            published_date=item.get("publishedDate") or None,
        ))
    return documents


class ExaSearch:
    """Exa search-and-contents client.

    Example:
        >>> search = ExaSearch(api_key="...")
        >>> docs = await search.search_and_extract("EU AI Act enforcement", 5, start, end)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.exa.ai",
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def search_and_extract(
        self,
        query: str,
        result_count: int,
        start_date: datetime,
        end_date: datetime,
    ) -> list[SearchDocument]:
        """Search the web and return documents with their extracted text.

        Args:
            query: Search query string
            result_count: Maximum number of documents
            start_date: Earliest publication date
            end_date: Latest publication date

        Returns:
            Documents in provider ranking order

        Raises:
            SearchError: On API error, malformed response or timeout
        """
        payload = _build_request(query, result_count, start_date, end_date)
        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

        logger.debug("Web search (Exa) | query='%s' results=%d", query[:50], result_count)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/search",
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ssl=create_ssl_context(),
                ) as resp:
                    if resp.status == 401:
                        raise SearchError("Exa API key invalid")
                    if resp.status == 429:
                        raise SearchError("Exa quota exceeded")
                    if resp.status != 200:
                        raise SearchError(f"Exa API error: HTTP {resp.status}")
                    data = await resp.json()
        except asyncio.TimeoutError:
            raise SearchError(f"Exa search timed out after {self.timeout:.0f}s") from None
        except aiohttp.ClientError as e:
            raise SearchError(f"Exa request failed: {e}") from e

        documents = _parse_results(data)
        logger.debug("Web search complete | query='%s' results=%d", query[:50], len(documents))
        return documents
