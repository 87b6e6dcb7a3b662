"""External service clients used by the pipeline stages.

ExaSearch:
    Search-and-extract web search (WebSearchProvider implementation).
    Returns SearchDocument objects with page text already extracted.

create_ssl_context:
    certifi-backed SSL context shared by all aiohttp calls.

Example:
    >>> from tools import ExaSearch
    >>> search = ExaSearch(api_key="...")
    >>> docs = await search.search_and_extract("chip export controls", 5, start, end)
"""

from tools.utils import create_ssl_context, USER_AGENT
from tools.search import ExaSearch, SearchError, WebSearchProvider

__all__ = [
    "ExaSearch",
    "SearchError",
    "WebSearchProvider",
    "create_ssl_context",
    "USER_AGENT",
]
