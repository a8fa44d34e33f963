"""Tavily web search client."""

from typing import Any

import httpx

from search_chat.config import Settings
from search_chat.exceptions import ProviderError, SearchUnavailableError
from search_chat.logging import get_logger
from search_chat.models import SearchHit, SearchResponse
from search_chat.planning import FOLLOWUP_DEFAULT_RESULTS, FOLLOWUP_MAX_RESULTS, PRIMARY_MIN_RESULTS
from search_chat.text import clamp_int, sanitize_search_text, to_str

log = get_logger("search_chat.search")

PROVIDER = "tavily"
SEARCH_TIMEOUT_S = 20.0


class TavilySearchClient:
    """Single search-by-query call against the Tavily REST API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http = http_client

    @property
    def enabled(self) -> bool:
        return self.settings.search_enabled

    async def search(self, query: str, max_results: Any = FOLLOWUP_DEFAULT_RESULTS) -> SearchResponse:
        if not self.enabled:
            raise SearchUnavailableError(PROVIDER)

        resolved_max = clamp_int(max_results, PRIMARY_MIN_RESULTS, FOLLOWUP_MAX_RESULTS)
        payload = {
            "api_key": self.settings.tavily_api_key,
            "query": query,
            "max_results": resolved_max,
            "include_answer": True,
            "include_raw_content": True,
        }

        try:
            response = await self.http.post(
                self.settings.tavily_search_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=SEARCH_TIMEOUT_S,
            )
        except httpx.HTTPError as e:
            log.warning("search.request.failed", query=query, error=type(e).__name__)
            raise ProviderError(PROVIDER, f"{type(e).__name__}: {e}") from e

        if response.is_error:
            log.warning("search.request.http_error", query=query, status_code=response.status_code)
            raise ProviderError(PROVIDER, "non-success response", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(PROVIDER, "response body is not JSON", status_code=response.status_code) from e

        return parse_search_payload(data)


def parse_search_payload(data: Any) -> SearchResponse:
    """Map a raw Tavily payload onto SearchResponse, sanitizing every snippet."""
    if not isinstance(data, dict):
        return SearchResponse()

    raw_results = data.get("results")
    hits = [
        SearchHit(
            title=to_str(item.get("title")),
            url=to_str(item.get("url")),
            content=sanitize_search_text(item.get("content") or item.get("raw_content")),
        )
        for item in (raw_results if isinstance(raw_results, list) else [])
        if isinstance(item, dict)
    ]
    return SearchResponse(answer=to_str(data.get("answer")), results=hits)
