"""Web search collaborator for the search agent.

This module defines:

- :class:`SearchProvider`, the interface the orchestrator consumes.
- :class:`WebSearch`, which aggregates the DuckDuckGo instant-answer API and
  the Wikipedia summary API with a per-source timeout.
- :class:`SearchClient`, which forwards queries to a remote search backend
  speaking ``POST {query, maxResults} -> {results: [...]}``.
- :func:`create_search_provider` to pick one of them from :class:`Settings`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx
from .config import Settings
from .models import SearchResult

logger = logging.getLogger(__name__)

DDG_URL = "https://api.duckduckgo.com/"
WIKIPEDIA_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/"
DEFINITION_TRIGGERS = ("what is", "who is", "define", "explain")
_DEFINITION_PREFIX_RE = re.compile(r"^(what is|who is|define|explain)\s+", re.IGNORECASE)


class SearchError(Exception):
    """The search backend answered with a non-2xx status."""


class SearchProvider(Protocol):
    async def search(self, query: str, max_results: int = 3) -> List[SearchResult]:
        ...

    async def aclose(self) -> None:
        ...


def _contextual_hint(query: str) -> str:
    lower = query.lower()
    if "how to" in lower:
        return (
            "This appears to be a how-to question. I'll provide step-by-step guidance"
            " based on my knowledge."
        )
    if any(word in lower for word in ("current", "latest", "recent")):
        return (
            "You're asking about current information. I'll provide the most recent"
            " information I have, though it may not reflect very recent developments."
        )
    if any(word in lower for word in ("compare", "vs", "difference")):
        return "I'll provide a detailed comparison based on my knowledge of these topics."
    return "I'll provide comprehensive information about this topic using my existing knowledge."


def _knowledge_base_entry(query: str) -> SearchResult:
    return SearchResult(
        title="Knowledge Base Search",
        snippet=_contextual_hint(query),
        source="AI Knowledge",
    )


def wikipedia_title(query: str) -> str:
    """Turn a definition-style query into a Wikipedia page title.

    ``"What is quantum computing?"`` becomes ``"quantum_computing"``.
    """
    term = _DEFINITION_PREFIX_RE.sub("", query.strip()).strip()
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", term)
    return re.sub(r"\s+", "_", cleaned.strip())


class WebSearch:
    """Best-effort search over DuckDuckGo and Wikipedia.

    Each source gets its own ``timeout``; a timeout or error there only
    drops that source. The result list is never empty.
    """

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def search(self, query: str, max_results: int = 3) -> List[SearchResult]:
        logger.info("Performing search for: %r", query)
        try:
            results: List[SearchResult] = []

            ddg = await self._duckduckgo(query)
            if ddg is not None:
                results.append(ddg)

            if any(trigger in query.lower() for trigger in DEFINITION_TRIGGERS):
                wiki = await self._wikipedia(query)
                if wiki is not None:
                    results.append(wiki)

            if not results:
                results.append(_knowledge_base_entry(query))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Search system error")
            return [
                SearchResult(
                    title="Search Unavailable",
                    snippet=(
                        f"Search is currently unavailable ({exc}). I'll provide answers"
                        " using my built-in knowledge."
                    ),
                    source="Offline Mode",
                )
            ]

        logger.info("Search completed: %d results found", len(results))
        return results[:max_results]

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        return await asyncio.wait_for(self._fetch_json(url, params), timeout=self.timeout)

    async def _fetch_json(self, url: str, params: Optional[Dict[str, str]]) -> Optional[Any]:
        response = await self._http.get(url, params=params, timeout=self.timeout)
        if not response.is_success:
            return None
        return response.json()

    async def _duckduckgo(self, query: str) -> Optional[SearchResult]:
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        try:
            data = await self._get_json(DDG_URL, params)
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as exc:
            logger.info("DuckDuckGo search failed: %s", exc)
            return None
        if not isinstance(data, dict):
            return None

        abstract = (data.get("Abstract") or "").strip()
        if len(abstract) <= 10:
            return None
        logger.info("DuckDuckGo result found")
        return SearchResult.build(
            title=data.get("Heading") or "DuckDuckGo Answer",
            text=abstract,
            source="DuckDuckGo",
            url=data.get("AbstractURL") or "",
        )

    async def _wikipedia(self, query: str) -> Optional[SearchResult]:
        title = wikipedia_title(query)
        if len(title) <= 1:
            return None
        try:
            data = await self._get_json(WIKIPEDIA_SUMMARY_URL + quote(title))
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as exc:
            logger.info("Wikipedia search failed: %s", exc)
            return None
        if not isinstance(data, dict):
            return None

        extract = data.get("extract") or ""
        if "may refer to" in extract or len(extract) <= 50:
            return None
        logger.info("Wikipedia result found")
        page_url = ((data.get("content_urls") or {}).get("desktop") or {}).get("page") or ""
        return SearchResult.build(
            title=data.get("title") or "Wikipedia Article",
            text=extract,
            source="Wikipedia",
            url=page_url,
        )


class SearchClient:
    """Client for a remote search backend (for example, the chat proxy)."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def search(self, query: str, max_results: int = 3) -> List[SearchResult]:
        response = await self._http.post(
            self.url, json={"query": query, "maxResults": max_results}
        )
        if not response.is_success:
            raise SearchError(f"Search API error: {response.status_code}")

        results: List[SearchResult] = []
        for item in response.json().get("results") or []:
            if not isinstance(item, dict):
                continue
            results.append(
                SearchResult(
                    title=str(item.get("title") or ""),
                    snippet=str(item.get("snippet") or ""),
                    source=str(item.get("source") or ""),
                    url=str(item.get("url") or ""),
                )
            )
        if not results:
            results.append(_knowledge_base_entry(query))
        return results[:max_results]


def create_search_provider(settings: Settings) -> SearchProvider:
    """Use the configured search backend, or query the public sources directly."""
    if settings.search_url:
        return SearchClient(settings.search_url)
    return WebSearch(timeout=settings.search_timeout)
