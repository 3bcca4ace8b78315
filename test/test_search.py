import asyncio
import json

import httpx
import pytest

from basil_loop.config import Settings
from basil_loop.models import SearchResult
from basil_loop.search import (
    SearchClient,
    SearchError,
    WebSearch,
    create_search_provider,
    wikipedia_title,
)

LONG_TEXT = "Python is a high-level programming language. " * 20


def _web_search(ddg=None, wiki=None) -> WebSearch:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.duckduckgo.com":
            return ddg(request) if ddg else httpx.Response(200, json={})
        if request.url.host == "en.wikipedia.org":
            return wiki(request) if wiki else httpx.Response(404)
        raise AssertionError(f"unexpected host {request.url.host}")

    return WebSearch(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_wikipedia_title() -> None:
    assert wikipedia_title("What is quantum computing?") == "quantum_computing"
    assert wikipedia_title("define   entropy") == "entropy"


def test_web_search_aggregates_both_sources() -> None:
    seen_titles = []

    def ddg(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "what is python"
        assert request.url.params["format"] == "json"
        return httpx.Response(
            200,
            json={"Abstract": LONG_TEXT, "Heading": "Python", "AbstractURL": "https://ddg/python"},
        )

    def wiki(request: httpx.Request) -> httpx.Response:
        seen_titles.append(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(
            200,
            json={
                "title": "Python (programming language)",
                "extract": LONG_TEXT,
                "content_urls": {"desktop": {"page": "https://en.wikipedia.org/wiki/Python"}},
            },
        )

    results = asyncio.run(_web_search(ddg, wiki).search("what is python", max_results=5))

    assert [result.source for result in results] == ["DuckDuckGo", "Wikipedia"]
    assert seen_titles == ["python"]
    assert results[0].title == "Python"
    assert len(results[0].snippet) == 303
    assert results[0].snippet.endswith("...")
    assert results[1].url == "https://en.wikipedia.org/wiki/Python"


def test_web_search_caps_results() -> None:
    ddg = lambda request: httpx.Response(200, json={"Abstract": LONG_TEXT, "Heading": "Python"})
    wiki = lambda request: httpx.Response(200, json={"title": "Python", "extract": LONG_TEXT})

    results = asyncio.run(_web_search(ddg, wiki).search("what is python", max_results=1))

    assert len(results) == 1


def test_source_timeout_only_drops_that_source() -> None:
    def ddg(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    wiki = lambda request: httpx.Response(200, json={"title": "Entropy", "extract": LONG_TEXT})

    results = asyncio.run(_web_search(ddg, wiki).search("define entropy"))

    assert [result.source for result in results] == ["Wikipedia"]


def test_disambiguation_pages_are_ignored() -> None:
    wiki = lambda request: httpx.Response(
        200, json={"title": "Mercury", "extract": "Mercury may refer to: a planet, an element, a god, and more."}
    )

    results = asyncio.run(_web_search(wiki=wiki).search("what is mercury"))

    assert results[0].title == "Knowledge Base Search"


@pytest.mark.parametrize(
    "query,fragment",
    [
        ("how to bake bread", "how-to question"),
        ("latest phone releases", "current information"),
        ("cats vs dogs", "detailed comparison"),
        ("bread", "comprehensive information"),
    ],
)
def test_no_results_falls_back_to_contextual_hint(query: str, fragment: str) -> None:
    results = asyncio.run(_web_search().search(query))

    assert len(results) == 1
    assert results[0].source == "AI Knowledge"
    assert fragment in results[0].snippet


def test_search_client_posts_query_and_maps_results() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "query": "q",
                "results": [
                    {"title": "A", "snippet": "a", "source": "DuckDuckGo", "url": "https://a"},
                    {"title": "B", "snippet": "b", "source": "Wikipedia"},
                ],
            },
        )

    client = SearchClient(
        "http://proxy.test/api/search",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    results = asyncio.run(client.search("q", max_results=3))

    assert bodies == [{"query": "q", "maxResults": 3}]
    assert results == [
        SearchResult("A", "a", "DuckDuckGo", "https://a"),
        SearchResult("B", "b", "Wikipedia", ""),
    ]


def test_search_client_raises_on_error_status() -> None:
    client = SearchClient(
        "http://proxy.test/api/search",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={}))
        ),
    )

    with pytest.raises(SearchError):
        asyncio.run(client.search("q"))


def test_create_search_provider_uses_backend_when_configured() -> None:
    assert isinstance(create_search_provider(Settings(search_url="http://x/api/search")), SearchClient)
    assert isinstance(create_search_provider(Settings()), WebSearch)


def test_unexpected_source_payload_yields_offline_entry() -> None:
    ddg = lambda request: httpx.Response(200, json={"Abstract": {"nested": 1}})

    results = asyncio.run(_web_search(ddg).search("bread recipes"))

    assert len(results) == 1
    assert results[0].title == "Search Unavailable"
    assert results[0].source == "Offline Mode"


def test_slow_source_is_cut_off_at_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.duckduckgo.com":
            await asyncio.sleep(5)
            return httpx.Response(200, json={"Abstract": LONG_TEXT})
        return httpx.Response(200, json={"title": "Entropy", "extract": LONG_TEXT})

    search = WebSearch(
        timeout=0.05,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    async def scenario():
        loop = asyncio.get_running_loop()
        started = loop.time()
        results = await search.search("define entropy")
        return results, loop.time() - started

    results, elapsed = asyncio.run(scenario())

    assert [result.source for result in results] == ["Wikipedia"]
    assert elapsed < 1


def test_search_client_empty_results_fall_back_to_hint() -> None:
    client = SearchClient(
        "http://proxy.test/api/search",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"results": []}))
        ),
    )

    results = asyncio.run(client.search("how to bake bread"))

    assert len(results) == 1
    assert results[0].source == "AI Knowledge"
    assert "how-to question" in results[0].snippet
