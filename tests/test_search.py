import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from aiohttp import web

from tools.search import ExaSearch, SearchError, _build_request, _iso, _parse_results

END = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
START = END - timedelta(days=7)


def test_iso_format():
    assert _iso(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)) == "2025-03-10T09:00:00.000Z"
    assert _iso(datetime(2025, 3, 10, 9, 0)) == "2025-03-10T09:00:00.000Z"


def test_build_request():
    body = _build_request("chip export controls", 5, START, END)

    assert body["query"] == "chip export controls"
    assert body["numResults"] == 5
    assert body["startPublishedDate"] == "2025-03-03T09:00:00.000Z"
    assert body["endPublishedDate"] == "2025-03-10T09:00:00.000Z"
    assert body["moderation"] is True
    assert body["contents"] == {"text": True}


def test_parse_results():
    data = {
        "results": [
            {
                "title": "EU fines chipmaker",
                "url": " https://a.com/1 ",
                "text": "Body",
                "author": "",
                "publishedDate": "2025-03-09T10:00:00.000Z",
            },
            {"title": "No url", "url": None},
            {"url": "https://b.com/2"},
        ]
    }

    docs = _parse_results(data)

    assert [d.url for d in docs] == ["https://a.com/1", "https://b.com/2"]
    assert docs[0].author is None
    assert docs[0].published_date == "2025-03-09T10:00:00.000Z"
    assert docs[1].title == "" and docs[1].text == ""


def test_parse_results_rejects_malformed_response():
    with pytest.raises(SearchError):
        _parse_results({"error": "bad request"})


async def _serve(handler):
    app = web.Application()
    app.router.add_post("/search", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    return runner, f"http://{host}:{port}"


@pytest.mark.asyncio
async def test_exa_search_posts_request():
    received = {}

    async def handler(request):
        received["api_key"] = request.headers.get("x-api-key")
        received["body"] = await request.json()
        return web.json_response({"results": [{"title": "T", "url": "https://a.com/1", "text": "Body"}]})

    runner, base_url = await _serve(handler)
    try:
        docs = await ExaSearch("exa-test", base_url=base_url).search_and_extract("AI", 3, START, END)
    finally:
        await runner.cleanup()

    assert [d.url for d in docs] == ["https://a.com/1"]
    assert received["api_key"] == "exa-test"
    assert received["body"]["numResults"] == 3
    assert received["body"]["moderation"] is True


@pytest.mark.asyncio
async def test_exa_search_quota_error():
    async def handler(request):
        return web.json_response({"error": "quota"}, status=429)

    runner, base_url = await _serve(handler)
    try:
        with pytest.raises(SearchError, match="quota"):
            await ExaSearch("exa-test", base_url=base_url).search_and_extract("AI", 3, START, END)
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_exa_search_timeout():
    async def handler(request):
        await asyncio.sleep(2)
        return web.json_response({"results": []})

    runner, base_url = await _serve(handler)
    try:
        with pytest.raises(SearchError, match="timed out") as exc_info:
            await ExaSearch("exa-test", base_url=base_url, timeout=0.1).search_and_extract("AI", 3, START, END)
    finally:
        await runner.cleanup()

    assert exc_info.value.__cause__ is None
    assert exc_info.value.__suppress_context__
