"""Tests for devdocs_scraper.fetcher."""

from __future__ import annotations

import httpx
import pytest

from devdocs_scraper.config import ScraperConfig
from devdocs_scraper.errors import FetchTimeout, HttpStatusError, NetworkFailure
from devdocs_scraper.fetcher import Fetcher

URL = "https://devdocs.test/react/hooks"


def fetcher_for(handler, **config):
    return Fetcher(ScraperConfig(**config), transport=httpx.MockTransport(handler))


class TestFetch:
    @pytest.mark.asyncio
    async def test_returns_body_and_sends_user_agent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(200, content=b"<html>ok</html>")

        async with fetcher_for(handler, user_agent="DevDocs-Scraper/test") as fetcher:
            body = await fetcher.fetch(URL)

        assert body == b"<html>ok</html>"
        assert seen["ua"] == "DevDocs-Scraper/test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(404, False), (403, False), (429, True), (503, True)])
    async def test_http_status(self, status, retryable):
        async with fetcher_for(lambda r: httpx.Response(status)) as fetcher:
            with pytest.raises(HttpStatusError) as exc:
                await fetcher.fetch(URL)

        assert exc.value.status_code == status
        assert exc.value.retryable is retryable
        assert exc.value.url == URL

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with fetcher_for(handler) as fetcher:
            with pytest.raises(FetchTimeout):
                await fetcher.fetch(URL, timeout=0.5)

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with fetcher_for(handler) as fetcher:
            with pytest.raises(NetworkFailure):
                await fetcher.fetch(URL)

    @pytest.mark.asyncio
    async def test_non_positive_timeout_rejected(self):
        async with fetcher_for(lambda r: httpx.Response(200)) as fetcher:
            with pytest.raises(ValueError):
                await fetcher.fetch(URL, timeout=0)


class TestFetchJson:
    @pytest.mark.asyncio
    async def test_decodes(self):
        async with fetcher_for(lambda r: httpx.Response(200, json={"entries": []})) as fetcher:
            assert await fetcher.fetch_json(URL) == {"entries": []}

    @pytest.mark.asyncio
    async def test_malformed(self):
        async with fetcher_for(lambda r: httpx.Response(200, text="<html>")) as fetcher:
            with pytest.raises(ValueError):
                await fetcher.fetch_json(URL)


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_client_recreated_after_close(self):
        fetcher = fetcher_for(lambda r: httpx.Response(200, content=b"x"))
        first = fetcher.client
        await fetcher.close()
        assert first.is_closed
        assert await fetcher.fetch(URL) == b"x"
        assert fetcher.client is not first
        await fetcher.close()
