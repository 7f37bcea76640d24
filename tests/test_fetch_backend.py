"""Unit tests for the raw-fetch backend (httpx + BeautifulSoup)."""

import re

import httpx
import pytest

from listingscope.core.exceptions import BlockedError, ScrapeTimeoutError
from listingscope.services.fetch_backend import RawFetchBackend


def _backend(handler) -> RawFetchBackend:
    return RawFetchBackend(timeout=15, transport=httpx.MockTransport(handler))


class TestRawFetchSuccess:
    @pytest.mark.asyncio
    async def test_returns_only_valid_records(self, results_html, items_factory):
        """Items missing title or price are filtered out before returning."""
        html = results_html(items_factory(5, missing_price=2, missing_title=1))
        backend = _backend(lambda request: httpx.Response(200, text=html))

        products = await backend.extract("laptop")

        assert len(products) == 5
        assert all(p.title and p.price for p in products)

    @pytest.mark.asyncio
    async def test_requests_search_url_with_identity_headers(self, results_html, items_factory):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            return httpx.Response(200, text=results_html(items_factory(1)))

        await _backend(handler).extract("usb c hub")

        assert seen["url"] == "https://www.amazon.com/s?k=usb%20c%20hub"
        ua_version = re.search(r"Chrome/(\d+)\.", seen["headers"]["user-agent"]).group(1)
        assert f'v="{ua_version}"' in seen["headers"]["sec-ch-ua"]
        assert seen["headers"]["accept-language"].startswith("en-US")

    @pytest.mark.asyncio
    async def test_empty_results_page(self):
        backend = _backend(lambda request: httpx.Response(200, text="<html><body></body></html>"))
        assert await backend.extract("zzzz") == []


class TestRawFetchFailures:
    @pytest.mark.asyncio
    async def test_block_marker_raises_blocked(self, results_html, items_factory):
        """A block page is rejected without parsing, even if it contains items."""
        html = results_html(items_factory(3), extra_body='<div class="robot-verification"></div>')
        backend = _backend(lambda request: httpx.Response(200, text=html))

        with pytest.raises(BlockedError):
            await backend.extract("laptop")

    @pytest.mark.asyncio
    async def test_service_unavailable_raises_blocked(self):
        backend = _backend(lambda request: httpx.Response(503, text="Service Unavailable"))
        with pytest.raises(BlockedError) as exc_info:
            await backend.extract("laptop")
        assert exc_info.value.kind == "blocked"

    @pytest.mark.asyncio
    async def test_other_status_propagates(self):
        backend = _backend(lambda request: httpx.Response(404, text="nope"))
        with pytest.raises(httpx.HTTPStatusError):
            await backend.extract("laptop")

    @pytest.mark.asyncio
    async def test_timeout_is_typed(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ScrapeTimeoutError) as exc_info:
            await _backend(handler).extract("laptop")
        assert isinstance(exc_info.value, TimeoutError)
        assert "15s" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.ConnectError):
            await _backend(handler).extract("laptop")
