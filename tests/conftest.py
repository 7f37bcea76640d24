"""Shared fixtures: fake Playwright objects and search-result HTML builders."""

import asyncio
from html import escape
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from listingscope.core.rate_limiter import scrape_rate_limiter
from listingscope.services.extraction import parse_raw_items


def build_results_html(items: list[dict], extra_body: str = "") -> str:
    """Render a minimal search results page.

    Each item dict may carry title, price, rating, image, href, asin. A key
    set to None is omitted from the markup entirely.
    """
    cards = []
    for i, item in enumerate(items):
        asin = item.get("asin", f"B0{i:08d}")
        parts = [f'<div data-asin="{asin}" data-component-type="s-search-result">']
        if item.get("href") is not None:
            parts.append(f'<h2><a href="{escape(item["href"])}"><span>{escape(item.get("title") or "")}</span></a></h2>')
        elif item.get("title") is not None:
            parts.append(f"<h2><span>{escape(item['title'])}</span></h2>")
        if item.get("price") is not None:
            parts.append(
                f'<span class="a-price"><span class="a-offscreen">{escape(item["price"])}</span></span>'
            )
        if item.get("rating") is not None:
            parts.append(f'<span aria-label="{escape(item["rating"])}"></span>')
        if item.get("image") is not None:
            parts.append(f'<img class="s-image" src="{escape(item["image"])}">')
        parts.append("</div>")
        cards.append("".join(parts))
    return (
        "<html><body><div class='s-search-results'>"
        + "".join(cards)
        + "</div>"
        + extra_body
        + "</body></html>"
    )


@pytest.fixture
def results_html():
    return build_results_html


def make_items(valid: int, missing_price: int = 0, missing_title: int = 0) -> list[dict]:
    items = [
        {
            "title": f"Product {i}",
            "price": f"${i}.99",
            "rating": "4.5 out of 5 stars",
            "image": f"https://m.media-amazon.com/images/I/{i}.jpg",
            "href": f"/Product-{i}/dp/B0VALID{i:03d}/ref=sr_1_{i}?keywords=x",
            "asin": f"B0VALID{i:03d}",
        }
        for i in range(valid)
    ]
    items += [{"title": f"No price {i}", "price": None} for i in range(missing_price)]
    items += [{"title": None, "price": "$1.00"} for i in range(missing_title)]
    return items


@pytest.fixture
def items_factory():
    return make_items


# ---------------------------------------------------------------------------
# Fake Playwright
# ---------------------------------------------------------------------------


class FakePage:
    """Page double that evaluates the extraction script against static HTML."""

    def __init__(self, html: str = "", challenge: bool = False):
        self.html = html
        self.challenge = challenge
        self.url = ""
        self.goto = AsyncMock(side_effect=self._goto)
        self.wait_for_selector = AsyncMock()
        self.evaluate = AsyncMock(side_effect=self._evaluate)
        self.close = AsyncMock()

    async def _goto(self, url, **kwargs):
        self.url = url

    async def query_selector(self, selector):
        if selector == "#captchacharacters" and self.challenge:
            return MagicMock()
        return None

    async def _evaluate(self, script, arg=None):
        return parse_raw_items(self.html)


class FakeContext:
    def __init__(self, page: FakePage):
        self._page = page
        self.add_init_script = AsyncMock()
        self.route = AsyncMock()
        self.close = AsyncMock()

    async def new_page(self):
        return self._page


class FakeBrowser:
    def __init__(self, page_factory=None):
        self._page_factory = page_factory or FakePage
        self.connected = True
        self.contexts: list[FakeContext] = []
        self.context_kwargs: list[dict] = []
        self.close = AsyncMock(side_effect=self._close)

    def is_connected(self):
        return self.connected

    async def _close(self):
        self.connected = False

    async def new_context(self, **kwargs):
        self.context_kwargs.append(kwargs)
        ctx = FakeContext(self._page_factory())
        self.contexts.append(ctx)
        return ctx


class FakeLauncher:
    """Stands in for ``async_playwright`` and counts launches."""

    def __init__(self, page_factory=None, fail_times: int = 0, launch_delay: float = 0):
        self.page_factory = page_factory
        self.fail_times = fail_times
        self.launch_delay = launch_delay
        self.launches = 0
        self.launch_kwargs: list[dict] = []
        self.browsers: list[FakeBrowser] = []
        self.stopped = 0

    def __call__(self):
        return self

    async def start(self):
        return self

    @property
    def chromium(self):
        return self

    async def launch(self, **kwargs):
        self.launch_kwargs.append(kwargs)
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("chromium executable not found")
        self.launches += 1
        browser = FakeBrowser(self.page_factory)
        self.browsers.append(browser)
        return browser

    async def stop(self):
        self.stopped += 1


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    scrape_rate_limiter.reset()
    yield
    scrape_rate_limiter.reset()


@pytest_asyncio.fixture
async def client():
    from listingscope.main import app

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
