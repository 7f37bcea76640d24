"""Full-rendering extraction backend (Chromium via Playwright).

Authoritative but expensive: it runs the page's scripts, can attempt one
challenge remediation, and waits for result items to render. Every call
leases its own context from the shared ``RenderSessionManager`` and releases
it before returning or raising.
"""

import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from listingscope.config import settings
from listingscope.core.exceptions import (
    ChallengeError,
    NavigationError,
    ScrapeError,
    ScrapeTimeoutError,
)
from listingscope.core.metrics import challenge_pages_total
from listingscope.schemas.products import ProductRecord
from listingscope.services.browser import RenderSessionManager, session_manager
from listingscope.services.captcha import CaptchaSolver
from listingscope.services.extraction import (
    CHALLENGE_SELECTOR,
    IMAGE_SELECTOR,
    LINK_SELECTOR,
    PRICE_SELECTOR,
    RATING_SELECTOR,
    RESULT_ITEM_SELECTOR,
    TITLE_SELECTOR,
    build_records,
    search_url,
)
from listingscope.services.identity import generate_identity

logger = logging.getLogger(__name__)

# Runs in the page; returns one raw field dict per result item. ``href`` is
# the anchor's resolved absolute URL.
_JS_EXTRACT_ITEMS = """
(sel) => Array.from(document.querySelectorAll(sel.item)).map(item => {
    const text = (s) => { const el = item.querySelector(s); return el ? el.textContent.trim() : null; };
    const attr = (s, a) => { const el = item.querySelector(s); return el ? el.getAttribute(a) : null; };
    const link = item.querySelector(sel.link);
    return {
        title: text(sel.title),
        price: text(sel.price),
        rating: attr(sel.rating, 'aria-label'),
        image_url: attr(sel.image, 'src'),
        href: link ? link.href : null,
        asin: item.getAttribute('data-asin'),
    };
})
"""

_SELECTORS = {
    "item": RESULT_ITEM_SELECTOR,
    "title": TITLE_SELECTOR,
    "price": PRICE_SELECTOR,
    "rating": RATING_SELECTOR,
    "image": IMAGE_SELECTOR,
    "link": LINK_SELECTOR,
}


class RenderingBackend:
    name = "rendering"

    def __init__(
        self,
        sessions: RenderSessionManager | None = None,
        solver: CaptchaSolver | None = None,
    ):
        self.sessions = sessions or session_manager
        self.solver = solver or CaptchaSolver()

    async def extract(self, keyword: str) -> list[ProductRecord]:
        identity = generate_identity()
        url = search_url(keyword)
        try:
            async with self.sessions.page(identity) as page:
                await self._navigate(page, url)
                await self._clear_challenge(page, keyword)
                await self._wait_for_results(page)
                raws = await page.evaluate(_JS_EXTRACT_ITEMS, _SELECTORS)
        except ScrapeError:
            raise
        except PlaywrightTimeoutError as e:
            logger.warning("Rendering timed out for %r: %s", keyword, e.message)
            raise ScrapeTimeoutError("Rendering timed out") from e
        except PlaywrightError as e:
            logger.warning("Rendering failed for %r: %s", keyword, e.message)
            raise NavigationError("Rendering failed") from e

        products = build_records(raws)
        logger.info(
            "Rendering extracted %d valid of %d items for %r",
            len(products),
            len(raws),
            keyword,
        )
        return products

    async def _navigate(self, page, url: str) -> None:
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=settings.NAVIGATION_TIMEOUT,
            )
        except PlaywrightTimeoutError as e:
            raise ScrapeTimeoutError(
                f"Navigation timed out after {settings.NAVIGATION_TIMEOUT}ms"
            ) from e
        except PlaywrightError as e:
            logger.warning("Navigation to %s failed: %s", url, e.message)
            raise NavigationError("Navigation failed") from e

    async def _clear_challenge(self, page, keyword: str) -> None:
        if not await page.query_selector(CHALLENGE_SELECTOR):
            return

        logger.warning("Challenge page shown for %r, attempting remediation", keyword)
        await self.solver.solve(page)

        if await page.query_selector(CHALLENGE_SELECTOR):
            challenge_pages_total.labels(resolved="no").inc()
            raise ChallengeError()
        challenge_pages_total.labels(resolved="yes").inc()
        logger.info("Challenge cleared for %r", keyword)

    async def _wait_for_results(self, page) -> None:
        try:
            await page.wait_for_selector(
                RESULT_ITEM_SELECTOR,
                state="attached",
                timeout=settings.RESULTS_WAIT_TIMEOUT,
            )
        except PlaywrightTimeoutError as e:
            raise ScrapeTimeoutError(
                f"No results rendered within {settings.RESULTS_WAIT_TIMEOUT}ms"
            ) from e
