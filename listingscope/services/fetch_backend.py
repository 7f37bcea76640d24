"""Raw-fetch extraction backend: one HTTP GET, then DOM parsing.

Cheap and stateless, but it cannot run client-side rendering or solve a
bot-check, so the orchestrator only uses it as the last resort. A challenge
page in the response is indistinguishable from a block and raises
``BlockedError``.
"""

import logging

import httpx

from listingscope.config import settings
from listingscope.core.exceptions import BlockedError, ScrapeTimeoutError
from listingscope.schemas.products import ProductRecord
from listingscope.services.extraction import is_block_page, parse_products, search_url
from listingscope.services.identity import generate_identity

logger = logging.getLogger(__name__)


class RawFetchBackend:
    name = "raw_fetch"

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT
        self._transport = transport

    async def _get(self, url: str) -> httpx.Response:
        identity = generate_identity()
        headers = identity.headers()
        headers["referer"] = f"{settings.target_origin}/"

        kwargs: dict = {
            "timeout": self.timeout,
            "follow_redirects": True,
            "headers": headers,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport

        async with httpx.AsyncClient(**kwargs) as client:
            return await client.get(url)

    async def extract(self, keyword: str) -> list[ProductRecord]:
        url = search_url(keyword)
        try:
            resp = await self._get(url)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise ScrapeTimeoutError(
                f"Raw fetch timed out after {self.timeout:g}s"
            ) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 503:
                raise BlockedError() from e
            raise

        html = resp.text
        if is_block_page(html):
            logger.warning("Raw fetch returned a block page for %r", keyword)
            raise BlockedError("CAPTCHA detected")

        products = parse_products(html)
        logger.info("Raw fetch parsed %d products for %r", len(products), keyword)
        return products
