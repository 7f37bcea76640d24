"""Search-results field selection shared by both extraction backends.

The selectors below are the single source of truth: the rendering backend
evaluates them in the page, the raw-fetch backend applies them to a
BeautifulSoup tree. Both hand their raw field dicts to ``build_record`` so
link canonicalization and the validity filter are identical.
"""

import logging
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup

from listingscope.config import settings
from listingscope.schemas.products import ProductRecord

logger = logging.getLogger(__name__)

RESULT_ITEM_SELECTOR = "[data-asin]"
TITLE_SELECTOR = "h2 span"
PRICE_SELECTOR = ".a-price span"
RATING_SELECTOR = '[aria-label*="stars"]'
IMAGE_SELECTOR = "img.s-image"
LINK_SELECTOR = 'a[href*="/dp/"], a[href*="/gp/product/"]'

CHALLENGE_SELECTOR = "#captchacharacters"

# Text signatures of a bot-check page in a raw HTTP response
BLOCK_MARKERS = (
    "robot-verification",
    "Type the characters you see in this image",
    "Sorry, we just need to make sure you're not a robot",
    "Enter the characters you see below",
)


def search_url(keyword: str, origin: str | None = None) -> str:
    """Build the search results URL for a keyword."""
    origin = origin or settings.target_origin
    return f"{origin}/s?k={quote(keyword, safe='')}"


def is_block_page(html: str) -> bool:
    return any(marker in html for marker in BLOCK_MARKERS)


def canonical_link(href: str | None, asin: str | None, origin: str | None = None) -> str | None:
    """Resolve a product anchor to ``origin + path``, else build one from the ASIN.

    Query strings and fragments (tracking parameters) are dropped.
    """
    origin = origin or settings.target_origin
    if href:
        path = urlparse(urljoin(origin + "/", href)).path
        if path:
            return f"{origin}{path}"
    if asin:
        return f"{origin}/dp/{asin}"
    return None


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def build_record(raw: dict, origin: str | None = None) -> ProductRecord | None:
    """Turn a raw field dict into a ProductRecord, or None if it is invalid.

    ``raw`` keys: title, price, rating, image_url, href, asin.
    """
    title = _clean(raw.get("title"))
    price = _clean(raw.get("price"))
    if not title or not price:
        return None

    return ProductRecord(
        title=title,
        price=price,
        rating=_clean(raw.get("rating")) or None,
        image_url=_clean(raw.get("image_url")) or None,
        link=canonical_link(
            _clean(raw.get("href")) or None,
            _clean(raw.get("asin")) or None,
            origin,
        ),
    )


def build_records(raws: list[dict], origin: str | None = None) -> list[ProductRecord]:
    """Build records in page order, dropping invalid ones."""
    records = []
    for raw in raws:
        record = build_record(raw, origin)
        if record is not None:
            records.append(record)
    dropped = len(raws) - len(records)
    if dropped:
        logger.debug("Dropped %d of %d result items without title/price", dropped, len(raws))
    return records


# ═══════════════════════════════════════════════════════════════════
#  DOM parser (BeautifulSoup)
# ═══════════════════════════════════════════════════════════════════


def _text(card, selector: str) -> str | None:
    el = card.select_one(selector)
    return el.get_text(strip=True) if el else None


def _attr(card, selector: str, attr: str) -> str | None:
    el = card.select_one(selector)
    return el.get(attr) if el else None


def parse_raw_items(html: str) -> list[dict]:
    """Pull raw fields for every result item in a search results document."""
    soup = BeautifulSoup(html, "lxml")
    return [
        {
            "title": _text(card, TITLE_SELECTOR),
            "price": _text(card, PRICE_SELECTOR),
            "rating": _attr(card, RATING_SELECTOR, "aria-label"),
            "image_url": _attr(card, IMAGE_SELECTOR, "src"),
            "href": _attr(card, LINK_SELECTOR, "href"),
            "asin": card.get("data-asin"),
        }
        for card in soup.select(RESULT_ITEM_SELECTOR)
    ]


def parse_products(html: str, origin: str | None = None) -> list[ProductRecord]:
    """Parse valid product records from search results HTML."""
    return build_records(parse_raw_items(html), origin)
