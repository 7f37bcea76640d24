"""Product scrape API.

Endpoints:
  GET /api/scrape?keyword=<text>&retry=<0..3>: search listings as structured JSON
"""

import logging

from fastapi import APIRouter, Query, Request, Response

from listingscope.core.exceptions import BadRequestError, RateLimitError
from listingscope.core.metrics import admission_denied_total
from listingscope.core.rate_limiter import scrape_rate_limiter
from listingscope.schemas.products import ErrorResponse, ScrapeResponse
from listingscope.services.orchestrator import scrape

router = APIRouter()
logger = logging.getLogger(__name__)


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _parse_retry(raw: str | None) -> int:
    """Lenient integer parse; anything unparsable means no retries."""
    try:
        return int(raw) if raw is not None else 0
    except ValueError:
        return 0


@router.get(
    "/scrape",
    response_model=ScrapeResponse,
    summary="Product search",
    description=(
        "Search the target storefront for a keyword and return product "
        "listings (title, price, rating, image, link). Rendering is retried "
        "up to `retry` times with linear backoff before a raw HTTP fetch is "
        "tried as the last resort."
    ),
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def scrape_products(
    request: Request,
    response: Response,
    keyword: str | None = Query(None, description="Search keyword"),
    retry: str | None = Query(None, description="Rendering retries (0-3)"),
):
    rl = scrape_rate_limiter.admit(_client_id(request))
    rl_headers = {
        "X-RateLimit-Limit": str(rl.limit),
        "X-RateLimit-Remaining": str(rl.remaining),
        "X-RateLimit-Reset": str(rl.reset),
    }
    if not rl.allowed:
        admission_denied_total.inc()
        logger.info("Rate limit exceeded for %s", _client_id(request))
        raise RateLimitError(headers=rl_headers)
    response.headers.update(rl_headers)

    if not keyword or not keyword.strip():
        raise BadRequestError()

    return await scrape(keyword.strip(), _parse_retry(retry))
