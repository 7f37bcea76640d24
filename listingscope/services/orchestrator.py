"""Attempt sequencing across the two extraction backends.

Strategy chain for one request:
1. Rendering backend, up to ``retry_budget + 1`` times, with linear backoff
   (``RETRY_BACKOFF_MS * i`` before attempt ``i``). Stops at the first
   non-empty result.
2. Raw-fetch backend, exactly once, as the last resort.
3. ``NoResultsError`` carrying the most recent failure.

Failure kinds are not distinguished here: a challenge, a timeout, a
navigation error and an empty page all just advance the attempt counter.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field

from listingscope.config import settings
from listingscope.core.exceptions import NoResultsError
from listingscope.core.metrics import (
    scrape_backend_attempts_total,
    scrape_duration_seconds,
    scrape_requests_total,
)
from listingscope.schemas.products import ProductRecord, ScrapeResponse
from listingscope.services.fetch_backend import RawFetchBackend
from listingscope.services.render_backend import RenderingBackend

logger = logging.getLogger(__name__)


class Backend(str, enum.Enum):
    RENDERING = "rendering"
    RAW_FETCH = "raw_fetch"


@dataclass
class RequestOutcome:
    records: list[ProductRecord] = field(default_factory=list)
    attempts_used: int = 0
    backend_used: Backend = Backend.RENDERING
    error: Exception | None = None


def clamp_retry(retry: int | None) -> int:
    """Clamp a requested retry count into ``0..MAX_RETRY``."""
    if retry is None:
        return 0
    return max(0, min(int(retry), settings.MAX_RETRY))


class Orchestrator:
    def __init__(
        self,
        renderer: RenderingBackend | None = None,
        fetcher: RawFetchBackend | None = None,
        sleep=asyncio.sleep,
        backoff_ms: int | None = None,
    ):
        self.renderer = renderer or RenderingBackend()
        self.fetcher = fetcher or RawFetchBackend()
        self._sleep = sleep
        self.backoff_ms = backoff_ms if backoff_ms is not None else settings.RETRY_BACKOFF_MS

    async def _attempt(self, backend, keyword: str) -> tuple[list[ProductRecord], Exception | None]:
        try:
            records = await backend.extract(keyword)
        except Exception as e:
            scrape_backend_attempts_total.labels(backend=backend.name, outcome="error").inc()
            logger.warning("%s attempt failed for %r: %s", backend.name, keyword, e)
            return [], e

        outcome = "success" if records else "empty"
        scrape_backend_attempts_total.labels(backend=backend.name, outcome=outcome).inc()
        return records, None

    async def run(self, keyword: str, retry_budget: int = 0) -> RequestOutcome:
        retry_budget = clamp_retry(retry_budget)
        last_error: Exception | None = None
        attempts = 0

        for i in range(retry_budget + 1):
            if i > 0:
                delay = self.backoff_ms * i
                logger.info("Retrying %r in %dms (attempt %d/%d)", keyword, delay, i + 1, retry_budget + 1)
                await self._sleep(delay / 1000)

            attempts += 1
            records, error = await self._attempt(self.renderer, keyword)
            if records:
                return RequestOutcome(
                    records=records,
                    attempts_used=attempts,
                    backend_used=Backend.RENDERING,
                    error=last_error,
                )
            if error is not None:
                last_error = error

        logger.info("Rendering exhausted for %r, falling back to raw fetch", keyword)
        attempts += 1
        records, error = await self._attempt(self.fetcher, keyword)
        if records:
            return RequestOutcome(
                records=records,
                attempts_used=attempts,
                backend_used=Backend.RAW_FETCH,
                error=last_error,
            )
        if error is not None:
            last_error = error

        raise NoResultsError(cause=last_error)


_default_orchestrator: Orchestrator | None = None


def get_orchestrator() -> Orchestrator:
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = Orchestrator()
    return _default_orchestrator


async def scrape(keyword: str, retry: int = 0, orchestrator: Orchestrator | None = None) -> ScrapeResponse:
    """Entry point for the transport layer: keyword in, serializable result out.

    Raises NoResultsError when no backend produced a valid record.
    """
    orchestrator = orchestrator or get_orchestrator()
    start = time.time()
    try:
        outcome = await orchestrator.run(keyword, retry)
    except NoResultsError as e:
        scrape_requests_total.labels(status="no_results").inc()
        logger.warning("No products for %r (%s: %s)", keyword, e.kind, e.message)
        raise
    finally:
        scrape_duration_seconds.observe(time.time() - start)

    scrape_requests_total.labels(status="success").inc()
    logger.info(
        "Scraped %d products for %r via %s in %d attempt(s)",
        len(outcome.records),
        keyword,
        outcome.backend_used.value,
        outcome.attempts_used,
    )
    return ScrapeResponse(
        success=True,
        count=len(outcome.records),
        products=outcome.records,
    )
