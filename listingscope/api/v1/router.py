from fastapi import APIRouter

from listingscope.api.v1 import health, scrape

api_router = APIRouter(prefix="/api")

api_router.include_router(scrape.router, tags=["Scrape"])

# Health & metrics routes (no /api prefix)
health_router = health.router
