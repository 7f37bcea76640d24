import json
import logging

from fastapi import APIRouter
from fastapi.responses import Response

from listingscope.config import settings
from listingscope.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/health",
    summary="Liveness check",
    description="Basic liveness probe that returns HTTP 200 if the application process is running.",
)
async def liveness():
    """Liveness probe: returns 200 if the process is running."""
    return {"status": "healthy"}


@router.get(
    "/health/ready",
    summary="Readiness check",
    description=(
        "Reports the render session state. The session is launched lazily, so "
        "'not started' is still ready; only a shut-down session returns 503."
    ),
)
async def readiness():
    """Readiness probe: checks the render session."""
    from listingscope.services.browser import session_manager

    checks = {}
    if session_manager.is_closed:
        checks["render_session"] = "shut down"
    elif session_manager.is_live:
        checks["render_session"] = "ok"
    else:
        checks["render_session"] = "not started"

    ready = not session_manager.is_closed
    return Response(
        content=json.dumps(
            {
                "status": "ready" if ready else "not ready",
                "checks": checks,
                "active_pages": session_manager.active_pages,
            }
        ),
        status_code=200 if ready else 503,
        media_type="application/json",
    )


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose application metrics in Prometheus exposition format. Returns HTTP 404 if metrics collection is disabled.",
)
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.METRICS_ENABLED:
        return Response(content="Metrics disabled", status_code=404)

    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
