"""Per-request correlation id.

A caller-supplied ``X-Request-ID`` is honoured only when it looks like an
opaque token; anything else (too long, whitespace, control characters) is
replaced with a fresh UUID4 so it cannot forge lines in the JSON logs. The
id lives in a ContextVar for the duration of the request, so every retry
and fallback logged by the orchestrator carries it, and it is tagged on the
Sentry scope and echoed on the response.
"""

import contextvars
import logging
import re
import time
import uuid

import sentry_sdk
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

logger = logging.getLogger(__name__)

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


def resolve_request_id(incoming: str | None) -> str:
    """Return ``incoming`` if it is a safe token, else a new UUID4."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(rid)
        sentry_sdk.set_tag("request_id", rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            logger.debug(
                "%s %s -> %d in %.0fms",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response
        finally:
            request_id_var.reset(token)


def get_request_id() -> str:
    """Current request id, or an empty string outside a request."""
    return request_id_var.get()
