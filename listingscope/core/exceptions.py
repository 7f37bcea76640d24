"""Application error taxonomy.

``AppError`` subclasses carry everything the HTTP layer needs to render a
response (status code, headline, remediation hint). ``ScrapeError``
subclasses are raised by the extraction backends; the orchestrator treats
them uniformly and only ``NoResultsError`` ever reaches a caller.
"""


MAX_DETAIL_LENGTH = 120


class AppError(Exception):
    """Base error rendered by the API as ``{error, details, solution}``."""

    status_code = 500
    error = "Scraping failed"
    solution = "Use proxies or try again later"
    headers: dict[str, str] | None = None

    def __init__(self, message: str = ""):
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.error,
            "details": self.message,
            "solution": self.solution,
        }


class BadRequestError(AppError):
    status_code = 400
    error = "Valid keyword parameter is required"
    example = "/api/scrape?keyword=laptop"

    def to_dict(self) -> dict:
        return {"error": self.message, "example": self.example}


class RateLimitError(AppError):
    status_code = 429
    error = "Too many requests"
    solution = "Please wait and try again later"

    def __init__(self, message: str = "", headers: dict[str, str] | None = None):
        super().__init__(message)
        self.headers = headers

    def to_dict(self) -> dict:
        return {"error": self.error, "solution": self.solution}


# ---------------------------------------------------------------------------
# Extraction failures
# ---------------------------------------------------------------------------


class ScrapeError(AppError):
    """A single backend attempt failed."""

    kind = "error"


class ScrapeTimeoutError(ScrapeError, TimeoutError):
    kind = "timeout"


class ChallengeError(ScrapeError):
    """Bot-check page still present after the remediation pass."""

    kind = "challenge"

    def __init__(self, message: str = "CAPTCHA detected"):
        super().__init__(message)


class BlockedError(ScrapeError):
    """Raw fetch was rejected as automated (block page or HTTP 503)."""

    kind = "blocked"

    def __init__(self, message: str = "Target site is blocking requests"):
        super().__init__(message)


class NavigationError(ScrapeError):
    kind = "navigation"


class SessionLaunchError(ScrapeError):
    kind = "session"


class SessionClosedError(ScrapeError):
    kind = "session"

    def __init__(self, message: str = "Render session has been shut down"):
        super().__init__(message)


class NoResultsError(ScrapeError):
    """Terminal: every backend was exhausted without a valid record."""

    status_code = 404
    error = "No products found"
    solution = "The site may be blocking requests - try again later"

    def __init__(self, cause: Exception | None = None):
        self.cause = cause
        self.kind = getattr(cause, "kind", "empty") if cause else "empty"
        super().__init__(describe_cause(cause))


def describe_cause(cause: Exception | None) -> str:
    """Collapse an internal failure into a short, caller-safe detail string."""
    if cause is None:
        return "Try different keywords"
    if isinstance(cause, AppError):
        lines = cause.message.splitlines() or [cause.error]
        return lines[0][:MAX_DETAIL_LENGTH]
    return f"Request failed ({type(cause).__name__})"
