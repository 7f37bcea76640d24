import asyncio
import logging
import shutil
from contextlib import asynccontextmanager
from pathlib import Path

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from listingscope.config import settings
from listingscope.core.exceptions import SessionClosedError, SessionLaunchError
from listingscope.core.metrics import active_browser_contexts
from listingscope.services.identity import IdentityProfile

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}

# Resource types aborted before they reach the network. Layout and text are
# unaffected; only load time and bandwidth drop.
BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "stylesheet"})

# ---------------------------------------------------------------------------
# Stealth init script: hides the most common automation tells
# ---------------------------------------------------------------------------

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
delete navigator.__proto__.webdriver;

if (!window.chrome) {
    window.chrome = { runtime: {}, loadTimes: function() {}, csi: function() {} };
}

Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        { name: 'PDF Viewer', filename: 'internal-pdf-viewer' },
        { name: 'Chrome PDF Viewer', filename: 'internal-pdf-viewer' },
    ],
});

const originalQuery = window.navigator.permissions && window.navigator.permissions.query;
if (originalQuery) {
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications'
            ? Promise.resolve({ state: Notification.permission })
            : originalQuery(parameters)
    );
}
"""


async def _block_heavy_resources(route, request):
    """Abort images, fonts and stylesheets; pass everything else through."""
    if request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


def reset_scratch_dir(path: str | Path | None = None) -> Path:
    """Delete the browser scratch directory if present and recreate it empty."""
    path = Path(path or settings.BROWSER_DATA_DIR)
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True, exist_ok=True)
    return path


class RenderSessionManager:
    """Owns the single Chromium process shared by all rendering requests.

    The browser is launched lazily on the first ``acquire()`` and reused
    afterwards. Requests never share a page: each one leases its own
    BrowserContext through ``page()``. ``shutdown()`` is final; the manager
    refuses to launch again once it has been called.
    """

    _CHROMIUM_ARGS = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--no-first-run",
        "--no-zygote",
        "--disable-gpu",
        "--window-size=1920,1080",
        "--disable-blink-features=AutomationControlled",
    ]

    def __init__(self, data_dir: str | Path | None = None, launcher=async_playwright):
        self._data_dir = Path(data_dir or settings.BROWSER_DATA_DIR)
        self._launcher = launcher
        self._playwright = None
        self._browser: Browser | None = None
        self._init_lock: asyncio.Lock | None = None
        self._loop = None
        self._closed = False
        self._active_pages = 0

    def _get_init_lock(self) -> asyncio.Lock:
        """Get or create an asyncio.Lock bound to the current event loop."""
        current_loop = asyncio.get_running_loop()
        if self._init_lock is None or self._loop is not current_loop:
            self._init_lock = asyncio.Lock()
            self._loop = current_loop
        return self._init_lock

    @property
    def is_live(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def active_pages(self) -> int:
        return self._active_pages

    def _launch_options(self) -> dict:
        options: dict = {
            "headless": settings.BROWSER_HEADLESS,
            "args": list(self._CHROMIUM_ARGS),
            "timeout": settings.BROWSER_LAUNCH_TIMEOUT,
            "downloads_path": str(self._data_dir),
        }
        if settings.PROXY_SERVER:
            options["proxy"] = {"server": settings.PROXY_SERVER}
        return options

    async def acquire(self) -> Browser:
        """Return the live browser, launching it on first use."""
        if self._closed:
            raise SessionClosedError()
        if self.is_live:
            return self._browser

        async with self._get_init_lock():
            # Double-check after acquiring lock
            if self._closed:
                raise SessionClosedError()
            if self.is_live:
                return self._browser

            if self._browser is not None:
                logger.warning("Render session disconnected, relaunching")
                await self._teardown()

            reset_scratch_dir(self._data_dir)
            try:
                self._playwright = await self._launcher().start()
                self._browser = await self._playwright.chromium.launch(
                    **self._launch_options()
                )
            except Exception as e:
                logger.error("Render session launch failed: %s", e)
                await self._teardown()
                raise SessionLaunchError("Browser launch failed") from e

            logger.info(
                "Render session launched (proxy=%s)",
                "yes" if settings.PROXY_SERVER else "no",
            )
            return self._browser

    @asynccontextmanager
    async def page(self, identity: IdentityProfile):
        """Lease an isolated context + page configured with ``identity``.

        The context is closed on every exit path, including cancellation.
        """
        browser = await self.acquire()
        context: BrowserContext = await browser.new_context(
            user_agent=identity.user_agent,
            viewport=VIEWPORT,
            locale="en-US",
            extra_http_headers={
                "Accept-Language": identity.accept_language,
                **identity.client_hints,
            },
        )
        self._active_pages += 1
        active_browser_contexts.inc()
        try:
            await context.add_init_script(STEALTH_SCRIPT)
            await context.route("**/*", _block_heavy_resources)
            page: Page = await context.new_page()
            yield page
        finally:
            self._active_pages -= 1
            active_browser_contexts.dec()
            try:
                await asyncio.shield(self._close_context(context))
            except asyncio.CancelledError:
                # The shielded close keeps running in the background.
                pass

    async def _close_context(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except Exception as e:
            logger.debug("Context close failed: %s", e)

    async def _teardown(self) -> None:
        browser, self._browser = self._browser, None
        pw, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.debug("Browser close failed: %s", e)
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                logger.debug("Playwright stop failed: %s", e)

    async def shutdown(self) -> None:
        """Close the browser for good. Safe to call repeatedly or with no session."""
        if self._closed:
            return
        self._closed = True
        # Wait out a launch in progress so its browser is not leaked
        async with self._get_init_lock():
            had_session = self._browser is not None
            await self._teardown()
        if had_session:
            logger.info("Render session shut down")


# Module-level instance owned by the application lifespan
session_manager = RenderSessionManager()
