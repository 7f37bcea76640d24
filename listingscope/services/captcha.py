"""One-shot challenge remediation through the 2Captcha HTTP API.

``CaptchaSolver.solve(page)`` makes a single attempt to clear the bot-check
shown on ``page``: an image captcha (the storefront's own) or a reCAPTCHA
widget. It never raises on provider or page errors; the caller checks the
challenge marker afterwards and decides.
"""

import asyncio
import base64
import logging
import time

import httpx
from playwright.async_api import Error as PlaywrightError

from listingscope.config import settings
from listingscope.services.extraction import CHALLENGE_SELECTOR

logger = logging.getLogger(__name__)

SUBMIT_URL = "https://2captcha.com/in.php"
RESULT_URL = "https://2captcha.com/res.php"

CAPTCHA_IMAGE_SELECTOR = 'form[action*="validateCaptcha"] img'
RECAPTCHA_SELECTOR = "[data-sitekey]"

_JS_SUBMIT_RECAPTCHA = """
(token) => {
    const field = document.querySelector('#g-recaptcha-response');
    if (field) { field.value = token; field.innerHTML = token; }
    const form = field ? field.closest('form') : document.querySelector('form');
    if (form) form.submit();
}
"""


class CaptchaSolver:
    def __init__(
        self,
        api_key: str | None = None,
        poll_interval: float | None = None,
        poll_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep=asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.TWO_CAPTCHA_API_KEY
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.CAPTCHA_POLL_INTERVAL
        )
        self.poll_timeout = (
            poll_timeout if poll_timeout is not None else settings.CAPTCHA_POLL_TIMEOUT
        )
        self._transport = transport
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        kwargs: dict = {"timeout": 30, "follow_redirects": True}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def solve(self, page) -> bool:
        """Attempt to clear the challenge on ``page``. Returns True if an answer was submitted."""
        if not self.enabled:
            logger.info("Challenge remediation disabled (no TWO_CAPTCHA_API_KEY)")
            return False

        try:
            async with self._client() as client:
                widget = await page.query_selector(RECAPTCHA_SELECTOR)
                if widget:
                    sitekey = await widget.get_attribute("data-sitekey")
                    return await self._solve_recaptcha(client, page, sitekey)
                return await self._solve_image(client, page)
        except (httpx.HTTPError, PlaywrightError, ValueError) as e:
            logger.warning("Challenge remediation failed: %s", e)
            return False

    async def _solve_image(self, client: httpx.AsyncClient, page) -> bool:
        img = await page.query_selector(CAPTCHA_IMAGE_SELECTOR)
        src = await img.get_attribute("src") if img else None
        if not src:
            logger.warning("Challenge page has no captcha image")
            return False

        image = await client.get(src)
        image.raise_for_status()
        answer = await self._request(
            client,
            {"method": "base64", "body": base64.b64encode(image.content).decode()},
        )
        if not answer:
            return False

        await page.fill(CHALLENGE_SELECTOR, answer)
        async with page.expect_navigation(wait_until="domcontentloaded"):
            await page.press(CHALLENGE_SELECTOR, "Enter")
        return True

    async def _solve_recaptcha(self, client: httpx.AsyncClient, page, sitekey: str | None) -> bool:
        if not sitekey:
            return False
        token = await self._request(
            client,
            {"method": "userrecaptcha", "googlekey": sitekey, "pageurl": page.url},
        )
        if not token:
            return False

        async with page.expect_navigation(wait_until="domcontentloaded"):
            await page.evaluate(_JS_SUBMIT_RECAPTCHA, token)
        return True

    async def _request(self, client: httpx.AsyncClient, payload: dict) -> str | None:
        """Submit a task and poll until it is solved, rejected or timed out."""
        resp = await client.post(
            SUBMIT_URL, data={"key": self.api_key, "json": 1, **payload}
        )
        submitted = resp.json()
        if submitted.get("status") != 1:
            logger.warning("2Captcha submit rejected: %s", submitted.get("request"))
            return None

        task_id = str(submitted.get("request"))
        deadline = time.monotonic() + self.poll_timeout
        while time.monotonic() < deadline:
            await self._sleep(self.poll_interval)
            resp = await client.get(
                RESULT_URL,
                params={"key": self.api_key, "action": "get", "id": task_id, "json": 1},
            )
            result = resp.json()
            if result.get("status") == 1:
                return str(result.get("request"))
            if result.get("request") != "CAPCHA_NOT_READY":
                logger.warning("2Captcha solve error: %s", result.get("request"))
                return None

        logger.warning("2Captcha solve timed out after %.0fs", self.poll_timeout)
        return None
