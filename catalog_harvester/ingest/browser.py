"""Browser session controller: launch, per-job contexts, paced navigation."""

import logging
from typing import Optional, Tuple

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from catalog_harvester import metrics
from catalog_harvester.config import Settings, settings as default_settings
from catalog_harvester.ingest.pacing import install_request_pacing

logger = logging.getLogger(__name__)


class NavigationError(Exception):
    """Navigation failed and will not be retried."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to navigate to {url}: {reason}")


class RateLimitedError(Exception):
    """Storefront answered with a rate-limit page."""
    def __init__(self, url: str, indicator: str):
        self.url = url
        self.indicator = indicator
        super().__init__(f"Rate limited at {url} ({indicator})")


# Body text that means the storefront is throttling us (lowercase match)
RATE_LIMIT_INDICATORS = [
    "too many requests",
    "rate limit",
]

STEALTH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-extensions",
]

EXTRA_HTTP_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
}


def detect_rate_limit(html: str) -> Optional[str]:
    """Return the matched rate-limit indicator, if any."""
    if not html:
        return None
    haystack = html.lower()
    for indicator in RATE_LIMIT_INDICATORS:
        if indicator in haystack:
            return indicator
    return None


class PageSessionController:
    """
    Owns the browser for one scrape job.

    Contexts are created per job and never shared; geolocation is fixed when
    the context is created.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._playwright: Optional[Playwright] = None

    async def launch(self) -> Browser:
        """Start Playwright and launch headless Chromium."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()

        browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            args=STEALTH_ARGS,
        )
        logger.info("Launched Chromium")
        return browser

    async def new_session(
        self,
        browser: Browser,
        geolocation: Optional[Tuple[float, float]] = None,
    ) -> BrowserContext:
        """Create a browser context, optionally pinned to a location."""
        context_options = {
            "viewport": {
                "width": self.settings.browser_viewport_width,
                "height": self.settings.browser_viewport_height,
            },
            "user_agent": self.settings.browser_user_agent,
            "locale": self.settings.browser_locale,
            "extra_http_headers": dict(EXTRA_HTTP_HEADERS),
        }
        if geolocation is not None:
            latitude, longitude = geolocation
            context_options["geolocation"] = {"latitude": latitude, "longitude": longitude}
            context_options["permissions"] = ["geolocation"]

        return await browser.new_context(**context_options)

    async def new_page(
        self,
        context: BrowserContext,
        min_delay_ms: Optional[float] = None,
        jitter_ms: Optional[float] = None,
    ) -> Page:
        """Open a page whose every request is paced."""
        page = await context.new_page()
        await install_request_pacing(
            page,
            self.settings.request_delay_min_ms if min_delay_ms is None else min_delay_ms,
            self.settings.request_delay_jitter_ms if jitter_ms is None else jitter_ms,
        )
        return page

    async def navigate(self, page: Page, url: str, timeout_ms: Optional[int] = None) -> int:
        """
        Navigate with rate-limit-aware retry.

        Rate-limit pages and timeouts are retried with exponential backoff
        (base delay doubling per attempt); any other failure is fatal.

        Returns:
            Number of retries that were needed

        Raises:
            NavigationError: On a fatal failure or an exhausted retry budget
        """
        max_attempts = self.settings.navigation_max_attempts
        timeout = timeout_ms or self.settings.navigation_timeout_ms
        retries = 0

        while True:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
                content = await page.content()
                indicator = detect_rate_limit(content)
                if indicator:
                    raise RateLimitedError(url, indicator)
                return retries

            except (RateLimitedError, PlaywrightTimeoutError) as e:
                reason = "rate_limited" if isinstance(e, RateLimitedError) else "timeout"
                retries += 1
                if retries >= max_attempts:
                    raise NavigationError(
                        url, f"failed after {max_attempts} attempts: {e}"
                    ) from e

                delay_ms = (2 ** retries) * self.settings.navigation_backoff_base_ms
                metrics.navigation_retries_total.labels(reason=reason).inc()
                logger.warning(
                    f"Navigation retry {retries}/{max_attempts - 1} for {url} "
                    f"after {delay_ms}ms: {reason}"
                )
                await page.wait_for_timeout(delay_ms)

            except PlaywrightError as e:
                if "timeout" in str(e).lower() and retries + 1 < max_attempts:
                    retries += 1
                    delay_ms = (2 ** retries) * self.settings.navigation_backoff_base_ms
                    metrics.navigation_retries_total.labels(reason="timeout").inc()
                    logger.warning(f"Navigation retry {retries} for {url} after {delay_ms}ms: {e}")
                    await page.wait_for_timeout(delay_ms)
                    continue
                raise NavigationError(url, str(e)) from e

    async def close(self, browser: Optional[Browser]) -> None:
        """Close the browser and stop Playwright."""
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.error(f"Error closing browser: {e}")

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
