"""Tests for navigation retry in the page session controller."""

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from catalog_harvester.config import Settings
from catalog_harvester.ingest.browser import NavigationError, PageSessionController, detect_rate_limit
from conftest import FakeBrowser, FakePage


class ScriptedPage(FakePage):
    """Page whose goto outcomes are scripted: an exception to raise or HTML to serve."""

    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = list(outcomes)

    async def goto(self, url, **kwargs):
        self.gotos.append(url)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        self.html = outcome


@pytest.fixture
def controller():
    return PageSessionController(Settings(navigation_max_attempts=3, navigation_backoff_base_ms=1000))


@pytest.mark.asyncio
async def test_navigate_retries_rate_limit_with_backoff(controller):
    page = ScriptedPage(["<p>Too Many Requests</p>", "<p>rate limit hit</p>", "<main>menu</main>"])

    retries = await controller.navigate(page, "https://x.com/store/a")

    assert retries == 2
    assert page.waits == [2000, 4000]


@pytest.mark.asyncio
async def test_navigate_gives_up_after_three_timeouts(controller):
    page = ScriptedPage([PlaywrightTimeoutError("Timeout 30000ms exceeded")] * 3)

    with pytest.raises(NavigationError):
        await controller.navigate(page, "https://x.com/store/a")
    assert len(page.gotos) == 3


@pytest.mark.asyncio
async def test_other_navigation_errors_are_fatal(controller):
    page = ScriptedPage([PlaywrightError("net::ERR_NAME_NOT_RESOLVED"), "<main/>"])

    with pytest.raises(NavigationError) as exc_info:
        await controller.navigate(page, "https://x.com/store/a")
    assert len(page.gotos) == 1
    assert exc_info.value.url == "https://x.com/store/a"


@pytest.mark.asyncio
async def test_new_session_pins_geolocation(controller):
    captured = {}

    class RecordingBrowser(FakeBrowser):
        async def new_context(self, **kwargs):
            captured.update(kwargs)
            return await super().new_context(**kwargs)

    await controller.new_session(RecordingBrowser(), (4.6, -74.1))

    assert captured["geolocation"] == {"latitude": 4.6, "longitude": -74.1}
    assert captured["permissions"] == ["geolocation"]
    assert captured["viewport"] == {"width": 1280, "height": 900}


def test_detect_rate_limit():
    assert detect_rate_limit("<h1>Too many requests</h1>") == "too many requests"
    assert detect_rate_limit("<h1>Menu</h1>") is None
