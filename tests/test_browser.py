"""Tests for libspot.sources.browser."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from libspot.sources.browser import PlaywrightRenderer, RenderedElement
from libspot.sources.errors import UpstreamUnavailable

URL = "https://hsl-osu.libcal.com/spaces?lid=694&gid=24674&date=2026-01-21"


@pytest.fixture
def page():
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.eval_on_selector_all = AsyncMock(
        return_value=[
            {"label": "8:00am Wednesday, January 21, 2026 - 360A - Available", "classes": "a b"},
            {"label": None, "classes": None},
        ]
    )
    return page


@pytest.fixture
def browser(page):
    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def playwright(browser):
    """Patch async_playwright() to hand out the mocked browser."""
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser)
    manager = MagicMock()
    manager.__aenter__ = AsyncMock(return_value=pw)
    manager.__aexit__ = AsyncMock(return_value=False)
    with patch("libspot.sources.browser.async_playwright", return_value=manager):
        yield pw


class TestRenderedElement:
    def test_class_tokens(self):
        element = RenderedElement(label="x", classes="fc-event  s-lc-eq-avail ")
        assert element.class_tokens == {"fc-event", "s-lc-eq-avail"}


class TestPlaywrightRenderer:
    async def test_returns_elements_and_closes_browser(self, playwright, browser, page):
        renderer = PlaywrightRenderer(settle=0.5, executable_path="/usr/bin/chromium")

        elements = await renderer.render(URL, ".fc-timeline-event")

        assert elements == [
            RenderedElement(
                label="8:00am Wednesday, January 21, 2026 - 360A - Available", classes="a b"
            ),
            RenderedElement(label="", classes=""),
        ]
        launch_kwargs = playwright.chromium.launch.await_args.kwargs
        assert launch_kwargs["headless"] is True
        assert launch_kwargs["executable_path"] == "/usr/bin/chromium"
        assert "--no-sandbox" in launch_kwargs["args"]
        page.goto.assert_awaited_once_with(URL, wait_until="networkidle")
        page.wait_for_selector.assert_awaited_once_with(".fc-timeline-event", timeout=15000)
        page.wait_for_timeout.assert_awaited_once_with(500)
        browser.close.assert_awaited_once()

    async def test_no_settle_wait_when_disabled(self, playwright, page):
        await PlaywrightRenderer(settle=0).render(URL, ".fc-timeline-event")

        page.wait_for_timeout.assert_not_awaited()

    async def test_timeout_is_unavailable(self, playwright, browser, page):
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 15000ms exceeded")

        with pytest.raises(UpstreamUnavailable, match="Timed out rendering"):
            await PlaywrightRenderer().render(URL, ".fc-timeline-event")

        browser.close.assert_awaited_once()

    async def test_browser_error_is_unavailable(self, playwright):
        playwright.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")

        with pytest.raises(UpstreamUnavailable, match="Browser failed"):
            await PlaywrightRenderer().render(URL, ".fc-timeline-event")
