"""Headless browser rendering for pages that only expose data through JavaScript."""

import logging
from dataclasses import dataclass
from typing import Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from libspot.sources.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]

# Pulls the accessible label and class list out of each matched element
_EXTRACT_JS = """
els => els.map(el => ({
    label: el.getAttribute('title') || el.getAttribute('aria-label') || '',
    classes: el.className || ''
}))
"""


@dataclass(frozen=True)
class RenderedElement:
    """One element matched on a rendered page."""

    label: str
    classes: str = ""

    @property
    def class_tokens(self) -> frozenset[str]:
        return frozenset(self.classes.split())


class PageRenderer(Protocol):
    """Anything that can render a page and return the elements matching a selector."""

    async def render(self, url: str, selector: str) -> list[RenderedElement]: ...


class PlaywrightRenderer:
    """Renders pages in headless Chromium.

    A fresh browser is launched per render and always closed afterwards,
    so a wedged page can't leak into the next population.  Renders are
    not retried: a failure surfaces as ``UpstreamUnavailable`` and the
    next snapshot population tries again.
    """

    def __init__(
        self,
        *,
        navigation_timeout: float = 30.0,
        wait_timeout: float = 15.0,
        settle: float = 2.0,
        executable_path: str | None = None,
        headless: bool = True,
    ):
        """Initialize the renderer.

        Args:
            navigation_timeout: Seconds allowed for the page to reach network idle
            wait_timeout: Seconds to wait for the first matching element
            settle: Seconds to let late client-side updates land before reading
            executable_path: Optional Chromium binary (system browser in containers)
            headless: Run without a window
        """
        self.navigation_timeout = navigation_timeout
        self.wait_timeout = wait_timeout
        self.settle = settle
        self.executable_path = executable_path
        self.headless = headless

    async def render(self, url: str, selector: str) -> list[RenderedElement]:
        """Load ``url`` and return every element matching ``selector``.

        Raises:
            UpstreamUnavailable: If the browser fails, navigation times out,
                or no matching element appears
        """
        logger.info(f"Rendering {url}")
        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=self.headless,
                    executable_path=self.executable_path,
                    args=CHROMIUM_ARGS,
                )
                try:
                    page = await browser.new_page()
                    page.set_default_navigation_timeout(self.navigation_timeout * 1000)
                    await page.goto(url, wait_until="networkidle")
                    await page.wait_for_selector(selector, timeout=self.wait_timeout * 1000)
                    if self.settle > 0:
                        await page.wait_for_timeout(self.settle * 1000)
                    raw = await page.eval_on_selector_all(selector, _EXTRACT_JS)
                finally:
                    await browser.close()
        except PlaywrightTimeoutError as e:
            raise UpstreamUnavailable(f"Timed out rendering {url}") from e
        except PlaywrightError as e:
            raise UpstreamUnavailable(f"Browser failed rendering {url}: {e.message}") from e

        elements = [
            RenderedElement(
                label=str(item.get("label") or ""),
                classes=str(item.get("classes") or ""),
            )
            for item in raw
        ]
        logger.info("Rendered %d elements from %s", len(elements), url)
        return elements
