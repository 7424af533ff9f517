"""
Playwright-backed automation driver.

Every open() launches its own browser and context so no cookies, dialogs
or page state leak from one job into the next.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from app.config import settings
from app.driver.base import AutomationDriver, DriverSession, Option
from app.errors import NAVIGATION_FAILED, NOT_INTERACTABLE, OTHER, TIMEOUT, DriverError

logger = logging.getLogger(__name__)

# Fragments of Playwright actionability failures meaning "the element is
# there but cannot be acted on right now"
_NOT_INTERACTABLE_MARKERS = (
    "intercepts pointer events",
    "element is not visible",
    "element is not enabled",
    "element is not editable",
    "element is not stable",
    "element is outside of the viewport",
    "element is not attached",
    "not attached to the dom",
)

POLL_INTERVAL_MS = 250


def classify_error(error: Exception, action: str) -> str:
    """Map a Playwright exception raised by `action` to a driver reason."""
    message = str(error).lower()
    if any(marker in message for marker in _NOT_INTERACTABLE_MARKERS):
        return NOT_INTERACTABLE
    if action == "navigate":
        return NAVIGATION_FAILED
    if isinstance(error, PlaywrightTimeout):
        return TIMEOUT
    return OTHER


class PlaywrightSession(DriverSession):
    """One browser + context + page, owned by a single job."""

    def __init__(
        self,
        playwright,
        browser,
        context,
        page,
        selectors: Dict[str, str],
        nav_timeout_ms: int,
        click_timeout_ms: int,
        typing_delay_ms: int,
    ):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.selectors = selectors
        self.nav_timeout_ms = nav_timeout_ms
        self.click_timeout_ms = click_timeout_ms
        self.typing_delay_ms = typing_delay_ms
        self._closed = False

    def _selector(self, key: str) -> str:
        try:
            return self.selectors[key]
        except KeyError:
            raise DriverError(OTHER, f"No selector configured for '{key}'", control=key)

    def _call(self, action: str, key: Optional[str], fn):
        try:
            return fn()
        except DriverError:
            raise
        except PlaywrightError as e:
            reason = classify_error(e, action)
            target = f" '{key}'" if key else ""
            first_line = str(e).splitlines()[0] if str(e) else e.__class__.__name__
            raise DriverError(reason, f"{action}{target} failed: {first_line}", control=key) from e

    def navigate(self, url: str) -> None:
        logger.info(f"Navigating to: {url}")
        self._call(
            "navigate",
            None,
            lambda: self.page.goto(url, wait_until="networkidle", timeout=self.nav_timeout_ms),
        )

    def fill(self, field_key: str, value: str) -> None:
        selector = self._selector(field_key)

        def _type():
            self.page.wait_for_selector(selector, state="visible", timeout=self.nav_timeout_ms)
            self.page.fill(selector, "")
            self.page.type(selector, value, delay=self.typing_delay_ms)

        self._call("fill", field_key, _type)

    def click(self, control_key: str) -> None:
        selector = self._selector(control_key)
        self._call("click", control_key, lambda: self.page.click(selector, timeout=self.click_timeout_ms))

    def select(self, control_key: str, option_value: str) -> None:
        selector = self._selector(control_key)
        self._call(
            "select",
            control_key,
            lambda: self.page.select_option(selector, value=option_value, timeout=self.nav_timeout_ms),
        )

    def upload_local_file(self, control_key: str, local_path: str) -> None:
        selector = self._selector(control_key)

        def _upload():
            # Hidden file inputs are never "visible"; attached is enough
            handle = self.page.wait_for_selector(selector, state="attached", timeout=self.nav_timeout_ms)
            handle.set_input_files(local_path)

        self._call("upload", control_key, _upload)

    def read_text(self, region_key: str) -> str:
        selector = self._selector(region_key)

        def _read():
            locator = self.page.locator(selector)
            if locator.count() == 0:
                return ""
            return locator.first.inner_text(timeout=self.click_timeout_ms)

        return self._call("read", region_key, _read) or ""

    def read_options(self, list_key: str) -> List[Option]:
        selector = self._selector(list_key)

        def _options():
            self.page.wait_for_selector(selector, timeout=self.nav_timeout_ms)
            return self.page.eval_on_selector_all(
                f"{selector} option",
                "opts => opts.map(o => ({value: o.value, label: o.innerText}))",
            )

        raw = self._call("read options", list_key, _options)
        return [Option(value=o["value"], label=(o["label"] or "").strip()) for o in raw]

    def current_url(self) -> str:
        return self.page.url

    def wait_until(self, predicate: Callable[[], bool], timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while True:
            if predicate():
                return
            if time.monotonic() >= deadline:
                raise DriverError(TIMEOUT, f"Condition not met within {timeout:g}s")
            self._call("wait", None, lambda: self.page.wait_for_timeout(POLL_INTERVAL_MS))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for name, resource in (("context", self._context), ("browser", self._browser)):
            try:
                resource.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing {name}: {e}")
        self._playwright.stop()
        logger.debug("Browser session closed")


class PlaywrightDriver(AutomationDriver):
    """Launches a fresh headless Chromium per session."""

    def __init__(
        self,
        selectors: Optional[Dict[str, str]] = None,
        headless: Optional[bool] = None,
        browser_args: Optional[List[str]] = None,
    ):
        self.selectors = dict(selectors or settings.PORTAL_SELECTORS)
        self.headless = settings.BROWSER_HEADLESS if headless is None else headless
        self.browser_args = list(browser_args if browser_args is not None else settings.BROWSER_ARGS)

    def open(self) -> PlaywrightSession:
        logger.info("Launching browser...")
        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(headless=self.headless, args=self.browser_args)
            context = browser.new_context(
                viewport={"width": settings.VIEWPORT_WIDTH, "height": settings.VIEWPORT_HEIGHT}
            )
            page = context.new_page()
            page.set_default_timeout(settings.NAV_TIMEOUT_MS)
        except PlaywrightError as e:
            playwright.stop()
            raise DriverError(OTHER, f"Browser launch failed: {e}") from e

        return PlaywrightSession(
            playwright,
            browser,
            context,
            page,
            selectors=self.selectors,
            nav_timeout_ms=settings.NAV_TIMEOUT_MS,
            click_timeout_ms=settings.CLICK_TIMEOUT_MS,
            typing_delay_ms=settings.TYPING_DELAY_MS,
        )
