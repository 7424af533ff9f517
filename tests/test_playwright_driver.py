"""Tests for Playwright error classification and session helpers."""

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from app.driver.playwright_driver import PlaywrightSession, classify_error
from app.errors import DriverError


@pytest.mark.parametrize(
    "message",
    [
        'Timeout 5000ms exceeded.\n  - <div class="overlay"></div> intercepts pointer events',
        "Timeout 5000ms exceeded.\n  - element is not visible - waiting...",
        "Timeout 5000ms exceeded.\n  - element is not enabled",
        "Element is outside of the viewport",
    ],
)
def test_actionability_failures_are_not_interactable(message):
    """Test overlays and hidden/disabled elements map to not-interactable."""
    assert classify_error(PlaywrightTimeout(message), "click") == "not-interactable"


def test_plain_timeout():
    """Test a bare timeout maps to timeout."""
    error = PlaywrightTimeout("Timeout 60000ms exceeded waiting for selector")
    assert classify_error(error, "read") == "timeout"


def test_navigation_failure():
    """Test goto errors map to navigation-failed."""
    error = PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://portal.invalid/Login")
    assert classify_error(error, "navigate") == "navigation-failed"
    assert classify_error(PlaywrightTimeout("Timeout 60000ms exceeded."), "navigate") == "navigation-failed"


def test_other_errors():
    """Test anything else maps to other."""
    assert classify_error(PlaywrightError("Target page, context or browser has been closed"), "click") == "other"


class _Closable:
    def __init__(self, log, name):
        self.log = log
        self.name = name

    def close(self):
        self.log.append(self.name)

    def stop(self):
        self.log.append(self.name)


def _session(log, selectors=None):
    return PlaywrightSession(
        _Closable(log, "playwright"),
        _Closable(log, "browser"),
        _Closable(log, "context"),
        page=None,
        selectors=selectors or {},
        nav_timeout_ms=1000,
        click_timeout_ms=1000,
        typing_delay_ms=0,
    )


def test_close_releases_everything_once():
    """Test close tears down context, browser and playwright exactly once."""
    log = []
    session = _session(log)

    session.close()
    session.close()

    assert log == ["context", "browser", "playwright"]


def test_unknown_key_raises_driver_error():
    """Test a logical key without a selector is reported as a driver error."""
    session = _session([])

    with pytest.raises(DriverError) as excinfo:
        session.click("submit")

    assert excinfo.value.control == "submit"


def test_wait_until_times_out():
    """Test wait_until raises a timeout DriverError when the predicate never holds."""

    class _Page:
        def wait_for_timeout(self, ms):
            pass

    session = _session([])
    session.page = _Page()

    with pytest.raises(DriverError) as excinfo:
        session.wait_until(lambda: False, timeout=0)

    assert excinfo.value.reason == "timeout"
