"""Portal steps driven through an automation session.

Only logical keys are used here; the driver owns the selectors.
"""

import logging
import time
from typing import Callable, Optional

from app.config import settings
from app.driver.base import DriverSession, Option
from app.errors import OTHER, TIMEOUT, DriverError

logger = logging.getLogger(__name__)


def _normalise_url(url: str) -> str:
    return (url or "").split("#", 1)[0].rstrip("/").lower()


class Portal:
    """Login, target selection, upload and acknowledgement for one session."""

    def __init__(
        self,
        session: DriverSession,
        login_url: Optional[str] = None,
        action_delay: Optional[float] = None,
        confirm_timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.login_url = login_url or settings.PORTAL_LOGIN_URL
        self.action_delay = settings.ACTION_DELAY_SECONDS if action_delay is None else action_delay
        self.confirm_timeout = settings.CONFIRM_TIMEOUT_SECONDS if confirm_timeout is None else confirm_timeout
        self._sleep = sleep

    def _pause(self) -> None:
        if self.action_delay > 0:
            self._sleep(self.action_delay)

    def login(self, username: str, password: str) -> None:
        """Sign in and verify the portal left the login page."""
        self.session.navigate(self.login_url)

        logger.info("Typing username...")
        self.session.fill("username", username)
        self._pause()

        logger.info("Typing password...")
        self.session.fill("password", password)
        self._pause()

        logger.info("Clicking login button...")
        self.session.click("login")

        login_page = _normalise_url(self.login_url)
        try:
            self.session.wait_until(
                lambda: _normalise_url(self.session.current_url()) != login_page,
                timeout=self.confirm_timeout,
            )
        except DriverError as e:
            if e.reason == TIMEOUT:
                raise DriverError(OTHER, "authentication failed: still on the login page", control="login") from e
            raise
        logger.info("Login successful")

    def select_target(self, target: str) -> Option:
        """
        Choose `target` in the target list.

        Matches option value exactly, then label or value case-insensitively.

        Raises:
            DriverError: If no option matches
        """
        options = self.session.read_options("target")
        wanted = target.strip().lower()
        match = next((o for o in options if o.value == target), None)
        if match is None:
            match = next(
                (o for o in options if o.label.lower() == wanted or o.value.lower() == wanted),
                None,
            )
        if match is None:
            available = ", ".join(o.label or o.value for o in options if o.value) or "none"
            raise DriverError(OTHER, f"target '{target}' not found (available: {available})", control="target")

        self.session.select("target", match.value)
        logger.info(f"Selected target: {match.label or match.value}")
        self._pause()
        return match

    def attach_image(self, local_path: str) -> None:
        self.session.upload_local_file("file", local_path)
        self._pause()

    def click_submit(self) -> None:
        self.session.click("submit")

    def status_text(self) -> str:
        return self.session.read_text("status").strip()

    def wait_for_acknowledgement(self, baseline: str) -> None:
        """
        Wait until the status text moves off `baseline` or a success marker shows.

        Raises:
            DriverError: reason "timeout" with a "confirmation timed out" message
        """

        def acknowledged() -> bool:
            if self.status_text() != baseline:
                return True
            return bool(self.session.read_text("success").strip())

        try:
            self.session.wait_until(acknowledged, timeout=self.confirm_timeout)
        except DriverError as e:
            if e.reason == TIMEOUT:
                raise DriverError(
                    TIMEOUT, f"confirmation timed out after {self.confirm_timeout:g}s", control="submit"
                ) from e
            raise

    def diagnostics(self) -> str:
        """Whatever the portal currently reports in its status surface."""
        text = self.status_text()
        if not text:
            text = self.session.read_text("success").strip()
        return text
