"""Automation driver interface consumed by the job runner.

Controls, fields and regions are addressed by logical keys ("username",
"submit", "status", ...). Each implementation maps keys to whatever the
underlying browser needs.
"""

from typing import Callable, List, NamedTuple


class Option(NamedTuple):
    """One entry of a selectable list."""

    value: str
    label: str


class DriverSession:
    """A browser context owned by exactly one job.

    Every method may raise DriverError. Use as a context manager so the
    session is closed on every exit path.
    """

    def navigate(self, url: str) -> None:
        raise NotImplementedError

    def fill(self, field_key: str, value: str) -> None:
        raise NotImplementedError

    def click(self, control_key: str) -> None:
        raise NotImplementedError

    def select(self, control_key: str, option_value: str) -> None:
        raise NotImplementedError

    def upload_local_file(self, control_key: str, local_path: str) -> None:
        raise NotImplementedError

    def read_text(self, region_key: str) -> str:
        raise NotImplementedError

    def read_options(self, list_key: str) -> List[Option]:
        raise NotImplementedError

    def current_url(self) -> str:
        raise NotImplementedError

    def wait_until(self, predicate: Callable[[], bool], timeout: float) -> None:
        """
        Block until predicate() is true.

        Raises:
            DriverError: reason "timeout" when the timeout elapses; any other
                DriverError raised by the predicate propagates unchanged
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release the session. Safe to call more than once."""
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class AutomationDriver:
    """Factory for fresh, unshared driver sessions."""

    def open(self) -> DriverSession:
        raise NotImplementedError
