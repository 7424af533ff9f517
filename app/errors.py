"""Error taxonomy for job submission, automation and persistence."""

from typing import Optional

NOT_INTERACTABLE = "not-interactable"
TIMEOUT = "timeout"
NAVIGATION_FAILED = "navigation-failed"
OTHER = "other"

DRIVER_REASONS = (NOT_INTERACTABLE, TIMEOUT, NAVIGATION_FAILED, OTHER)


class ValidationError(ValueError):
    """Malformed job at submission time; never enters the queue."""


class DriverError(Exception):
    """Automation failure carrying a machine-checkable reason."""

    def __init__(self, reason: str, message: str, control: Optional[str] = None):
        if reason not in DRIVER_REASONS:
            reason = OTHER
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.control = control

    @property
    def not_interactable(self) -> bool:
        return self.reason == NOT_INTERACTABLE

    def __str__(self) -> str:
        return self.message


class RemoteRejection(Exception):
    """The portal reported an error in its diagnostic surface."""


class StoreError(Exception):
    """Persistence failure while reading or writing a job."""
