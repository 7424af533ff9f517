"""Browser automation drivers."""

from app.driver.base import AutomationDriver, DriverSession, Option

__all__ = ["AutomationDriver", "DriverSession", "Option"]
