"""Upload job Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ImageRef(BaseModel):
    """A locally stored image waiting to be uploaded."""

    storage_path: str
    display_name: str


class JobSettings(BaseModel):
    """Timing and target settings for a job."""

    interval_seconds: int = 0
    cycle: bool = False
    target: str = ""


class Credentials(BaseModel):
    """Portal login. Kept out of reprs and responses."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"

    __str__ = __repr__


class JobCreateResponse(BaseModel):
    """Response after a job is accepted."""

    job_id: UUID
    status: str
    message: str


class JobStatusResponse(BaseModel):
    """Read-only job status for polling clients."""

    id: UUID
    status: str
    progress: str
    log: str
    created_at: Optional[datetime] = None


class CancelResponse(BaseModel):
    """Response to a cancellation request."""

    job_id: UUID
    cancelled: bool
