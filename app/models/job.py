"""Upload job model for the worker queue."""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import JSON, Column, DateTime, Index, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base
from app.schemas.job import ImageRef, JobSettings

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadJob(Base):
    """UploadJob represents one batch of images to push through the portal."""

    __tablename__ = "upload_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Text, nullable=False)
    credentials = Column(JSONType, nullable=False)  # {'username', 'password'}
    images = Column(JSONType, nullable=False)  # [{'storage_path', 'display_name'}, ...]
    settings = Column(JSONType, nullable=False)  # {'interval_seconds', 'cycle', 'target'}
    status = Column(Text, nullable=False)  # 'queued', 'running', 'completed', 'failed', 'cancelled'
    progress = Column(Text, nullable=False, default="")
    log = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_upload_jobs_status_created", "status", "created_at"),
        Index("idx_upload_jobs_owner_created", "owner_id", "created_at"),
    )

    def image_refs(self) -> List[ImageRef]:
        """Images in upload order."""
        return [ImageRef(**image) for image in self.images]

    def job_settings(self) -> JobSettings:
        return JobSettings(**self.settings)

    def __repr__(self) -> str:
        return f"<UploadJob {self.id} owner={self.owner_id} status={self.status}>"
