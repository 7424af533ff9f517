"""SQLAlchemy ORM models."""

from app.models.job import UploadJob

__all__ = [
    "UploadJob",
]
