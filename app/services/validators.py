"""Submission validation for upload jobs."""

from typing import Any, Dict, List, Mapping, Sequence

from app.errors import ValidationError
from app.schemas.job import Credentials, ImageRef, JobSettings


def _as_model(model, value):
    if isinstance(value, model):
        return value
    if isinstance(value, Mapping):
        return model(**value)
    raise ValidationError(f"Expected {model.__name__} or mapping, got {type(value).__name__}")


def validate_new_job(
    owner_id: str,
    credentials: Any,
    images: Sequence[Any],
    settings: Any,
) -> Dict[str, Any]:
    """
    Validate a submission and normalise it into storable column values.

    Args:
        owner_id: Submitting user/session identifier
        credentials: Credentials or mapping with username/password
        images: Ordered ImageRef objects or mappings
        settings: JobSettings or mapping

    Returns:
        Dict with owner_id, credentials, images, settings ready for persistence

    Raises:
        ValidationError: If any required field is missing or out of range
    """
    if not owner_id or not str(owner_id).strip():
        raise ValidationError("owner_id is required")

    if not images:
        raise ValidationError("At least one image is required")

    try:
        creds = _as_model(Credentials, credentials)
        refs: List[ImageRef] = [_as_model(ImageRef, image) for image in images]
        job_settings = _as_model(JobSettings, settings)
    except ValidationError:
        raise
    except (TypeError, ValueError) as e:
        # pydantic.ValidationError is a ValueError
        raise ValidationError(f"Malformed job: {e}") from e

    if not creds.username.strip() or not creds.password:
        raise ValidationError("Username and password are required")

    if not job_settings.target.strip():
        raise ValidationError("A target selection is required")

    if job_settings.interval_seconds < 0:
        raise ValidationError("interval_seconds must be non-negative")

    for ref in refs:
        if not ref.storage_path:
            raise ValidationError(f"Image '{ref.display_name}' has no storage path")

    return {
        "owner_id": str(owner_id),
        "credentials": creds.model_dump(),
        "images": [ref.model_dump() for ref in refs],
        "settings": job_settings.model_dump(),
    }


def matches_error_keyword(text: str, keywords: Sequence[str]) -> bool:
    """Case-insensitive check for portal failure keywords."""
    lowered = (text or "").lower()
    return any(keyword.lower() in lowered for keyword in keywords if keyword)
