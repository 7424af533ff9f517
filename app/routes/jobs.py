"""Upload job routes."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.errors import StoreError, ValidationError
from app.models.job import UploadJob
from app.schemas.job import (
    CancelResponse,
    Credentials,
    JobCreateResponse,
    JobSettings,
    JobStatusResponse,
)
from app.services import storage
from app.services.job_store import JobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_store() -> JobStore:
    """Job store dependency (overridden in tests)."""
    return JobStore()


def _status_response(job: UploadJob) -> JobStatusResponse:
    return JobStatusResponse(
        id=job.id,
        status=job.status,
        progress=job.progress or "",
        log=job.log or "",
        created_at=job.created_at,
    )


@router.post("", response_model=JobCreateResponse, status_code=202)
def create_job(
    owner_id: str = Form(...),
    username: str = Form(""),
    password: str = Form(""),
    target: str = Form(""),
    interval_seconds: int = Form(0),
    cycle: bool = Form(False),
    images: Optional[List[UploadFile]] = File(None),
    store: JobStore = Depends(get_store),
):
    """
    Accept an upload job.

    Images are stored locally first; if the job is rejected the stored
    files are removed again.
    """
    refs = [storage.save_upload(image) for image in images or []]

    try:
        job_id = store.create(
            owner_id=owner_id,
            credentials=Credentials(username=username, password=password),
            images=refs,
            settings=JobSettings(interval_seconds=interval_seconds, cycle=cycle, target=target),
        )
    except ValidationError as e:
        storage.delete_files(ref.storage_path for ref in refs)
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        storage.delete_files(ref.storage_path for ref in refs)
        logger.error(f"Could not persist job for {owner_id}: {e}")
        raise HTTPException(status_code=503, detail="Job store unavailable")

    return JobCreateResponse(
        job_id=job_id,
        status="queued",
        message=f"Automation accepted for {len(refs)} images. Poll the job status for progress.",
    )


@router.get("/latest", response_model=JobStatusResponse)
def latest_job(owner_id: str, store: JobStore = Depends(get_store)):
    """Most recent job for an owner."""
    job = store.latest_for_owner(owner_id)
    if not job:
        raise HTTPException(status_code=404, detail="No jobs for this owner")
    return _status_response(job)


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: uuid.UUID, store: JobStore = Depends(get_store)):
    """Get job status and progress."""
    job = store.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return _status_response(job)


@router.post("/{job_id}/cancel", response_model=CancelResponse)
def cancel_job(job_id: uuid.UUID, store: JobStore = Depends(get_store)):
    """Request cancellation; a running job stops at its next checkpoint."""
    if store.get_status(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    cancelled = store.request_cancel(job_id)
    return CancelResponse(job_id=job_id, cancelled=cancelled)
