"""Durable job store with atomic claiming and status-guarded writes."""

import logging
import uuid
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.database import SessionLocal
from app.errors import StoreError
from app.models.job import UploadJob, utcnow
from app.services import storage
from app.services.job_states import JobStatus, is_terminal, sources_for
from app.services.validators import validate_new_job

logger = logging.getLogger(__name__)

JobId = Union[uuid.UUID, str]


def _as_uuid(job_id: JobId) -> uuid.UUID:
    return job_id if isinstance(job_id, uuid.UUID) else uuid.UUID(str(job_id))


def _values(statuses) -> list:
    return [status.value for status in statuses]


class JobStore:
    """Persistence for upload jobs.

    Every mutation is a single-row UPDATE guarded by a WHERE status IN (...)
    predicate derived from the state machine.
    """

    def __init__(
        self,
        session_factory=None,
        claim_attempts: int = 5,
        delete_files: Callable[[Iterable[str]], List[str]] = storage.delete_files,
    ):
        self.session_factory = session_factory or SessionLocal
        self.claim_attempts = claim_attempts
        self._delete_files = delete_files

    def create(
        self,
        owner_id: str,
        credentials: Any,
        images: Sequence[Any],
        settings: Any,
    ) -> uuid.UUID:
        """
        Persist a new queued job.

        Raises:
            ValidationError: If the submission is malformed
            StoreError: On database failure
        """
        values = validate_new_job(owner_id, credentials, images, settings)

        db = self.session_factory()
        try:
            job = UploadJob(status=JobStatus.QUEUED.value, progress="queued", log="", **values)
            db.add(job)
            db.commit()
            logger.info(f"Created job {job.id} for owner {job.owner_id} ({len(job.images)} images)")
            return job.id
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to create job: {e}") from e
        finally:
            db.close()

    def _claim_query(self, exclude=()):
        """Locking read of the oldest queued job, skipping rows other pollers hold."""
        stmt = select(UploadJob).where(UploadJob.status == JobStatus.QUEUED.value)
        if exclude:
            stmt = stmt.where(UploadJob.id.not_in(list(exclude)))
        return (
            stmt.order_by(UploadJob.created_at, UploadJob.id)
            .with_for_update(skip_locked=True)
            .limit(1)
        )

    def claim_next(self) -> Optional[UploadJob]:
        """
        Atomically claim the oldest queued job.

        The candidate row is read with FOR UPDATE SKIP LOCKED so concurrent
        pollers skip each other's rows, then flipped with a status-guarded
        UPDATE. A lost race (rowcount 0) moves on to the next candidate.

        Returns:
            The claimed job (now running), or None if nothing is queued
        """
        db = self.session_factory()
        lost = []
        try:
            for _ in range(self.claim_attempts):
                job = db.execute(self._claim_query(lost)).scalars().first()
                if job is None:
                    db.rollback()
                    return None

                now = utcnow()
                result = db.execute(
                    update(UploadJob)
                    .where(
                        UploadJob.id == job.id,
                        UploadJob.status.in_(_values(sources_for(JobStatus.RUNNING))),
                    )
                    .values(status=JobStatus.RUNNING.value, started_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    db.commit()
                    db.refresh(job)
                    logger.info(f"Claimed job {job.id}")
                    return job

                db.rollback()
                lost.append(job.id)
                logger.debug(f"Lost claim race for job {job.id}")
            return None
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to claim job: {e}") from e
        finally:
            db.close()

    def _update(self, job_id: JobId, allowed=None, **values) -> bool:
        db = self.session_factory()
        try:
            stmt = update(UploadJob).where(UploadJob.id == _as_uuid(job_id))
            if allowed is not None:
                stmt = stmt.where(UploadJob.status.in_(_values(allowed)))
            values.setdefault("updated_at", utcnow())
            result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
            db.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to update job {job_id}: {e}") from e
        finally:
            db.close()

    def update_progress(self, job_id: JobId, text: str) -> None:
        """Overwrite progress. No-op if the job no longer exists."""
        self._update(job_id, progress=text)

    def set_log(self, job_id: JobId, text: str) -> None:
        """Overwrite the log with the latest captured diagnostic text."""
        self._update(job_id, log=text)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(StoreError),
        reraise=True,
    )
    def set_terminal(self, job_id: JobId, status, final_progress: Optional[str] = None) -> bool:
        """
        Move a job to a terminal status.

        Returns:
            True if the transition happened, False if the job was already
            terminal (the first terminal write wins)
        """
        status = JobStatus(status)
        if not is_terminal(status):
            raise ValueError(f"{status.value} is not a terminal status")

        values = {"status": status.value, "finished_at": utcnow()}
        if final_progress is not None:
            values["progress"] = final_progress

        applied = self._update(job_id, allowed=sources_for(status), **values)
        if applied:
            logger.info(f"Job {job_id} -> {status.value}")
        else:
            logger.debug(f"Job {job_id} already terminal, ignoring {status.value}")
        return applied

    def request_cancel(self, job_id: JobId) -> bool:
        """
        Cancel a queued or running job.

        A queued job never reaches a runner, so its stored images are
        deleted here. A running job is stopped at its next checkpoint and
        the runner cleans up its files.

        Returns:
            False if the job was already terminal
        """
        now = utcnow()
        if self._update(
            job_id,
            allowed={JobStatus.QUEUED},
            status=JobStatus.CANCELLED.value,
            progress="cancelled before start",
            finished_at=now,
        ):
            logger.info(f"Cancelled queued job {job_id}")
            self._discard_files(job_id)
            return True

        applied = self._update(
            job_id,
            allowed={JobStatus.RUNNING},
            status=JobStatus.CANCELLED.value,
            finished_at=now,
        )
        if applied:
            logger.info(f"Cancellation requested for running job {job_id}")
        return applied

    def _discard_files(self, job_id: JobId) -> None:
        job = self.get(job_id)
        if job is None:
            return
        leftovers = self._delete_files(image.storage_path for image in job.image_refs())
        if leftovers:
            logger.warning(f"Job {job_id}: {len(leftovers)} files could not be deleted")

    def get(self, job_id: JobId) -> Optional[UploadJob]:
        db = self.session_factory()
        try:
            return db.get(UploadJob, _as_uuid(job_id))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load job {job_id}: {e}") from e
        finally:
            db.close()

    def get_status(self, job_id: JobId) -> Optional[str]:
        """Current persisted status, read fresh from the database."""
        db = self.session_factory()
        try:
            return db.execute(
                select(UploadJob.status).where(UploadJob.id == _as_uuid(job_id))
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read status of job {job_id}: {e}") from e
        finally:
            db.close()

    def latest_for_owner(self, owner_id: str) -> Optional[UploadJob]:
        """Most recent job submitted by an owner."""
        db = self.session_factory()
        try:
            return db.execute(
                select(UploadJob)
                .where(UploadJob.owner_id == owner_id)
                .order_by(UploadJob.created_at.desc(), UploadJob.id.desc())
                .limit(1)
            ).scalars().first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load latest job for {owner_id}: {e}") from e
        finally:
            db.close()
