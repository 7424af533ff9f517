"""Job runner: drives one claimed job through the portal end-to-end."""

import logging
import time
from typing import Callable, Iterable, List, Optional, Sequence

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from app.config import settings
from app.driver.base import AutomationDriver
from app.errors import NOT_INTERACTABLE, DriverError, RemoteRejection, StoreError
from app.models.job import UploadJob
from app.services import storage
from app.services.job_states import JobStatus
from app.services.job_store import JobStore
from app.services.portal import Portal
from app.services.validators import matches_error_keyword

logger = logging.getLogger(__name__)


def _is_not_interactable(error: BaseException) -> bool:
    return isinstance(error, DriverError) and error.not_interactable


class JobRunner:
    """Executes the upload sequence for one claimed job.

    Guarantees a single terminal write per job and that the driver session
    is closed and the job's local files are deleted on every exit path.
    """

    def __init__(
        self,
        store: JobStore,
        driver: AutomationDriver,
        submit_attempts: Optional[int] = None,
        submit_retry_delay: Optional[float] = None,
        confirm_timeout: Optional[float] = None,
        action_delay: Optional[float] = None,
        error_keywords: Optional[Sequence[str]] = None,
        sleep: Callable[[float], None] = time.sleep,
        delete_files: Callable[[Iterable[str]], List[str]] = storage.delete_files,
    ):
        self.store = store
        self.driver = driver
        self.submit_attempts = submit_attempts or settings.SUBMIT_MAX_ATTEMPTS
        self.submit_retry_delay = (
            settings.SUBMIT_RETRY_DELAY if submit_retry_delay is None else submit_retry_delay
        )
        self.confirm_timeout = confirm_timeout
        self.action_delay = action_delay
        self.error_keywords = list(
            settings.REMOTE_ERROR_KEYWORDS if error_keywords is None else error_keywords
        )
        self._sleep = sleep
        self._delete_files = delete_files

    def run(self, job: UploadJob) -> Optional[str]:
        """
        Run a claimed job to a terminal status.

        Args:
            job: Job returned by JobStore.claim_next()

        Returns:
            The job's persisted status after the run
        """
        paths = [image.storage_path for image in job.image_refs()]
        logger.info(f"Processing job {job.id} ({len(paths)} images)")

        try:
            self._execute(job)
        except (DriverError, RemoteRejection) as e:
            logger.error(f"Job {job.id} failed: {e}")
            self._finish(job.id, JobStatus.FAILED, f"failed: {e}")
        except Exception as e:
            logger.error(f"Job {job.id} failed unexpectedly: {e}", exc_info=True)
            self._finish(job.id, JobStatus.FAILED, f"failed: {e}")
        finally:
            leftovers = self._delete_files(paths)
            if leftovers:
                logger.warning(f"Job {job.id}: {len(leftovers)} files could not be deleted")
            logger.info(f"Job {job.id} finished and cleaned up temporary files")

        try:
            return self.store.get_status(job.id)
        except StoreError as e:
            logger.error(f"Could not read final status of job {job.id}: {e}")
            return None

    def _execute(self, job: UploadJob) -> None:
        job_settings = job.job_settings()
        images = job.image_refs()
        total = len(images)

        with self.driver.open() as session:
            portal = Portal(
                session,
                action_delay=self.action_delay,
                confirm_timeout=self.confirm_timeout,
                sleep=self._sleep,
            )

            self._progress(job.id, "logging in")
            portal.login(job.credentials["username"], job.credentials["password"])

            self._progress(job.id, f"selecting target {job_settings.target}")
            portal.select_target(job_settings.target)

            first = True
            cycle_count = 0
            while True:
                cycle_count += 1
                if job_settings.cycle:
                    logger.info(f"Job {job.id}: starting pass {cycle_count}")

                for index, image in enumerate(images, start=1):
                    if not first:
                        if not self._still_running(job.id):
                            return
                        portal.select_target(job_settings.target)
                    first = False

                    self._progress(job.id, f"uploading {index} of {total}: {image.display_name}")
                    self._upload_one(job.id, portal, image.storage_path)
                    logger.info(f"Job {job.id}: submitted {image.display_name}")

                    if index < total or job_settings.cycle:
                        if job_settings.interval_seconds > 0:
                            logger.info(f"Job {job.id}: waiting {job_settings.interval_seconds}s...")
                            self._sleep(job_settings.interval_seconds)

                if not job_settings.cycle:
                    break

            self._finish(job.id, JobStatus.COMPLETED, f"uploaded {total} of {total} images")

    def _upload_one(self, job_id, portal: Portal, local_path: str) -> None:
        portal.attach_image(local_path)
        baseline = portal.status_text()

        self._submit(portal)
        portal.wait_for_acknowledgement(baseline)

        text = portal.diagnostics()
        if text:
            self._log(job_id, text)
        if matches_error_keyword(text, self.error_keywords):
            raise RemoteRejection(text)

    def _submit(self, portal: Portal) -> None:
        """Click submit, retrying while the control is not interactable."""
        retrying = Retrying(
            stop=stop_after_attempt(self.submit_attempts),
            wait=wait_fixed(self.submit_retry_delay),
            retry=retry_if_exception(_is_not_interactable),
            sleep=self._sleep,
            before_sleep=lambda state: logger.warning(
                f"Submit control not interactable (attempt {state.attempt_number}/{self.submit_attempts})"
            ),
            reraise=True,
        )
        try:
            retrying(portal.click_submit)
        except DriverError as e:
            if e.not_interactable:
                raise DriverError(
                    NOT_INTERACTABLE,
                    f"submit control 'submit' never became interactable after {self.submit_attempts} attempts",
                    control="submit",
                ) from e
            raise

    def _still_running(self, job_id) -> bool:
        """Cancellation checkpoint."""
        status = self.store.get_status(job_id)
        if status != JobStatus.RUNNING.value:
            logger.info(f"Job {job_id} is {status}, stopping")
            return False
        return True

    def _progress(self, job_id, text: str) -> None:
        try:
            self.store.update_progress(job_id, text)
        except StoreError as e:
            logger.warning(f"Progress update for job {job_id} dropped: {e}")

    def _log(self, job_id, text: str) -> None:
        try:
            self.store.set_log(job_id, text)
        except StoreError as e:
            logger.warning(f"Log update for job {job_id} dropped: {e}")

    def _finish(self, job_id, status: JobStatus, final_progress: str) -> None:
        try:
            self.store.set_terminal(job_id, status, final_progress)
        except StoreError as e:
            logger.error(f"Could not record {status.value} for job {job_id}: {e}")
