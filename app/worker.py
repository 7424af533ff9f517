"""Background dispatch loop for upload jobs."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set

import sqlalchemy
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.driver.playwright_driver import PlaywrightDriver
from app.models.job import UploadJob
from app.runner import JobRunner
from app.services.job_store import JobStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class Scheduler:
    """Polls the store and hands each claimed job to a runner thread."""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        runner: Optional[JobRunner] = None,
        poll_interval: Optional[float] = None,
        max_concurrent_jobs: Optional[int] = None,
    ):
        """Initialize scheduler."""
        self.store = store or JobStore()
        self.runner = runner or JobRunner(self.store, PlaywrightDriver())
        self.poll_interval = settings.WORKER_POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_concurrent_jobs = max_concurrent_jobs or settings.MAX_CONCURRENT_JOBS
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_jobs, thread_name_prefix="upload-job"
        )
        self._in_flight: Set[Future] = set()
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        with self._lock:
            self._in_flight = {f for f in self._in_flight if not f.done()}
            return len(self._in_flight)

    def run(self, stop_event=None):
        """Main dispatch loop.

        Args:
            stop_event: Optional threading.Event to signal the loop to stop
        """
        stop_event = stop_event or threading.Event()

        logger.info("Scheduler started - waiting for database to be ready...")
        self.wait_for_database(stop_event=stop_event)
        if stop_event.is_set():
            logger.info("Scheduler stopped before the database was ready")
            self.shutdown(wait=False)
            return

        try:
            while not stop_event.is_set():
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"Scheduler error: {e}", exc_info=True)
                stop_event.wait(self.poll_interval)
            logger.info("Scheduler stop signal received")
        except KeyboardInterrupt:
            logger.info("Scheduler shutting down")
        finally:
            self.shutdown(wait=True)

    def wait_for_database(self, max_wait: int = 60, stop_event=None) -> bool:
        """Wait for the jobs table to exist (migrations may still be running).

        Returns early with False once `stop_event` is set.
        """
        stop_event = stop_event or threading.Event()
        waited = 0
        while waited < max_wait and not stop_event.is_set():
            db = self.store.session_factory()
            try:
                db.execute(sqlalchemy.select(UploadJob.id).limit(1))
                logger.info("Database is ready, starting dispatch loop")
                return True
            except SQLAlchemyError as e:
                logger.info(f"Waiting for database/migrations... ({waited}s): {e.__class__.__name__}")
            finally:
                db.close()
            stop_event.wait(2)
            waited += 2

        if stop_event.is_set():
            return False
        logger.error(f"Database not ready after {max_wait} seconds, starting anyway...")
        return False

    def tick(self) -> Optional[Future]:
        """Claim at most one job if a runner slot is free.

        Returns:
            Future of the submitted job, or None if nothing was claimed
        """
        if self.in_flight >= self.max_concurrent_jobs:
            return None

        job = self.store.claim_next()
        if job is None:
            return None

        future = self.executor.submit(self._run_job, job)
        with self._lock:
            self._in_flight.add(future)
        return future

    def _run_job(self, job: UploadJob) -> Optional[str]:
        try:
            status = self.runner.run(job)
            logger.info(f"Job {job.id} ended as {status}")
            return status
        except Exception as e:
            logger.error(f"Runner crashed on job {job.id}: {e}", exc_info=True)
            return None

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)


def worker_loop(stop_event=None):
    """Run the dispatch loop (for use as a background thread).

    Args:
        stop_event: Optional threading.Event to signal the loop to stop
    """
    scheduler = Scheduler()
    scheduler.run(stop_event=stop_event)


def main():
    """Entry point for a standalone worker."""
    scheduler = Scheduler()
    scheduler.run()


if __name__ == "__main__":
    main()
