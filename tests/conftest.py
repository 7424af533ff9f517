"""Pytest configuration and fixtures."""

import os

# Must be set before app.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_jobs.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.database import Base
from app.driver.base import AutomationDriver, DriverSession, Option
from app.errors import NOT_INTERACTABLE, TIMEOUT, DriverError
from app.runner import JobRunner
from app.schemas.job import Credentials, ImageRef, JobSettings
from app.services.job_store import JobStore

PORTAL_HOME = "https://portal.example/home"

TARGET_OPTIONS = [
    Option(value="", label="Select a display..."),
    Option(value="42", label="Front Display"),
    Option(value="43", label="Back Display"),
]


class RecordingJobStore(JobStore):
    """JobStore that remembers every progress message written."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.progress_history = []

    def update_progress(self, job_id, text):
        self.progress_history.append(text)
        super().update_progress(job_id, text)


class FakeSession(DriverSession):
    """In-memory portal: login redirects, submit updates a status line."""

    def __init__(self, driver):
        self.driver = driver
        self.url = "about:blank"
        self.status = "Ready"
        self.closed = False

    def _record(self, *call):
        self.driver.calls.append(call)

    def navigate(self, url):
        self._record("navigate", url)
        self.url = url

    def fill(self, field_key, value):
        self._record("fill", field_key)

    def click(self, control_key):
        if control_key == "login":
            self._record("click", "login")
            self.url = PORTAL_HOME
            return

        self.driver.submit_attempts += 1
        self._record("click", control_key)
        if self.driver.submit_error is not None:
            raise self.driver.submit_error
        if self.driver.not_interactable_remaining > 0:
            self.driver.not_interactable_remaining -= 1
            raise DriverError(NOT_INTERACTABLE, "element intercepts pointer events", control=control_key)

        self.driver.submits += 1
        if self.driver.acknowledge:
            messages = self.driver.portal_messages
            if messages:
                self.status = messages[min(self.driver.submits, len(messages)) - 1]
            else:
                self.status = f"Upload {self.driver.submits} received"

    def select(self, control_key, option_value):
        self._record("select", control_key, option_value)

    def upload_local_file(self, control_key, local_path):
        self._record("upload", local_path)
        self.driver.uploads.append(local_path)
        error = self.driver.upload_errors.get(len(self.driver.uploads))
        if error is not None:
            raise error
        if self.driver.on_upload is not None:
            self.driver.on_upload(len(self.driver.uploads))

    def read_text(self, region_key):
        if region_key == "status":
            return self.status
        return ""

    def read_options(self, list_key):
        return list(self.driver.options)

    def current_url(self):
        return self.url

    def wait_until(self, predicate, timeout):
        if not predicate():
            raise DriverError(TIMEOUT, f"Condition not met within {timeout:g}s")

    def close(self):
        if not self.closed:
            self.closed = True
            self.driver.events.append("close")


class FakeDriver(AutomationDriver):
    """Scriptable driver used by runner tests."""

    def __init__(
        self,
        not_interactable=0,
        submit_error=None,
        acknowledge=True,
        portal_messages=None,
        open_error=None,
        upload_errors=None,
        options=None,
        on_upload=None,
    ):
        self.not_interactable_remaining = not_interactable
        self.submit_error = submit_error
        self.acknowledge = acknowledge
        self.portal_messages = portal_messages or []
        self.open_error = open_error
        self.upload_errors = upload_errors or {}
        self.options = options or TARGET_OPTIONS
        self.on_upload = on_upload
        self.sessions = []
        self.calls = []
        self.events = []
        self.uploads = []
        self.submit_attempts = 0
        self.submits = 0

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """File-backed SQLite database for each test (shared across threads)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)

    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    yield factory

    engine.dispose()


@pytest.fixture
def store(session_factory):
    return RecordingJobStore(session_factory)


@pytest.fixture
def image_files(tmp_path):
    """Three stored images in upload order."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    refs = []
    for name in ("A.png", "B.png", "C.png"):
        path = upload_dir / name
        path.write_bytes(b"\x89PNG fake " + name.encode())
        refs.append(ImageRef(storage_path=str(path), display_name=name))
    return refs


@pytest.fixture
def submit_job(store):
    """Create a job and return its id."""

    def _submit(images, owner_id="owner-1", target="Front Display", interval_seconds=0, cycle=False):
        return store.create(
            owner_id=owner_id,
            credentials=Credentials(username="operator", password="s3cret-pw"),
            images=images,
            settings=JobSettings(interval_seconds=interval_seconds, cycle=cycle, target=target),
        )

    return _submit


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_runner(store, sleeps):
    """Build a JobRunner with no real delays."""

    def _make(driver, **kwargs):
        kwargs.setdefault("submit_retry_delay", 0)
        kwargs.setdefault("action_delay", 0)
        kwargs.setdefault("confirm_timeout", 1)
        kwargs.setdefault("sleep", sleeps.append)
        return JobRunner(store, driver, **kwargs)

    return _make


@pytest.fixture
def login_url():
    return settings.PORTAL_LOGIN_URL


@pytest.fixture
def fake_driver():
    """Factory for scriptable drivers: fake_driver(not_interactable=3, ...)."""
    return FakeDriver
