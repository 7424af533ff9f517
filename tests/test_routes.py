"""Tests for the job HTTP routes."""

import os

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from app.routes.jobs import get_store


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "incoming"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def client(store, upload_dir):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _form(**overrides):
    data = {
        "owner_id": "owner-1",
        "username": "operator",
        "password": "s3cret-pw",
        "target": "Front Display",
        "interval_seconds": "3",
        "cycle": "false",
    }
    data.update(overrides)
    return data


def _files(*names):
    return [("images", (name, b"fake image bytes", "image/png")) for name in names]


def test_create_job_accepts_upload(client, store, upload_dir):
    """Test a multipart submission is stored and queued."""
    response = client.post("/jobs", data=_form(), files=_files("one.png", "two.png"))

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "queued"

    job = store.get(body["job_id"])
    assert job.status == "queued"
    assert [image.display_name for image in job.image_refs()] == ["one.png", "two.png"]
    assert job.job_settings().interval_seconds == 3
    for image in job.image_refs():
        assert os.path.exists(image.storage_path)
        assert os.path.dirname(image.storage_path) == str(upload_dir)


def test_create_job_without_images_is_rejected(client, upload_dir):
    """Test a submission without images gets a 400."""
    response = client.post("/jobs", data=_form())

    assert response.status_code == 400


def test_rejected_job_removes_stored_files(client, upload_dir):
    """Test files of a rejected submission do not linger on disk."""
    response = client.post("/jobs", data=_form(target=""), files=_files("one.png"))

    assert response.status_code == 400
    assert list(upload_dir.iterdir()) == []


def test_status_endpoints(client, store):
    """Test polling by id and by owner, without leaking credentials."""
    job_id = client.post("/jobs", data=_form(), files=_files("one.png")).json()["job_id"]
    store.update_progress(job_id, "uploading 1 of 1: one.png")

    by_id = client.get(f"/jobs/{job_id}")
    latest = client.get("/jobs/latest", params={"owner_id": "owner-1"})

    assert by_id.status_code == 200
    assert by_id.json()["progress"] == "uploading 1 of 1: one.png"
    assert latest.json()["id"] == job_id
    assert "s3cret-pw" not in by_id.text


def test_status_not_found(client):
    """Test unknown jobs and owners return 404."""
    assert client.get("/jobs/00000000-0000-0000-0000-000000000000").status_code == 404
    assert client.get("/jobs/latest", params={"owner_id": "nobody"}).status_code == 404


def test_cancel_job(client):
    """Test cancellation of a queued job and a repeated request."""
    job_id = client.post("/jobs", data=_form(), files=_files("one.png")).json()["job_id"]

    first = client.post(f"/jobs/{job_id}/cancel")
    second = client.post(f"/jobs/{job_id}/cancel")

    assert first.json() == {"job_id": job_id, "cancelled": True}
    assert second.json()["cancelled"] is False
    assert client.get(f"/jobs/{job_id}").json()["status"] == "cancelled"


def test_cancel_unknown_job(client):
    """Test cancelling a missing job returns 404."""
    assert client.post("/jobs/00000000-0000-0000-0000-000000000000/cancel").status_code == 404


def test_cancel_queued_job_removes_images(client, store, upload_dir):
    """Test cancelling before the job starts deletes its stored images."""
    job_id = client.post("/jobs", data=_form(), files=_files("one.png", "two.png")).json()["job_id"]
    assert len(list(upload_dir.iterdir())) == 2

    assert client.post(f"/jobs/{job_id}/cancel").json()["cancelled"] is True

    assert list(upload_dir.iterdir()) == []
