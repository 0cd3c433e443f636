import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pulse.config import Settings
from pulse.main import create_app


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'pulse.db'}",
        upload_dir=str(tmp_path / "uploads"),
        processing_step_seconds=0,
        ffprobe_path=str(tmp_path / "no-ffprobe-here"),
        secret_key="test-secret",
    )


@pytest.fixture()
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, email: str, tenant: str = "acme", role: str = "editor", name: str = "Test User"):
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": "s3cret-pass", "name": name, "tenantId": tenant, "role": role},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}


def upload(client: TestClient, headers, data: bytes = b"\x00" * 1024, filename: str = "clip.mp4",
           content_type: str = "video/mp4", **form):
    return client.post(
        "/api/videos",
        headers=headers,
        files={"video": (filename, data, content_type)},
        data=form,
    )


def wait_for_terminal(client: TestClient, headers, video_id: str, timeout: float = 10.0) -> dict:
    deadline = time.time() + timeout
    while True:
        video = client.get(f"/api/videos/{video_id}", headers=headers).json()["video"]
        if video["status"] in ("completed", "failed"):
            return video
        if time.time() > deadline:
            raise AssertionError(f"video {video_id} still {video['status']} after {timeout}s")
        time.sleep(0.02)


@pytest.fixture()
def editor(client):
    return register(client, "editor@acme.test", tenant="acme", role="editor")


@pytest.fixture()
def admin(client):
    return register(client, "admin@acme.test", tenant="acme", role="admin", name="Admin")
