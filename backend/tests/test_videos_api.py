import time

import pytest
from fastapi.testclient import TestClient

from conftest import register, upload, wait_for_terminal
from pulse.main import create_app
from pulse.models import VideoStatus


def test_upload_returns_processing_record(client, editor):
    _, headers = editor
    response = upload(client, headers, categories="sports, outdoor", notes="first cut")

    assert response.status_code == 201
    video = response.json()["video"]
    assert video["status"] == "processing"
    assert video["sensitivityStatus"] == "pending"
    assert video["processingProgress"] == 0
    assert video["originalFileName"] == "clip.mp4"
    assert video["sizeBytes"] == 1024
    assert video["categories"] == ["sports", "outdoor"]
    assert video["notes"] == "first cut"
    assert video["tenantId"] == "acme"
    assert "storageName" not in video and "storagePath" not in video


def test_upload_completes_in_background(client, editor):
    _, headers = editor
    even = upload(client, headers, data=b"\x01" * 1024).json()["video"]
    odd = upload(client, headers, data=b"\x01" * 1023).json()["video"]

    even_done = wait_for_terminal(client, headers, even["id"])
    odd_done = wait_for_terminal(client, headers, odd["id"])

    assert even_done["status"] == "completed"
    assert even_done["sensitivityStatus"] == "safe"
    assert even_done["processingProgress"] == 100
    # no ffprobe in the test settings, the pipeline still finishes
    assert even_done["durationSeconds"] is None
    assert odd_done["sensitivityStatus"] == "flagged"


def test_upload_rejects_non_video(client, editor):
    _, headers = editor
    response = upload(client, headers, data=b"hello", filename="notes.txt", content_type="text/plain")
    assert response.status_code == 400
    assert client.get("/api/videos", headers=headers).json()["videos"] == []


def test_upload_requires_file(client, editor):
    _, headers = editor
    response = client.post("/api/videos", headers=headers, data={"notes": "no file"})
    assert response.status_code == 400


def test_upload_rejects_oversized_file(client, editor, app):
    _, headers = editor
    app.state.settings.max_upload_bytes = 100

    response = upload(client, headers, data=b"\x00" * 101)

    assert response.status_code == 413
    assert client.get("/api/videos", headers=headers).json()["videos"] == []
    assert list(app.state.storage.base.iterdir()) == []


def test_viewer_cannot_upload(client):
    _, headers = register(client, "viewer@acme.test", role="viewer")
    assert upload(client, headers).status_code == 403


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/videos").status_code == 401
    assert client.get("/api/videos", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_tenant_isolation(client, editor):
    _, acme_headers = editor
    _, globex_headers = register(client, "editor@globex.test", tenant="globex")
    video = upload(client, acme_headers).json()["video"]

    assert client.get("/api/videos", headers=globex_headers).json()["videos"] == []
    assert client.get(f"/api/videos/{video['id']}", headers=globex_headers).status_code == 404
    assert client.get(f"/api/videos/{video['id']}/stream", headers=globex_headers).status_code == 404
    assert client.delete(f"/api/videos/{video['id']}", headers=globex_headers).status_code == 404

    listed = client.get("/api/videos", headers=acme_headers).json()["videos"]
    assert [v["id"] for v in listed] == [video["id"]]
    assert listed[0]["owner"]["email"] == "editor@acme.test"


def test_list_filters(client, editor):
    _, headers = editor
    small = upload(client, headers, data=b"\x00" * 10, filename="Holiday Trip.mp4").json()["video"]
    big = upload(client, headers, data=b"\x00" * 2001, filename="match.webm", content_type="video/webm").json()["video"]
    wait_for_terminal(client, headers, small["id"])
    wait_for_terminal(client, headers, big["id"])

    def ids(**params):
        response = client.get("/api/videos", headers=headers, params=params)
        assert response.status_code == 200
        return {v["id"] for v in response.json()["videos"]}

    assert ids(search="holiday") == {small["id"]}
    assert ids(minSize=100) == {big["id"]}
    assert ids(maxSize=100) == {small["id"]}
    assert ids(sensitivityStatus="flagged") == {big["id"]}
    assert ids(status="completed") == {small["id"], big["id"]}
    assert ids(status="failed") == set()

    today = time.strftime("%Y-%m-%d", time.gmtime())
    assert ids(dateFrom=today, dateTo=today) == {small["id"], big["id"]}
    assert ids(dateTo="2000-01-01") == set()


def test_list_rejects_unknown_status(client, editor):
    _, headers = editor
    assert client.get("/api/videos", headers=headers, params={"status": "bogus"}).status_code == 422


@pytest.fixture()
def stored_video(client, editor):
    _, headers = editor
    data = bytes(range(256)) * 3 + bytes(range(232))  # 1000 bytes
    video = upload(client, headers, data=data).json()["video"]
    return video, headers, data


def test_stream_without_range_returns_full_file(client, stored_video):
    video, headers, data = stored_video
    response = client.get(f"/api/videos/{video['id']}/stream", headers=headers)

    assert response.status_code == 200
    assert response.content == data
    assert response.headers["content-length"] == "1000"
    assert response.headers["content-type"] == "video/mp4"


def test_stream_range_returns_partial_content(client, stored_video):
    video, headers, data = stored_video
    response = client.get(
        f"/api/videos/{video['id']}/stream", headers={**headers, "Range": "bytes=0-99"}
    )

    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 0-99/1000"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.content == data[:100]


def test_stream_open_ended_range(client, stored_video):
    video, headers, data = stored_video
    response = client.get(
        f"/api/videos/{video['id']}/stream", headers={**headers, "Range": "bytes=900-"}
    )

    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 900-999/1000"
    assert response.content == data[900:]


def test_stream_unsatisfiable_range(client, stored_video):
    video, headers, _ = stored_video
    response = client.get(
        f"/api/videos/{video['id']}/stream", headers={**headers, "Range": "bytes=5000-6000"}
    )

    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */1000"


def test_stream_accepts_token_query_param(client, stored_video):
    video, headers, data = stored_video
    token = headers["Authorization"].split(" ", 1)[1]
    response = client.get(f"/api/videos/{video['id']}/stream", params={"token": token})
    assert response.status_code == 200
    assert response.content == data


def test_editor_deletes_only_own_videos(client, editor, admin):
    _, editor_headers = editor
    _, admin_headers = admin
    _, other_headers = register(client, "other@acme.test")

    video = upload(client, editor_headers).json()["video"]
    wait_for_terminal(client, editor_headers, video["id"])

    assert client.delete(f"/api/videos/{video['id']}", headers=other_headers).status_code == 403
    assert client.delete(f"/api/videos/{video['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/videos/{video['id']}", headers=editor_headers).status_code == 404


def test_subscribe_endpoint(client, editor):
    _, headers = editor
    video = upload(client, headers).json()["video"]

    missing = client.post(f"/api/videos/{video['id']}/subscribe", headers=headers, json={})
    assert missing.status_code == 400

    # unknown connections are ignored
    ok = client.post(f"/api/videos/{video['id']}/subscribe", headers=headers, json={"connectionId": "gone"})
    assert ok.status_code == 200
    assert ok.json() == {"ok": True}

    unknown = client.post("/api/videos/nope/subscribe", headers=headers, json={"connectionId": "gone"})
    assert unknown.status_code == 404

    _, globex_headers = register(client, "editor@globex.test", tenant="globex")
    foreign = client.post(
        f"/api/videos/{video['id']}/subscribe", headers=globex_headers, json={"connectionId": "gone"}
    )
    assert foreign.status_code == 404


def test_websocket_receives_progress_events(settings):
    # slow enough that the socket subscribes before the first step fires
    slow_app = create_app(settings.model_copy(update={"processing_step_seconds": 0.3}))
    with TestClient(slow_app) as client:
        _, headers = register(client, "editor@acme.test")
        token = headers["Authorization"].split(" ", 1)[1]
        events, video = collect_socket_events(client, headers, token)

    assert [e["progress"] for e in events] == [10, 30, 60, 80, 100, 100]
    assert all(e["videoId"] == video["id"] for e in events)
    assert events[-1] == {"videoId": video["id"], "progress": 100, "done": True, "sensitivityStatus": "safe"}


def collect_socket_events(client, headers, token):
    with client.websocket_connect(f"/ws?token={token}") as ws:
        hello = ws.receive_json()
        assert "connectionId" in hello

        video = upload(client, headers).json()["video"]
        ws.send_json({"action": "subscribe", "videoId": video["id"]})
        assert ws.receive_json() == {"subscribed": video["id"]}

        events = []
        while True:
            event = ws.receive_json()
            events.append(event)
            if event.get("done") or event.get("error"):
                break
    return events, video


def test_websocket_rejects_cross_tenant_subscription(client, editor):
    _, acme_headers = editor
    _, globex_headers = register(client, "editor@globex.test", tenant="globex")
    video = upload(client, acme_headers).json()["video"]
    token = globex_headers["Authorization"].split(" ", 1)[1]

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.receive_json()
        ws.send_json({"action": "subscribe", "videoId": video["id"]})
        assert ws.receive_json() == {"error": "Video not found"}


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_shutdown_lets_running_videos_finish(settings):
    app = create_app(settings.model_copy(update={"processing_step_seconds": 0.05}))
    with TestClient(app) as client:
        _, headers = register(client, "editor@acme.test")
        video = upload(client, headers).json()["video"]

    stored = app.state.videos.get(video["id"], "acme")
    assert stored.status == VideoStatus.COMPLETED
    assert stored.progress == 100
