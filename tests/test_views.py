from datetime import timedelta

import pytest

from tests.conftest import PUBLIC_BASE_URL
from videos import views
from videos.errors import TransientError
from videos.models import VideoJob

pytestmark = pytest.mark.django_db


def _submission(**overrides):
    body = {
        "sourceVideoPath": "recordings/gift-9.mp4",
        "giftId": "gift-9",
        "childId": "child-3",
        "editSpec": {"stickers": [{"id": "balloon", "x": 50, "y": 50, "scale": 1.0}]},
        "expiresInHours": 24,
    }
    body.update(overrides)
    return body


def test_submit_creates_pending_job(client, store):
    store.put("recordings/gift-9.mp4")

    resp = client.post("/api/jobs/", _submission(), content_type="application/json")

    assert resp.status_code == 202
    data = resp.json()
    job = VideoJob.objects.get(pk=data["jobId"])
    assert job.status == VideoJob.Status.PENDING
    assert data["videoUrl"] == f"{PUBLIC_BASE_URL}/track-video-view/{job.tracking_token}"
    assert data["videoPath"] is None
    assert data["expiresInHours"] == 24
    assert job.edit_spec["edits"][0]["type"] == "sticker"


def test_submit_accepts_full_object_url(client, store, settings):
    store.put("recordings/gift-9.mp4")
    url = f"http://minio:9000/{settings.S3_BUCKET}/recordings/gift-9.mp4?X-Amz-Signature=abc"

    resp = client.post("/api/jobs/", _submission(sourceVideoPath=url), content_type="application/json")

    assert resp.status_code == 202
    assert VideoJob.objects.get().source_video_path == "recordings/gift-9.mp4"


def test_submit_defaults_expiry(client, store):
    store.put("recordings/gift-9.mp4")
    body = _submission()
    del body["expiresInHours"]

    resp = client.post("/api/jobs/", body, content_type="application/json")

    assert resp.json()["expiresInHours"] == 24


@pytest.mark.parametrize("overrides", [
    {"sourceVideoPath": ""},
    {"giftId": None},
    {"expiresInHours": 0},
    {"expiresInHours": 1000},
    {"editSpec": {"stickers": [{"id": "balloon", "x": "left"}]}},
    {"sendMethod": "email", "recipientEmail": ""},
])
def test_submit_rejects_invalid_input(client, store, overrides):
    store.put("recordings/gift-9.mp4")

    resp = client.post("/api/jobs/", _submission(**overrides), content_type="application/json")

    assert resp.status_code == 400
    assert resp.json()["error"]
    assert "details" in resp.json()
    assert not VideoJob.objects.exists()


def test_submit_rejects_missing_recording(client, store):
    resp = client.post("/api/jobs/", _submission(), content_type="application/json")

    assert resp.status_code == 400
    assert not VideoJob.objects.exists()


def test_submit_reports_storage_failure(client, store, monkeypatch):
    def broken_exists(key):
        raise TransientError("storage unreachable")

    monkeypatch.setattr(store, "exists", broken_exists)

    resp = client.post("/api/jobs/", _submission(), content_type="application/json")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Storage error"


def test_job_detail_signs_live_output(client, completed_job, store):
    job = completed_job()

    resp = client.get(f"/api/jobs/{job.id}/")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "pending_review"
    assert data["videoUrl"].startswith("https://media.example/")
    assert data["trackingToken"] == job.tracking_token


def test_reset_endpoint_requeues_failed_job(client, make_job, auth_headers, monkeypatch):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-a")
    VideoJob.objects.fail(job.id, "task-a", "boom")
    monkeypatch.setattr(views, "dispatch_job", lambda j: "task-b")

    resp = client.post(f"/api/jobs/{job.id}/reset/", **auth_headers)

    assert resp.status_code == 200
    job.refresh_from_db()
    assert job.status == VideoJob.Status.PENDING
    assert job.error == ""


def test_redirect_missing_token_is_400(client):
    resp = client.get("/track-video-view/")

    assert resp.status_code == 400
    assert resp.content == b"Missing tracking token"


def test_redirect_unknown_token_is_404(client):
    resp = client.get("/track-video-view/not-a-real-token")

    assert resp.status_code == 404


def test_redirect_records_view_and_redirects(client, completed_job, store):
    job = completed_job(expires_in=timedelta(hours=3))

    resp = client.get(f"/track-video-view/{job.tracking_token}")

    assert resp.status_code == 302
    assert resp["Location"].startswith("https://media.example/")
    assert "no-cache" in resp["Cache-Control"]
    key, ttl = store.signed[-1]
    assert key == job.output_video_path
    assert ttl <= 3 * 3600
    job.refresh_from_db()
    assert job.view_count == 1
    assert job.last_viewed_at is not None


def test_redirect_hides_expired_but_unswept_media(client, completed_job, store):
    job = completed_job(expires_in=timedelta(minutes=-1))

    resp = client.get(f"/track-video-view/{job.tracking_token}")

    assert resp.status_code == 404
    assert job.output_video_path.encode() not in resp.content
    assert "no-cache" in resp["Cache-Control"]
    assert store.signed == []
    job.refresh_from_db()
    assert job.view_count == 0


def test_redirect_after_sweep_is_404(client, completed_job):
    job = completed_job()
    VideoJob.objects.scrub(job.id, job.output_video_path)

    resp = client.get(f"/track-video-view/{job.tracking_token}")

    assert resp.status_code == 404


def test_redirect_storage_failure_is_500(client, completed_job, store, monkeypatch):
    job = completed_job()

    def broken_presign(key, expires=None):
        raise TransientError("sign timeout")

    monkeypatch.setattr(store, "presigned_get", broken_presign)

    resp = client.get(f"/track-video-view/{job.tracking_token}")

    assert resp.status_code == 500
    assert job.output_video_path.encode() not in resp.content
