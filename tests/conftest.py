from datetime import timedelta
from pathlib import Path

import pytest
from django.utils import timezone

from videos import storage
from videos.errors import ArtifactNotFound, StorageError
from videos.models import VideoJob

WEBHOOK_SECRET = "test-webhook-secret"
PUBLIC_BASE_URL = "https://thx.example"


class FakeStore:
    """In-memory stand-in for the S3 artifact store."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_delete: set[str] = set()
        self.signed: list[tuple[str, int]] = []

    def put(self, key: str, data: bytes = b"\x00" * 256) -> str:
        self.blobs[key] = data
        return key

    def exists(self, key: str) -> bool:
        return key in self.blobs

    def download(self, key: str, local_path) -> Path:
        if key not in self.blobs:
            raise ArtifactNotFound(key)
        Path(local_path).write_bytes(self.blobs[key])
        return Path(local_path)

    def upload(self, local_path, key: str, content_type: str | None = None) -> str:
        self.blobs[key] = Path(local_path).read_bytes()
        return key

    def delete(self, key: str) -> None:
        if key in self.fail_delete:
            raise StorageError(f"delete refused for {key}")
        self.deleted.append(key)
        self.blobs.pop(key, None)

    def presigned_get(self, key: str, expires: int | None = None) -> str:
        self.signed.append((key, expires))
        return f"https://media.example/videos-local/{key}?X-Amz-Expires={expires}"


class FakeCompositor:
    """Writes a small file where ffmpeg would have written the composite."""

    def __init__(self, store=None, *, on_render=None):
        self.store = store
        self.on_render = on_render
        self.calls = []

    def render(self, source, spec, workdir):
        self.calls.append((Path(source), spec))
        if self.on_render is not None:
            self.on_render()
        output = Path(workdir) / "output.mp4"
        output.write_bytes(b"composited-video")
        return output


@pytest.fixture(autouse=True)
def pipeline_settings(settings):
    settings.VIDEO_PIPELINE = {
        **settings.VIDEO_PIPELINE,
        "DISPATCH_ON_CREATE": False,
        "LINK_MODE": "tracking",
        "PUBLIC_BASE_URL": PUBLIC_BASE_URL,
        "WEBHOOK_SECRET": WEBHOOK_SECRET,
    }
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.SMS_GATEWAY_URL = "https://sms.example/messages"
    settings.SMS_GATEWAY_TOKEN = "sms-token"
    return settings


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    monkeypatch.setattr(storage, "get_store", lambda: fake)
    return fake


@pytest.fixture
def auth_headers():
    return {"HTTP_AUTHORIZATION": f"Bearer {WEBHOOK_SECRET}"}


@pytest.fixture
def make_job(store):
    def _make(**overrides):
        fields = {
            "gift_id": "gift-1",
            "child_id": "child-1",
            "source_video_path": "recordings/gift-1.mp4",
            "edit_spec": {
                "edits": [{"type": "sticker", "params": {"sticker_id": "balloon", "x": 50, "y": 50, "scale": 1.0}}],
                "musicRef": None,
            },
            "expires_in_hours": 24,
        }
        fields.update(overrides)
        if fields["source_video_path"]:
            store.put(fields["source_video_path"])
        return VideoJob.objects.create(**fields)

    return _make


@pytest.fixture
def completed_job(make_job, store):
    """A job that finished compositing and is inside its retention window."""

    def _make(expires_in=timedelta(hours=24), **overrides):
        job = make_job(**overrides)
        key = store.put(f"composited/{job.id}/1700000000000.mp4", b"composited-video")
        VideoJob.objects.filter(pk=job.pk).update(
            status=VideoJob.Status.PENDING_REVIEW,
            output_video_path=key,
            video_url=f"https://media.example/videos-local/{key}",
            video_expires_at=timezone.now() + expires_in,
            completed_at=timezone.now(),
        )
        job.refresh_from_db()
        return job

    return _make
