import secrets
import uuid

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone


def generate_tracking_token() -> str:
    return secrets.token_urlsafe(24)


class VideoJobQuerySet(models.QuerySet):
    """
    Every status transition is a single conditional UPDATE so that concurrent
    handlers coordinate through the row, never through process memory.
    Each method returns True when this caller won the transition.
    """

    def claim(self, job_id, task_id: str) -> bool:
        now = timezone.now()
        rows = self.filter(pk=job_id, status=VideoJob.Status.PENDING).update(
            status=VideoJob.Status.PROCESSING,
            worker_task_id=task_id,
            started_at=now,
            error="",
            updated_at=now,
        )
        return rows == 1

    def begin_attempt(self, job_id, task_id: str, max_attempts: int | None = None) -> bool:
        # redeliveries keep the task id, so the ceiling is held by the row itself
        if max_attempts is None:
            max_attempts = settings.VIDEO_PIPELINE["MAX_ATTEMPTS"]
        rows = self.filter(
            pk=job_id,
            status=VideoJob.Status.PROCESSING,
            worker_task_id=task_id,
            attempts__lt=max_attempts,
        ).update(attempts=F("attempts") + 1, updated_at=timezone.now())
        return rows == 1

    def complete(self, job_id, task_id: str, *, output_path: str, expires_at, url: str) -> bool:
        # output path, expiry and status always land in the same statement
        now = timezone.now()
        rows = self.filter(
            pk=job_id, status=VideoJob.Status.PROCESSING, worker_task_id=task_id
        ).update(
            status=VideoJob.Status.PENDING_REVIEW,
            output_video_path=output_path,
            video_url=url,
            video_expires_at=expires_at,
            completed_at=now,
            error="",
            updated_at=now,
        )
        return rows == 1

    def fail(self, job_id, task_id: str, error: str) -> bool:
        rows = self.filter(
            pk=job_id, status=VideoJob.Status.PROCESSING, worker_task_id=task_id
        ).update(
            status=VideoJob.Status.FAILED,
            error=(error or "")[:4000],
            updated_at=timezone.now(),
        )
        return rows == 1

    def reset(self, job_id) -> bool:
        rows = self.filter(
            pk=job_id,
            status__in=[VideoJob.Status.FAILED, VideoJob.Status.PROCESSING],
        ).update(
            status=VideoJob.Status.PENDING,
            worker_task_id="",
            error="",
            attempts=0,
            started_at=None,
            updated_at=timezone.now(),
        )
        return rows == 1

    def scrub(self, job_id, output_path: str) -> bool:
        rows = self.filter(pk=job_id, output_video_path=output_path).update(
            status=VideoJob.Status.EXPIRED,
            source_video_path=None,
            output_video_path=None,
            video_url=None,
            video_expires_at=None,
            updated_at=timezone.now(),
        )
        return rows == 1

    def record_view(self, token: str, now=None) -> bool:
        now = now or timezone.now()
        rows = self.filter(
            tracking_token=token,
            output_video_path__isnull=False,
            video_expires_at__gt=now,
        ).update(view_count=F("view_count") + 1, last_viewed_at=now, updated_at=now)
        return rows == 1

    def expired(self, now=None):
        now = now or timezone.now()
        return self.filter(output_video_path__isnull=False, video_expires_at__lt=now)

    def stuck(self, older_than):
        return self.filter(status=VideoJob.Status.PROCESSING, updated_at__lt=older_than)


class VideoJob(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        PENDING_REVIEW = "pending_review"
        EXPIRED = "expired"
        FAILED = "failed"

    class SendMethod(models.TextChoices):
        NONE = "", "none"
        EMAIL = "email"
        SMS = "sms"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gift_id = models.CharField(max_length=64)
    child_id = models.CharField(max_length=64, blank=True, default="")

    source_video_path = models.CharField(max_length=512, null=True, blank=True)  # raw recording key
    edit_spec = models.JSONField(default=dict, blank=True)  # {"edits": [...], "musicRef": ...}
    expires_in_hours = models.PositiveIntegerField(default=24)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveSmallIntegerField(default=0)
    worker_task_id = models.CharField(max_length=64, blank=True, default="")  # fencing token
    error = models.TextField(blank=True, default="")

    output_video_path = models.CharField(max_length=512, null=True, blank=True)
    video_url = models.TextField(null=True, blank=True)  # convenience copy; path + expiry are authoritative
    video_expires_at = models.DateTimeField(null=True, blank=True, db_index=True)

    tracking_token = models.CharField(max_length=64, unique=True, default=generate_tracking_token, editable=False)
    view_count = models.PositiveIntegerField(default=0)
    last_viewed_at = models.DateTimeField(null=True, blank=True)

    # recipient context, consumed by the delivery notifier after compositing
    send_method = models.CharField(max_length=8, choices=SendMethod.choices, blank=True, default="")
    recipient_email = models.TextField(blank=True, default="")  # comma-joined
    recipient_phone = models.TextField(blank=True, default="")  # comma-joined
    recipient_name = models.TextField(blank=True, default="")   # comma-joined, paired by position
    email_subject = models.CharField(max_length=255, blank=True, default="")
    email_body = models.TextField(blank=True, default="")
    child_name = models.CharField(max_length=128, blank=True, default="")
    gift_name = models.CharField(max_length=128, blank=True, default="")
    event_name = models.CharField(max_length=128, blank=True, default="")

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VideoJobQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"VideoJob({self.id}, {self.status})"

    @property
    def has_live_output(self) -> bool:
        return bool(
            self.output_video_path
            and self.video_expires_at
            and self.video_expires_at > timezone.now()
        )
