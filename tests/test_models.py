from datetime import timedelta

import pytest
from django.utils import timezone

from videos.models import VideoJob

pytestmark = pytest.mark.django_db


def test_new_job_is_pending_with_a_tracking_token(make_job):
    job = make_job()

    assert job.status == VideoJob.Status.PENDING
    assert len(job.tracking_token) >= 32
    assert job.output_video_path is None
    assert job.video_expires_at is None


def test_tracking_token_survives_saves(make_job):
    job = make_job()
    token = job.tracking_token

    job.child_name = "Mia"
    job.save()
    job.refresh_from_db()

    assert job.tracking_token == token


def test_claim_is_single_flight(make_job):
    job = make_job()

    assert VideoJob.objects.claim(job.id, "task-a")
    assert not VideoJob.objects.claim(job.id, "task-b")
    job.refresh_from_db()
    assert job.status == VideoJob.Status.PROCESSING
    assert job.worker_task_id == "task-a"
    assert job.started_at is not None


def test_complete_sets_output_and_expiry_together(make_job):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-a")
    expires = timezone.now() + timedelta(hours=24)

    assert VideoJob.objects.complete(job.id, "task-a", output_path="composited/x.mp4", expires_at=expires, url="https://u")

    job.refresh_from_db()
    assert job.status == VideoJob.Status.PENDING_REVIEW
    assert job.output_video_path == "composited/x.mp4"
    assert job.video_expires_at == expires
    assert job.has_live_output


def test_stale_worker_cannot_complete_after_reset(make_job):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-old")
    assert VideoJob.objects.reset(job.id)
    VideoJob.objects.claim(job.id, "task-new")

    late = VideoJob.objects.complete(
        job.id, "task-old", output_path="composited/old.mp4", expires_at=timezone.now(), url="https://u"
    )

    assert not late
    job.refresh_from_db()
    assert job.status == VideoJob.Status.PROCESSING
    assert job.worker_task_id == "task-new"
    assert job.output_video_path is None


def test_fail_is_fenced_too(make_job):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-a")

    assert not VideoJob.objects.fail(job.id, "task-b", "boom")
    assert VideoJob.objects.fail(job.id, "task-a", "boom")
    job.refresh_from_db()
    assert job.status == VideoJob.Status.FAILED
    assert job.error == "boom"


def test_reset_only_from_failed_or_processing(completed_job):
    job = completed_job()

    assert not VideoJob.objects.reset(job.id)
    job.refresh_from_db()
    assert job.status == VideoJob.Status.PENDING_REVIEW


def test_begin_attempt_counts_attempts(make_job):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-a")

    VideoJob.objects.begin_attempt(job.id, "task-a")
    VideoJob.objects.begin_attempt(job.id, "task-a")
    assert not VideoJob.objects.begin_attempt(job.id, "task-b")

    job.refresh_from_db()
    assert job.attempts == 2


def test_begin_attempt_refuses_past_ceiling(make_job):
    job = make_job()
    VideoJob.objects.claim(job.id, "task-a")

    assert VideoJob.objects.begin_attempt(job.id, "task-a", max_attempts=1)
    assert not VideoJob.objects.begin_attempt(job.id, "task-a", max_attempts=1)

    job.refresh_from_db()
    assert job.attempts == 1


def test_scrub_nulls_every_media_reference(completed_job):
    job = completed_job()

    assert VideoJob.objects.scrub(job.id, job.output_video_path)

    job.refresh_from_db()
    assert job.status == VideoJob.Status.EXPIRED
    assert job.source_video_path is None
    assert job.output_video_path is None
    assert job.video_url is None
    assert job.video_expires_at is None


def test_record_view_only_counts_live_output(completed_job):
    live = completed_job()
    stale = completed_job(expires_in=timedelta(minutes=-5), gift_id="gift-2")

    assert VideoJob.objects.record_view(live.tracking_token)
    assert not VideoJob.objects.record_view(stale.tracking_token)

    live.refresh_from_db()
    assert live.view_count == 1
    assert live.last_viewed_at is not None


def test_expired_selection(completed_job):
    fresh = completed_job()
    old = completed_job(expires_in=timedelta(hours=-1), gift_id="gift-2")

    selected = list(VideoJob.objects.expired())

    assert old in selected
    assert fresh not in selected
