"""
One compositing attempt for one VideoJob.

The Celery task in tasks.py decides whether a failure is retried; this module
only runs an attempt and keeps the job row consistent:

* the first delivery claims the row (pending -> processing) with a
  conditional update and stamps its task id as a fencing token;
* retries and redeliveries of the same task id may re-enter, any other
  invocation exits without rendering;
* each entry spends one of MAX_ATTEMPTS; an owner with none left fails the
  job instead of rendering again;
* output path, expiry and pending_review are written in one guarded update,
  and an upload that loses that race is deleted again.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from . import storage
from .edits import EditSpec
from .errors import ArtifactNotFound, EditSpecError, RenderError, StorageError, TransientError
from .models import VideoJob
from .render import Compositor
from .utils import output_key, signed_url_ttl

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    status: str  # "completed" | "skipped" | "stale"
    job_id: str
    output_path: str | None = None
    expires_at: object = None


def enter(job_id, task_id: str) -> bool:
    """Claim a pending job or re-enter one this task id already owns."""
    if VideoJob.objects.claim(job_id, task_id):
        logger.info("job %s claimed by %s", job_id, task_id)
    elif not VideoJob.objects.filter(
        pk=job_id, status=VideoJob.Status.PROCESSING, worker_task_id=task_id
    ).exists():
        return False
    if VideoJob.objects.begin_attempt(job_id, task_id):
        return True
    # owned, but every attempt has been spent (e.g. a redelivered message)
    max_attempts = settings.VIDEO_PIPELINE["MAX_ATTEMPTS"]
    fail_job(job_id, task_id, f"gave up after {max_attempts} attempts")
    return False


def process_job(job_id, task_id: str, *, store=None, compositor=None) -> AttemptResult:
    if not enter(job_id, task_id):
        logger.info("job %s not claimable by %s, skipping", job_id, task_id)
        return AttemptResult(status="skipped", job_id=str(job_id))

    job = VideoJob.objects.get(pk=job_id)
    logger.info("job %s attempt %d started", job.id, job.attempts)

    if not job.source_video_path:
        raise RenderError("job has no source recording")
    try:
        spec = EditSpec.from_dict(job.edit_spec)
    except EditSpecError as exc:
        raise RenderError(f"invalid edit spec: {exc}")

    store = store or storage.get_store()
    compositor = compositor or Compositor(store)
    workdir = Path(tempfile.mkdtemp(prefix=f"composite-{job.id}-"))
    uploaded = None
    try:
        source = workdir / f"input{Path(job.source_video_path).suffix or '.mp4'}"
        try:
            store.download(job.source_video_path, source)
        except ArtifactNotFound:
            raise RenderError(f"source recording missing: {job.source_video_path}")

        rendered = compositor.render(source, spec, workdir)

        key = output_key(job.id)
        store.upload(rendered, key, content_type="video/mp4")
        uploaded = key

        expires_at = timezone.now() + timedelta(hours=job.expires_in_hours)
        url = store.presigned_get(key, expires=signed_url_ttl(expires_at))

        if not VideoJob.objects.complete(job.id, task_id, output_path=key, expires_at=expires_at, url=url):
            # reset or superseded while rendering; this result must not land
            logger.warning("job %s moved on during attempt by %s, discarding %s", job.id, task_id, key)
            _discard(store, key)
            uploaded = None
            return AttemptResult(status="stale", job_id=str(job.id))
        uploaded = None

        logger.info("[retention] job %s output %s expires at %s", job.id, key, expires_at.isoformat())
        return AttemptResult(status="completed", job_id=str(job.id), output_path=key, expires_at=expires_at)
    finally:
        if uploaded:
            # never leave an unreferenced partial output behind
            _discard(store, uploaded)
        shutil.rmtree(workdir, ignore_errors=True)


def _discard(store, key: str) -> None:
    try:
        store.delete(key)
    except (StorageError, TransientError):
        logger.exception("could not delete orphaned output %s", key)


def fail_job(job_id, task_id: str, error: str) -> bool:
    failed = VideoJob.objects.fail(job_id, task_id, error)
    if failed:
        logger.error("job %s failed: %s", job_id, error[:500])
    return failed
