"""
Retention sweep: delete media past its expiry and scrub the job row.

Deletion is at-least-once. A record is only scrubbed after its blobs are
gone, a blob that is already missing counts as deleted, and a record whose
delete or update failed stays selectable for the next run.
"""

import logging
from dataclasses import dataclass, field

from django.utils import timezone

from . import storage
from .errors import StorageError, TransientError
from .models import VideoJob

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    deleted: int = 0
    errors: int = 0
    timestamp: object = field(default_factory=timezone.now)

    def as_dict(self) -> dict:
        return {
            "success": True,
            "processed": self.processed,
            "deleted": self.deleted,
            "errors": self.errors,
            "timestamp": self.timestamp.isoformat(),
        }


def sweep(now=None, store=None) -> SweepResult:
    now = now or timezone.now()
    result = SweepResult(timestamp=now)
    # evaluated up front; a failing query propagates to the caller
    jobs = list(VideoJob.objects.expired(now).only("id", "output_video_path", "source_video_path"))
    if not jobs:
        logger.info("sweep: nothing expired as of %s", now.isoformat())
        return result

    store = store or storage.get_store()
    logger.info("sweep: %d expired video(s)", len(jobs))
    for job in jobs:
        result.processed += 1
        try:
            store.delete(job.output_video_path)
            if job.source_video_path:
                store.delete(job.source_video_path)
        except (StorageError, TransientError) as e:
            result.errors += 1
            logger.error("sweep: could not delete media for job %s: %s", job.id, e)
            continue

        try:
            scrubbed = VideoJob.objects.scrub(job.id, job.output_video_path)
        except Exception:
            # blob is gone but the row still points at it; the next run retries
            result.errors += 1
            logger.exception("sweep: could not scrub job %s", job.id)
            continue

        if scrubbed:
            result.deleted += 1
            logger.info("[retention] job %s expired, deleted %s", job.id, job.output_video_path)
        else:
            logger.info("sweep: job %s changed during sweep, left as is", job.id)

    logger.info(
        "sweep done: processed=%d deleted=%d errors=%d",
        result.processed, result.deleted, result.errors,
    )
    return result
