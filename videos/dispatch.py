"""
Dispatch trigger: turn a job creation into exactly one queued compositing run.

Observing the same creation twice is harmless; the trigger only enqueues
pending jobs and the worker's claim rejects any duplicate run.
"""

import logging

from django.db.models import Q
from kombu.exceptions import OperationalError

from .errors import DispatchError
from .models import VideoJob
from .tasks import composite_video

logger = logging.getLogger(__name__)


def dispatch_job(job: VideoJob) -> str | None:
    """Enqueue compositing for a pending job. Returns the task id, or None when skipped."""
    if job.status != VideoJob.Status.PENDING:
        logger.info("job %s is %s, not dispatching", job.id, job.status)
        return None

    try:
        async_result = composite_video.apply_async(args=[str(job.id)])
    except OperationalError as e:
        # the row stays pending and can be re-triggered
        raise DispatchError(f"could not enqueue job {job.id}: {e}")
    logger.info("job %s dispatched as task %s", job.id, async_result.id)
    return async_result.id


def handle_event(payload: dict) -> str | None:
    """Database change notification: {"type": "INSERT", "record": {...}}."""
    if payload.get("type") != "INSERT":
        logger.debug("ignoring %s event", payload.get("type"))
        return None
    record = payload.get("record") or {}
    if record.get("status") != VideoJob.Status.PENDING:
        logger.debug("ignoring event for non-pending record %s", record.get("id"))
        return None

    # the event may be stale; the row is the source of truth
    try:
        job = VideoJob.objects.get(pk=record["id"])
    except VideoJob.DoesNotExist:
        logger.warning("event for unknown job %s", record["id"])
        return None
    return dispatch_job(job)


def requeue(pending_before, stuck_before) -> dict:
    """Operator sweep: re-dispatch old pending jobs and recover stuck processing ones."""
    counts = {"reset": 0, "dispatched": 0, "errors": 0}
    recovered = []
    for job_id in VideoJob.objects.stuck(stuck_before).values_list("id", flat=True):
        if VideoJob.objects.reset(job_id):
            recovered.append(job_id)
            logger.warning("job %s was stuck in processing, reset to pending", job_id)
    counts["reset"] = len(recovered)

    pending = VideoJob.objects.filter(status=VideoJob.Status.PENDING).filter(
        Q(updated_at__lt=pending_before) | Q(pk__in=recovered)
    )
    for job in pending.iterator():
        try:
            if dispatch_job(job):
                counts["dispatched"] += 1
        except DispatchError as e:
            counts["errors"] += 1
            logger.error("%s", e)
    return counts
