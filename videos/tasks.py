from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded
from celery.utils.log import get_task_logger
from celery.utils.time import get_exponential_backoff_interval
from django.conf import settings

from .errors import PipelineError, TransientError
from .models import VideoJob
from .notify import deliver_for_job
from .sweeper import sweep
from .worker import fail_job, process_job

logger = get_task_logger(__name__)

PIPELINE = settings.VIDEO_PIPELINE


def _retry_countdown(retries: int) -> int:
    # full jitter can draw 0; keep at least the base delay between attempts
    countdown = get_exponential_backoff_interval(
        factor=PIPELINE["RETRY_BACKOFF"],
        retries=retries,
        maximum=PIPELINE["RETRY_BACKOFF_MAX"],
        full_jitter=PIPELINE["RETRY_JITTER"],
    )
    return max(countdown, PIPELINE["RETRY_BACKOFF"])


@shared_task(
    bind=True,
    name="videos.composite_video",
    max_retries=PIPELINE["MAX_ATTEMPTS"] - 1,
    time_limit=PIPELINE["TIME_LIMIT"],
    soft_time_limit=PIPELINE["SOFT_TIME_LIMIT"],
)
def composite_video(self, job_id: str):
    task_id = self.request.id
    try:
        result = process_job(job_id, task_id)
    except (TransientError, SoftTimeLimitExceeded) as e:
        if self.request.retries >= self.max_retries:
            fail_job(job_id, task_id, f"gave up after {self.request.retries + 1} attempts: {e}")
            raise
        countdown = _retry_countdown(self.request.retries)
        logger.warning("job %s attempt failed (%s), retrying in %ss", job_id, e, countdown)
        raise self.retry(exc=e, countdown=countdown)
    except Exception as e:
        fail_job(job_id, task_id, str(e) or e.__class__.__name__)
        raise

    if result.status != "completed":
        return {"job_id": result.job_id, "status": result.status}

    job = VideoJob.objects.get(pk=job_id)
    if job.send_method:
        try:
            report = deliver_for_job(job)
        except PipelineError as e:
            # delivery never changes the job's status
            logger.error("job %s: auto-delivery failed: %s", job_id, e)
        else:
            if report is not None:
                logger.info("job %s: auto-delivery %s", job_id, report.outcome)
    return {
        "job_id": result.job_id,
        "status": result.status,
        "output_path": result.output_path,
        "expires_at": result.expires_at.isoformat(),
    }


@shared_task(name="videos.sweep_expired_videos")
def sweep_expired_videos():
    return sweep().as_dict()
