import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "thankcast.settings")

celery_app = Celery("thankcast")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@celery_app.on_after_finalize.connect
def setup_periodic_tasks(sender, **kwargs):
    from django.conf import settings

    # daily retention sweep; the sweep itself is cadence-agnostic
    sender.add_periodic_task(
        crontab(hour=settings.SWEEP_HOUR, minute=settings.SWEEP_MINUTE),
        sender.signature("videos.sweep_expired_videos"),
        name="sweep-expired-videos",
    )
