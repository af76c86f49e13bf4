import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .dispatch import dispatch_job
from .errors import DispatchError
from .models import VideoJob

logger = logging.getLogger(__name__)


@receiver(post_save, sender=VideoJob, dispatch_uid="videos.dispatch_on_create")
def dispatch_on_create(sender, instance, created, **kwargs):
    if not created or not settings.VIDEO_PIPELINE["DISPATCH_ON_CREATE"]:
        return

    def _dispatch():
        try:
            dispatch_job(instance)
        except DispatchError:
            # stays pending; requeue_jobs picks it up later
            logger.exception("dispatch on create failed for job %s", instance.id)

    transaction.on_commit(_dispatch)
