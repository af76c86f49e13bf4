from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from videos.dispatch import requeue


class Command(BaseCommand):
    help = "Re-dispatch jobs left pending and recover jobs stuck in processing."

    def add_arguments(self, parser):
        parser.add_argument(
            "--pending-minutes", type=int, default=5,
            help="re-dispatch pending jobs untouched for at least this long",
        )
        parser.add_argument(
            "--stuck-seconds", type=int, default=None,
            help="reset processing jobs untouched for this long (default: STUCK_AFTER_SECONDS)",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        stuck_seconds = options["stuck_seconds"] or settings.VIDEO_PIPELINE["STUCK_AFTER_SECONDS"]
        counts = requeue(
            pending_before=now - timedelta(minutes=options["pending_minutes"]),
            stuck_before=now - timedelta(seconds=stuck_seconds),
        )
        self.stdout.write(f"▶ reset: {counts['reset']}")
        self.stdout.write(f"▶ dispatched: {counts['dispatched']}")
        self.stdout.write(f"▶ errors: {counts['errors']}")
