from django.core.management.base import BaseCommand, CommandError

from videos.sweeper import sweep


class Command(BaseCommand):
    help = "Delete composited videos past their expiry and scrub their job records."

    def handle(self, *args, **options):
        result = sweep()
        self.stdout.write(f"▶ processed: {result.processed}")
        self.stdout.write(f"▶ deleted: {result.deleted}")
        self.stdout.write(f"▶ errors: {result.errors}")
        if result.errors:
            # records stay selectable; the next run retries them
            raise CommandError(f"{result.errors} record(s) could not be swept")
