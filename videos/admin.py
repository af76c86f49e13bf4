from django.contrib import admin, messages

from .dispatch import dispatch_job
from .errors import DispatchError
from .models import VideoJob


@admin.register(VideoJob)
class VideoJobAdmin(admin.ModelAdmin):
    list_display = ("id", "gift_id", "status", "attempts", "view_count", "video_expires_at", "created_at")
    list_filter = ("status", "send_method")
    search_fields = ("id", "gift_id", "child_id", "tracking_token")
    readonly_fields = (
        "tracking_token", "worker_task_id", "attempts", "output_video_path", "video_url",
        "video_expires_at", "view_count", "last_viewed_at", "started_at", "completed_at",
        "created_at", "updated_at",
    )
    actions = ["reset_to_pending"]

    @admin.action(description="Reset to pending and re-dispatch")
    def reset_to_pending(self, request, queryset):
        reset = 0
        for job in queryset:
            if not VideoJob.objects.reset(job.id):
                continue
            reset += 1
            job.refresh_from_db()
            try:
                dispatch_job(job)
            except DispatchError as e:
                self.message_user(request, str(e), level=messages.ERROR)
        self.message_user(request, f"{reset} job(s) reset to pending")
