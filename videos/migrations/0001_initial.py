import uuid

from django.db import migrations, models

import videos.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="VideoJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gift_id", models.CharField(max_length=64)),
                ("child_id", models.CharField(blank=True, default="", max_length=64)),
                ("source_video_path", models.CharField(blank=True, max_length=512, null=True)),
                ("edit_spec", models.JSONField(blank=True, default=dict)),
                ("expires_in_hours", models.PositiveIntegerField(default=24)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("pending_review", "Pending Review"),
                            ("expired", "Expired"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("attempts", models.PositiveSmallIntegerField(default=0)),
                ("worker_task_id", models.CharField(blank=True, default="", max_length=64)),
                ("error", models.TextField(blank=True, default="")),
                ("output_video_path", models.CharField(blank=True, max_length=512, null=True)),
                ("video_url", models.TextField(blank=True, null=True)),
                ("video_expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "tracking_token",
                    models.CharField(
                        default=videos.models.generate_tracking_token, editable=False, max_length=64, unique=True
                    ),
                ),
                ("view_count", models.PositiveIntegerField(default=0)),
                ("last_viewed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "send_method",
                    models.CharField(
                        blank=True,
                        choices=[("", "none"), ("email", "Email"), ("sms", "Sms")],
                        default="",
                        max_length=8,
                    ),
                ),
                ("recipient_email", models.TextField(blank=True, default="")),
                ("recipient_phone", models.TextField(blank=True, default="")),
                ("recipient_name", models.TextField(blank=True, default="")),
                ("email_subject", models.CharField(blank=True, default="", max_length=255)),
                ("email_body", models.TextField(blank=True, default="")),
                ("child_name", models.CharField(blank=True, default="", max_length=128)),
                ("gift_name", models.CharField(blank=True, default="", max_length=128)),
                ("event_name", models.CharField(blank=True, default="", max_length=128)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
