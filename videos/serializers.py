from django.conf import settings
from rest_framework import serializers

from .edits import EditSpec
from .errors import EditSpecError
from .models import VideoJob
from .notify import CHANNELS, EMAIL
from .utils import clean_storage_key, split_list


class VideoJobSerializer(serializers.ModelSerializer):
    jobId = serializers.UUIDField(source="id", read_only=True)
    giftId = serializers.CharField(source="gift_id", read_only=True)
    childId = serializers.CharField(source="child_id", read_only=True)
    editSpec = serializers.JSONField(source="edit_spec", read_only=True)
    expiresInHours = serializers.IntegerField(source="expires_in_hours", read_only=True)
    videoPath = serializers.CharField(source="output_video_path", read_only=True)
    expiresAt = serializers.DateTimeField(source="video_expires_at", read_only=True)
    trackingToken = serializers.CharField(source="tracking_token", read_only=True)
    viewCount = serializers.IntegerField(source="view_count", read_only=True)
    lastViewedAt = serializers.DateTimeField(source="last_viewed_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = VideoJob
        fields = [
            "jobId",
            "giftId",
            "childId",
            "status",
            "attempts",
            "error",
            "editSpec",
            "expiresInHours",
            "videoPath",
            "expiresAt",
            "trackingToken",
            "viewCount",
            "lastViewedAt",
            "createdAt",
            "updatedAt",
        ]


class SubmitJobSerializer(serializers.Serializer):
    sourceVideoPath = serializers.CharField()
    giftId = serializers.CharField(max_length=64)
    childId = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    musicUrl = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    editSpec = serializers.JSONField(required=False, default=dict)
    expiresInHours = serializers.IntegerField(required=False, min_value=1)

    # recipient context for auto-delivery
    sendMethod = serializers.ChoiceField(choices=list(CHANNELS), required=False, allow_blank=True, default="")
    recipientEmail = serializers.CharField(required=False, allow_blank=True, default="")
    recipientPhone = serializers.CharField(required=False, allow_blank=True, default="")
    recipientName = serializers.CharField(required=False, allow_blank=True, default="")
    emailSubject = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    emailBody = serializers.CharField(required=False, allow_blank=True, default="")
    childName = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)
    giftName = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)
    eventName = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)

    def validate_sourceVideoPath(self, value):
        key = clean_storage_key(value)
        if not key:
            raise serializers.ValidationError("sourceVideoPath is empty")
        return key

    def validate_expiresInHours(self, value):
        ceiling = settings.VIDEO_PIPELINE["MAX_EXPIRES_IN_HOURS"]
        if value > ceiling:
            raise serializers.ValidationError(f"expiresInHours may not exceed {ceiling}")
        return value

    def validate(self, attrs):
        try:
            attrs["spec"] = EditSpec.from_request(attrs.get("editSpec"), music_ref=attrs.get("musicUrl") or None)
        except EditSpecError as e:
            raise serializers.ValidationError({"editSpec": str(e)})
        method = attrs.get("sendMethod")
        if method:
            recipients = attrs["recipientEmail"] if method == EMAIL else attrs["recipientPhone"]
            if not split_list(recipients):
                raise serializers.ValidationError({"sendMethod": f"{method} delivery needs at least one recipient"})
        return attrs

    def create(self, validated_data):
        d = validated_data
        return VideoJob.objects.create(
            gift_id=d["giftId"],
            child_id=d["childId"],
            source_video_path=d["sourceVideoPath"],
            edit_spec=d["spec"].to_dict(),
            expires_in_hours=d.get("expiresInHours") or settings.VIDEO_PIPELINE["DEFAULT_EXPIRES_IN_HOURS"],
            send_method=d["sendMethod"],
            recipient_email=d["recipientEmail"],
            recipient_phone=d["recipientPhone"],
            recipient_name=d["recipientName"],
            email_subject=d["emailSubject"],
            email_body=d["emailBody"],
            child_name=d["childName"],
            gift_name=d["giftName"],
            event_name=d["eventName"],
        )


class DispatchRecordSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    status = serializers.CharField()
    video_path = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class DispatchEventSerializer(serializers.Serializer):
    type = serializers.CharField()
    record = DispatchRecordSerializer()


class NotifyRequestSerializer(serializers.Serializer):
    jobId = serializers.UUIDField()
    channel = serializers.ChoiceField(choices=list(CHANNELS), required=False, default=EMAIL)
    videoUrl = serializers.CharField(required=False, allow_blank=True, default="")
    recipientEmail = serializers.CharField(required=False, allow_blank=True, default="")
    recipientPhone = serializers.CharField(required=False, allow_blank=True, default="")
    recipientName = serializers.CharField(required=False, allow_blank=True, default="")
    emailSubject = serializers.CharField(required=False, allow_blank=True, default="")
    emailBody = serializers.CharField(required=False, allow_blank=True, default="")
    childName = serializers.CharField(required=False, allow_blank=True, default="")
    giftName = serializers.CharField(required=False, allow_blank=True, default="")
    eventName = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        recipients = attrs["recipientEmail"] if attrs["channel"] == EMAIL else attrs["recipientPhone"]
        if not split_list(recipients):
            field = "recipientEmail" if attrs["channel"] == EMAIL else "recipientPhone"
            raise serializers.ValidationError({field: "at least one recipient is required"})
        attrs["recipients"] = recipients
        return attrs
