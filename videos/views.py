import hmac
import logging

from django.conf import settings
from django.http import HttpResponse, HttpResponseRedirect
from django.shortcuts import get_object_or_404
from django.views.decorators.cache import never_cache
from rest_framework import authentication, exceptions, permissions, status, views
from rest_framework.response import Response

from . import storage
from .dispatch import dispatch_job, handle_event
from .errors import DeliveryError, DispatchError, StorageError, TransientError
from .models import VideoJob
from .notify import notify, tracking_url
from .serializers import (
    DispatchEventSerializer,
    NotifyRequestSerializer,
    SubmitJobSerializer,
    VideoJobSerializer,
)
from .sweeper import sweep
from .utils import signed_url_ttl

logger = logging.getLogger(__name__)


def _invalid(ser) -> Response:
    return Response({"error": "Missing or invalid fields", "details": ser.errors}, status=400)


class WebhookSecretAuthentication(authentication.BaseAuthentication):
    """Machine-to-machine calls carry `Authorization: Bearer <PIPELINE_WEBHOOK_SECRET>`."""

    keyword = "Bearer"

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed("Invalid authorization header")
        secret = settings.VIDEO_PIPELINE["WEBHOOK_SECRET"].encode()
        if not hmac.compare_digest(header[1], secret):
            raise exceptions.AuthenticationFailed("Invalid token")
        return (None, "webhook")

    def authenticate_header(self, request):
        return self.keyword


class HasWebhookSecret(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.auth == "webhook"


class WebhookView(views.APIView):
    authentication_classes = [WebhookSecretAuthentication]
    permission_classes = [HasWebhookSecret]


class SubmitJobView(views.APIView):
    """
    Capture flow hands over a recorded clip and its edits.
    The job is created pending; compositing is dispatched once the row commits.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = SubmitJobSerializer(data=request.data)
        if not ser.is_valid():
            return _invalid(ser)

        source = ser.validated_data["sourceVideoPath"]
        try:
            found = storage.get_store().exists(source)
        except (StorageError, TransientError) as e:
            logger.error("could not verify source %s: %s", source, e)
            return Response({"error": "Storage error", "details": str(e)}, status=500)
        if not found:
            return Response(
                {"error": "Missing or invalid fields", "details": {"sourceVideoPath": ["recording not found"]}},
                status=400,
            )

        job = ser.save()
        logger.info("job %s submitted for gift %s", job.id, job.gift_id)
        return Response(
            {
                "success": True,
                "jobId": str(job.id),
                "status": job.status,
                "videoUrl": tracking_url(job),
                "videoPath": None,
                "expiresAt": None,
                "expiresInHours": job.expires_in_hours,
                "trackingToken": job.tracking_token,
            },
            status=status.HTTP_202_ACCEPTED,
        )


class JobDetailView(views.APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        job = get_object_or_404(VideoJob, pk=job_id)
        data = VideoJobSerializer(job).data
        data["trackingUrl"] = tracking_url(job)
        data["videoUrl"] = None
        if job.has_live_output:
            try:
                data["videoUrl"] = storage.get_store().presigned_get(
                    job.output_video_path, expires=signed_url_ttl(job.video_expires_at)
                )
            except (StorageError, TransientError) as e:
                logger.warning("could not sign output for job %s: %s", job.id, e)
        return Response(data)


class ResetJobView(WebhookView):
    """Operator resubmission of a failed or stuck job."""

    def post(self, request, job_id):
        job = get_object_or_404(VideoJob, pk=job_id)
        if not VideoJob.objects.reset(job.id):
            return Response(
                {"error": "Job cannot be reset", "details": f"status is {job.status}"},
                status=status.HTTP_409_CONFLICT,
            )
        job.refresh_from_db()
        logger.info("job %s reset to pending", job.id)
        try:
            task_id = dispatch_job(job)
        except DispatchError as e:
            return Response({"error": "Dispatch failed", "details": str(e)}, status=502)
        return Response({"success": True, "jobId": str(job.id), "status": job.status, "taskId": task_id})


class DispatchWebhookView(WebhookView):
    """Change notification from the database: enqueue compositing for new pending rows."""

    def post(self, request):
        ser = DispatchEventSerializer(data=request.data)
        if not ser.is_valid():
            return _invalid(ser)
        payload = {
            "type": ser.validated_data["type"],
            "record": {
                "id": str(ser.validated_data["record"]["id"]),
                "status": ser.validated_data["record"]["status"],
            },
        }
        try:
            task_id = handle_event(payload)
        except DispatchError as e:
            logger.error("%s", e)
            return Response({"error": "Dispatch failed", "details": str(e)}, status=502)
        if task_id is None:
            return Response({"message": "Ignored"})
        return Response({"success": True, "taskId": task_id})


class NotifyView(WebhookView):
    def post(self, request):
        ser = NotifyRequestSerializer(data=request.data)
        if not ser.is_valid():
            return _invalid(ser)
        d = ser.validated_data
        if not VideoJob.objects.filter(pk=d["jobId"]).exists():
            return Response({"error": "Job not found", "details": str(d["jobId"])}, status=404)

        try:
            report = notify(
                d["jobId"],
                d["channel"],
                d["recipients"],
                template=d["emailBody"] or None,
                subject=d["emailSubject"] or None,
                names=d["recipientName"],
                video_url=d["videoUrl"] or None,
                child_name=d["childName"] or None,
                gift_name=d["giftName"] or None,
                event_name=d["eventName"] or None,
            )
        except DeliveryError as e:
            logger.error("delivery for job %s failed: %s", d["jobId"], e)
            return Response({"error": "Delivery failed", "details": str(e)}, status=500)

        code = status.HTTP_200_OK if report.success else status.HTTP_207_MULTI_STATUS
        return Response(report.as_dict(), status=code)


class SweepView(WebhookView):
    def post(self, request):
        try:
            result = sweep()
        except Exception as e:
            logger.exception("sweep could not run")
            return Response({"success": False, "error": "Sweep failed", "details": str(e)}, status=500)
        return Response(result.as_dict())


@never_cache
def track_video_view(request, token=None):
    """
    Recipient-facing link. Responses never mention storage keys; the only
    place a key appears is inside the final signed redirect target.
    """
    if not token:
        return HttpResponse("Missing tracking token", status=400, content_type="text/plain")
    try:
        job = VideoJob.objects.filter(tracking_token=token).first()
        if job is None:
            return HttpResponse("Video not found", status=404, content_type="text/plain")
        if not job.has_live_output or not VideoJob.objects.record_view(token):
            return HttpResponse("Video not available", status=404, content_type="text/plain")
        url = storage.get_store().presigned_get(
            job.output_video_path, expires=signed_url_ttl(job.video_expires_at)
        )
    except Exception:
        logger.exception("tracking link %s could not be resolved", token[:8])
        return HttpResponse("Internal error", status=500, content_type="text/plain")
    return HttpResponseRedirect(url)
