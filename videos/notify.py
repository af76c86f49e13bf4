"""
Delivery notifier: one personalised message per recipient, one shared link.

E-mail goes through Django's mail framework (plain text plus an HTML
alternative); SMS goes to an HTTP gateway. Failures are reported per
recipient and never touch the job's status.
"""

import logging
import re
import smtplib
from dataclasses import dataclass, field
from email.utils import formataddr

import requests
from django.conf import settings
from django.core.mail import BadHeaderError, EmailMultiAlternatives
from django.template.loader import render_to_string

from . import storage
from .errors import DeliveryError, StorageError, TransientError
from .models import VideoJob
from .utils import signed_url_ttl, split_list

logger = logging.getLogger(__name__)

EMAIL, SMS = "email", "sms"
CHANNELS = (EMAIL, SMS)

ALL_SENT, PARTIAL, ALL_FAILED = "all_sent", "partial", "all_failed"

DEFAULT_NAME = "Friend"
DEFAULT_CHILD_NAME = "Your friend"
DEFAULT_GIFT_NAME = "gift"
DEFAULT_SUBJECT = "A special thank you from [child_name]!"

# gateway statuses that definitively mean "not sent"; anything else counts as sent
FAILED_SMS_STATUSES = {"cancelled", "canceled", "failed"}

_PLACEHOLDER = re.compile(r"\[(name|child_name|gift_name|video_link|video_url|event_name)\]", re.IGNORECASE)


def render_template(template: str, values: dict) -> str:
    """Substitute known [placeholders] in one pass; unknown ones stay verbatim."""
    def _sub(match):
        key = match.group(1).lower()
        if key == "video_url":
            key = "video_link"
        value = values.get(key)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, template or "")


def default_email_body(event_name: str | None) -> str:
    event_line = f"This video was created for {event_name}.\n\n" if event_name else ""
    return (
        "Hi [name],\n\n"
        "[child_name] has a special thank you message for you!\n\n"
        "Click below to watch your personalized video:\n"
        "[video_link]\n\n"
        f"{event_line}"
        "Thank you for being so thoughtful!\n\n"
        "With gratitude,\n"
        f"[child_name] (via {settings.NOTIFY_FROM_NAME})"
    )


def default_sms_body(expires_in_hours: int) -> str:
    return (
        "You've received a thank you video!\n\n"
        "Someone special has recorded a video message just for you.\n\n"
        "Thank you for: [gift_name]\n\n"
        "Watch the video: [video_link]\n\n"
        f"This link expires in {expires_in_hours} hours.\n\n"
        f"#REELYTHANKFUL - Sent via {settings.NOTIFY_FROM_NAME}"
    )


@dataclass
class RecipientResult:
    recipient: str
    success: bool
    status: str = "sent"
    error: str | None = None

    def as_dict(self, channel: str) -> dict:
        data = {"email" if channel == EMAIL else "phone": self.recipient, "success": self.success, "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class DeliveryReport:
    job_id: str
    channel: str
    results: list = field(default_factory=list)

    @property
    def outcome(self) -> str:
        sent = sum(1 for r in self.results if r.success)
        if self.results and sent == len(self.results):
            return ALL_SENT
        return PARTIAL if sent else ALL_FAILED

    @property
    def success(self) -> bool:
        return self.outcome == ALL_SENT

    @property
    def message(self) -> str:
        if self.outcome == ALL_SENT:
            return f"Sent to {len(self.results)} recipient(s)"
        if self.outcome == PARTIAL:
            return "Some messages failed to send"
        return "All messages failed to send"

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "outcome": self.outcome,
            "results": [r.as_dict(self.channel) for r in self.results],
            "message": self.message,
        }


class EmailSender:
    def send(self, *, to: str, name: str, subject: str, text: str, html: str) -> str:
        msg = EmailMultiAlternatives(
            subject=subject,
            body=text,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[formataddr((name, to))],
        )
        msg.attach_alternative(html, "text/html")
        try:
            msg.send(fail_silently=False)
        except (BadHeaderError, smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(str(exc))
        return "sent"


class SmsSender:
    def __init__(self):
        if not settings.SMS_GATEWAY_URL:
            raise DeliveryError("SMS gateway is not configured")
        self.url = settings.SMS_GATEWAY_URL
        self.headers = {"Authorization": f"Bearer {settings.SMS_GATEWAY_TOKEN}"}

    def send(self, *, to: str, text: str) -> str:
        try:
            resp = requests.post(
                self.url,
                json={"to": to, "from": settings.SMS_SENDER_ID, "body": text},
                headers=self.headers,
                timeout=settings.SMS_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryError(str(exc))
        try:
            status = str(resp.json().get("status") or "unknown").lower()
        except ValueError:
            status = "unknown"
        if status in FAILED_SMS_STATUSES:
            raise DeliveryError(f"message {status}")
        # the gateway cannot always confirm delivery; unknown is reported as pending
        return "sent" if status == "sent" else "pending"


def tracking_url(job: VideoJob) -> str:
    base = settings.VIDEO_PIPELINE["PUBLIC_BASE_URL"].rstrip("/")
    return f"{base}/track-video-view/{job.tracking_token}"


def resolve_link(job: VideoJob, *, store=None) -> str:
    """Direct signed URL or the stable tracking link, per VIDEO_PIPELINE["LINK_MODE"]."""
    if not job.has_live_output:
        raise DeliveryError(f"job {job.id} has no deliverable video")
    conf = settings.VIDEO_PIPELINE
    if conf["LINK_MODE"] == "signed":
        store = store or storage.get_store()
        try:
            return store.presigned_get(job.output_video_path, expires=signed_url_ttl(job.video_expires_at))
        except (StorageError, TransientError) as exc:
            raise DeliveryError(f"could not sign video link: {exc}")
    return tracking_url(job)


def notify(
    job_id,
    channel: str,
    recipients,
    *,
    template: str | None = None,
    subject: str | None = None,
    names=None,
    video_url: str | None = None,
    child_name: str | None = None,
    gift_name: str | None = None,
    event_name: str | None = None,
    sender=None,
    store=None,
) -> DeliveryReport:
    """Send the video link to every recipient; per-recipient results, never raises for one recipient."""
    if channel not in CHANNELS:
        raise DeliveryError(f"unsupported channel {channel!r}")
    try:
        job = VideoJob.objects.get(pk=job_id)
    except VideoJob.DoesNotExist:
        raise DeliveryError(f"job {job_id} not found")

    addresses = split_list(recipients) if isinstance(recipients, str) else [r.strip() for r in recipients if r.strip()]
    if not addresses:
        raise DeliveryError("no recipients given")
    name_list = split_list(names) if isinstance(names, str) else list(names or [])

    link = video_url or resolve_link(job, store=store)
    child_name = child_name or job.child_name or DEFAULT_CHILD_NAME
    gift_name = gift_name or job.gift_name or DEFAULT_GIFT_NAME
    event_name = event_name or job.event_name or None

    if sender is None:
        sender = EmailSender() if channel == EMAIL else SmsSender()
    if channel == EMAIL:
        body_template = template or default_email_body(event_name)
    else:
        body_template = template or default_sms_body(job.expires_in_hours)
    subject_template = subject or DEFAULT_SUBJECT

    report = DeliveryReport(job_id=str(job.id), channel=channel)
    for i, address in enumerate(addresses):
        name = (name_list[i] if i < len(name_list) and name_list[i] else None) or (name_list[0] if name_list else None) or DEFAULT_NAME
        values = {
            "name": name,
            "child_name": child_name,
            "gift_name": gift_name,
            "video_link": link,
            "event_name": event_name,
        }
        text = render_template(body_template, values)
        try:
            if channel == EMAIL:
                html = render_to_string("videos/email/thank_you.html", {
                    "subject": render_template(subject_template, values),
                    "name": name,
                    "message": text if template else None,
                    "child_name": child_name,
                    "video_url": link,
                    "event_name": event_name,
                    "from_name": settings.NOTIFY_FROM_NAME,
                })
                status = sender.send(
                    to=address,
                    name=name,
                    subject=render_template(subject_template, values),
                    text=text,
                    html=html,
                )
            else:
                status = sender.send(to=address, text=text)
        except DeliveryError as exc:
            logger.warning("job %s: %s delivery to %s failed: %s", job.id, channel, address, exc)
            report.results.append(RecipientResult(recipient=address, success=False, status="failed", error=str(exc)))
            continue
        logger.info("job %s: %s delivered to %s (%s)", job.id, channel, address, status)
        report.results.append(RecipientResult(recipient=address, success=True, status=status))

    logger.info("job %s: delivery %s (%d recipient(s))", job.id, report.outcome, len(report.results))
    return report


def deliver_for_job(job: VideoJob) -> DeliveryReport | None:
    """Auto-send after compositing, using the recipient context stored on the job."""
    if job.send_method not in CHANNELS:
        return None
    recipients = job.recipient_email if job.send_method == EMAIL else job.recipient_phone
    if not split_list(recipients):
        logger.info("job %s has send method %s but no recipients", job.id, job.send_method)
        return None
    return notify(
        job.id,
        job.send_method,
        recipients,
        template=job.email_body or None,
        subject=job.email_subject or None,
        names=job.recipient_name,
    )
