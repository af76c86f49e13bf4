from datetime import timedelta

import pytest
import requests

from tests.conftest import PUBLIC_BASE_URL
from videos import notify
from videos.errors import DeliveryError

pytestmark = pytest.mark.django_db


class _GatewayResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_placeholders_are_case_insensitive_and_unknown_ones_stay():
    text = notify.render_template(
        "Hi [Name], watch [VIDEO_URL] from [child_name] for [unknown]",
        {"name": "Nana", "video_link": "https://v", "child_name": "Mia"},
    )

    assert text == "Hi Nana, watch https://v from Mia for [unknown]"


def test_substitution_is_single_pass():
    text = notify.render_template("[name]", {"name": "[child_name]", "child_name": "Mia"})

    assert text == "[child_name]"


def test_email_pairs_names_by_position(completed_job, mailoutbox):
    job = completed_job(child_name="Mia", event_name="Mia's 7th Birthday")

    report = notify.notify(job.id, "email", "nana@example.com, pop@example.com", names="Nana, Pop")

    assert report.outcome == notify.ALL_SENT
    assert [m.to for m in mailoutbox] == [["Nana <nana@example.com>"], ["Pop <pop@example.com>"]]
    first = mailoutbox[0]
    assert first.subject == "A special thank you from Mia!"
    assert "Hi Nana," in first.body
    assert f"{PUBLIC_BASE_URL}/track-video-view/{job.tracking_token}" in first.body
    html, mime = first.alternatives[0]
    assert mime == "text/html"
    assert "Mia&#x27;s 7th Birthday" in html


def test_missing_names_fall_back_to_first_then_friend(completed_job, mailoutbox):
    job = completed_job()

    notify.notify(job.id, "email", "a@example.com,b@example.com", names="Gran")
    notify.notify(job.id, "email", "c@example.com")

    assert "Hi Gran," in mailoutbox[1].body
    assert "Hi Friend," in mailoutbox[2].body


def test_custom_body_is_escaped_in_html(completed_job, mailoutbox):
    job = completed_job()

    notify.notify(job.id, "email", "a@example.com", template="Thanks [name] <b>so</b> much\n[video_link]", names="Gran")

    html = mailoutbox[0].alternatives[0][0]
    assert "&lt;b&gt;so&lt;/b&gt;" in html
    assert "<br>" in html


def test_partial_failure_is_reported_per_recipient(completed_job):
    job = completed_job()

    class FlakySender:
        def send(self, *, to, **kwargs):
            if to.startswith("bad"):
                raise DeliveryError("mailbox unavailable")
            return "sent"

    report = notify.notify(job.id, "email", "good@example.com,bad@example.com", sender=FlakySender())

    assert report.outcome == notify.PARTIAL
    data = report.as_dict()
    assert data["success"] is False
    assert data["results"][1] == {
        "email": "bad@example.com", "success": False, "status": "failed", "error": "mailbox unavailable",
    }


def test_sms_statuses(completed_job, monkeypatch):
    job = completed_job(gift_name="Lego set")
    statuses = iter(["sent", "unknown", "cancelled"])
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append(json)
        return _GatewayResponse({"status": next(statuses)})

    monkeypatch.setattr(notify.requests, "post", fake_post)

    report = notify.notify(job.id, "sms", "+15550101,+15550102,+15550103")

    assert [(r.success, r.status) for r in report.results] == [(True, "sent"), (True, "pending"), (False, "failed")]
    assert report.outcome == notify.PARTIAL
    assert "Thank you for: Lego set" in sent[0]["body"]
    assert "expires in 24 hours" in sent[0]["body"]


def test_sms_http_error_is_a_failure(completed_job, monkeypatch):
    job = completed_job()
    monkeypatch.setattr(notify.requests, "post", lambda *a, **kw: _GatewayResponse({}, status_code=503))

    report = notify.notify(job.id, "sms", "+15550101")

    assert report.outcome == notify.ALL_FAILED


def test_signed_link_mode(completed_job, store, settings, mailoutbox):
    settings.VIDEO_PIPELINE = {**settings.VIDEO_PIPELINE, "LINK_MODE": "signed"}
    job = completed_job(expires_in=timedelta(hours=2))

    notify.notify(job.id, "email", "a@example.com")

    key, ttl = store.signed[-1]
    assert key == job.output_video_path
    assert 0 < ttl <= 2 * 3600
    assert key in mailoutbox[0].body


def test_job_without_output_is_a_hard_failure(make_job):
    job = make_job()

    with pytest.raises(DeliveryError):
        notify.notify(job.id, "email", "a@example.com")


def test_notify_endpoint_status_codes(client, completed_job, auth_headers, mailoutbox):
    job = completed_job()
    body = {"jobId": str(job.id), "recipientEmail": "a@example.com,b@example.com", "recipientName": "A,B"}

    resp = client.post("/api/notify/", body, content_type="application/json", **auth_headers)

    assert resp.status_code == 200
    assert resp.json()["message"] == "Sent to 2 recipient(s)"
    assert len(mailoutbox) == 2

    missing = client.post(
        "/api/notify/", {**body, "jobId": "00000000-0000-0000-0000-000000000000"},
        content_type="application/json", **auth_headers,
    )
    assert missing.status_code == 404

    unauthorized = client.post("/api/notify/", body, content_type="application/json")
    assert unauthorized.status_code == 401


def test_notify_endpoint_partial_is_207(client, completed_job, auth_headers, monkeypatch):
    job = completed_job()
    real_send = notify.EmailSender.send

    def send(self, *, to, **kwargs):
        if to == "bad@example.com":
            raise DeliveryError("rejected")
        return real_send(self, to=to, **kwargs)

    monkeypatch.setattr(notify.EmailSender, "send", send)
    body = {"jobId": str(job.id), "recipientEmail": "ok@example.com,bad@example.com"}

    resp = client.post("/api/notify/", body, content_type="application/json", **auth_headers)

    assert resp.status_code == 207
    assert resp.json()["outcome"] == "partial"


def test_header_injection_is_a_per_recipient_failure(completed_job, mailoutbox):
    job = completed_job()

    report = notify.notify(
        job.id, "email", "a@example.com,b@example.com",
        subject="Thanks\nBcc: everyone@example.com",
    )

    assert report.outcome == notify.ALL_FAILED
    assert [r.status for r in report.results] == ["failed", "failed"]
    assert mailoutbox == []
