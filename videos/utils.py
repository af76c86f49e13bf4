import time
from urllib.parse import unquote

from django.conf import settings
from django.utils import timezone


def clean_storage_key(path: str, bucket: str | None = None) -> str:
    """
    Normalise what capture clients send as a video reference into a bare key.
    Accepts full object URLs (".../<bucket>/<key>"), "<bucket>/<key>" and plain keys.
    """
    bucket = bucket or settings.S3_BUCKET
    key = (path or "").strip()
    if "://" in key:
        marker = f"/{bucket}/"
        if marker in key:
            key = key.split(marker, 1)[1]
        key = key.split("?", 1)[0]
    elif key.startswith(f"{bucket}/"):
        key = key[len(bucket) + 1:]
    return unquote(key).lstrip("/")


# SigV4 presigned URLs cannot outlive 7 days
MAX_SIGNED_URL_SECONDS = 7 * 24 * 3600


def signed_url_ttl(expires_at) -> int:
    remaining = int((expires_at - timezone.now()).total_seconds())
    return max(1, min(remaining, MAX_SIGNED_URL_SECONDS))


def output_key(job_id) -> str:
    """Fresh key per attempt: job id plus a millisecond timestamp, never reused."""
    return f"{settings.OUTPUT_KEY_PREFIX}/{job_id}/{time.time_ns() // 1_000_000}.mp4"


def split_list(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]
