import logging
from functools import lru_cache
from pathlib import Path

import boto3
from boto3.exceptions import RetriesExceededError, S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)
from django.conf import settings

from .errors import ArtifactNotFound, StorageError, TransientError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_THROTTLE_CODES = {"SlowDown", "RequestTimeout", "ServiceUnavailable", "InternalError", "503", "500"}


def _client(endpoint_url: str):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            retries={"max_attempts": 2, "mode": "standard"},
        ),
    )


def _translate(exc: Exception, key: str) -> Exception:
    """Map botocore failures onto the pipeline's error taxonomy."""
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in _NOT_FOUND_CODES:
            return ArtifactNotFound(key)
        if code in _THROTTLE_CODES:
            return TransientError(f"storage unavailable for {key}: {code}")
        return StorageError(f"storage error for {key}: {code or exc}")
    if isinstance(exc, S3UploadFailedError):
        # upload_file re-raises the ClientError without keeping it as the cause
        wrapped = exc.__cause__ or exc.__context__
        if isinstance(wrapped, ClientError):
            return _translate(wrapped, key)
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        # connect/read timeouts and dropped connections
        return TransientError(f"storage connection failed for {key}: {exc}")
    if isinstance(exc, RetriesExceededError):
        # download_file gave up re-reading a stream that kept timing out
        return TransientError(f"storage read kept failing for {key}: {exc.last_exception}")
    return StorageError(f"storage error for {key}: {exc}")


class ArtifactStore:
    """
    Path-addressed blob store backed by S3/MinIO.

    Blobs are written once under fresh keys and optionally deleted; nothing
    overwrites a key that a signed URL may already point at.
    """

    def __init__(self, bucket: str | None = None):
        self.bucket = bucket or settings.S3_BUCKET
        # server-side client for upload/download
        self.client = _client(settings.S3_ENDPOINT_URL)
        # separate client so presigned URL hosts match what recipients can reach
        self.presign_client = _client(settings.S3_PUBLIC_ENDPOINT)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            err = _translate(exc, key)
            if isinstance(err, ArtifactNotFound):
                return False
            raise err from exc
        return True

    def download(self, key: str, local_path) -> Path:
        try:
            self.client.download_file(self.bucket, key, str(local_path))
        except (ClientError, BotoCoreError, RetriesExceededError) as exc:
            raise _translate(exc, key) from exc
        return Path(local_path)

    def upload(self, local_path, key: str, content_type: str | None = None) -> str:
        """
        Upload a single file with an optional Content-Type.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
            raise _translate(exc, key) from exc
        return key

    def delete(self, key: str) -> None:
        """Hard-delete a blob. A missing blob counts as deleted."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            err = _translate(exc, key)
            if isinstance(err, ArtifactNotFound):
                logger.info("delete of missing object treated as success: %s", key)
                return
            raise err from exc

    def presigned_get(self, key: str, expires: int | None = None) -> str:
        """
        Create a presigned GET URL to download an object.
        """
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc


@lru_cache(maxsize=1)
def get_store() -> ArtifactStore:
    return ArtifactStore()
