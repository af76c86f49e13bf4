"""Exception taxonomy for the video pipeline.

Lower layers translate library errors (botocore, requests, subprocess) into
these classes at the point where they are raised, so callers only need to
decide between "retry", "fail the job" and "report to the client".
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class EditSpecError(PipelineError):
    """The declarative edit list is missing fields or malformed."""


class TransientError(PipelineError):
    """A retryable infrastructure failure (network, storage, encode timeout)."""


class RenderError(PipelineError):
    """A terminal compositing failure: corrupt source, ffmpeg produced nothing."""


class StorageError(PipelineError):
    """The artifact store rejected or failed an operation."""


class ArtifactNotFound(StorageError):
    """The requested blob does not exist."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class DispatchError(PipelineError):
    """The execution substrate refused to enqueue a compositing run."""


class DeliveryError(PipelineError):
    """A notification could not be sent."""
