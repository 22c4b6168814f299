"""Media pipeline exception hierarchy."""

from typing import Optional


class MediaError(Exception):
    """Base exception for all image pipeline errors."""


class InvalidNameError(MediaError):
    """Blank or whitespace-only item name."""


class ProbeUnavailableError(MediaError):
    """Durable store listing failed; callers treat this as a cache miss."""


class GenerationError(MediaError):
    """Generation endpoint returned an error, a malformed body or no URL."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CompressionError(MediaError):
    """Source image could not be downloaded, decoded or re-encoded."""


class StorageError(MediaError):
    """Durable store rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UploadError(StorageError):
    """Upload was rejected and the object is not present in the store."""


class StoragePermissionError(StorageError):
    """Store denied the request (401/403). Writes are never retried on this."""


class StoreWriteError(MediaError):
    """Writer gave up: attempt budget exhausted or aborted on a permission error."""

    def __init__(self, filename: str, attempts: int, last_error: Optional[BaseException] = None):
        self.filename = filename
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to store {filename} after {attempts} attempt(s): {last_error}"
        )
