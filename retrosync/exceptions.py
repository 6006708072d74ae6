"""Exceptions raised by retrosync."""


class RetroSyncError(Exception):
    """Base exception for all retrosync errors."""


class RetroSyncConfigError(RetroSyncError):
    """Configuration is missing or invalid."""


class RetroSyncAPIError(RetroSyncError):
    """Base exception for errors talking to the remote file service."""


class RetroSyncNetworkError(RetroSyncAPIError):
    """Remote host unreachable, connection reset or request timed out."""


class RetroSyncServerError(RetroSyncAPIError):
    """Remote answered with a 5xx status."""


class RetroSyncClientError(RetroSyncAPIError):
    """Remote rejected the request with a 4xx status."""


class RetroSyncNotFoundError(RetroSyncClientError):
    """Remote object does not exist (HTTP 404)."""


class RetroSyncInvalidResponseError(RetroSyncAPIError):
    """Remote answered with a body that could not be understood."""


class RetroSyncDownloadError(RetroSyncAPIError):
    """Download failed."""


class RetroSyncUploadError(RetroSyncAPIError):
    """Upload failed."""


class RetroSyncSizeMismatchError(RetroSyncDownloadError):
    """Downloaded byte count differs from the size reported by the listing."""

    def __init__(self, path: str, expected: int, actual: int):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Size mismatch for {path}: expected={expected} got={actual}"
        )


class RetroSyncLocalError(RetroSyncError):
    """Local filesystem operation failed."""
