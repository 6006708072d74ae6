"""RetroSync - keep a local tree in sync with a GCDWebUploader file service."""

from .api import WebUploaderClient
from .availability import AvailabilityProbe
from .config import Config
from .exceptions import (
    RetroSyncAPIError,
    RetroSyncClientError,
    RetroSyncConfigError,
    RetroSyncDownloadError,
    RetroSyncError,
    RetroSyncInvalidResponseError,
    RetroSyncLocalError,
    RetroSyncNetworkError,
    RetroSyncNotFoundError,
    RetroSyncServerError,
    RetroSyncSizeMismatchError,
    RetroSyncUploadError,
)

__version__ = "0.1.0"

__all__ = [
    "AvailabilityProbe",
    "Config",
    "WebUploaderClient",
    "RetroSyncAPIError",
    "RetroSyncClientError",
    "RetroSyncConfigError",
    "RetroSyncDownloadError",
    "RetroSyncError",
    "RetroSyncInvalidResponseError",
    "RetroSyncLocalError",
    "RetroSyncNetworkError",
    "RetroSyncNotFoundError",
    "RetroSyncServerError",
    "RetroSyncSizeMismatchError",
    "RetroSyncUploadError",
]
