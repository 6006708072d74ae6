"""Utility functions for retrosync."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

# =============================================================================
# Constants for transfers
# =============================================================================

# Suffix of a remote file moved aside before a newer copy is promoted
ARCHIVED_SUFFIX: str = ".old"

# Suffix of a file whose transfer has not completed yet
STAGING_SUFFIX: str = ".part"

# OS-generated index folders (Synology) that are never synced
METADATA_DIR_NAMES: tuple[str, ...] = ("@eaDir",)

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 3.0  # seconds

# Streaming chunk size for downloads (64 KB)
DEFAULT_CHUNK_SIZE: int = 64 * 1024


# =============================================================================
# Remote path utilities
# =============================================================================


def normalize_remote_path(path: str) -> str:
    """Normalize a remote path to its canonical form.

    Canonical paths are absolute, use single slashes and carry no trailing
    slash (except the root itself).

    Examples:
        >>> normalize_remote_path("saves/")
        '/saves'
        >>> normalize_remote_path("//saves//snes/")
        '/saves/snes'
        >>> normalize_remote_path("/")
        '/'
    """
    parts = [p for p in path.split("/") if p]
    return "/" + "/".join(parts)


def join_remote_path(directory: str, name: str) -> str:
    """Join a remote directory and a leaf name.

    Examples:
        >>> join_remote_path("/saves", "game.srm")
        '/saves/game.srm'
        >>> join_remote_path("/", "saves")
        '/saves'
    """
    directory = normalize_remote_path(directory)
    if directory == "/":
        return f"/{name}"
    return f"{directory}/{name}"


def remote_parent(path: str) -> str:
    """Return the parent directory of a remote path.

    Examples:
        >>> remote_parent("/saves/game.srm")
        '/saves'
        >>> remote_parent("/saves")
        '/'
    """
    path = normalize_remote_path(path)
    parent = path.rsplit("/", 1)[0]
    return parent or "/"


def remote_basename(path: str) -> str:
    """Return the leaf name of a remote path.

    Examples:
        >>> remote_basename("/saves/game.srm")
        'game.srm'
    """
    return normalize_remote_path(path).rsplit("/", 1)[-1]


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_http_date(value: Optional[str]) -> int:
    """Parse an RFC 7231 date header into whole epoch seconds.

    Args:
        value: Header value (e.g., "Tue, 15 Nov 1994 08:12:31 GMT")

    Returns:
        Seconds since the epoch, or 0 if the value is missing or unparseable
    """
    if not value:
        return 0

    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return 0
    if dt is None:
        return 0
    if dt.tzinfo is None:
        # "-0000" means UTC with unknown local zone
        dt = dt.replace(tzinfo=timezone.utc)
    timestamp = int(dt.timestamp())
    return timestamp if timestamp > 0 else 0


def format_timestamp(timestamp: int) -> str:
    """Format epoch seconds for log output ("-" for unknown)."""
    if timestamp <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
