"""Remote and local metadata probes."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..api import WebUploaderClient
from ..exceptions import RetroSyncAPIError, RetroSyncNotFoundError
from ..utils import join_remote_path, normalize_remote_path, remote_basename, remote_parent
from .classifier import PathClassifier
from .retry import RetryOutcome, RetryPolicy

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class RemoteEntry:
    """One row of a remote directory listing."""

    path: str
    """Absolute remote path, canonical, no trailing slash"""

    name: str
    """Leaf name"""

    kind: EntryKind

    size: Optional[int] = None
    """Size in bytes (files only)"""

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY

    @classmethod
    def from_dict(cls, data: dict[str, Any], directory: str) -> "RemoteEntry":
        """Build an entry from a listing row.

        Directories are signalled by an absent or negative ``size``. When the
        row carries no usable ``path`` it is derived from ``directory``.

        Raises:
            ValueError: If the row has no name
        """
        name = str(data.get("name") or "").strip("/")
        if not name:
            raise ValueError(f"Listing row without name: {data!r}")

        raw_path = data.get("path")
        if raw_path:
            path = normalize_remote_path(str(raw_path))
        else:
            path = join_remote_path(directory, name)

        size = data.get("size")
        try:
            size = int(size) if size is not None else -1
        except (TypeError, ValueError):
            size = -1

        if size < 0:
            return cls(path=path, name=name, kind=EntryKind.DIRECTORY)
        return cls(path=path, name=name, kind=EntryKind.FILE, size=size)


class RemoteMetadataProbe:
    """Reads directory listings and modification times from the remote."""

    def __init__(
        self,
        client: WebUploaderClient,
        classifier: PathClassifier,
        retry_policy: RetryPolicy,
    ):
        self.client = client
        self.classifier = classifier
        self.retry_policy = retry_policy

    def fetch_listing(
        self, path: str, include_archived: bool = False
    ) -> Optional[list[RemoteEntry]]:
        """List a remote directory, telling "unreadable" apart from "empty".

        Args:
            path: Remote directory
            include_archived: Keep entries carrying the archived suffix

        Returns:
            Entries sorted by name; an empty list for excluded or missing
            directories; None if the listing could not be read this time
        """
        path = normalize_remote_path(path)
        if self.classifier.is_excluded(path):
            return []

        result = self.retry_policy.run(
            lambda attempt: self.client.list_directory(path),
            description=f"Listing {path}",
        )
        if not result.ok:
            if isinstance(result.error, RetroSyncNotFoundError):
                logger.debug("Remote directory %s does not exist", path)
                return []
            return None

        entries: list[RemoteEntry] = []
        for row in result.value or []:
            if not isinstance(row, dict):
                logger.warning("Ignoring malformed listing row in %s: %r", path, row)
                continue
            try:
                entry = RemoteEntry.from_dict(row, path)
            except ValueError as e:
                logger.warning("Ignoring malformed listing row in %s: %s", path, e)
                continue
            if not include_archived and self.classifier.is_archived(entry.name):
                continue
            entries.append(entry)
        entries.sort(key=lambda e: e.name)
        return entries

    def list_directory(self, path: str) -> list[RemoteEntry]:
        """List a remote directory.

        Excluded directories return an empty list without a network call.
        Failures also yield an empty list; callers must read that as
        "unreadable right now", never as "the directory is empty".
        """
        return self.fetch_listing(path) or []

    def get_last_modified(self, path: str) -> int:
        """Return a remote file's modification time in epoch seconds.

        Returns:
            Timestamp, or 0 when it cannot be determined. 0 means "no
            freshness information", not "file does not exist".
        """
        try:
            return self.client.get_last_modified(path)
        except RetroSyncAPIError as e:
            logger.debug("No Last-Modified for %s: %s", path, e)
            return 0

    def file_exists(self, path: str, include_archived: bool = False) -> Optional[bool]:
        """Check for a file via the listing of its parent directory.

        Returns:
            True/False, or None if the parent could not be listed
        """
        listing = self.fetch_listing(remote_parent(path), include_archived=include_archived)
        if listing is None:
            return None
        name = remote_basename(path)
        return any(entry.name == name and not entry.is_dir for entry in listing)

    def directory_exists(self, path: str) -> Optional[bool]:
        """Check for a remote directory.

        Returns:
            True on 200, False on 404, None on any other outcome
        """
        result = self.retry_policy.run(
            lambda attempt: self.client.directory_exists(path),
            description=f"Checking {path}",
        )
        if result.outcome == RetryOutcome.SUCCESS:
            return bool(result.value)
        return None


class LocalMetadataProbe:
    """Reads modification times and sizes from the local filesystem.

    No retries: local errors are not transient the way network errors are.
    """

    def __init__(self, classifier: PathClassifier):
        self.classifier = classifier

    def get_last_modified(self, path: Path) -> int:
        """Return the file's mtime in whole seconds, or 0 if absent/unreadable."""
        try:
            if not path.is_file():
                return 0
            return int(path.stat().st_mtime)
        except OSError:
            return 0

    def get_size(self, path: Path) -> int:
        """Return the file's size in bytes, or -1 if absent/unreadable."""
        try:
            if not path.is_file():
                return -1
            return path.stat().st_size
        except OSError:
            return -1

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def list_files(self, directory: Path) -> list[Path]:
        """Regular files directly in ``directory`` that may be synced."""
        return [
            item
            for item in self._iterdir(directory)
            if self.classifier.is_sync_candidate(item.name) and item.is_file()
        ]

    def list_directories(self, directory: Path) -> list[Path]:
        """Subdirectories directly in ``directory``, archived names excluded."""
        return [
            item
            for item in self._iterdir(directory)
            if not self.classifier.is_archived(item.name) and item.is_dir()
        ]

    def _iterdir(self, directory: Path) -> list[Path]:
        try:
            return sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.warning("Cannot read local directory %s: %s", directory, e)
            return []
