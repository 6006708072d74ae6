"""Atomic single-file transfers with crash-safe staging names."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..api import WebUploaderClient
from ..exceptions import (
    RetroSyncAPIError,
    RetroSyncSizeMismatchError,
    RetroSyncUploadError,
)
from ..utils import join_remote_path, normalize_remote_path, remote_parent
from .retry import RetryPolicy
from .scanner import RemoteMetadataProbe
from .versioning import RemoteVersioningCoordinator

logger = logging.getLogger(__name__)


class TransferDirection(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferState(str, Enum):
    """Lifecycle of one transfer: PENDING -> IN_FLIGHT -> STAGED -> COMMITTED."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    STAGED = "staged"
    """All bytes moved (and size-verified for downloads), not yet visible"""

    COMMITTED = "committed"
    """Renamed into its final name"""

    FAILED = "failed"


class TransferStatus(str, Enum):
    """What a transfer call amounted to."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    """Not attempted, or abandoned for this pass"""

    FAILED = "failed"


@dataclass
class TransferTask:
    """One file crossing the local/remote boundary."""

    direction: TransferDirection
    source_path: str
    destination_path: str
    expected_size: Optional[int] = None
    state: TransferState = TransferState.PENDING
    attempts: int = 0


@dataclass
class TransferResult:
    task: TransferTask
    status: TransferStatus
    reason: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == TransferStatus.SUCCESS


class AtomicTransferEngine:
    """Moves one file's bytes across the boundary, never leaving it half-done.

    Downloads land in ``<local>.part`` and are renamed over the destination
    only after the byte count has been checked. Uploads land in
    ``<name>.part`` remotely and are promoted by the versioning coordinator.
    """

    def __init__(
        self,
        client: WebUploaderClient,
        remote_probe: RemoteMetadataProbe,
        versioning: RemoteVersioningCoordinator,
        retry_policy: RetryPolicy,
    ):
        self.client = client
        self.remote_probe = remote_probe
        self.versioning = versioning
        self.retry_policy = retry_policy
        self.classifier = remote_probe.classifier

    @property
    def staging_suffix(self) -> str:
        return self.classifier.rules.staging_suffix

    # =========================
    # Download
    # =========================

    def download(
        self,
        remote_path: str,
        local_path: Path,
        expected_size: Optional[int] = None,
    ) -> TransferResult:
        """Download a remote file atomically.

        Args:
            remote_path: Absolute remote file path
            local_path: Final local destination
            expected_size: Byte count to verify the staged file against

        Returns:
            TransferResult; on failure no staging file remains and the
            destination is untouched
        """
        remote_path = normalize_remote_path(remote_path)
        local_path = Path(local_path)
        task = TransferTask(
            direction=TransferDirection.DOWNLOAD,
            source_path=remote_path,
            destination_path=str(local_path),
            expected_size=expected_size,
        )

        if self.classifier.is_archived(remote_path) or self.classifier.is_archived(
            local_path.name
        ):
            logger.info("[Skip archived] %s", remote_path)
            return TransferResult(task, TransferStatus.SKIPPED, "archived file")

        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create %s: %s", local_path.parent, e)
            task.state = TransferState.FAILED
            return TransferResult(task, TransferStatus.SKIPPED, "local error", e)

        staging_path = local_path.with_name(local_path.name + self.staging_suffix)

        def attempt_download(attempt: int) -> int:
            task.attempts = attempt
            task.state = TransferState.IN_FLIGHT
            logger.info("Downloading: %s -> %s", remote_path, staging_path)
            try:
                size = self.client.download_file(remote_path, staging_path)
                if expected_size is not None and size != expected_size:
                    raise RetroSyncSizeMismatchError(remote_path, expected_size, size)
            except Exception:
                _remove_quietly(staging_path)
                raise
            return size

        result = self.retry_policy.run(
            attempt_download, description=f"Download of {remote_path}"
        )
        if not result.ok:
            _remove_quietly(staging_path)
            task.state = TransferState.FAILED
            logger.warning(
                "Skipping %s after %d attempt(s): %s",
                remote_path,
                result.attempts,
                result.error,
            )
            return TransferResult(
                task, TransferStatus.SKIPPED, result.outcome.value, result.error
            )

        task.state = TransferState.STAGED
        try:
            os.replace(staging_path, local_path)
        except OSError as e:
            _remove_quietly(staging_path)
            task.state = TransferState.FAILED
            logger.warning("Cannot move %s into place: %s", staging_path, e)
            return TransferResult(task, TransferStatus.SKIPPED, "local error", e)
        task.state = TransferState.COMMITTED
        self._align_mtime(local_path, remote_path)
        return TransferResult(task, TransferStatus.SUCCESS)

    # =========================
    # Upload
    # =========================

    def upload(self, local_path: Path, remote_directory: str) -> TransferResult:
        """Upload a local file into a remote directory atomically.

        Args:
            local_path: Local file to send
            remote_directory: Absolute remote directory

        Returns:
            TransferResult; FAILED when the budget is exhausted or the commit
            could not promote the staged file
        """
        local_path = Path(local_path)
        remote_directory = normalize_remote_path(remote_directory)
        final_path = join_remote_path(remote_directory, local_path.name)
        staged_name = local_path.name + self.staging_suffix
        staged_path = join_remote_path(remote_directory, staged_name)
        task = TransferTask(
            direction=TransferDirection.UPLOAD,
            source_path=str(local_path),
            destination_path=final_path,
        )

        if self.classifier.is_archived(local_path.name):
            logger.info("[Skip archived] %s", local_path)
            return TransferResult(task, TransferStatus.SKIPPED, "archived file")

        if not self.ensure_remote_directory(remote_directory):
            logger.error(
                "Could not create remote directory %s. Skipping upload.",
                remote_directory,
            )
            task.state = TransferState.FAILED
            return TransferResult(task, TransferStatus.FAILED, "remote directory")

        if self.remote_probe.file_exists(staged_path):
            logger.debug("Removing stale staging file %s", staged_path)
            self._delete_remote_quietly(staged_path)

        signature = _file_signature(local_path)

        def attempt_upload(attempt: int) -> None:
            task.attempts = attempt
            task.state = TransferState.IN_FLIGHT
            logger.info("Uploading: %s => %s", local_path, staged_path)
            self.client.upload_file(local_path, remote_directory, staged_name)

        result = self.retry_policy.run(
            attempt_upload, description=f"Upload of {local_path}"
        )
        if not result.ok:
            task.state = TransferState.FAILED
            if self.remote_probe.file_exists(staged_path):
                self._delete_remote_quietly(staged_path)
            logger.error(
                "Upload finally failed for %s => %s after %d attempt(s)",
                local_path,
                remote_directory,
                result.attempts,
            )
            return TransferResult(
                task, TransferStatus.FAILED, result.outcome.value, result.error
            )

        task.state = TransferState.STAGED
        if not self.versioning.commit_upload(staged_path, final_path):
            task.state = TransferState.FAILED
            if self.remote_probe.file_exists(staged_path):
                self._delete_remote_quietly(staged_path)
            return TransferResult(
                task,
                TransferStatus.FAILED,
                "commit",
                RetroSyncUploadError(f"Could not promote {staged_path}"),
            )
        task.state = TransferState.COMMITTED

        if _file_signature(local_path) == signature:
            # Remote Last-Modified is the upload time, not the local mtime
            self._align_mtime(local_path, final_path)
        else:
            logger.warning(
                "%s changed during upload, it will be uploaded again", local_path
            )
            self._keep_newer_than_remote(local_path, final_path)
        return TransferResult(task, TransferStatus.SUCCESS)

    def _align_mtime(self, local_path: Path, remote_path: str) -> None:
        """Best effort: set the local mtime to the remote Last-Modified."""
        remote_mtime = self.remote_probe.get_last_modified(remote_path)
        if remote_mtime <= 0:
            return
        _set_mtime(local_path, remote_mtime)

    def _keep_newer_than_remote(self, local_path: Path, remote_path: str) -> None:
        """Make sure an edited local file still wins the next comparison."""
        remote_mtime = self.remote_probe.get_last_modified(remote_path)
        try:
            local_mtime = int(local_path.stat().st_mtime)
        except OSError:
            return
        if local_mtime <= remote_mtime:
            _set_mtime(local_path, remote_mtime + 1)

    def ensure_remote_directory(self, path: str) -> bool:
        """Create a remote directory (and missing parents) unless it exists.

        Returns:
            True if the directory exists afterwards
        """
        path = normalize_remote_path(path)
        exists = self.remote_probe.directory_exists(path)
        if exists:
            logger.debug("Remote directory already exists: %s", path)
            return True
        if exists is None:
            logger.error("Unexpected response checking remote directory %s", path)
            return False

        parent = remote_parent(path)
        if parent != path and not self.ensure_remote_directory(parent):
            return False

        logger.info("Remote directory does not exist, creating: %s", path)
        result = self.retry_policy.run(
            lambda attempt: self.client.create_directory(path),
            description=f"Creating {path}",
        )
        if result.ok:
            return True
        # Created by a previous attempt whose response got lost
        return bool(self.remote_probe.directory_exists(path))

    def _delete_remote_quietly(self, path: str) -> None:
        try:
            self.client.delete(path)
        except RetroSyncAPIError as e:
            logger.warning("Could not remove %s: %s", path, e)


def _file_signature(path: Path) -> Optional[tuple[int, int]]:
    """(mtime_ns, size) of a local file, or None if it cannot be read."""
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def _set_mtime(path: Path, mtime: int) -> None:
    try:
        os.utime(path, (mtime, mtime))
    except OSError as e:
        logger.warning("Cannot set mtime of %s: %s", path, e)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Cannot remove staging file %s: %s", path, e)
