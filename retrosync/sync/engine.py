"""Core sync engine: directory walks and the long-running service loop."""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from ..api import WebUploaderClient
from ..availability import AvailabilityProbe
from ..config import Config
from ..output import OutputFormatter
from ..utils import format_timestamp, join_remote_path, normalize_remote_path
from .classifier import PathClassifier
from .operations import AtomicTransferEngine, TransferResult
from .retry import RetryPolicy
from .scanner import LocalMetadataProbe, RemoteEntry, RemoteMetadataProbe
from .versioning import RemoteVersioningCoordinator

logger = logging.getLogger(__name__)

# (remote directory, local directory) pairs still to be walked
Worklist = list[tuple[str, Path]]


def create_empty_stats() -> dict[str, int]:
    """Create an empty statistics dictionary.

    Returns:
        Dictionary with zero counts for all stat categories
    """
    return {
        "uploads": 0,
        "downloads": 0,
        "skips": 0,
        "failures": 0,
        "unreadable": 0,
    }


def merge_stats(total: dict[str, int], stats: dict[str, int]) -> dict[str, int]:
    for key, value in stats.items():
        total[key] = total.get(key, 0) + value
    return total


class _Walker(ABC):
    """Shared plumbing of the two orchestrators."""

    def __init__(
        self,
        classifier: PathClassifier,
        remote_probe: RemoteMetadataProbe,
        local_probe: LocalMetadataProbe,
        transfers: AtomicTransferEngine,
        output: Optional[OutputFormatter] = None,
        dry_run: bool = False,
    ):
        self.classifier = classifier
        self.remote_probe = remote_probe
        self.local_probe = local_probe
        self.transfers = transfers
        self.output = output or OutputFormatter()
        self.dry_run = dry_run

    def _walk(self, remote_dir: str, local_dir: Path) -> dict[str, int]:
        """Walk a tree with an explicit stack, in sorted depth-first order."""
        stats = create_empty_stats()
        stack: Worklist = [(normalize_remote_path(remote_dir), Path(local_dir))]
        visited: set[str] = set()
        while stack:
            remote, local = stack.pop()
            if remote in visited:
                continue
            visited.add(remote)
            children = self._process_directory(remote, local, stats)
            stack.extend(reversed(children))
        return stats

    @abstractmethod
    def _process_directory(
        self, remote: str, local: Path, stats: dict[str, int]
    ) -> Worklist:
        """Handle one directory and return the subdirectories still to walk."""

    def _download(
        self,
        remote_path: str,
        local_path: Path,
        stats: dict[str, int],
        expected_size: Optional[int] = None,
    ) -> bool:
        if self.dry_run:
            stats["downloads"] += 1
            return True
        result = self.transfers.download(remote_path, local_path, expected_size)
        return self._record(result, "downloads", stats)

    def _upload(self, local_path: Path, remote_dir: str, stats: dict[str, int]) -> bool:
        if self.dry_run:
            stats["uploads"] += 1
            return True
        result = self.transfers.upload(local_path, remote_dir)
        return self._record(result, "uploads", stats)

    def _record(self, result: TransferResult, key: str, stats: dict[str, int]) -> bool:
        if result.ok:
            stats[key] += 1
            return True
        stats["failures"] += 1
        self.output.warning(
            f"{result.task.direction.value.capitalize()} of "
            f"{result.task.source_path} {result.status.value}: "
            f"{result.error or result.reason}"
        )
        return False


class SyncOrchestrator(_Walker):
    """Two-way synchronization of a remote directory tree by modification time.

    For every directory the local -> remote decisions are made before the
    remote -> local ones. Strictly newer wins; equal timestamps are left
    alone, so repeated passes over unchanged trees transfer nothing.
    """

    def sync_path(self, remote_dir: str, local_dir: Path) -> dict[str, int]:
        """Synchronize ``remote_dir`` and ``local_dir`` recursively.

        Args:
            remote_dir: Absolute remote directory (a two-way path or below one)
            local_dir: Local mirror of ``remote_dir``

        Returns:
            Statistics dictionary
        """
        return self._walk(remote_dir, local_dir)

    def _process_directory(
        self, remote: str, local: Path, stats: dict[str, int]
    ) -> Worklist:
        # Recursion may reach a subtree excluded below the two-way root
        if not self.classifier.is_two_way(remote):
            logger.debug("Not a two-way path, skipping: %s", remote)
            return []

        self.output.info(f">> [Two-Way, last-modified] Listing: {remote}")
        listing = self.remote_probe.fetch_listing(remote)
        if listing is None:
            self.output.warning(f"Cannot list {remote}, retrying next pass")
            stats["unreadable"] += 1
            return []

        children: Worklist = []
        remote_dirs: set[str] = set()
        remote_files: dict[str, RemoteEntry] = {}
        for entry in listing:
            if entry.is_dir:
                remote_dirs.add(entry.name)
                children.append((entry.path, local / entry.name))
            else:
                remote_files[entry.path] = entry

        try:
            local.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.output.warning(f"Cannot create local directory {local}: {e}")
            stats["failures"] += 1
            return children

        uploaded = self._push_local_changes(remote, local, remote_files, stats)
        self._pull_remote_changes(local, remote_files, uploaded, stats)

        # Local-only subdirectories still need walking so their files get uploaded
        for subdir in self.local_probe.list_directories(local):
            if subdir.name not in remote_dirs:
                children.append((join_remote_path(remote, subdir.name), subdir))
        return children

    def _push_local_changes(
        self,
        remote: str,
        local: Path,
        remote_files: dict[str, RemoteEntry],
        stats: dict[str, int],
    ) -> set[str]:
        """Local -> remote pass. Returns remote paths uploaded."""
        uploaded: set[str] = set()
        if self.classifier.is_backup_only(remote):
            logger.debug("Backup-only directory, no uploads: %s", remote)
            return uploaded

        for local_file in self.local_probe.list_files(local):
            remote_path = join_remote_path(remote, local_file.name)
            if self.classifier.is_excluded(remote_path):
                continue

            local_mtime = self.local_probe.get_last_modified(local_file)
            if remote_path not in remote_files:
                reason = "remote missing"
            else:
                remote_mtime = self.remote_probe.get_last_modified(remote_path)
                logger.debug(
                    "%s: local %s, remote %s",
                    remote_path,
                    format_timestamp(local_mtime),
                    format_timestamp(remote_mtime),
                )
                if local_mtime <= remote_mtime:
                    stats["skips"] += 1
                    continue
                reason = "local newer"

            self.output.info(f"  {reason} => upload {local_file} => {remote_path}")
            if self._upload(local_file, remote, stats):
                uploaded.add(remote_path)
        return uploaded

    def _pull_remote_changes(
        self,
        local: Path,
        remote_files: dict[str, RemoteEntry],
        uploaded: set[str],
        stats: dict[str, int],
    ) -> None:
        """Remote -> local pass."""
        for remote_path in sorted(remote_files):
            entry = remote_files[remote_path]
            if not self.classifier.is_sync_candidate(entry.name):
                continue
            if remote_path in uploaded:
                continue

            local_path = local / entry.name
            remote_mtime = self.remote_probe.get_last_modified(remote_path)
            if not self.local_probe.exists(local_path):
                reason = "local missing"
            else:
                local_mtime = self.local_probe.get_last_modified(local_path)
                if remote_mtime <= local_mtime:
                    stats["skips"] += 1
                    continue
                reason = "remote newer"

            self.output.info(f"  {reason} => download {remote_path} => {local_path}")
            self._download(remote_path, local_path, stats)


class BackupOnlyOrchestrator(_Walker):
    """One-way copy remote -> local for backup-only paths.

    A local file with the same byte size as the remote one counts as up to
    date; no timestamps are compared. A same-size change on the remote side
    therefore goes unnoticed.
    """

    def backup_path(self, remote_dir: str, local_dir: Path) -> dict[str, int]:
        """Copy ``remote_dir`` into ``local_dir`` recursively.

        Returns:
            Statistics dictionary
        """
        return self._walk(remote_dir, local_dir)

    def _process_directory(
        self, remote: str, local: Path, stats: dict[str, int]
    ) -> Worklist:
        if self.classifier.is_excluded(remote):
            logger.debug("Excluded, skipping: %s", remote)
            return []

        self.output.info(f">> [Backup] Listing: {remote}")
        children: Worklist = []
        for entry in self.remote_probe.list_directory(remote):
            local_dest = local / entry.name
            if entry.is_dir:
                children.append((entry.path, local_dest))
                continue
            if not self.classifier.is_sync_candidate(entry.name):
                continue
            if self.local_probe.get_size(local_dest) == entry.size:
                logger.debug("Same size, skipping: %s", entry.path)
                stats["skips"] += 1
                continue
            self._download(entry.path, local_dest, stats, expected_size=entry.size)
        return children


class SyncService:
    """The long-running process: backup once, then two-way sync forever."""

    def __init__(
        self,
        config: Config,
        client: Optional[WebUploaderClient] = None,
        probe: Optional[AvailabilityProbe] = None,
        output: Optional[OutputFormatter] = None,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Wire up all components from a configuration.

        Args:
            config: Validated configuration
            client: Remote client (created from config if not provided)
            probe: Availability probe (created from config if not provided)
            output: Output formatter for progress/status
            dry_run: Only report what would be transferred
            sleep: Sleep function (injectable for tests)
        """
        self.config = config
        self.output = output or OutputFormatter()
        self.dry_run = dry_run
        self._sleep = sleep

        self.client = client or WebUploaderClient(
            config.base_url,
            connect_timeout=config.connect_timeout,
            timeout=config.max_time,
        )
        self.probe = probe or AvailabilityProbe(
            config.host,
            config.port,
            interval=config.probe_interval,
            timeout=config.probe_timeout,
            sleep=sleep,
        )
        self.classifier = PathClassifier(config.path_rules())
        retry_policy = RetryPolicy(
            max_retries=config.max_retries,
            delay=config.retry_delay,
            probe=self.probe.wait,
            sleep=sleep,
        )
        self.remote_probe = RemoteMetadataProbe(self.client, self.classifier, retry_policy)
        self.local_probe = LocalMetadataProbe(self.classifier)
        versioning = RemoteVersioningCoordinator(
            self.client, self.remote_probe, retry_policy
        )
        self.transfers = AtomicTransferEngine(
            self.client, self.remote_probe, versioning, retry_policy
        )
        walker_args = (
            self.classifier,
            self.remote_probe,
            self.local_probe,
            self.transfers,
            self.output,
            dry_run,
        )
        self.two_way = SyncOrchestrator(*walker_args)
        self.backup = BackupOnlyOrchestrator(*walker_args)

    def wait_until_available(self) -> None:
        self.output.info(
            f">> Checking if the HTTP server is open on "
            f"{self.config.host}:{self.config.port}..."
        )
        self.probe.wait()
        self.output.info(f">> Port {self.config.port} is open on {self.config.host}!")

    def run_backup(self) -> dict[str, int]:
        """Run the backup-only phase once over every backup-only path."""
        total = create_empty_stats()
        for remote_dir in self.config.backup_only_paths:
            local_dir = self.config.local_path_for(remote_dir)
            merge_stats(total, self.backup.backup_path(remote_dir, local_dir))
        return total

    def run_two_way_pass(self) -> dict[str, int]:
        """Run one two-way pass over every two-way path."""
        total = create_empty_stats()
        for remote_dir in self.config.two_way_paths:
            self.output.info(f"-> Two-Way Path: {remote_dir}")
            local_dir = self.config.local_path_for(remote_dir)
            merge_stats(total, self.two_way.sync_path(remote_dir, local_dir))
        return total

    def run(self, max_passes: Optional[int] = None, backup: bool = True) -> int:
        """Run the service.

        Args:
            max_passes: Stop after this many two-way passes (None = forever)
            backup: Run the backup-only phase before the loop

        Returns:
            Number of two-way passes performed
        """
        self.output.timestamp()
        self.output.info("==== RetroArch Sync (last-modified approach) ====")
        self.wait_until_available()

        if backup:
            self.output.info("-> Step1: Backup Only")
            self._display_summary("Backup", self.run_backup())

        self.output.info("-> Step2: Two-Way Sync Loop")
        passes = 0
        while max_passes is None or passes < max_passes:
            stats = self.run_two_way_pass()
            passes += 1
            self._display_summary(f"Two-way pass {passes}", stats)
            if max_passes is not None and passes >= max_passes:
                break
            logger.debug("Sleeping %.0fs until next pass", self.config.sync_interval)
            self._sleep(self.config.sync_interval)
        return passes

    def close(self) -> None:
        self.client.close()

    def _display_summary(self, title: str, stats: dict[str, int]) -> None:
        if self.output.quiet:
            return
        self.output.print("")
        if self.dry_run:
            self.output.success(f"{title}: dry run complete!")
        else:
            self.output.success(f"{title} complete!")

        total_actions = stats["uploads"] + stats["downloads"]
        if total_actions > 0:
            self.output.info(f"Total actions: {total_actions}")
            if stats["uploads"] > 0:
                self.output.info(f"  Uploaded: {stats['uploads']}")
            if stats["downloads"] > 0:
                self.output.info(f"  Downloaded: {stats['downloads']}")
        else:
            self.output.info("No changes needed - everything is in sync!")
        if stats["failures"] > 0:
            self.output.warning(f"{stats['failures']} transfer(s) deferred to next pass")
        if stats["unreadable"] > 0:
            self.output.warning(f"{stats['unreadable']} directory(ies) could not be listed")
