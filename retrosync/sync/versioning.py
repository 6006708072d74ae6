"""Archive-then-promote commit of staged remote uploads."""

import logging
from typing import Optional

from ..api import WebUploaderClient
from ..exceptions import RetroSyncAPIError
from ..utils import remote_basename, remote_parent
from .retry import RetryPolicy
from .scanner import RemoteMetadataProbe

logger = logging.getLogger(__name__)


class RemoteVersioningCoordinator:
    """Makes a staged upload visible without ever destroying the old copy.

    Replacing ``final`` happens in two renames:

    1. ``final`` -> ``final`` + archived suffix (best effort)
    2. ``staged`` -> ``final`` (must succeed)

    At every instant either the old final file exists, or both the archived
    copy and the new final file exist.
    """

    def __init__(
        self,
        client: WebUploaderClient,
        remote_probe: RemoteMetadataProbe,
        retry_policy: RetryPolicy,
    ):
        self.client = client
        self.remote_probe = remote_probe
        self.retry_policy = retry_policy

    @property
    def archived_suffix(self) -> str:
        return self.remote_probe.classifier.rules.archived_suffix

    def commit_upload(self, staged_path: str, final_path: str) -> bool:
        """Promote ``staged_path`` to ``final_path``.

        Returns:
            True if the staged file now lives under its final name
        """
        listing = self._names_in(remote_parent(final_path))
        final_name = remote_basename(final_path)

        if listing is None or final_name in listing:
            # An unreadable listing may hide an existing file: archive anyway,
            # the rename simply fails if there is nothing to move.
            archived_path = final_path + self.archived_suffix
            if listing is not None and remote_basename(archived_path) in listing:
                self._delete_stale_archive(archived_path)
            logger.info("Renaming existing %s => %s", final_path, archived_path)
            if not self.rename(final_path, archived_path):
                logger.warning(
                    "Could not archive %s, promoting the upload anyway", final_path
                )

        logger.info("Renaming %s => %s", staged_path, final_path)
        if not self.rename(staged_path, final_path):
            logger.error(
                "Could not rename %s -> %s; upload left under its staging name",
                staged_path,
                final_path,
            )
            return False
        return True

    def rename(self, old_path: str, new_path: str) -> bool:
        """Rename a remote path with bounded retries.

        A rename may have been applied by the server even though the client
        saw an error. Before every retry the parent listing is checked: if
        the source is gone and the target exists, the rename counts as done.
        """

        def attempt_rename(attempt: int) -> bool:
            if attempt > 1 and self._rename_already_applied(old_path, new_path):
                logger.debug("Rename %s -> %s already applied", old_path, new_path)
                return True
            self.client.move(old_path, new_path)
            return True

        result = self.retry_policy.run(
            attempt_rename, description=f"Renaming {old_path} -> {new_path}"
        )
        return result.ok

    def _rename_already_applied(self, old_path: str, new_path: str) -> bool:
        old_names = self._names_in(remote_parent(old_path))
        new_names = self._names_in(remote_parent(new_path))
        if old_names is None or new_names is None:
            return False
        return (
            remote_basename(old_path) not in old_names
            and remote_basename(new_path) in new_names
        )

    def _delete_stale_archive(self, archived_path: str) -> None:
        try:
            self.client.delete(archived_path)
        except RetroSyncAPIError as e:
            logger.warning("Could not remove stale archive %s: %s", archived_path, e)

    def _names_in(self, directory: str) -> Optional[set[str]]:
        listing = self.remote_probe.fetch_listing(directory, include_archived=True)
        if listing is None:
            return None
        return {entry.name for entry in listing}
