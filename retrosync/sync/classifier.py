"""Path classification: which remote paths are synced, and how."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from ..utils import (
    ARCHIVED_SUFFIX,
    METADATA_DIR_NAMES,
    STAGING_SUFFIX,
    normalize_remote_path,
)


class SyncPolicy(str, Enum):
    """How a path takes part in synchronization."""

    EXCLUDED = "excluded"
    """Never listed, transferred or recursed into"""

    BACKUP_ONLY = "backup_only"
    """Copied remote -> local only"""

    TWO_WAY = "two_way"
    """Synchronized in both directions by modification time"""

    UNMANAGED = "unmanaged"
    """Not covered by any configured path; ignored"""


@dataclass(frozen=True)
class PathRules:
    """Immutable set of classification rules.

    All prefixes are stored normalized (leading slash, no trailing slash)
    and in configuration order.
    """

    two_way: tuple[str, ...] = ()
    backup_only: tuple[str, ...] = ()
    excluded: tuple[str, ...] = ()
    metadata_dir_names: tuple[str, ...] = METADATA_DIR_NAMES
    archived_suffix: str = ARCHIVED_SUFFIX
    staging_suffix: str = STAGING_SUFFIX

    @classmethod
    def create(
        cls,
        two_way: Iterable[str] = (),
        backup_only: Iterable[str] = (),
        excluded: Iterable[str] = (),
        metadata_dir_names: Iterable[str] = METADATA_DIR_NAMES,
        archived_suffix: str = ARCHIVED_SUFFIX,
        staging_suffix: str = STAGING_SUFFIX,
    ) -> "PathRules":
        """Create rules from raw prefixes, normalizing and de-duplicating them."""
        return cls(
            two_way=_unique_prefixes(two_way),
            backup_only=_unique_prefixes(backup_only),
            excluded=_unique_prefixes(excluded),
            metadata_dir_names=tuple(metadata_dir_names),
            archived_suffix=archived_suffix,
            staging_suffix=staging_suffix,
        )


def _unique_prefixes(prefixes: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for prefix in prefixes:
        seen.setdefault(normalize_remote_path(prefix), None)
    return tuple(seen)


def _under(path: str, prefix: str) -> bool:
    """Component-aware prefix match: /saves covers /saves/x but not /saves2."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


class PathClassifier:
    """Decides the sync policy of a remote path.

    Classification is pure: it depends only on the rules given at
    construction time and never touches the network or the filesystem.

    Examples:
        >>> rules = PathRules.create(
        ...     two_way=["/saves"], backup_only=["/config"], excluded=["/saves/tmp"]
        ... )
        >>> classifier = PathClassifier(rules)
        >>> classifier.classify("/saves/snes/game.srm")
        <SyncPolicy.TWO_WAY: 'two_way'>
        >>> classifier.classify("/saves/tmp/x")
        <SyncPolicy.EXCLUDED: 'excluded'>
    """

    def __init__(self, rules: PathRules):
        self.rules = rules

    def classify(self, path: str) -> SyncPolicy:
        """Classify a remote path.

        Exclusion wins over everything, then two-way, then backup-only.
        """
        path = normalize_remote_path(path)
        if self._is_excluded(path):
            return SyncPolicy.EXCLUDED
        if self._matches(path, self.rules.two_way):
            return SyncPolicy.TWO_WAY
        if self._matches(path, self.rules.backup_only):
            return SyncPolicy.BACKUP_ONLY
        return SyncPolicy.UNMANAGED

    def is_excluded(self, path: str) -> bool:
        return self._is_excluded(normalize_remote_path(path))

    def is_two_way(self, path: str) -> bool:
        return self.classify(path) == SyncPolicy.TWO_WAY

    def is_backup_only(self, path: str) -> bool:
        """Check the backup-only prefixes alone, ignoring precedence.

        A directory that is both under a two-way root and a backup-only
        prefix is walked as two-way but must never be uploaded into.
        """
        return self._matches(normalize_remote_path(path), self.rules.backup_only)

    def is_archived(self, name: str) -> bool:
        return name.endswith(self.rules.archived_suffix)

    def is_staging(self, name: str) -> bool:
        return name.endswith(self.rules.staging_suffix)

    def is_sync_candidate(self, name: str) -> bool:
        """Whether a file name may be transferred at all."""
        return not (self.is_archived(name) or self.is_staging(name))

    def _is_excluded(self, path: str) -> bool:
        if path.endswith(self.rules.archived_suffix):
            return True
        components = path.split("/")
        if any(name in components for name in self.rules.metadata_dir_names):
            return True
        return self._matches(path, self.rules.excluded)

    @staticmethod
    def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
        return any(_under(path, prefix) for prefix in prefixes)
