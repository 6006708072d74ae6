"""Sync engine for retrosync - tree walks, atomic transfers and versioning."""

from .classifier import PathClassifier, PathRules, SyncPolicy
from .engine import (
    BackupOnlyOrchestrator,
    SyncOrchestrator,
    SyncService,
    create_empty_stats,
)
from .operations import (
    AtomicTransferEngine,
    TransferDirection,
    TransferResult,
    TransferState,
    TransferStatus,
    TransferTask,
)
from .retry import RetryOutcome, RetryPolicy, RetryResult
from .scanner import EntryKind, LocalMetadataProbe, RemoteEntry, RemoteMetadataProbe
from .versioning import RemoteVersioningCoordinator

__all__ = [
    "AtomicTransferEngine",
    "BackupOnlyOrchestrator",
    "EntryKind",
    "LocalMetadataProbe",
    "PathClassifier",
    "PathRules",
    "RemoteEntry",
    "RemoteMetadataProbe",
    "RemoteVersioningCoordinator",
    "RetryOutcome",
    "RetryPolicy",
    "RetryResult",
    "SyncOrchestrator",
    "SyncPolicy",
    "SyncService",
    "TransferDirection",
    "TransferResult",
    "TransferState",
    "TransferStatus",
    "TransferTask",
    "create_empty_stats",
]
