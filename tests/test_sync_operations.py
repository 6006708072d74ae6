"""Tests for AtomicTransferEngine."""

import os
from pathlib import Path

import pytest
from conftest import T
from fake_remote import FakeRemote

from retrosync.exceptions import RetroSyncSizeMismatchError
from retrosync.sync.classifier import PathClassifier, PathRules
from retrosync.sync.operations import (
    AtomicTransferEngine,
    TransferDirection,
    TransferState,
    TransferStatus,
)
from retrosync.sync.retry import RetryPolicy
from retrosync.sync.scanner import RemoteMetadataProbe
from retrosync.sync.versioning import RemoteVersioningCoordinator


def make_engine(remote):
    classifier = PathClassifier(PathRules.create(two_way=["/saves"]))
    policy = RetryPolicy(max_retries=3, delay=0, sleep=lambda s: None)
    probe = RemoteMetadataProbe(remote, classifier, policy)
    versioning = RemoteVersioningCoordinator(remote, probe, policy)
    return AtomicTransferEngine(remote, probe, versioning, policy)


@pytest.fixture
def engine(remote):
    return make_engine(remote)


class EditingRemote(FakeRemote):
    """Remote during whose upload the local file is edited."""

    def __init__(self, clock, new_content, new_mtime):
        super().__init__(clock=clock)
        self.new_content = new_content
        self.new_mtime = new_mtime

    def upload_file(self, file_path, directory, filename):
        super().upload_file(file_path, directory, filename)
        Path(file_path).write_bytes(self.new_content)
        os.utime(file_path, (self.new_mtime, self.new_mtime))


@pytest.fixture
def local_file(tmp_path):
    path = tmp_path / "game.srm"
    path.write_bytes(b"local save")
    os.utime(path, (T, T))
    return path


class TestDownload:
    def test_download_commits_and_aligns_mtime(self, engine, remote, tmp_path):
        remote.add_file("/saves/game.srm", b"remote save", T)
        dest = tmp_path / "nested" / "game.srm"

        result = engine.download("/saves/game.srm", dest, expected_size=11)

        assert result.ok
        assert result.task.direction == TransferDirection.DOWNLOAD
        assert result.task.state == TransferState.COMMITTED
        assert result.task.attempts == 1
        assert dest.read_bytes() == b"remote save"
        assert int(dest.stat().st_mtime) == T
        assert not (dest.parent / "game.srm.part").exists()

    def test_transient_failure_is_retried(self, engine, remote, tmp_path):
        remote.add_file("/saves/game.srm", b"data", T)
        remote.network_failures["download_file"] = 2

        result = engine.download("/saves/game.srm", tmp_path / "game.srm")

        assert result.ok
        assert result.task.attempts == 3

    def test_exhausted_budget_leaves_destination_untouched(
        self, engine, remote, local_file
    ):
        remote.add_file("/saves/game.srm", b"remote", T)
        remote.network_failures["download_file"] = 3

        result = engine.download("/saves/game.srm", local_file)

        assert result.status == TransferStatus.SKIPPED
        assert result.task.state == TransferState.FAILED
        assert local_file.read_bytes() == b"local save"
        assert not (local_file.parent / "game.srm.part").exists()

    def test_size_mismatch_discards_staging_file(self, engine, remote, local_file):
        remote.add_file("/saves/game.srm", b"0123456789", T)
        remote.truncate["/saves/game.srm"] = b"01234"

        result = engine.download("/saves/game.srm", local_file, expected_size=10)

        assert not result.ok
        assert isinstance(result.error, RetroSyncSizeMismatchError)
        assert result.error.expected == 10
        assert result.error.actual == 5
        assert local_file.read_bytes() == b"local save"
        assert not (local_file.parent / "game.srm.part").exists()

    def test_missing_remote_file_is_not_retried(self, engine, remote, tmp_path):
        remote.add_dir("/saves")

        result = engine.download("/saves/ghost.srm", tmp_path / "ghost.srm")

        assert not result.ok
        assert len(remote.transfers("download")) == 1
        assert not (tmp_path / "ghost.srm").exists()

    def test_archived_file_is_skipped(self, engine, remote, tmp_path):
        remote.add_file("/saves/game.srm.old", b"old", T)

        result = engine.download("/saves/game.srm.old", tmp_path / "game.srm.old")

        assert result.status == TransferStatus.SKIPPED
        assert remote.calls == []


class TestUpload:
    def test_new_file_is_staged_then_promoted(self, engine, remote, local_file):
        remote.add_dir("/saves")

        result = engine.upload(local_file, "/saves")

        assert result.ok
        assert result.task.state == TransferState.COMMITTED
        assert result.task.destination_path == "/saves/game.srm"
        assert remote.transfers("upload") == [("upload", "/saves/game.srm.part")]
        assert remote.content("/saves/game.srm") == b"local save"
        assert "/saves/game.srm.part" not in remote.files

    def test_local_mtime_follows_remote_after_upload(self, engine, remote, local_file):
        remote.add_dir("/saves")

        engine.upload(local_file, "/saves")

        assert int(local_file.stat().st_mtime) == remote.files["/saves/game.srm"][1]

    def test_existing_file_is_archived(self, engine, remote, local_file):
        remote.add_file("/saves/game.srm", b"previous", T - 100)

        assert engine.upload(local_file, "/saves").ok

        assert remote.content("/saves/game.srm") == b"local save"
        assert remote.content("/saves/game.srm.old") == b"previous"

    def test_stale_staging_file_is_replaced(self, engine, remote, local_file):
        remote.add_file("/saves/game.srm.part", b"half", T - 100)

        assert engine.upload(local_file, "/saves").ok

        assert ("delete", "/saves/game.srm.part") in remote.calls
        assert remote.content("/saves/game.srm") == b"local save"

    def test_missing_directories_are_created(self, engine, remote, local_file):
        result = engine.upload(local_file, "/saves/snes/usa")

        assert result.ok
        assert [c[1] for c in remote.transfers("create")] == [
            "/saves",
            "/saves/snes",
            "/saves/snes/usa",
        ]
        assert remote.content("/saves/snes/usa/game.srm") == b"local save"

    def test_exhausted_budget_removes_staged_file(self, engine, remote, local_file):
        remote.add_file("/saves/game.srm", b"previous", T)
        remote.network_failures["upload_file"] = 3

        result = engine.upload(local_file, "/saves")

        assert result.status == TransferStatus.FAILED
        assert result.task.attempts == 3
        assert remote.content("/saves/game.srm") == b"previous"
        assert "/saves/game.srm.part" not in remote.files
        assert remote.transfers("move") == []

    def test_failed_commit_removes_staged_file(self, engine, remote, local_file):
        remote.add_file("/saves/game.srm", b"previous", T)
        remote.network_failures["move"] = 3

        result = engine.upload(local_file, "/saves")

        assert result.status == TransferStatus.FAILED
        assert result.reason == "commit"
        assert remote.content("/saves/game.srm") == b"previous"
        assert "/saves/game.srm.part" not in remote.files
        assert ("delete", "/saves/game.srm.part") in remote.calls

    @pytest.mark.parametrize("edit_offset", [5, -2000])
    def test_edit_during_upload_stays_newer_than_remote(
        self, local_file, edit_offset
    ):
        remote = EditingRemote(
            clock=T + 1000,
            new_content=b"edited after upload",
            new_mtime=T + 1000 + edit_offset,
        )
        remote.add_dir("/saves")

        result = make_engine(remote).upload(local_file, "/saves")

        assert result.ok
        remote_mtime = remote.files["/saves/game.srm"][1]
        assert remote.content("/saves/game.srm") == b"local save"
        assert local_file.read_bytes() == b"edited after upload"
        assert int(local_file.stat().st_mtime) > remote_mtime

    def test_directory_check_failure_aborts_upload(self, engine, remote, local_file):
        remote.network_failures["directory_exists"] = 3

        result = engine.upload(local_file, "/saves")

        assert result.status == TransferStatus.FAILED
        assert result.reason == "remote directory"
        assert remote.transfers("upload") == []

    def test_archived_local_file_is_skipped(self, engine, remote, tmp_path):
        old = tmp_path / "game.srm.old"
        old.write_bytes(b"x")

        result = engine.upload(old, "/saves")

        assert result.status == TransferStatus.SKIPPED
        assert remote.calls == []


class TestEnsureRemoteDirectory:
    def test_existing_directory(self, engine, remote):
        remote.add_dir("/saves")

        assert engine.ensure_remote_directory("/saves")
        assert remote.transfers("create") == []

    def test_create_failure_reported(self, engine, remote):
        remote.network_failures["create_directory"] = 3

        assert not engine.ensure_remote_directory("/saves")
