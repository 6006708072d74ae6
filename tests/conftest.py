"""Shared fixtures for the sync tests."""

from unittest.mock import Mock

import pytest
from fake_remote import FakeRemote

from retrosync.availability import AvailabilityProbe
from retrosync.config import Config
from retrosync.output import OutputFormatter
from retrosync.sync import SyncService

T = 1_600_000_000


@pytest.fixture
def remote():
    """In-memory remote whose clock is well ahead of test timestamps."""
    return FakeRemote(clock=T + 1000)


@pytest.fixture
def probe():
    probe = Mock(spec=AvailabilityProbe)
    probe.wait.return_value = True
    return probe


@pytest.fixture
def output():
    output = Mock(spec=OutputFormatter)
    output.quiet = True
    return output


@pytest.fixture
def config(tmp_path):
    return Config(
        host="appletv",
        local_base_dir=tmp_path / "local",
        two_way_paths=("/downloads", "/saves"),
        backup_only_paths=("/config",),
        exclude_paths=("/downloads/cloud_backups",),
        max_retries=3,
        retry_delay=0,
        sync_interval=0,
    )


@pytest.fixture
def service(config, remote, probe, output):
    return SyncService(
        config, client=remote, probe=probe, output=output, sleep=lambda s: None
    )
