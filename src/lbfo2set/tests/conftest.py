"""Shared fixtures: an in-memory host, a cluster and a zero-wait config."""

import pytest

from fakes import FakeCluster, build_host

from lbfo2set.config import AppConfig, TimingSettings


@pytest.fixture
def host():
    return build_host()


@pytest.fixture
def cluster():
    return FakeCluster(member=True)


@pytest.fixture
def sleeps():
    """Records every requested pause instead of sleeping."""
    return []


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        state_dir=tmp_path / "state",
        timing=TimingSettings(settle_seconds=5, drain_poll_interval_seconds=1, drain_timeout_seconds=0),
    )


@pytest.fixture
def runner(host, cluster, config, sleeps):
    from lbfo2set.pipeline.runner import MigrationRunner
    return MigrationRunner(host, cluster, config, sleep=sleeps.append)
