"""Tests for cluster drain/resume coordination."""

import pytest

from fakes import FakeCluster

from lbfo2set.platform.base import DrainStatus


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def _coordinator(cluster, timeout=None, interval=1.0):
    from lbfo2set.pipeline.cluster import ClusterCoordinator, DrainPolicy
    clock = FakeClock()
    coordinator = ClusterCoordinator(
        cluster, DrainPolicy(interval=interval, timeout=timeout), sleep=clock.sleep, clock=clock,
    )
    return coordinator, clock


class TestDrain:
    def test_standalone_host_is_noop(self):
        cluster = FakeCluster(member=False)
        coordinator, _ = _coordinator(cluster)
        assert coordinator.drain_if_clustered() is False
        assert coordinator.resume_if_clustered() is False
        assert cluster.count("suspend_node") == 0
        assert cluster.count("resume_node") == 0

    def test_no_cluster_capability_is_standalone(self):
        coordinator, _ = _coordinator(None)
        assert coordinator.is_member is False
        assert coordinator.drain_if_clustered() is False

    def test_polls_until_completed(self):
        cluster = FakeCluster(statuses=[
            DrainStatus.IN_PROGRESS, DrainStatus.IN_PROGRESS, DrainStatus.IN_PROGRESS, DrainStatus.COMPLETED,
        ])
        coordinator, clock = _coordinator(cluster)
        assert coordinator.drain_if_clustered() is True
        assert cluster.count("get_drain_status") == 4
        assert clock.now == 3.0
        assert cluster.calls[1] == ("suspend_node", ("HV01", "Drain", None))

    def test_failed_to_drain_roles(self):
        from lbfo2set.pipeline.errors import DrainFailedError
        cluster = FakeCluster(statuses=[DrainStatus.IN_PROGRESS, DrainStatus.FAILED])
        coordinator, _ = _coordinator(cluster)
        with pytest.raises(DrainFailedError):
            coordinator.drain_if_clustered()

    def test_failed_to_initiate(self):
        from lbfo2set.pipeline.errors import DrainInitiationError
        cluster = FakeCluster()
        cluster.suspend_error = RuntimeError("node is paused")
        coordinator, _ = _coordinator(cluster)
        with pytest.raises(DrainInitiationError):
            coordinator.drain_if_clustered()
        assert cluster.count("get_drain_status") == 0

    def test_not_initiated_after_request(self):
        from lbfo2set.pipeline.errors import DrainInitiationError
        cluster = FakeCluster(statuses=[DrainStatus.NOT_STARTED])
        coordinator, clock = _coordinator(cluster, timeout=30)
        with pytest.raises(DrainInitiationError):
            coordinator.drain_if_clustered()
        assert cluster.count("get_drain_status") == 1
        assert clock.now == 0.0

    def test_not_initiated_without_timeout(self):
        from lbfo2set.pipeline.errors import DrainInitiationError
        cluster = FakeCluster(statuses=[DrainStatus.IN_PROGRESS, DrainStatus.NOT_STARTED])
        coordinator, _ = _coordinator(cluster, timeout=0)
        with pytest.raises(DrainInitiationError):
            coordinator.drain_if_clustered()
        assert cluster.count("get_drain_status") == 2

    def test_timeout(self):
        from lbfo2set.pipeline.errors import ClusterDrainError, DrainTimeoutError
        cluster = FakeCluster(statuses=[DrainStatus.IN_PROGRESS])
        coordinator, clock = _coordinator(cluster, timeout=10)
        with pytest.raises(DrainTimeoutError) as exc:
            coordinator.drain_if_clustered()
        assert isinstance(exc.value, ClusterDrainError)
        assert clock.now == 10.0

    def test_unsupported_drain_is_precondition_error(self):
        from lbfo2set.pipeline.errors import PreconditionError
        coordinator, _ = _coordinator(FakeCluster(supported=False))
        with pytest.raises(PreconditionError):
            coordinator.check_preconditions()


class TestResume:
    def test_resume_once(self):
        cluster = FakeCluster()
        coordinator, _ = _coordinator(cluster)
        coordinator.drain_if_clustered()
        assert coordinator.resume_if_clustered() is True
        assert coordinator.resume_if_clustered() is False
        assert cluster.calls[-1] == ("resume_node", ("HV01", "Immediate"))
        assert cluster.count("resume_node") == 1

    def test_resume_after_failed_drain(self):
        from lbfo2set.pipeline.errors import DrainFailedError
        cluster = FakeCluster(statuses=[DrainStatus.FAILED])
        coordinator, _ = _coordinator(cluster)
        with pytest.raises(DrainFailedError):
            coordinator.drain_if_clustered()
        assert coordinator.resume_if_clustered() is True
        assert cluster.count("resume_node") == 1

    def test_no_resume_without_drain(self):
        cluster = FakeCluster()
        coordinator, _ = _coordinator(cluster)
        assert coordinator.resume_if_clustered() is False
        assert cluster.count("resume_node") == 0
