"""Tests for run orchestration: selection, preconditions, drain and batch."""

import pytest

from fakes import FakeCluster

from lbfo2set.config import MigrationRequest
from lbfo2set.platform.base import DrainStatus, PlatformError, SwitchType
from lbfo2set.pipeline.migration import OutcomeStatus


def _run(runner, host, names=("vSwitch",), **request):
    from lbfo2set.pipeline.runner import select_switches
    switches = select_switches(host, names=list(names))
    return runner.run(switches, MigrationRequest(force=True, **request))


# ═══════════════════════════════════════════════════════════════════
#  Switch selection
# ═══════════════════════════════════════════════════════════════════

class TestSelection:
    def test_by_name_case_insensitive(self, host):
        from lbfo2set.pipeline.runner import select_switches
        assert [s.name for s in select_switches(host, names=["VSWITCH"])] == ["vSwitch"]

    def test_by_id(self, host):
        from lbfo2set.pipeline.runner import select_switches
        switch_id = host.switches["vSwitch"].id
        assert [s.name for s in select_switches(host, ids=[switch_id.upper()])] == ["vSwitch"]

    def test_no_match(self, host):
        from lbfo2set.pipeline.errors import NoMatchingSwitches
        from lbfo2set.pipeline.runner import select_switches
        with pytest.raises(NoMatchingSwitches):
            select_switches(host, names=["missing"])

    def test_mixed_selectors_rejected(self, host):
        from lbfo2set.pipeline.runner import select_switches
        with pytest.raises(ValueError):
            select_switches(host, ids=["x"], names=["vSwitch"])


# ═══════════════════════════════════════════════════════════════════
#  Preconditions: nothing may change on the host
# ═══════════════════════════════════════════════════════════════════

class TestPreconditions:
    def test_old_host_build(self, runner, host, cluster):
        from lbfo2set.pipeline.errors import PreconditionError
        host.os_build = 9600
        with pytest.raises(PreconditionError):
            _run(runner, host)
        assert host.mutations == []
        assert cluster.count("suspend_node") == 0

    def test_drain_unsupported(self, host, config, sleeps):
        from lbfo2set.pipeline.errors import PreconditionError
        from lbfo2set.pipeline.runner import MigrationRunner
        runner = MigrationRunner(host, FakeCluster(supported=False), config, sleep=sleeps.append)
        with pytest.raises(PreconditionError):
            _run(runner, host)
        assert host.mutations == []

    def test_rename_count_mismatch(self, runner, host, cluster):
        from lbfo2set.pipeline.errors import RenameCountMismatch
        with pytest.raises(RenameCountMismatch):
            _run(runner, host, new_names=["A", "B"])
        assert host.mutations == []
        assert cluster.count("suspend_node") == 0

    def test_rename_counts_eligible_switches_only(self, runner, host):
        host.add_plain_switch("Internal", SwitchType.INTERNAL)
        report = _run(runner, host, names=("vSwitch", "Internal"), new_names=["SET01"])
        assert report.outcomes[0].status == OutcomeStatus.SKIPPED
        assert report.outcomes[1].new_switch_name == "SET01"
        assert "SET01" in host.switches

    def test_nothing_eligible(self, runner, host, cluster):
        host.add_plain_switch("Internal", SwitchType.INTERNAL)
        report = _run(runner, host, names=("Internal",))
        assert report.nothing_eligible is True
        assert report.exit_code == 2
        assert host.mutations == []
        assert cluster.count("suspend_node") == 0


# ═══════════════════════════════════════════════════════════════════
#  Cluster drain around the batch
# ═══════════════════════════════════════════════════════════════════

class TestDrainAroundRun:
    def test_success(self, runner, host, cluster, sleeps):
        report = _run(runner, host)
        assert report.exit_code == 0
        assert [o.status for o in report.outcomes] == [OutcomeStatus.SUCCESS]
        assert report.cluster_node == "HV01"
        assert report.drained is True
        assert report.resumed is True
        assert sleeps == [1, 5, 5, 5]
        suspend = [i for i, (n, _) in enumerate(cluster.calls) if n == "suspend_node"]
        assert len(suspend) == 1 and cluster.calls[-1][0] == "resume_node"

    def test_drain_never_initiated_changes_nothing(self, runner, host, cluster):
        from lbfo2set.pipeline.errors import DrainInitiationError
        cluster.statuses = [DrainStatus.NOT_STARTED]
        with pytest.raises(DrainInitiationError):
            _run(runner, host)
        assert host.mutations == []
        assert cluster.count("resume_node") == 1

    def test_drain_failure_changes_nothing(self, runner, host, cluster):
        from lbfo2set.pipeline.errors import DrainFailedError
        cluster.statuses = [DrainStatus.FAILED]
        with pytest.raises(DrainFailedError):
            _run(runner, host)
        assert host.mutations == []
        assert cluster.count("resume_node") == 1

    def test_resume_once_after_switch_failure(self, runner, host, cluster):
        host.fail["create_switch"] = PlatformError("create switch", "adapter in use")
        report = _run(runner, host)
        assert report.outcomes[0].status == OutcomeStatus.FAILED
        assert report.exit_code == 0
        assert cluster.count("resume_node") == 1

    def test_standalone_host(self, host, config, sleeps):
        from lbfo2set.pipeline.runner import MigrationRunner
        runner = MigrationRunner(host, None, config, sleep=sleeps.append)
        report = _run(runner, host)
        assert report.succeeded
        assert report.cluster_node == ""
        assert report.drained is False
        assert sleeps == [5, 5, 5]

    def test_non_member_is_not_drained(self, host, config, sleeps):
        from lbfo2set.pipeline.runner import MigrationRunner
        cluster = FakeCluster(member=False)
        report = _run(MigrationRunner(host, cluster, config, sleep=sleeps.append), host)
        assert report.succeeded
        assert cluster.count("suspend_node") == 0
        assert cluster.count("resume_node") == 0


# ═══════════════════════════════════════════════════════════════════
#  Batch behaviour
# ═══════════════════════════════════════════════════════════════════

class TestBatch:
    def test_member_removed_out_of_band(self, runner, host):
        host.add_lbfo_switch("vSwitch2", "Team2", ["NIC3", "NIC4"])
        host.nics.discard("NIC3")
        report = _run(runner, host, names=("vSwitch", "vSwitch2"))

        by_name = {o.switch_name: o for o in report.outcomes}
        assert by_name["vSwitch"].status == OutcomeStatus.SUCCESS
        assert by_name["vSwitch2"].status == OutcomeStatus.FAILED
        assert by_name["vSwitch2"].failed_stage == "create_switch"

    def test_switches_processed_in_order(self, runner, host):
        host.add_lbfo_switch("vSwitch2", "Team2", ["NIC3", "NIC4"])
        report = _run(runner, host, names=("vSwitch", "vSwitch2"), new_names=["SET-A", "SET-B"])
        assert [o.new_switch_name for o in report.outcomes] == ["SET-A", "SET-B"]
        created = [args[0] for args in host.called("create_switch")]
        assert created == ["SET-A", "SET-B"]

    def test_dry_run(self, runner, host, cluster):
        report = _run(runner, host, dry_run=True)
        assert report.dry_run is True
        assert [o.status for o in report.outcomes] == [OutcomeStatus.SKIPPED]
        assert host.mutations == []
        assert cluster.count("suspend_node") == 0

    def test_cancel_before_run_skips_switches(self, runner, host, cluster):
        runner.cancel()
        report = _run(runner, host)
        assert [o.status for o in report.outcomes] == [OutcomeStatus.SKIPPED]
        assert host.mutations == []
        assert cluster.count("resume_node") == 1

    def test_snapshot_and_run_record_saved(self, runner, host, config):
        from lbfo2set.pipeline.state import SnapshotStore
        report = _run(runner, host)
        store = SnapshotStore(config.state_dir)
        saved = store.load("vSwitch")
        assert saved is not None
        assert saved.team_members == ("NIC1", "NIC2")
        assert (config.state_dir / "runs" / f"{report.run_id}.json").exists()

    def test_capture_failure_marks_switch_failed(self, runner, host):
        host.fail["get_routes"] = PlatformError("get routes", "access denied")
        report = _run(runner, host)
        assert report.outcomes[0].status == OutcomeStatus.FAILED
        assert "Inventory failed" in report.outcomes[0].reason
        assert host.mutations == []
