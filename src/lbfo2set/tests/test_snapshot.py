"""Tests for snapshot capture and persistence."""

import dataclasses

import pytest

from fakes import FakePlatform

from lbfo2set.platform.base import BandwidthMode, PlatformError


def _capture(host):
    from lbfo2set.pipeline.snapshot import SnapshotBuilder
    return SnapshotBuilder(host).capture(host.switches["vSwitch"])


# ═══════════════════════════════════════════════════════════════════
#  Capture
# ═══════════════════════════════════════════════════════════════════

class TestSnapshotCapture:
    def test_switch_fields(self, host):
        snap = _capture(host)
        assert snap.switch_name == "vSwitch"
        assert snap.team_name == "Team1"
        assert snap.team_members == ("NIC1", "NIC2")
        assert snap.bandwidth_mode == BandwidthMode.WEIGHT
        assert snap.default_flow_minimum_bandwidth == 10
        assert snap.load_balancing_algorithm == 5

    def test_adapters_in_original_order(self, host):
        snap = _capture(host)
        assert [a.name for a in snap.adapters] == ["Management", "LiveMigration"]
        assert snap.adapters[0].mac_address == "00155D010101"
        assert snap.adapters[0].vlan_id == 10
        assert snap.adapters[1].maximum_bandwidth == 10_000_000_000

    def test_only_manual_addresses(self, host):
        mgmt = _capture(host).adapters[0]
        assert [(ip.address, ip.prefix_length, ip.skip_as_source) for ip in mgmt.ip_addresses] == [
            ("10.0.0.5", 24, False),
            ("10.0.0.6", 24, True),
        ]

    def test_only_manual_routes(self, host):
        mgmt = _capture(host).adapters[0]
        assert [(r.destination_prefix, r.next_hop) for r in mgmt.routes] == [("0.0.0.0/0", "10.0.0.1")]

    def test_only_non_default_properties(self, host):
        mgmt = _capture(host).adapters[0]
        assert {p.name: p.value for p in mgmt.advanced_properties} == {
            "*JumboPacket": ("9014",),
            "*VendorTuning": ("7",),
        }

    def test_dns_captured(self, host):
        dns = _capture(host).adapters[0].dns
        assert dns.domain == "corp.example"
        assert dns.servers == ("10.0.0.10", "10.0.0.11")
        assert dns.netbios_setting == 2

    def test_capture_is_read_only(self, host):
        _capture(host)
        assert host.mutations == []

    def test_empty_switch_is_not_an_error(self):
        host = FakePlatform()
        host.add_lbfo_switch("Empty", "TeamE", ["NIC9"])
        from lbfo2set.pipeline.snapshot import SnapshotBuilder
        snap = SnapshotBuilder(host).capture(host.switches["Empty"])
        assert snap.adapters == ()

    def test_adapter_without_addresses_routes_or_properties(self):
        host = FakePlatform()
        host.add_lbfo_switch("S", "T", ["NIC1"])
        host.add_host_adapter("S", "Bare", "00155D000001", properties=[])
        from lbfo2set.pipeline.snapshot import SnapshotBuilder
        adapter = SnapshotBuilder(host).capture(host.switches["S"]).adapters[0]
        assert adapter.ip_addresses == ()
        assert adapter.routes == ()
        assert adapter.advanced_properties == ()

    def test_missing_team_raises(self, host):
        from lbfo2set.pipeline.snapshot import SnapshotBuilder
        host.team_interfaces.clear()
        with pytest.raises(ValueError):
            SnapshotBuilder(host).capture(host.switches["vSwitch"])

    def test_query_failure_propagates(self, host):
        from lbfo2set.pipeline.snapshot import SnapshotBuilder
        host.fail["get_routes"] = PlatformError("list routes", "WMI unavailable")
        with pytest.raises(PlatformError):
            SnapshotBuilder(host).capture(host.switches["vSwitch"])


# ═══════════════════════════════════════════════════════════════════
#  Immutability and serialization
# ═══════════════════════════════════════════════════════════════════

class TestSnapshotModel:
    def test_frozen(self, host):
        snap = _capture(host)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.switch_name = "other"
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.adapters[0].vlan_id = 99

    def test_not_refreshed_by_later_host_changes(self, host):
        snap = _capture(host)
        host.remove_management_adapters("vSwitch")
        assert len(snap.adapters) == 2

    def test_dict_round_trip(self, host):
        from lbfo2set.pipeline.snapshot import SwitchSnapshot
        snap = _capture(host)
        assert SwitchSnapshot.from_dict(snap.to_dict()) == snap
