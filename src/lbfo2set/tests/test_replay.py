"""Tests for configuration replay onto rebuilt host adapters."""

from fakes import FakePlatform

from lbfo2set.platform.base import AdvancedProperty, PlatformError
from lbfo2set.pipeline.snapshot import (
    AdapterSnapshot,
    DnsConfiguration,
    GatewayRoute,
    IPAssignment,
    PropertyValue,
)


def _target():
    host = FakePlatform()
    host.add_lbfo_switch("S", "T", ["NIC1"])
    adapter = host.add_host_adapter("S", "Management", "00155D010101")
    return host, adapter


def _snapshot(**kwargs):
    values = dict(
        name="Management",
        mac_address="00155D010101",
        ip_addresses=(IPAssignment("10.0.0.5", 24, False), IPAssignment("10.0.0.6", 23, True)),
        routes=(GatewayRoute("0.0.0.0/0", "10.0.0.1", 256),),
        dns=DnsConfiguration(
            domain="corp.example",
            servers=("10.0.0.10",),
            full_dns_registration=True,
            domain_dns_registration=True,
            wins_primary="10.0.0.20",
            netbios_setting=2,
        ),
        advanced_properties=(PropertyValue("*JumboPacket", ("9014",)),),
    )
    values.update(kwargs)
    return AdapterSnapshot(**values)


def _replay(host, adapter, snapshot, use_defaults=False):
    from lbfo2set.pipeline.replay import ConfigurationReplayer
    return ConfigurationReplayer(host, use_defaults=use_defaults).replay(snapshot, adapter)


# ═══════════════════════════════════════════════════════════════════
#  IP, route and DNS replay
# ═══════════════════════════════════════════════════════════════════

class TestAddressReplay:
    def test_addresses_keep_prefix_and_skip_as_source(self):
        host, adapter = _target()
        _replay(host, adapter, _snapshot())
        assert [(ip.address, ip.prefix_length, ip.skip_as_source) for ip in host.ips[adapter.interface_index]] == [
            ("10.0.0.5", 24, False),
            ("10.0.0.6", 23, True),
        ]

    def test_routes_replayed(self):
        host, adapter = _target()
        _replay(host, adapter, _snapshot())
        route = host.routes[adapter.interface_index][0]
        assert (route.destination_prefix, route.next_hop, route.metric) == ("0.0.0.0/0", "10.0.0.1", 256)

    def test_dns_settings_replayed(self):
        host, adapter = _target()
        result = _replay(host, adapter, _snapshot())
        index = adapter.interface_index
        assert host.called("set_dns_domain") == [(index, "corp.example")]
        assert host.called("set_dns_servers") == [(index, ("10.0.0.10",))]
        assert host.called("set_dynamic_dns_registration") == [(index, True, True)]
        assert host.called("set_wins_servers") == [(index, "10.0.0.20", "")]
        assert host.called("set_netbios_setting") == [(index, 2)]
        assert result.failed == 0

    def test_empty_dns_values_not_written(self):
        host, adapter = _target()
        _replay(host, adapter, _snapshot(dns=DnsConfiguration()))
        assert host.called("set_dns_domain") == []
        assert host.called("set_dns_servers") == []
        assert host.called("set_wins_servers") == []
        assert host.called("set_netbios_setting") == []
        assert len(host.called("set_dynamic_dns_registration")) == 1

    def test_failed_address_is_warning(self):
        host, adapter = _target()
        host.fail["add_ip_address"] = PlatformError("add IP", "address already in use")
        result = _replay(host, adapter, _snapshot())
        assert result.failed == 2
        assert len(host.called("add_route")) == 1
        assert len(host.called("set_advanced_property")) == 1
        assert any("address already in use" in w for w in result.warnings)

    def test_nonzero_status_is_warning(self):
        host, adapter = _target()
        host.status_codes["set_dns_servers"] = 70
        result = _replay(host, adapter, _snapshot())
        assert result.failed == 1
        assert any("status 70" in w for w in result.warnings)
        assert len(host.called("set_netbios_setting")) == 1

    def test_use_defaults_keeps_addresses_only(self):
        host, adapter = _target()
        _replay(host, adapter, _snapshot(), use_defaults=True)
        assert len(host.called("add_ip_address")) == 2
        assert len(host.called("set_advanced_property")) == 1
        assert host.called("set_dns_domain") == []
        assert host.called("set_dynamic_dns_registration") == []


# ═══════════════════════════════════════════════════════════════════
#  Advanced property matching
# ═══════════════════════════════════════════════════════════════════

class TestAdvancedProperties:
    def test_match_by_name(self):
        from lbfo2set.pipeline.replay import match_by_name
        captured = [PropertyValue("B", ("2",)), PropertyValue("Missing", ("1",)), PropertyValue("A", ("1",))]
        current = [AdvancedProperty("A", ["0"], ["0"]), AdvancedProperty("B", ["0"], ["0"])]
        pairs = match_by_name(captured, current)
        assert [(c.name, n.name) for c, n in pairs] == [("B", "B"), ("A", "A")]

    def test_only_matched_properties_written(self):
        host, adapter = _target()
        snapshot = _snapshot(advanced_properties=(
            PropertyValue("*JumboPacket", ("9014",)),
            PropertyValue("*VendorOnly", ("3",)),
        ))
        result = _replay(host, adapter, snapshot)
        assert host.called("set_advanced_property") == [("Management", "*JumboPacket", ("9014",))]
        assert result.skipped == 1
        assert result.failed == 0

    def test_empty_property_set_writes_nothing(self):
        host, adapter = _target()
        _replay(host, adapter, _snapshot(advanced_properties=()))
        assert host.called("set_advanced_property") == []
        assert all(p.is_default for p in host.properties["Management"])

    def test_failed_property_does_not_stop_others(self):
        host, adapter = _target()
        calls = []

        def flaky(adapter_name, name, value):
            calls.append(name)
            if name == "*JumboPacket":
                raise PlatformError("set advanced property", "value out of range")

        host.set_advanced_property = flaky
        snapshot = _snapshot(advanced_properties=(
            PropertyValue("*JumboPacket", ("9014",)),
            PropertyValue("*RSS", ("0",)),
        ))
        result = _replay(host, adapter, snapshot)
        assert calls == ["*JumboPacket", "*RSS"]
        assert result.failed == 1
