"""Point-in-time capture of a switch, its legacy team and its host adapters.

A SwitchSnapshot is the only description of a switch that survives its
removal, so every later stage reads from the snapshot and never from the
host. All types here are frozen; collections are stored as tuples.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from lbfo2set.platform.base import (
    BandwidthMode,
    HostNetworkPlatform,
    ManagementAdapter,
    SwitchInfo,
    TeamInfo,
)
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)

MANUAL_PREFIX_ORIGIN = "Manual"
MANUAL_ROUTE_PROTOCOL = "NetMgmt"


@dataclass(frozen=True)
class IPAssignment:
    address: str
    prefix_length: int
    skip_as_source: bool = False


@dataclass(frozen=True)
class GatewayRoute:
    destination_prefix: str
    next_hop: str
    metric: int = 0


@dataclass(frozen=True)
class DnsConfiguration:
    domain: str = ""
    servers: tuple[str, ...] = ()
    full_dns_registration: bool = True
    domain_dns_registration: bool = False
    wins_primary: str = ""
    wins_secondary: str = ""
    netbios_setting: int = 0


@dataclass(frozen=True)
class PropertyValue:
    """A non-default advanced driver property (registry keyword and value)."""
    name: str
    value: tuple[str, ...] = ()


@dataclass(frozen=True)
class AdapterSnapshot:
    """Captured state of one management-OS adapter."""
    name: str
    mac_address: str
    minimum_bandwidth_absolute: int = 0
    minimum_bandwidth_weight: int = 0
    maximum_bandwidth: int = 0
    vlan_id: int = 0
    ip_addresses: tuple[IPAssignment, ...] = ()
    routes: tuple[GatewayRoute, ...] = ()
    dns: DnsConfiguration = field(default_factory=DnsConfiguration)
    advanced_properties: tuple[PropertyValue, ...] = ()


@dataclass(frozen=True)
class SwitchSnapshot:
    """Captured state of one virtual switch and its legacy team."""
    switch_name: str
    bandwidth_mode: BandwidthMode
    default_flow_minimum_bandwidth: int
    team_name: str
    team_members: tuple[str, ...]
    load_balancing_algorithm: int
    adapters: tuple[AdapterSnapshot, ...] = ()
    switch_id: str = ""

    def to_dict(self) -> dict:
        d = asdict(self)
        d["bandwidth_mode"] = self.bandwidth_mode.value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwitchSnapshot":
        adapters = []
        for a in data.get("adapters", []):
            dns = dict(a.get("dns") or {})
            dns["servers"] = tuple(dns.get("servers", ()))
            adapters.append(AdapterSnapshot(
                name=a["name"],
                mac_address=a["mac_address"],
                minimum_bandwidth_absolute=a.get("minimum_bandwidth_absolute", 0),
                minimum_bandwidth_weight=a.get("minimum_bandwidth_weight", 0),
                maximum_bandwidth=a.get("maximum_bandwidth", 0),
                vlan_id=a.get("vlan_id", 0),
                ip_addresses=tuple(IPAssignment(**ip) for ip in a.get("ip_addresses", [])),
                routes=tuple(GatewayRoute(**r) for r in a.get("routes", [])),
                dns=DnsConfiguration(**dns),
                advanced_properties=tuple(
                    PropertyValue(p["name"], tuple(p.get("value", ())))
                    for p in a.get("advanced_properties", [])
                ),
            ))
        return cls(
            switch_name=data["switch_name"],
            bandwidth_mode=BandwidthMode(data["bandwidth_mode"]),
            default_flow_minimum_bandwidth=data.get("default_flow_minimum_bandwidth", 0),
            team_name=data["team_name"],
            team_members=tuple(data.get("team_members", ())),
            load_balancing_algorithm=data["load_balancing_algorithm"],
            adapters=tuple(adapters),
            switch_id=data.get("switch_id", ""),
        )


class SnapshotBuilder:
    """Builds SwitchSnapshots from live host state.

    Capture is read-only. Empty query results (no adapters, no routes, no
    non-default properties) are normal and become empty tuples.
    """

    def __init__(self, platform: HostNetworkPlatform):
        self.platform = platform

    def capture(self, switch: SwitchInfo, team: Optional[TeamInfo] = None) -> SwitchSnapshot:
        """Capture a validated switch.

        Args:
            switch: Switch handle that passed eligibility validation
            team: Legacy team already resolved by the validator, if any

        Raises:
            PlatformError: If an inventory query fails
            ValueError: If the switch no longer resolves to a legacy team
        """
        if team is None:
            team = self.platform.resolve_team(switch.net_adapter_description)
        if team is None:
            raise ValueError(f"Switch '{switch.name}' is not bound to a legacy team")

        if switch.bandwidth_mode == BandwidthMode.ABSOLUTE:
            default_flow = switch.default_flow_minimum_bandwidth_absolute
        elif switch.bandwidth_mode == BandwidthMode.WEIGHT:
            default_flow = switch.default_flow_minimum_bandwidth_weight
        else:
            default_flow = 0

        adapters = tuple(
            self._capture_adapter(a)
            for a in self.platform.list_management_adapters(switch.name) or []
        )
        logger.info(f"Captured switch '{switch.name}': team '{team.name}' "
                    f"({len(team.members)} member(s)), {len(adapters)} host adapter(s)")

        return SwitchSnapshot(
            switch_name=switch.name,
            switch_id=switch.id,
            bandwidth_mode=switch.bandwidth_mode,
            default_flow_minimum_bandwidth=default_flow,
            team_name=team.name,
            team_members=tuple(team.members),
            load_balancing_algorithm=int(team.load_balancing_algorithm),
            adapters=adapters,
        )

    def _capture_adapter(self, adapter: ManagementAdapter) -> AdapterSnapshot:
        index = adapter.interface_index

        ips = tuple(
            IPAssignment(ip.address, ip.prefix_length, ip.skip_as_source)
            for ip in self.platform.get_ip_addresses(index) or []
            if ip.prefix_origin == MANUAL_PREFIX_ORIGIN
        )
        routes = tuple(
            GatewayRoute(r.destination_prefix, r.next_hop, r.metric)
            for r in self.platform.get_routes(index) or []
            if r.protocol == MANUAL_ROUTE_PROTOCOL
        )
        dns_record = self.platform.get_dns_settings(index)
        dns = DnsConfiguration(
            domain=dns_record.domain or "",
            servers=tuple(dns_record.servers or ()),
            full_dns_registration=dns_record.full_dns_registration,
            domain_dns_registration=dns_record.domain_dns_registration,
            wins_primary=dns_record.wins_primary or "",
            wins_secondary=dns_record.wins_secondary or "",
            netbios_setting=dns_record.netbios_setting,
        )
        properties = tuple(
            PropertyValue(p.name, tuple(p.value))
            for p in self.platform.get_advanced_properties(adapter.name) or []
            if not p.is_default
        )

        logger.debug(f"  {adapter.name} ({adapter.mac_address}): {len(ips)} IP, "
                     f"{len(routes)} route(s), {len(properties)} non-default propert(ies)")

        return AdapterSnapshot(
            name=adapter.name,
            mac_address=adapter.mac_address,
            minimum_bandwidth_absolute=adapter.minimum_bandwidth_absolute,
            minimum_bandwidth_weight=adapter.minimum_bandwidth_weight,
            maximum_bandwidth=adapter.maximum_bandwidth,
            vlan_id=adapter.vlan_id,
            ip_addresses=ips,
            routes=routes,
            dns=dns,
            advanced_properties=properties,
        )
