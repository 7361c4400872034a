"""Host networking and cluster capability interfaces.

The migration engine never talks to the operating system directly. Every
read and every mutation goes through one of the two abstract classes
below, which keeps the orchestration testable and lets the PowerShell
backend (``lbfo2set.platform.powershell``) stay a thin translation layer.

Record types returned by the interfaces are plain dataclasses; they are
point-in-time reads and are never refreshed behind the caller's back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

# Host build that introduced switch-embedded teaming
SET_MIN_OS_BUILD = 14393


class PlatformError(RuntimeError):
    """A platform primitive failed.

    ``status`` carries the numeric platform code when the primitive reports
    one (method-style calls such as ``SetDNSDomain``).
    """

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        self.operation = operation
        self.status = status
        super().__init__(f"{operation}: {message}")


# ═══════════════════════════════════════════════════════════════════
#  Enumerations
# ═══════════════════════════════════════════════════════════════════

class SwitchType(str, Enum):
    EXTERNAL = "External"
    INTERNAL = "Internal"
    PRIVATE = "Private"


class BandwidthMode(str, Enum):
    NONE = "None"
    ABSOLUTE = "Absolute"
    WEIGHT = "Weight"


class LbfoLoadBalancingAlgorithm(IntEnum):
    """Legacy team algorithms as reported by the NetLbfo provider."""
    TRANSPORT_PORTS = 0
    IP_ADDRESSES = 2
    MAC_ADDRESSES = 3
    HYPERV_PORT = 4
    DYNAMIC = 5


class SetLoadBalancingAlgorithm(str, Enum):
    """Algorithms available to a switch-embedded team."""
    DYNAMIC = "Dynamic"
    HYPERV_PORT = "HyperVPort"


class DrainStatus(str, Enum):
    NOT_STARTED = "NotInitiated"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


# ═══════════════════════════════════════════════════════════════════
#  Records
# ═══════════════════════════════════════════════════════════════════

@dataclass
class SwitchInfo:
    """A virtual switch as enumerated on the host."""
    id: str
    name: str
    switch_type: SwitchType
    embedded_teaming: bool = False
    bandwidth_mode: BandwidthMode = BandwidthMode.NONE
    net_adapter_description: str = ""
    default_flow_minimum_bandwidth_absolute: int = 0
    default_flow_minimum_bandwidth_weight: int = 0
    notes: str = ""


@dataclass
class TeamInfo:
    """A legacy LBFO team and the team interface bound to a switch."""
    name: str
    members: list[str] = field(default_factory=list)
    load_balancing_algorithm: int = LbfoLoadBalancingAlgorithm.DYNAMIC
    interface_vlan_id: int = 0


@dataclass
class ManagementAdapter:
    """A management-OS virtual adapter (host vNIC)."""
    name: str
    mac_address: str
    switch_name: str
    interface_index: int = 0
    minimum_bandwidth_absolute: int = 0
    minimum_bandwidth_weight: int = 0
    maximum_bandwidth: int = 0
    vlan_id: int = 0


@dataclass
class IPAddressRecord:
    address: str
    prefix_length: int
    skip_as_source: bool = False
    prefix_origin: str = "Manual"


@dataclass
class RouteRecord:
    destination_prefix: str
    next_hop: str
    metric: int = 0
    protocol: str = "NetMgmt"


@dataclass
class DnsRecord:
    """DNS/WINS/NetBIOS state of one interface."""
    domain: str = ""
    servers: list[str] = field(default_factory=list)
    full_dns_registration: bool = True
    domain_dns_registration: bool = False
    wins_primary: str = ""
    wins_secondary: str = ""
    netbios_setting: int = 0


@dataclass
class AdvancedProperty:
    """One advanced driver property, keyed by registry keyword."""
    name: str
    value: list[str] = field(default_factory=list)
    default_value: list[str] = field(default_factory=list)
    display_name: str = ""

    @property
    def is_default(self) -> bool:
        return list(self.value) == list(self.default_value)


@dataclass
class GuestAdapter:
    """A virtual machine network adapter."""
    vm_name: str
    name: str
    switch_name: str = ""
    mac_address: str = ""


# ═══════════════════════════════════════════════════════════════════
#  Capability interfaces
# ═══════════════════════════════════════════════════════════════════

class HostNetworkPlatform(ABC):
    """Switch, team and adapter primitives of one host."""

    # --- reads -------------------------------------------------------

    @abstractmethod
    def get_os_build(self) -> int: ...

    @abstractmethod
    def list_switches(self) -> list[SwitchInfo]: ...

    @abstractmethod
    def get_switch(self, name: str) -> Optional[SwitchInfo]: ...

    @abstractmethod
    def resolve_team(self, interface_description: str) -> Optional[TeamInfo]:
        """Return the legacy team owning the interface, or None."""

    @abstractmethod
    def list_management_adapters(self, switch_name: str) -> list[ManagementAdapter]: ...

    @abstractmethod
    def get_ip_addresses(self, interface_index: int) -> list[IPAddressRecord]: ...

    @abstractmethod
    def get_routes(self, interface_index: int) -> list[RouteRecord]: ...

    @abstractmethod
    def get_dns_settings(self, interface_index: int) -> DnsRecord: ...

    @abstractmethod
    def get_advanced_properties(self, adapter_name: str) -> list[AdvancedProperty]: ...

    @abstractmethod
    def list_guest_adapters(self, switch_name: str) -> list[GuestAdapter]: ...

    @abstractmethod
    def get_switch_team_algorithm(self, switch_name: str) -> SetLoadBalancingAlgorithm: ...

    # --- mutations ---------------------------------------------------

    @abstractmethod
    def disconnect_guest_adapters(self, adapters: list[GuestAdapter]) -> None: ...

    @abstractmethod
    def connect_guest_adapter(self, adapter: GuestAdapter, switch_name: str) -> None: ...

    @abstractmethod
    def remove_management_adapters(self, switch_name: str) -> None: ...

    @abstractmethod
    def remove_switch(self, name: str) -> None: ...

    @abstractmethod
    def remove_team(self, name: str) -> None: ...

    @abstractmethod
    def create_switch(
        self,
        name: str,
        members: list[str],
        bandwidth_mode: Optional[BandwidthMode] = None,
        notes: str = "",
    ) -> SwitchInfo:
        """Create an embedded-teaming switch without management-OS access."""

    @abstractmethod
    def set_switch_team_algorithm(self, switch_name: str, algorithm: SetLoadBalancingAlgorithm) -> None: ...

    @abstractmethod
    def set_switch_default_flow(self, switch_name: str, absolute: int = 0, weight: int = 0) -> None: ...

    @abstractmethod
    def add_management_adapter(self, switch_name: str, name: str, mac_address: str) -> ManagementAdapter: ...

    @abstractmethod
    def set_adapter_bandwidth(
        self,
        adapter_name: str,
        minimum_absolute: Optional[int] = None,
        minimum_weight: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> None: ...

    @abstractmethod
    def set_adapter_vlan(self, adapter_name: str, vlan_id: int) -> None: ...

    @abstractmethod
    def add_ip_address(self, interface_index: int, address: IPAddressRecord) -> None: ...

    @abstractmethod
    def add_route(self, interface_index: int, route: RouteRecord) -> None: ...

    # Method-style configuration calls return the platform status code
    # (0 = success).

    @abstractmethod
    def set_dns_domain(self, interface_index: int, domain: str) -> int: ...

    @abstractmethod
    def set_dns_servers(self, interface_index: int, servers: list[str]) -> int: ...

    @abstractmethod
    def set_dynamic_dns_registration(self, interface_index: int, full: bool, domain: bool) -> int: ...

    @abstractmethod
    def set_wins_servers(self, interface_index: int, primary: str, secondary: str) -> int: ...

    @abstractmethod
    def set_netbios_setting(self, interface_index: int, setting: int) -> int: ...

    @abstractmethod
    def set_advanced_property(self, adapter_name: str, name: str, value: list[str]) -> None: ...


class ClusterMembership(ABC):
    """Failover cluster membership of the local host."""

    @abstractmethod
    def is_cluster_member(self) -> bool: ...

    @abstractmethod
    def drain_supported(self) -> bool:
        """True when node drain/resume primitives are available."""

    @abstractmethod
    def local_node_name(self) -> str: ...

    @abstractmethod
    def suspend_node(self, node: str, drain_type: str = "Drain", target_node: Optional[str] = None) -> None: ...

    @abstractmethod
    def get_drain_status(self, node: str) -> DrainStatus: ...

    @abstractmethod
    def resume_node(self, node: str, failback: str = "Immediate") -> None: ...
