"""PowerShell backed host platform (Hyper-V, NetLbfo, NetTCPIP, FailoverClusters).

Each primitive is a short PowerShell script run through ``run_command``.
Reads emit JSON on stdout; a query that matches nothing prints nothing and
is returned as an empty list. Queries use ``-ErrorAction SilentlyContinue``
where the cmdlet would otherwise raise on an empty result.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from lbfo2set.config import PowerShellSettings
from lbfo2set.platform.base import (
    AdvancedProperty,
    BandwidthMode,
    ClusterMembership,
    DnsRecord,
    DrainStatus,
    GuestAdapter,
    HostNetworkPlatform,
    IPAddressRecord,
    ManagementAdapter,
    PlatformError,
    RouteRecord,
    SetLoadBalancingAlgorithm,
    SwitchInfo,
    SwitchType,
    TeamInfo,
)
from lbfo2set.utils.logging import get_logger
from lbfo2set.utils.subprocess import run_command

logger = get_logger(__name__)

_SWITCH_FIELDS = (
    "@{n='Id';e={$_.Id.ToString()}}, Name, "
    "@{n='SwitchType';e={$_.SwitchType.ToString()}}, EmbeddedTeamingEnabled, "
    "@{n='BandwidthReservationMode';e={$_.BandwidthReservationMode.ToString()}}, "
    "NetAdapterInterfaceDescription, DefaultFlowMinimumBandwidthAbsolute, "
    "DefaultFlowMinimumBandwidthWeight, Notes"
)

_BANDWIDTH_MODES = {
    "Absolute": BandwidthMode.ABSOLUTE,
    "Weight": BandwidthMode.WEIGHT,
    "None": BandwidthMode.NONE,
}


def ps_quote(value: str) -> str:
    """Quote a string as a PowerShell single-quoted literal."""
    return "'" + str(value).replace("'", "''") + "'"


def ps_bool(value: bool) -> str:
    return "$true" if value else "$false"


def host_adapter_name(adapter_name: str) -> str:
    """Name of the host network interface backing a management-OS adapter."""
    return f"vEthernet ({adapter_name})"


class PowerShellSession:
    """Runs PowerShell scripts and decodes their JSON output."""

    def __init__(self, settings: Optional[PowerShellSettings] = None):
        self.settings = settings or PowerShellSettings()

    def _command(self, script: str) -> list[str]:
        return [
            self.settings.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy", "Bypass",
            "-Command", script,
        ]

    def invoke(self, operation: str, script: str) -> list[Any]:
        """Run a query and return its results as a list (possibly empty)."""
        wrapped = (
            "$ErrorActionPreference = 'Stop'; "
            f"$r = @({script}); "
            "if ($r.Count -gt 0) { ConvertTo-Json -InputObject $r -Depth 5 -Compress }"
        )
        stdout = self._run(operation, wrapped)
        if not stdout.strip():
            return []
        try:
            data = json.loads(stdout)
        except ValueError as e:
            raise PlatformError(operation, f"unreadable output: {e}")
        return data if isinstance(data, list) else [data]

    def execute(self, operation: str, script: str) -> None:
        """Run a mutation; any error becomes a PlatformError."""
        self._run(operation, f"$ErrorActionPreference = 'Stop'; {script} | Out-Null")

    def _run(self, operation: str, script: str) -> str:
        try:
            result = run_command(self._command(script), timeout=self.settings.command_timeout)
        except (RuntimeError, TimeoutError) as e:
            raise PlatformError(operation, str(e))
        return result.stdout


class PowerShellPlatform(HostNetworkPlatform):
    """HostNetworkPlatform over Hyper-V and networking cmdlets."""

    def __init__(self, session: Optional[PowerShellSession] = None):
        self.session = session or PowerShellSession()

    # --- reads -------------------------------------------------------

    def get_os_build(self) -> int:
        rows = self.session.invoke("get OS build", "[System.Environment]::OSVersion.Version.Build")
        return int(rows[0]) if rows else 0

    def list_switches(self) -> list[SwitchInfo]:
        rows = self.session.invoke(
            "list switches",
            f"Get-VMSwitch -ErrorAction SilentlyContinue | Select-Object {_SWITCH_FIELDS}",
        )
        return [self._to_switch(r) for r in rows]

    def get_switch(self, name: str) -> Optional[SwitchInfo]:
        rows = self.session.invoke(
            f"get switch {name}",
            f"Get-VMSwitch -Name {ps_quote(name)} -ErrorAction SilentlyContinue | Select-Object {_SWITCH_FIELDS}",
        )
        return self._to_switch(rows[0]) if rows else None

    def resolve_team(self, interface_description: str) -> Optional[TeamInfo]:
        script = (
            "Get-NetLbfoTeamNic -ErrorAction SilentlyContinue | "
            f"Where-Object InterfaceDescription -eq {ps_quote(interface_description)} | "
            "ForEach-Object { $t = Get-NetLbfoTeam -Name $_.Team; [pscustomobject]@{ "
            "Name = $t.Name; Members = @($t.Members); "
            "LoadBalancingAlgorithm = [int]$t.LoadBalancingAlgorithm; VlanID = [int]$_.VlanID } }"
        )
        rows = self.session.invoke(f"resolve team of '{interface_description}'", script)
        if not rows:
            return None
        row = rows[0]
        return TeamInfo(
            name=row["Name"],
            members=list(row.get("Members") or []),
            load_balancing_algorithm=int(row.get("LoadBalancingAlgorithm") or 0),
            interface_vlan_id=int(row.get("VlanID") or 0),
        )

    def list_management_adapters(self, switch_name: str) -> list[ManagementAdapter]:
        script = (
            f"Get-VMNetworkAdapter -ManagementOS -SwitchName {ps_quote(switch_name)} -ErrorAction SilentlyContinue | "
            "ForEach-Object { $na = Get-NetAdapter -Name \"vEthernet ($($_.Name))\" -ErrorAction SilentlyContinue; "
            "$vlan = Get-VMNetworkAdapterVlan -VMNetworkAdapter $_; [pscustomobject]@{ "
            "Name = $_.Name; MacAddress = $_.MacAddress; SwitchName = $_.SwitchName; "
            "InterfaceIndex = [int]$na.ifIndex; "
            "MinimumBandwidthAbsolute = [long]$_.BandwidthSetting.MinimumBandwidthAbsolute; "
            "MinimumBandwidthWeight = [long]$_.BandwidthSetting.MinimumBandwidthWeight; "
            "MaximumBandwidth = [long]$_.BandwidthSetting.MaximumBandwidth; "
            "VlanId = [int]$vlan.AccessVlanId } }"
        )
        rows = self.session.invoke(f"list host adapters of {switch_name}", script)
        return [
            ManagementAdapter(
                name=r["Name"],
                mac_address=r.get("MacAddress") or "",
                switch_name=r.get("SwitchName") or switch_name,
                interface_index=int(r.get("InterfaceIndex") or 0),
                minimum_bandwidth_absolute=int(r.get("MinimumBandwidthAbsolute") or 0),
                minimum_bandwidth_weight=int(r.get("MinimumBandwidthWeight") or 0),
                maximum_bandwidth=int(r.get("MaximumBandwidth") or 0),
                vlan_id=int(r.get("VlanId") or 0),
            )
            for r in rows
        ]

    def get_ip_addresses(self, interface_index: int) -> list[IPAddressRecord]:
        script = (
            f"Get-NetIPAddress -InterfaceIndex {int(interface_index)} -ErrorAction SilentlyContinue | "
            "Select-Object IPAddress, PrefixLength, SkipAsSource, "
            "@{n='PrefixOrigin';e={$_.PrefixOrigin.ToString()}}"
        )
        rows = self.session.invoke(f"list IP addresses of interface {interface_index}", script)
        return [
            IPAddressRecord(
                address=r["IPAddress"],
                prefix_length=int(r["PrefixLength"]),
                skip_as_source=bool(r.get("SkipAsSource")),
                prefix_origin=r.get("PrefixOrigin") or "",
            )
            for r in rows
        ]

    def get_routes(self, interface_index: int) -> list[RouteRecord]:
        script = (
            f"Get-NetRoute -InterfaceIndex {int(interface_index)} -ErrorAction SilentlyContinue | "
            "Select-Object DestinationPrefix, NextHop, RouteMetric, "
            "@{n='Protocol';e={$_.Protocol.ToString()}}"
        )
        rows = self.session.invoke(f"list routes of interface {interface_index}", script)
        return [
            RouteRecord(
                destination_prefix=r["DestinationPrefix"],
                next_hop=r["NextHop"],
                metric=int(r.get("RouteMetric") or 0),
                protocol=r.get("Protocol") or "",
            )
            for r in rows
        ]

    def get_dns_settings(self, interface_index: int) -> DnsRecord:
        script = (
            "Get-CimInstance Win32_NetworkAdapterConfiguration "
            f"-Filter 'InterfaceIndex={int(interface_index)}' | ForEach-Object {{ [pscustomobject]@{{ "
            "Domain = $_.DNSDomain; Servers = @($_.DNSServerSearchOrder | Where-Object { $_ }); "
            "Full = [bool]$_.FullDNSRegistrationEnabled; DomainReg = [bool]$_.DomainDNSRegistrationEnabled; "
            "WinsPrimary = $_.WINSPrimaryServer; WinsSecondary = $_.WINSSecondaryServer; "
            "NetBios = [int]$_.TcpipNetbiosOptions } }"
        )
        rows = self.session.invoke(f"read DNS settings of interface {interface_index}", script)
        if not rows:
            return DnsRecord()
        r = rows[0]
        return DnsRecord(
            domain=r.get("Domain") or "",
            servers=list(r.get("Servers") or []),
            full_dns_registration=bool(r.get("Full")),
            domain_dns_registration=bool(r.get("DomainReg")),
            wins_primary=r.get("WinsPrimary") or "",
            wins_secondary=r.get("WinsSecondary") or "",
            netbios_setting=int(r.get("NetBios") or 0),
        )

    def get_advanced_properties(self, adapter_name: str) -> list[AdvancedProperty]:
        script = (
            f"Get-NetAdapterAdvancedProperty -Name {ps_quote(host_adapter_name(adapter_name))} "
            "-ErrorAction SilentlyContinue | Where-Object RegistryKeyword | "
            "Select-Object RegistryKeyword, DisplayName, "
            "@{n='Value';e={@($_.RegistryValue)}}, @{n='Default';e={@($_.DefaultRegistryValue)}}"
        )
        rows = self.session.invoke(f"list advanced properties of {adapter_name}", script)
        return [
            AdvancedProperty(
                name=r["RegistryKeyword"],
                value=[str(v) for v in r.get("Value") or []],
                default_value=[str(v) for v in r.get("Default") or []],
                display_name=r.get("DisplayName") or "",
            )
            for r in rows
        ]

    def list_guest_adapters(self, switch_name: str) -> list[GuestAdapter]:
        script = (
            "Get-VMNetworkAdapter -VMName * -ErrorAction SilentlyContinue | "
            f"Where-Object SwitchName -eq {ps_quote(switch_name)} | "
            "Select-Object VMName, Name, SwitchName, MacAddress"
        )
        rows = self.session.invoke(f"list VM adapters on {switch_name}", script)
        return [
            GuestAdapter(
                vm_name=r["VMName"],
                name=r["Name"],
                switch_name=r.get("SwitchName") or switch_name,
                mac_address=r.get("MacAddress") or "",
            )
            for r in rows
        ]

    def get_switch_team_algorithm(self, switch_name: str) -> SetLoadBalancingAlgorithm:
        rows = self.session.invoke(
            f"read team of {switch_name}",
            f"(Get-VMSwitchTeam -Name {ps_quote(switch_name)}).LoadBalancingAlgorithm.ToString()",
        )
        if not rows:
            raise PlatformError(f"read team of {switch_name}", "switch has no team")
        return SetLoadBalancingAlgorithm(rows[0])

    # --- mutations ---------------------------------------------------

    def disconnect_guest_adapters(self, adapters: list[GuestAdapter]) -> None:
        script = "; ".join(f"{self._guest_adapter_query(a)} | Disconnect-VMNetworkAdapter" for a in adapters)
        self.session.execute("disconnect VM adapters", script)

    def connect_guest_adapter(self, adapter: GuestAdapter, switch_name: str) -> None:
        self.session.execute(
            f"connect {adapter.vm_name}/{adapter.name}",
            f"{self._guest_adapter_query(adapter)} | Connect-VMNetworkAdapter -SwitchName {ps_quote(switch_name)}",
        )

    def remove_management_adapters(self, switch_name: str) -> None:
        self.session.execute(
            f"remove host adapters of {switch_name}",
            f"Get-VMNetworkAdapter -ManagementOS -SwitchName {ps_quote(switch_name)} | "
            "Remove-VMNetworkAdapter -Confirm:$false",
        )

    def remove_switch(self, name: str) -> None:
        self.session.execute(f"remove switch {name}", f"Remove-VMSwitch -Name {ps_quote(name)} -Force")

    def remove_team(self, name: str) -> None:
        self.session.execute(f"remove team {name}", f"Remove-NetLbfoTeam -Name {ps_quote(name)} -Confirm:$false")

    def create_switch(
        self,
        name: str,
        members: list[str],
        bandwidth_mode: Optional[BandwidthMode] = None,
        notes: str = "",
    ) -> SwitchInfo:
        parts = [
            f"New-VMSwitch -Name {ps_quote(name)}",
            f"-NetAdapterName {', '.join(ps_quote(m) for m in members)}",
            "-EnableEmbeddedTeaming $true -AllowManagementOS $false",
        ]
        if bandwidth_mode is not None:
            parts.append(f"-MinimumBandwidthMode {bandwidth_mode.value}")
        if notes:
            parts.append(f"-Notes {ps_quote(notes)}")
        self.session.execute(f"create switch {name}", " ".join(parts))

        switch = self.get_switch(name)
        if switch is None:
            raise PlatformError(f"create switch {name}", "switch not found after creation")
        return switch

    def set_switch_team_algorithm(self, switch_name: str, algorithm: SetLoadBalancingAlgorithm) -> None:
        self.session.execute(
            f"set load balancing on {switch_name}",
            f"Set-VMSwitchTeam -Name {ps_quote(switch_name)} -LoadBalancingAlgorithm {algorithm.value}",
        )

    def set_switch_default_flow(self, switch_name: str, absolute: int = 0, weight: int = 0) -> None:
        if absolute:
            arg = f"-DefaultFlowMinimumBandwidthAbsolute {int(absolute)}"
        else:
            arg = f"-DefaultFlowMinimumBandwidthWeight {int(weight)}"
        self.session.execute(f"set default flow on {switch_name}", f"Set-VMSwitch -Name {ps_quote(switch_name)} {arg}")

    def add_management_adapter(self, switch_name: str, name: str, mac_address: str) -> ManagementAdapter:
        script = f"Add-VMNetworkAdapter -ManagementOS -SwitchName {ps_quote(switch_name)} -Name {ps_quote(name)}"
        if mac_address:
            script += f" -StaticMacAddress {ps_quote(mac_address.replace('-', '').replace(':', ''))}"
        self.session.execute(f"add host adapter {name}", script)

        for adapter in self.list_management_adapters(switch_name):
            if adapter.name == name:
                return adapter
        raise PlatformError(f"add host adapter {name}", "adapter not found after creation")

    def set_adapter_bandwidth(
        self,
        adapter_name: str,
        minimum_absolute: Optional[int] = None,
        minimum_weight: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> None:
        args = []
        if minimum_absolute is not None:
            args.append(f"-MinimumBandwidthAbsolute {int(minimum_absolute)}")
        if minimum_weight is not None:
            args.append(f"-MinimumBandwidthWeight {int(minimum_weight)}")
        if maximum is not None:
            args.append(f"-MaximumBandwidth {int(maximum)}")
        if not args:
            return
        self.session.execute(
            f"set bandwidth of {adapter_name}",
            f"Set-VMNetworkAdapter -ManagementOS -Name {ps_quote(adapter_name)} {' '.join(args)}",
        )

    def set_adapter_vlan(self, adapter_name: str, vlan_id: int) -> None:
        self.session.execute(
            f"set VLAN of {adapter_name}",
            f"Set-VMNetworkAdapterVlan -ManagementOS -VMNetworkAdapterName {ps_quote(adapter_name)} "
            f"-Access -VlanId {int(vlan_id)}",
        )

    def add_ip_address(self, interface_index: int, address: IPAddressRecord) -> None:
        self.session.execute(
            f"add IP {address.address}",
            f"New-NetIPAddress -InterfaceIndex {int(interface_index)} -IPAddress {ps_quote(address.address)} "
            f"-PrefixLength {int(address.prefix_length)} -SkipAsSource {ps_bool(address.skip_as_source)}",
        )

    def add_route(self, interface_index: int, route: RouteRecord) -> None:
        self.session.execute(
            f"add route {route.destination_prefix}",
            f"New-NetRoute -InterfaceIndex {int(interface_index)} "
            f"-DestinationPrefix {ps_quote(route.destination_prefix)} -NextHop {ps_quote(route.next_hop)} "
            f"-RouteMetric {int(route.metric)}",
        )

    def _adapter_config_method(self, interface_index: int, method: str, arguments: str) -> int:
        script = (
            "$c = Get-CimInstance Win32_NetworkAdapterConfiguration "
            f"-Filter 'InterfaceIndex={int(interface_index)}'; "
            f"(Invoke-CimMethod -InputObject $c -MethodName {method} -Arguments @{{ {arguments} }}).ReturnValue"
        )
        rows = self.session.invoke(f"{method} on interface {interface_index}", script)
        return int(rows[0]) if rows else 0

    def set_dns_domain(self, interface_index: int, domain: str) -> int:
        return self._adapter_config_method(interface_index, "SetDNSDomain", f"DNSDomain = {ps_quote(domain)}")

    def set_dns_servers(self, interface_index: int, servers: list[str]) -> int:
        values = ", ".join(ps_quote(s) for s in servers)
        return self._adapter_config_method(
            interface_index, "SetDNSServerSearchOrder", f"DNSServerSearchOrder = [string[]]@({values})",
        )

    def set_dynamic_dns_registration(self, interface_index: int, full: bool, domain: bool) -> int:
        return self._adapter_config_method(
            interface_index, "SetDynamicDNSRegistration",
            f"FullDNSRegistrationEnabled = {ps_bool(full)}; DomainDNSRegistrationEnabled = {ps_bool(domain)}",
        )

    def set_wins_servers(self, interface_index: int, primary: str, secondary: str) -> int:
        return self._adapter_config_method(
            interface_index, "SetWINSServer",
            f"WINSPrimaryServer = {ps_quote(primary)}; WINSSecondaryServer = {ps_quote(secondary)}",
        )

    def set_netbios_setting(self, interface_index: int, setting: int) -> int:
        return self._adapter_config_method(
            interface_index, "SetTcpipNetbios", f"TcpipNetbiosOptions = [uint32]{int(setting)}",
        )

    def set_advanced_property(self, adapter_name: str, name: str, value: list[str]) -> None:
        values = ", ".join(ps_quote(v) for v in value) or "''"
        self.session.execute(
            f"set advanced property {name} on {adapter_name}",
            f"Set-NetAdapterAdvancedProperty -Name {ps_quote(host_adapter_name(adapter_name))} "
            f"-RegistryKeyword {ps_quote(name)} -RegistryValue {values} -NoRestart",
        )

    # --- helpers -----------------------------------------------------

    @staticmethod
    def _to_switch(row: dict) -> SwitchInfo:
        try:
            switch_type = SwitchType(row.get("SwitchType") or "Private")
        except ValueError:
            switch_type = SwitchType.PRIVATE
        return SwitchInfo(
            id=row.get("Id") or "",
            name=row["Name"],
            switch_type=switch_type,
            embedded_teaming=bool(row.get("EmbeddedTeamingEnabled")),
            bandwidth_mode=_BANDWIDTH_MODES.get(row.get("BandwidthReservationMode") or "", BandwidthMode.NONE),
            net_adapter_description=row.get("NetAdapterInterfaceDescription") or "",
            default_flow_minimum_bandwidth_absolute=int(row.get("DefaultFlowMinimumBandwidthAbsolute") or 0),
            default_flow_minimum_bandwidth_weight=int(row.get("DefaultFlowMinimumBandwidthWeight") or 0),
            notes=row.get("Notes") or "",
        )

    @staticmethod
    def _guest_adapter_query(adapter: GuestAdapter) -> str:
        query = f"Get-VMNetworkAdapter -VMName {ps_quote(adapter.vm_name)}"
        if adapter.mac_address:
            return f"{query} | Where-Object MacAddress -eq {ps_quote(adapter.mac_address)}"
        return f"{query} -Name {ps_quote(adapter.name)}"


class PowerShellCluster(ClusterMembership):
    """ClusterMembership over the FailoverClusters module."""

    def __init__(self, session: Optional[PowerShellSession] = None):
        self.session = session or PowerShellSession()

    def is_cluster_member(self) -> bool:
        rows = self.session.invoke(
            "detect cluster membership",
            "[bool](Get-Service -Name ClusSvc -ErrorAction SilentlyContinue | Where-Object Status -eq 'Running')",
        )
        return bool(rows and rows[0])

    def drain_supported(self) -> bool:
        rows = self.session.invoke(
            "detect cluster cmdlets",
            "[bool](Get-Command Suspend-ClusterNode -ErrorAction SilentlyContinue)",
        )
        return bool(rows and rows[0])

    def local_node_name(self) -> str:
        rows = self.session.invoke("read host name", "$env:COMPUTERNAME")
        return str(rows[0]) if rows else ""

    def suspend_node(self, node: str, drain_type: str = "Drain", target_node: Optional[str] = None) -> None:
        script = f"Suspend-ClusterNode -Name {ps_quote(node)} -Drain"
        if drain_type == "ForceDrain":
            script += " -ForceDrain"
        if target_node:
            script += f" -TargetNode {ps_quote(target_node)}"
        self.session.execute(f"drain node {node}", script)

    def get_drain_status(self, node: str) -> DrainStatus:
        rows = self.session.invoke(
            f"read drain status of {node}",
            f"(Get-ClusterNode -Name {ps_quote(node)}).DrainStatus.ToString()",
        )
        try:
            return DrainStatus(rows[0]) if rows else DrainStatus.NOT_STARTED
        except ValueError:
            logger.debug(f"Unrecognised drain status {rows[0]!r}")
            return DrainStatus.IN_PROGRESS

    def resume_node(self, node: str, failback: str = "Immediate") -> None:
        self.session.execute(
            f"resume node {node}",
            f"Resume-ClusterNode -Name {ps_quote(node)} -Failback {failback}",
        )
