"""Reapply captured adapter configuration to a rebuilt host adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from lbfo2set.platform.base import (
    AdvancedProperty,
    HostNetworkPlatform,
    IPAddressRecord,
    ManagementAdapter,
    RouteRecord,
)
from lbfo2set.pipeline.snapshot import AdapterSnapshot, PropertyValue
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)

# NetBIOS over TCP/IP: 0 = use DHCP setting (default), 1 = enabled, 2 = disabled
NETBIOS_DEFAULT = 0


@dataclass
class ReplayResult:
    """Per-adapter replay counters."""
    adapter_name: str
    applied: int = 0
    failed: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.warnings.append(message)
        logger.warning(f"[yellow]{self.adapter_name}: {message}[/yellow]")


def match_by_name(
    captured: Iterable[PropertyValue],
    current: Iterable[AdvancedProperty],
) -> list[tuple[PropertyValue, AdvancedProperty]]:
    """Pair captured properties with the new adapter's properties by name.

    Pairs keep the captured order. Captured entries without a counterpart
    are dropped.
    """
    by_name = {p.name: p for p in current}
    return [(c, by_name[c.name]) for c in captured if c.name in by_name]


class ConfigurationReplayer:
    """Replays IP, route, DNS and advanced driver settings.

    Every platform call is attempted independently: a failing call is
    logged as a warning and counted, and replay moves on to the next item.
    With ``use_defaults`` only IP addresses, their gateway routes and
    advanced properties are replayed.
    """

    def __init__(self, platform: HostNetworkPlatform, use_defaults: bool = False):
        self.platform = platform
        self.use_defaults = use_defaults

    def replay(self, snapshot: AdapterSnapshot, adapter: ManagementAdapter) -> ReplayResult:
        result = ReplayResult(adapter_name=snapshot.name)
        index = adapter.interface_index

        for ip in snapshot.ip_addresses:
            self._attempt(
                result, f"add IP {ip.address}/{ip.prefix_length}",
                lambda ip=ip: self.platform.add_ip_address(
                    index, IPAddressRecord(ip.address, ip.prefix_length, ip.skip_as_source),
                ),
            )

        if not self.use_defaults:
            dns = snapshot.dns
            self._status_call(
                result, "set dynamic DNS registration",
                lambda: self.platform.set_dynamic_dns_registration(
                    index, dns.full_dns_registration, dns.domain_dns_registration,
                ),
            )

        for route in snapshot.routes:
            self._attempt(
                result, f"add route {route.destination_prefix} via {route.next_hop}",
                lambda route=route: self.platform.add_route(
                    index, RouteRecord(route.destination_prefix, route.next_hop, route.metric),
                ),
            )

        if not self.use_defaults:
            self._replay_dns(snapshot, index, result)

        self._replay_advanced_properties(snapshot, adapter, result)

        logger.info(f"  {snapshot.name}: {result.applied} setting(s) replayed, "
                    f"{result.failed} failed, {result.skipped} skipped")
        return result

    def _replay_dns(self, snapshot: AdapterSnapshot, index: int, result: ReplayResult) -> None:
        dns = snapshot.dns
        if dns.domain:
            self._status_call(result, "set DNS domain", lambda: self.platform.set_dns_domain(index, dns.domain))
        if dns.servers:
            self._status_call(
                result, "set DNS servers",
                lambda: self.platform.set_dns_servers(index, list(dns.servers)),
            )
        if dns.wins_primary or dns.wins_secondary:
            self._status_call(
                result, "set WINS servers",
                lambda: self.platform.set_wins_servers(index, dns.wins_primary, dns.wins_secondary),
            )
        if dns.netbios_setting != NETBIOS_DEFAULT:
            self._status_call(
                result, "set NetBIOS over TCP/IP",
                lambda: self.platform.set_netbios_setting(index, dns.netbios_setting),
            )

    def _replay_advanced_properties(
        self, snapshot: AdapterSnapshot, adapter: ManagementAdapter, result: ReplayResult,
    ) -> None:
        if not snapshot.advanced_properties:
            return

        try:
            current = self.platform.get_advanced_properties(adapter.name) or []
        except Exception as e:
            result.record_failure(f"read advanced properties failed: {e}")
            return

        pairs = match_by_name(snapshot.advanced_properties, current)
        result.skipped += len(snapshot.advanced_properties) - len(pairs)

        for captured, _ in pairs:
            self._attempt(
                result, f"set advanced property {captured.name}",
                lambda captured=captured: self.platform.set_advanced_property(
                    adapter.name, captured.name, list(captured.value),
                ),
            )

    def _attempt(self, result: ReplayResult, what: str, call: Callable[[], None]) -> None:
        try:
            call()
        except Exception as e:
            result.record_failure(f"{what} failed: {e}")
            return
        result.applied += 1

    def _status_call(self, result: ReplayResult, what: str, call: Callable[[], int]) -> None:
        try:
            status = call()
        except Exception as e:
            result.record_failure(f"{what} failed: {e}")
            return
        if status:
            result.record_failure(f"{what} returned platform status {status}")
        else:
            result.applied += 1
