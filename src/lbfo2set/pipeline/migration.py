"""Per-switch conversion from a legacy team to an embedded-teaming switch."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from lbfo2set.config import MigrationRequest
from lbfo2set.platform.base import (
    BandwidthMode,
    GuestAdapter,
    HostNetworkPlatform,
    LbfoLoadBalancingAlgorithm,
    SetLoadBalancingAlgorithm,
    SwitchInfo,
)
from lbfo2set.pipeline.replay import ConfigurationReplayer
from lbfo2set.pipeline.snapshot import AdapterSnapshot, SwitchSnapshot
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class MigrationOutcome:
    """Result of processing one switch."""
    switch_name: str
    status: OutcomeStatus
    reason: str = ""
    new_switch_name: str = ""
    failed_stage: Optional[str] = None
    adapters_replayed: int = 0
    adapters_failed: int = 0
    properties_replayed: int = 0
    properties_failed: int = 0
    guest_adapters_reconnected: int = 0
    guest_adapters_failed: int = 0
    completed_stages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration: str = ""

    @property
    def processed(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.PARTIAL_FAILURE)

    def to_dict(self) -> dict:
        return {
            "switch_name": self.switch_name,
            "new_switch_name": self.new_switch_name,
            "status": self.status.value,
            "reason": self.reason,
            "failed_stage": self.failed_stage,
            "adapters_replayed": self.adapters_replayed,
            "adapters_failed": self.adapters_failed,
            "properties_replayed": self.properties_replayed,
            "properties_failed": self.properties_failed,
            "guest_adapters_reconnected": self.guest_adapters_reconnected,
            "guest_adapters_failed": self.guest_adapters_failed,
            "completed_stages": self.completed_stages,
            "warnings": self.warnings,
            "duration": self.duration,
        }


# ─── Setting resolution ──────────────────────────────────────────────

def translate_legacy_algorithm(legacy: int) -> SetLoadBalancingAlgorithm:
    """Map a legacy team algorithm onto the embedded-teaming equivalents.

    Only Dynamic has a direct counterpart. The hash based legacy modes have
    none, and choosing one is taken as a deliberate move away from Dynamic.
    """
    if legacy == LbfoLoadBalancingAlgorithm.DYNAMIC:
        return SetLoadBalancingAlgorithm.DYNAMIC
    return SetLoadBalancingAlgorithm.HYPERV_PORT


def resolve_algorithm(snapshot: SwitchSnapshot, request: MigrationRequest) -> Optional[SetLoadBalancingAlgorithm]:
    if request.load_balancing_algorithm is not None:
        return request.load_balancing_algorithm
    if request.use_defaults:
        return None
    return translate_legacy_algorithm(snapshot.load_balancing_algorithm)


def resolve_bandwidth_mode(snapshot: SwitchSnapshot, request: MigrationRequest) -> Optional[BandwidthMode]:
    if request.bandwidth_mode is not None:
        return request.bandwidth_mode
    if request.use_defaults:
        return None
    return snapshot.bandwidth_mode


class SwitchMigration:
    """Tears down one legacy switch and rebuilds it with embedded teaming.

    Stages (executed in order, each one committed immediately):
    1. disconnect_guest_adapters  — detach VM adapters, remember them
    2. remove_management_adapters — drop host adapters of the old switch
    3. remove_switch              — remove the old switch
    4. remove_legacy_team         — release the physical members
    5. create_switch              — new switch on the members, teaming on
    6. apply_team_settings        — load balancing and default flow
    7. rebuild_adapters           — recreate and replay host adapters
    8. reconnect_guest_adapters   — attach VM adapters to the new switch

    There is no rollback. Host connectivity is down from stage 4 until the
    host adapters are back in stage 7, and a failure of stage 5 leaves the
    host without the switch.
    """

    STAGES = [
        "disconnect_guest_adapters",
        "remove_management_adapters",
        "remove_switch",
        "remove_legacy_team",
        "create_switch",
        "apply_team_settings",
        "rebuild_adapters",
        "reconnect_guest_adapters",
    ]

    def __init__(
        self,
        platform: HostNetworkPlatform,
        snapshot: SwitchSnapshot,
        request: MigrationRequest,
        new_name: Optional[str] = None,
        settle_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.platform = platform
        self.snapshot = snapshot
        self.request = request
        self.new_name = new_name or snapshot.switch_name
        self.settle_seconds = settle_seconds
        self._sleep = sleep

        self.algorithm = resolve_algorithm(snapshot, request)
        self.bandwidth_mode = resolve_bandwidth_mode(snapshot, request)

        self.guest_adapters: list[GuestAdapter] = []
        self.new_switch: Optional[SwitchInfo] = None
        self.outcome = MigrationOutcome(
            switch_name=snapshot.switch_name,
            new_switch_name=self.new_name,
            status=OutcomeStatus.SUCCESS,
        )

    def run(self) -> MigrationOutcome:
        start_time = time.time()
        logger.info(f"[bold]Converting switch '{self.snapshot.switch_name}'[/bold] → "
                    f"'{self.new_name}' on {', '.join(self.snapshot.team_members)}")

        for stage_name in self.STAGES:
            logger.info(f"[cyan]▶ Stage: {stage_name}[/cyan]")
            try:
                self._execute_stage(stage_name)
            except Exception as e:
                self.outcome.status = OutcomeStatus.FAILED
                self.outcome.failed_stage = stage_name
                self.outcome.reason = str(e)
                if stage_name == "create_switch":
                    logger.error(
                        f"[bold red]✗ Creating switch '{self.new_name}' failed: {e}. The legacy switch "
                        f"and team '{self.snapshot.team_name}' are already removed; rebuild manually "
                        f"from the saved snapshot.[/bold red]"
                    )
                else:
                    logger.error(f"[red]✗ Stage {stage_name} failed: {e}[/red]")
                if self.guest_adapters:
                    names = ", ".join(f"{a.vm_name}/{a.name}" for a in self.guest_adapters)
                    self._warn(f"VM adapters left disconnected: {names}")
                break

            self.outcome.completed_stages.append(stage_name)
            logger.info(f"[green]✓ Stage {stage_name} complete[/green]")

        if self.outcome.status != OutcomeStatus.FAILED:
            failures = (self.outcome.adapters_failed + self.outcome.properties_failed
                        + self.outcome.guest_adapters_failed)
            if failures:
                self.outcome.status = OutcomeStatus.PARTIAL_FAILURE
                self.outcome.reason = f"{failures} item(s) could not be restored"

        self.outcome.duration = f"{time.time() - start_time:.0f}s"
        return self.outcome

    def dry_run(self) -> None:
        """Describe the stages without executing any of them."""
        logger.info(f"[yellow]DRY RUN for switch '{self.snapshot.switch_name}'[/yellow]")
        algorithm = self.algorithm.value if self.algorithm else "platform default"
        mode = self.bandwidth_mode.value if self.bandwidth_mode else "platform default"
        logger.info(f"New switch '{self.new_name}' on {', '.join(self.snapshot.team_members)}, "
                    f"load balancing {algorithm}, bandwidth mode {mode}")
        for i, stage in enumerate(self.STAGES, 1):
            logger.info(f"  {i}. {stage}")
        for adapter in self.snapshot.adapters:
            logger.info(f"     host adapter {adapter.name} ({adapter.mac_address}), "
                        f"{len(adapter.ip_addresses)} IP(s), VLAN {adapter.vlan_id or 'none'}")

    def _execute_stage(self, stage: str) -> None:
        handler = getattr(self, f"_stage_{stage}", None)
        if handler is None:
            raise NotImplementedError(f"Stage '{stage}' not implemented")
        handler()

    def _settle(self) -> None:
        if self.settle_seconds:
            logger.debug(f"Waiting {self.settle_seconds:g}s for the host to settle")
            self._sleep(self.settle_seconds)

    def _warn(self, message: str) -> None:
        self.outcome.warnings.append(message)
        logger.warning(f"[yellow]{message}[/yellow]")

    # ─── Stage implementations ───────────────────────────────────────

    def _stage_disconnect_guest_adapters(self) -> None:
        adapters = self.platform.list_guest_adapters(self.snapshot.switch_name) or []
        if not adapters:
            logger.info("No VM adapters connected")
            return
        self.guest_adapters = list(adapters)
        try:
            self.platform.disconnect_guest_adapters(adapters)
        except Exception:
            # A batch disconnect can stop partway; the old switch still exists here.
            self.guest_adapters = self._restore_guest_adapters(adapters)
            raise
        logger.info(f"Disconnected {len(adapters)} VM adapter(s)")

    def _restore_guest_adapters(self, adapters: list[GuestAdapter]) -> list[GuestAdapter]:
        """Reconnect adapters to the legacy switch; return those that stay offline."""
        offline = []
        for adapter in adapters:
            try:
                self.platform.connect_guest_adapter(adapter, self.snapshot.switch_name)
            except Exception as e:
                offline.append(adapter)
                logger.debug(f"Reconnecting {adapter.vm_name}/{adapter.name} to the legacy switch failed: {e}")
        return offline

    def _stage_remove_management_adapters(self) -> None:
        if not self.snapshot.adapters:
            return
        self.platform.remove_management_adapters(self.snapshot.switch_name)
        self._settle()

    def _stage_remove_switch(self) -> None:
        self.platform.remove_switch(self.snapshot.switch_name)
        self._settle()

    def _stage_remove_legacy_team(self) -> None:
        self.platform.remove_team(self.snapshot.team_name)
        self._settle()

    def _stage_create_switch(self) -> None:
        self.new_switch = self.platform.create_switch(
            self.new_name,
            list(self.snapshot.team_members),
            bandwidth_mode=self.bandwidth_mode,
            notes=self.request.notes,
        )
        logger.info(f"Created switch '{self.new_name}' "
                    f"(bandwidth mode {self.new_switch.bandwidth_mode.value})")

    def _stage_apply_team_settings(self) -> None:
        if self.algorithm is not None:
            try:
                current = self.platform.get_switch_team_algorithm(self.new_name)
                if current != self.algorithm:
                    self.platform.set_switch_team_algorithm(self.new_name, self.algorithm)
                    logger.info(f"Load balancing set to {self.algorithm.value}")
                self.outcome.properties_replayed += 1
            except Exception as e:
                self.outcome.properties_failed += 1
                self._warn(f"Setting load balancing {self.algorithm.value} failed: {e}")

        flow = self.snapshot.default_flow_minimum_bandwidth
        mode = self.new_switch.bandwidth_mode
        if self.request.use_defaults or not flow or mode != self.snapshot.bandwidth_mode:
            return
        try:
            if mode == BandwidthMode.ABSOLUTE:
                self.platform.set_switch_default_flow(self.new_name, absolute=flow)
            elif mode == BandwidthMode.WEIGHT:
                self.platform.set_switch_default_flow(self.new_name, weight=flow)
            else:
                return
            self.outcome.properties_replayed += 1
        except Exception as e:
            self.outcome.properties_failed += 1
            self._warn(f"Setting default flow bandwidth failed: {e}")

    def _stage_rebuild_adapters(self) -> None:
        replayer = ConfigurationReplayer(self.platform, use_defaults=self.request.use_defaults)

        for adapter_snapshot in self.snapshot.adapters:
            try:
                adapter = self.platform.add_management_adapter(
                    self.new_name, adapter_snapshot.name, adapter_snapshot.mac_address,
                )
            except Exception as e:
                self.outcome.adapters_failed += 1
                self._warn(f"Recreating host adapter '{adapter_snapshot.name}' failed: {e}")
                continue

            self._apply_bandwidth(adapter_snapshot)
            if adapter_snapshot.vlan_id:
                try:
                    self.platform.set_adapter_vlan(adapter_snapshot.name, adapter_snapshot.vlan_id)
                    self.outcome.properties_replayed += 1
                except Exception as e:
                    self.outcome.properties_failed += 1
                    self._warn(f"{adapter_snapshot.name}: setting VLAN {adapter_snapshot.vlan_id} failed: {e}")

            result = replayer.replay(adapter_snapshot, adapter)
            self.outcome.properties_replayed += result.applied
            self.outcome.properties_failed += result.failed
            self.outcome.warnings.extend(result.warnings)
            self.outcome.adapters_replayed += 1

    def _apply_bandwidth(self, adapter: AdapterSnapshot) -> None:
        mode = self.new_switch.bandwidth_mode
        minimum_absolute = minimum_weight = None
        if not self.request.use_defaults:
            if mode == BandwidthMode.ABSOLUTE and adapter.minimum_bandwidth_absolute:
                minimum_absolute = adapter.minimum_bandwidth_absolute
            elif mode == BandwidthMode.WEIGHT and adapter.minimum_bandwidth_weight:
                minimum_weight = adapter.minimum_bandwidth_weight
        maximum = adapter.maximum_bandwidth or None

        if minimum_absolute is None and minimum_weight is None and maximum is None:
            return
        try:
            self.platform.set_adapter_bandwidth(
                adapter.name,
                minimum_absolute=minimum_absolute,
                minimum_weight=minimum_weight,
                maximum=maximum,
            )
            self.outcome.properties_replayed += 1
        except Exception as e:
            self.outcome.properties_failed += 1
            self._warn(f"{adapter.name}: setting bandwidth failed: {e}")

    def _stage_reconnect_guest_adapters(self) -> None:
        for adapter in self.guest_adapters:
            try:
                self.platform.connect_guest_adapter(adapter, self.new_name)
                self.outcome.guest_adapters_reconnected += 1
            except Exception as e:
                self.outcome.guest_adapters_failed += 1
                self._warn(f"Reconnecting '{adapter.vm_name}/{adapter.name}' failed: {e}")
