"""Batch orchestration of switch conversions on one host.

Flow of a run:
  preconditions ──► eligibility ──► rename check ──► snapshot capture
      ──► drain node ──► switch 1 … switch N (sequential) ──► resume node

Nothing on the host is changed before the drain. Per-switch failures
end up in the RunReport; only precondition and drain errors are raised,
and the node is always resumed once a drain was issued.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from lbfo2set.config import AppConfig, MigrationRequest
from lbfo2set.platform.base import ClusterMembership, HostNetworkPlatform, SwitchInfo
from lbfo2set.pipeline.cluster import ClusterCoordinator, DrainPolicy
from lbfo2set.pipeline.errors import NoMatchingSwitches, PreconditionError, RenameCountMismatch
from lbfo2set.pipeline.migration import MigrationOutcome, OutcomeStatus, SwitchMigration
from lbfo2set.pipeline.snapshot import SnapshotBuilder, SwitchSnapshot
from lbfo2set.pipeline.state import SnapshotStore
from lbfo2set.pipeline.validator import Eligibility, EligibilityReport, EligibilityValidator
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)

EXIT_NOTHING_ELIGIBLE = 2


@dataclass
class RunReport:
    """Aggregated result of a run."""
    run_id: str
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    dry_run: bool = False
    cluster_node: str = ""
    drained: bool = False
    resumed: bool = False
    nothing_eligible: bool = False
    outcomes: list[MigrationOutcome] = field(default_factory=list)

    def by_status(self, status: OutcomeStatus) -> list[MigrationOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> list[MigrationOutcome]:
        return self.by_status(OutcomeStatus.SUCCESS)

    @property
    def failed(self) -> list[MigrationOutcome]:
        return self.by_status(OutcomeStatus.FAILED)

    @property
    def exit_code(self) -> int:
        return EXIT_NOTHING_ELIGIBLE if self.nothing_eligible else 0

    @property
    def duration_s(self) -> float:
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "dry_run": self.dry_run,
            "cluster_node": self.cluster_node,
            "drained": self.drained,
            "resumed": self.resumed,
            "nothing_eligible": self.nothing_eligible,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def select_switches(
    platform: HostNetworkPlatform,
    ids: Optional[list[str]] = None,
    names: Optional[list[str]] = None,
    switches: Optional[list[SwitchInfo]] = None,
) -> list[SwitchInfo]:
    """Resolve exactly one kind of selector to switch handles.

    Raises:
        ValueError: More than one kind of selector was given
        NoMatchingSwitches: Nothing matched
    """
    given = [s for s in (ids, names, switches) if s]
    if len(given) > 1:
        raise ValueError("Select switches by id, by name or by handle, not a combination")

    if switches:
        selected = list(switches)
    else:
        available = platform.list_switches() or []
        if ids:
            wanted = {i.lower() for i in ids}
            selected = [s for s in available if s.id.lower() in wanted]
        elif names:
            wanted = {n.lower() for n in names}
            selected = [s for s in available if s.name.lower() in wanted]
        else:
            selected = available

    if not selected:
        raise NoMatchingSwitches("No virtual switch matches the selection")
    return selected


class MigrationRunner:
    """Converts the selected switches of one host, one after another."""

    def __init__(
        self,
        platform: HostNetworkPlatform,
        cluster: Optional[ClusterMembership],
        config: Optional[AppConfig] = None,
        store: Optional[SnapshotStore] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.platform = platform
        self.cluster = cluster
        self.config = config or AppConfig()
        self.store = store if store is not None else SnapshotStore(self.config.state_dir)
        self._sleep = sleep
        self._clock = clock
        self._cancelled = False

    def cancel(self) -> None:
        """Stop before the next switch; the current one always completes."""
        self._cancelled = True

    def assess(self, switches: list[SwitchInfo]) -> list[EligibilityReport]:
        """Run eligibility validation only (read-only)."""
        validator = EligibilityValidator(self.platform)
        return [validator.validate(s) for s in switches]

    def run(self, switches: list[SwitchInfo], request: MigrationRequest) -> RunReport:
        """Convert the given switches.

        Raises:
            PreconditionError: Before any change to the host
            ClusterDrainError: The node could not be drained (after resume)
        """
        report = RunReport(run_id=str(uuid.uuid4())[:8], dry_run=request.dry_run)
        self._check_host()

        coordinator = ClusterCoordinator(
            self.cluster,
            DrainPolicy(
                interval=self.config.timing.drain_poll_interval_seconds,
                timeout=self.config.timing.drain_timeout_seconds,
                drain_type=self.config.cluster.drain_type,
                target_node=self.config.cluster.drain_target_node,
                failback=self.config.cluster.failback,
            ),
            sleep=self._sleep,
            clock=self._clock,
        )
        coordinator.check_preconditions()
        report.cluster_node = coordinator.node

        eligible = []
        for verdict in self.assess(switches):
            if verdict.eligible:
                eligible.append(verdict)
            else:
                report.outcomes.append(MigrationOutcome(
                    switch_name=verdict.switch.name,
                    status=OutcomeStatus.SKIPPED if verdict.verdict == Eligibility.SKIPPED else OutcomeStatus.FAILED,
                    reason=verdict.reason,
                ))

        if not eligible:
            logger.warning("[yellow]None of the selected switches can be converted[/yellow]")
            report.nothing_eligible = True
            report.completed_at = datetime.now()
            return report

        if request.new_names and len(request.new_names) != len(eligible):
            raise RenameCountMismatch(len(request.new_names), len(eligible))

        planned = self._capture(eligible, request, report)

        if request.dry_run:
            for snapshot, new_name in planned:
                SwitchMigration(self.platform, snapshot, request, new_name).dry_run()
                report.outcomes.append(MigrationOutcome(
                    switch_name=snapshot.switch_name,
                    new_switch_name=new_name or snapshot.switch_name,
                    status=OutcomeStatus.SKIPPED,
                    reason="Dry run: no changes made",
                ))
            report.completed_at = datetime.now()
            return report

        if planned:
            try:
                report.drained = coordinator.drain_if_clustered()
                self._migrate_all(planned, request, report)
            finally:
                report.resumed = coordinator.resume_if_clustered()
                report.completed_at = datetime.now()
                self._save_run(report)
        else:
            report.completed_at = datetime.now()

        logger.info(f"[bold]Run {report.run_id} finished[/bold]: {len(report.succeeded)} converted, "
                    f"{len(report.by_status(OutcomeStatus.PARTIAL_FAILURE))} partial, "
                    f"{len(report.failed)} failed, {len(report.by_status(OutcomeStatus.SKIPPED))} skipped")
        return report

    def _check_host(self) -> None:
        build = self.platform.get_os_build()
        if build < self.config.min_os_build:
            raise PreconditionError(
                f"Host build {build} does not support embedded teaming "
                f"(requires {self.config.min_os_build} or later)"
            )

    def _capture(
        self,
        eligible: list[EligibilityReport],
        request: MigrationRequest,
        report: RunReport,
    ) -> list[tuple[SwitchSnapshot, Optional[str]]]:
        builder = SnapshotBuilder(self.platform)
        planned = []
        for i, verdict in enumerate(eligible):
            new_name = request.new_names[i] if request.new_names else None
            try:
                snapshot = builder.capture(verdict.switch, verdict.team)
            except Exception as e:
                logger.error(f"[red]✗ Inventory of '{verdict.switch.name}' failed: {e}[/red]")
                report.outcomes.append(MigrationOutcome(
                    switch_name=verdict.switch.name,
                    status=OutcomeStatus.FAILED,
                    reason=f"Inventory failed: {e}",
                ))
                continue
            planned.append((snapshot, new_name))
        return planned

    def _migrate_all(
        self,
        planned: list[tuple[SwitchSnapshot, Optional[str]]],
        request: MigrationRequest,
        report: RunReport,
    ) -> None:
        for snapshot, new_name in planned:
            if self._cancelled:
                report.outcomes.append(MigrationOutcome(
                    switch_name=snapshot.switch_name,
                    status=OutcomeStatus.SKIPPED,
                    reason="Run cancelled before this switch",
                ))
                continue

            try:
                self.store.save(snapshot)
            except OSError as e:
                logger.warning(f"[yellow]Could not save snapshot of '{snapshot.switch_name}': {e}[/yellow]")

            migration = SwitchMigration(
                self.platform,
                snapshot,
                request,
                new_name=new_name,
                settle_seconds=self.config.timing.settle_seconds,
                sleep=self._sleep,
            )
            report.outcomes.append(migration.run())

    def _save_run(self, report: RunReport) -> None:
        try:
            path = self.store.save_run(report.run_id, report.to_dict())
            logger.debug(f"Run record written to {path}")
        except OSError as e:
            logger.warning(f"[yellow]Could not save run record: {e}[/yellow]")
