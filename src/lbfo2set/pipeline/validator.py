"""Pre-migration eligibility validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from lbfo2set.platform.base import HostNetworkPlatform, SwitchInfo, SwitchType, TeamInfo
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)


class Eligibility(str, Enum):
    ELIGIBLE = "eligible"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ValidationCheck:
    """Result of a single eligibility check."""
    name: str
    passed: bool
    message: str


@dataclass
class EligibilityReport:
    """Verdict for one candidate switch."""
    switch: SwitchInfo
    verdict: Eligibility
    reason: str = ""
    team: Optional[TeamInfo] = None
    checks: list[ValidationCheck] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return self.verdict == Eligibility.ELIGIBLE


class EligibilityValidator:
    """Decides whether a switch can be converted safely.

    Checks run in a fixed order and stop at the first one that fails; a
    failed check skips the switch. An exception while inspecting the host
    marks the switch as failed instead. Validation never mutates the host.
    """

    def __init__(self, platform: HostNetworkPlatform):
        self.platform = platform

    def validate(self, switch: SwitchInfo) -> EligibilityReport:
        report = EligibilityReport(switch=switch, verdict=Eligibility.ELIGIBLE)

        checks = [
            self._check_external,
            self._check_not_embedded_teaming,
            self._check_bound_to_team,
            self._check_team_untagged,
        ]

        for check_fn in checks:
            try:
                result = check_fn(switch, report)
            except Exception as e:
                report.verdict = Eligibility.FAILED
                report.reason = f"Inspection failed: {e}"
                logger.warning(f"[red]✗ {switch.name}: {report.reason}[/red]")
                return report

            report.checks.append(result)
            if not result.passed:
                report.verdict = Eligibility.SKIPPED
                report.reason = result.message
                logger.info(f"[yellow]Skipping switch '{switch.name}': {result.message}[/yellow]")
                return report

        logger.info(f"[green]✓ Switch '{switch.name}' is eligible[/green] (team '{report.team.name}')")
        return report

    def _check_external(self, switch: SwitchInfo, report: EligibilityReport) -> ValidationCheck:
        if switch.switch_type == SwitchType.EXTERNAL:
            return ValidationCheck("Switch type", True, "External switch")
        return ValidationCheck(
            "Switch type", False,
            f"Switch type is {switch.switch_type.value}; only external switches have an uplink team",
        )

    def _check_not_embedded_teaming(self, switch: SwitchInfo, report: EligibilityReport) -> ValidationCheck:
        if switch.embedded_teaming:
            return ValidationCheck("Teaming model", False, "Switch already uses embedded teaming")
        return ValidationCheck("Teaming model", True, "Legacy teaming")

    def _check_bound_to_team(self, switch: SwitchInfo, report: EligibilityReport) -> ValidationCheck:
        team = self.platform.resolve_team(switch.net_adapter_description)
        if team is None:
            return ValidationCheck(
                "Legacy team", False,
                f"Bound interface '{switch.net_adapter_description}' is not a legacy team adapter",
            )
        report.team = team
        return ValidationCheck("Legacy team", True, f"Team '{team.name}' ({', '.join(team.members)})")

    def _check_team_untagged(self, switch: SwitchInfo, report: EligibilityReport) -> ValidationCheck:
        vlan = report.team.interface_vlan_id if report.team else 0
        if vlan:
            return ValidationCheck(
                "Team VLAN", False,
                f"Team interface carries VLAN {vlan}; tagged team interfaces are not converted",
            )
        return ValidationCheck("Team VLAN", True, "Team interface is untagged")
