"""Run reports: Markdown file and terminal table."""

from __future__ import annotations

from pathlib import Path

from rich.table import Table

from lbfo2set.pipeline.migration import OutcomeStatus
from lbfo2set.pipeline.runner import RunReport

STATUS_STYLES = {
    OutcomeStatus.SUCCESS: ("✅", "bold green"),
    OutcomeStatus.PARTIAL_FAILURE: ("⚠️ ", "yellow"),
    OutcomeStatus.FAILED: ("❌", "bold red"),
    OutcomeStatus.SKIPPED: ("⏭️ ", "dim"),
}


def generate_report(report: RunReport, output_path: Path | None = None) -> str:
    """Generate a Markdown run report.

    Args:
        report: Finished RunReport
        output_path: Optional path to write the report file

    Returns:
        Report as Markdown string
    """
    lines = [
        f"# Switch Conversion Report — Run `{report.run_id}`",
        "",
        f"**Date:** {report.started_at.strftime('%Y-%m-%d %H:%M')}",
        f"**Duration:** {report.duration_s:.0f} s",
    ]
    if report.dry_run:
        lines.append("**Mode:** dry run (no changes made)")
    if report.cluster_node:
        lines.append(f"**Cluster node:** {report.cluster_node} "
                     f"(drained: {'yes' if report.drained else 'no'}, "
                     f"resumed: {'yes' if report.resumed else 'no'})")
    lines += [
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Switches | {len(report.outcomes)} |",
    ]
    for status in OutcomeStatus:
        lines.append(f"| {status.value.replace('_', ' ').capitalize()} | {len(report.by_status(status))} |")
    lines.append("")

    processed = [o for o in report.outcomes if o.processed]
    if processed:
        lines += [
            "## Converted Switches",
            "",
            "| Switch | New Name | Status | Host Adapters | Settings | VM Adapters | Duration |",
            "|------|------|------|------|------|------|------|",
        ]
        for o in processed:
            lines.append(
                f"| {o.switch_name} | {o.new_switch_name} | {o.status.value} | "
                f"{o.adapters_replayed} ok / {o.adapters_failed} failed | "
                f"{o.properties_replayed} ok / {o.properties_failed} failed | "
                f"{o.guest_adapters_reconnected} ok / {o.guest_adapters_failed} failed | {o.duration} |"
            )
        lines.append("")

    not_processed = [o for o in report.outcomes if not o.processed]
    if not_processed:
        lines += [
            "## Failed and Skipped Switches",
            "",
            "| Switch | Status | Stage | Reason |",
            "|------|------|------|------|",
        ]
        for o in not_processed:
            lines.append(f"| {o.switch_name} | {o.status.value} | {o.failed_stage or '—'} | {o.reason[:100]} |")
        lines.append("")

    warnings = [(o.switch_name, w) for o in report.outcomes for w in o.warnings]
    if warnings:
        lines += ["## Warnings", ""]
        lines += [f"- **{name}**: {w}" for name, w in warnings]
        lines.append("")

    text = "\n".join(lines)
    if output_path:
        Path(output_path).write_text(text)
    return text


def render_table(report: RunReport) -> Table:
    """Build a rich table of per-switch outcomes."""
    table = Table(title=f"Run {report.run_id}")
    table.add_column("Switch", style="cyan", no_wrap=True)
    table.add_column("New name")
    table.add_column("Status")
    table.add_column("Host adapters", justify="right")
    table.add_column("Settings", justify="right")
    table.add_column("VM adapters", justify="right")
    table.add_column("Reason")

    for o in report.outcomes:
        icon, style = STATUS_STYLES[o.status]
        table.add_row(
            o.switch_name,
            o.new_switch_name or "—",
            f"[{style}]{icon} {o.status.value}[/{style}]",
            f"{o.adapters_replayed}/{o.adapters_replayed + o.adapters_failed}",
            f"{o.properties_replayed}/{o.properties_replayed + o.properties_failed}",
            f"{o.guest_adapters_reconnected}/{o.guest_adapters_reconnected + o.guest_adapters_failed}",
            o.reason,
        )
    return table
