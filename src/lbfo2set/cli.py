"""CLI entry point for lbfo2set."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from lbfo2set.config import AppConfig, MigrationRequest
from lbfo2set.platform.base import BandwidthMode, SetLoadBalancingAlgorithm
from lbfo2set.pipeline.errors import ClusterDrainError, NoMatchingSwitches, PreconditionError
from lbfo2set.utils.logging import set_log_level

console = Console()


def load_config(config_path: str | None) -> AppConfig:
    """Load configuration from file or environment."""
    try:
        if config_path:
            return AppConfig.from_yaml(config_path)
        return AppConfig.from_env_and_args()
    except (OSError, ValidationError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        sys.exit(1)


def build_backend(config: AppConfig):
    """Create the platform and cluster capabilities for this host."""
    from lbfo2set.platform.powershell import PowerShellCluster, PowerShellPlatform, PowerShellSession
    from lbfo2set.utils.subprocess import check_tool_available

    if not check_tool_available(config.powershell.executable):
        console.print(f"[red]PowerShell not found: {config.powershell.executable}[/red]")
        sys.exit(1)
    session = PowerShellSession(config.powershell)
    return PowerShellPlatform(session), PowerShellCluster(session)


def _selection(switch_ids: tuple[str, ...], switch_names: tuple[str, ...]) -> dict:
    if switch_ids and switch_names:
        raise click.UsageError("--switch-id and --switch-name are mutually exclusive")
    if not switch_ids and not switch_names:
        raise click.UsageError("Select switches with --switch-id or --switch-name")
    return {"ids": list(switch_ids) or None, "names": list(switch_names) or None}


@click.group()
@click.version_option(version="0.1.0", prog_name="lbfo2set")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration file")
@click.option("--log-level", default="INFO",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str):
    """Convert Hyper-V switches from LBFO teams to Switch Embedded Teaming.

    Host adapters, their IP, VLAN, bandwidth, DNS and driver settings and
    the VM adapter connections are carried over to the new switch. Cluster
    nodes are drained first and resumed afterwards.
    """
    set_log_level(log_level)
    ctx.obj = load_config(config_path)


@main.command()
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table")
@click.pass_obj
def inventory(config: AppConfig, fmt: str):
    """List virtual switches and whether they can be converted."""
    from lbfo2set.pipeline.runner import MigrationRunner

    platform, cluster = build_backend(config)
    with console.status("[bold green]Collecting switch inventory..."):
        switches = platform.list_switches()
        verdicts = MigrationRunner(platform, cluster, config).assess(switches)

    if fmt == "json":
        data = [
            {
                "id": v.switch.id,
                "name": v.switch.name,
                "type": v.switch.switch_type.value,
                "team": v.team.name if v.team else None,
                "verdict": v.verdict.value,
                "reason": v.reason,
            }
            for v in verdicts
        ]
        console.print_json(json.dumps(data))
        return

    table = Table(title="Virtual Switches")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Id", style="dim")
    table.add_column("Type")
    table.add_column("Team")
    table.add_column("Members")
    table.add_column("Verdict")
    table.add_column("Reason")
    for v in verdicts:
        style = {"eligible": "green", "skipped": "yellow", "failed": "red"}[v.verdict.value]
        table.add_row(
            v.switch.name,
            v.switch.id,
            v.switch.switch_type.value,
            v.team.name if v.team else "—",
            ", ".join(v.team.members) if v.team else "—",
            f"[{style}]{v.verdict.value}[/{style}]",
            v.reason,
        )
    console.print(table)
    console.print(f"\n[dim]Total: {len(verdicts)} switch(es)[/dim]")


@main.command()
@click.option("--switch-id", "switch_ids", multiple=True, help="Switch id (repeatable)")
@click.option("--switch-name", "switch_names", multiple=True, help="Switch name (repeatable)")
@click.pass_obj
def validate(config: AppConfig, switch_ids: tuple[str, ...], switch_names: tuple[str, ...]):
    """Check whether the selected switches can be converted."""
    from lbfo2set.pipeline.runner import EXIT_NOTHING_ELIGIBLE, MigrationRunner, select_switches

    selection = _selection(switch_ids, switch_names)
    platform, cluster = build_backend(config)
    try:
        switches = select_switches(platform, **selection)
    except NoMatchingSwitches as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    verdicts = MigrationRunner(platform, cluster, config).assess(switches)
    for v in verdicts:
        icon = {"eligible": "✅", "skipped": "⏭️ ", "failed": "❌"}[v.verdict.value]
        console.print(f"  {icon} {v.switch.name}: {v.reason or 'eligible'}")

    if not any(v.eligible for v in verdicts):
        sys.exit(EXIT_NOTHING_ELIGIBLE)


@main.command()
@click.option("--switch-id", "switch_ids", multiple=True, help="Switch id (repeatable)")
@click.option("--switch-name", "switch_names", multiple=True, help="Switch name (repeatable)")
@click.option("--new-name", "new_names", multiple=True, help="New switch name, one per eligible switch")
@click.option("--use-defaults", is_flag=True, default=False,
              help="Keep only IPs, routes, VLAN, maximum bandwidth and driver properties")
@click.option("--lb-algorithm", type=click.Choice([a.value for a in SetLoadBalancingAlgorithm]),
              help="Load balancing algorithm of the new team")
@click.option("--bandwidth-mode", type=click.Choice([m.value for m in BandwidthMode]),
              help="Minimum bandwidth mode of the new switch")
@click.option("--notes", default="", help="Notes stored on the new switch")
@click.option("--force", is_flag=True, default=False, help="Do not ask for confirmation")
@click.option("--dry-run", is_flag=True, default=False, help="Capture and plan without changing anything")
@click.option("--report", "report_path", type=click.Path(), help="Write a Markdown report")
@click.pass_obj
def migrate(config: AppConfig, switch_ids: tuple[str, ...], switch_names: tuple[str, ...],
            new_names: tuple[str, ...], use_defaults: bool, lb_algorithm: str | None,
            bandwidth_mode: str | None, notes: str, force: bool, dry_run: bool,
            report_path: str | None):
    """Convert the selected switches to Switch Embedded Teaming."""
    from lbfo2set.pipeline.report import generate_report, render_table
    from lbfo2set.pipeline.runner import MigrationRunner, select_switches

    selection = _selection(switch_ids, switch_names)
    try:
        request = MigrationRequest(
            new_names=list(new_names),
            use_defaults=use_defaults,
            load_balancing_algorithm=lb_algorithm,
            bandwidth_mode=bandwidth_mode,
            notes=notes,
            force=force,
            dry_run=dry_run,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid options: {e}[/red]")
        sys.exit(1)

    platform, cluster = build_backend(config)
    try:
        switches = select_switches(platform, **selection)
    except NoMatchingSwitches as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if not (request.force or request.dry_run):
        console.print("[bold yellow]Network connectivity of this host will be interrupted.[/bold yellow]")
        console.print(f"Switches: {', '.join(s.name for s in switches)}")
        if not click.confirm("Continue?", default=False):
            console.print("Aborted.")
            sys.exit(1)

    runner = MigrationRunner(platform, cluster, config)
    try:
        report = runner.run(switches, request)
    except PreconditionError as e:
        console.print(f"\n[bold red]❌ Cannot start: {e}[/bold red]")
        sys.exit(1)
    except ClusterDrainError as e:
        console.print(f"\n[bold red]❌ Cluster drain failed: {e}[/bold red]")
        console.print("  No switch was changed.")
        sys.exit(1)

    if report.dry_run:
        console.print("[yellow]DRY RUN — No changes were made[/yellow]")
    console.print(render_table(report))

    if report_path:
        generate_report(report, Path(report_path))
        console.print(f"\n[dim]Report saved to {report_path}[/dim]")

    if report.nothing_eligible:
        console.print("[yellow]No selected switch can be converted.[/yellow]")
    sys.exit(report.exit_code)


@main.group(invoke_without_command=True)
@click.pass_context
def snapshots(ctx: click.Context):
    """List saved switch snapshots."""
    if ctx.invoked_subcommand is not None:
        return

    from lbfo2set.pipeline.state import SnapshotStore

    config: AppConfig = ctx.obj
    entries = SnapshotStore(config.state_dir).list_all()
    if not entries:
        console.print("[dim]No snapshots saved[/dim]")
        return

    table = Table(title=f"Snapshots in {config.state_dir}")
    table.add_column("Switch", style="cyan")
    table.add_column("Captured")
    table.add_column("Team")
    table.add_column("Members")
    table.add_column("Host adapters", justify="right")
    for captured_at, snap in entries:
        table.add_row(
            snap.switch_name,
            captured_at,
            snap.team_name,
            ", ".join(snap.team_members),
            str(len(snap.adapters)),
        )
    console.print(table)


@snapshots.command("show")
@click.argument("switch_name")
@click.pass_obj
def show_snapshot(config: AppConfig, switch_name: str):
    """Print the saved snapshot of a switch as JSON."""
    from lbfo2set.pipeline.state import SnapshotStore

    snap = SnapshotStore(config.state_dir).load(switch_name)
    if snap is None:
        console.print(f"[red]No snapshot saved for '{switch_name}'[/red]")
        sys.exit(1)
    console.print_json(json.dumps(snap.to_dict(), default=str))


@snapshots.command("delete")
@click.argument("switch_name")
@click.option("--yes", is_flag=True, default=False, help="Do not ask for confirmation")
@click.pass_obj
def delete_snapshot(config: AppConfig, switch_name: str, yes: bool):
    """Delete the saved snapshot of a switch."""
    from lbfo2set.pipeline.state import SnapshotStore

    store = SnapshotStore(config.state_dir)
    if store.load(switch_name) is None:
        console.print(f"[red]No snapshot saved for '{switch_name}'[/red]")
        sys.exit(1)
    if not yes and not click.confirm(f"Delete snapshot of '{switch_name}'?", default=False):
        console.print("Aborted.")
        sys.exit(1)
    store.delete(switch_name)
    console.print(f"[green]✓ Snapshot of '{switch_name}' deleted[/green]")


if __name__ == "__main__":
    main()
