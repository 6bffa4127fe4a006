"""Main CLI entry point for EKS cluster management."""

import os
import signal
import threading
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from eks_manager.exceptions import ClusterManagerError
from eks_manager.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="eks-mgr",
    help="Create, inspect, diagnose and delete managed EKS clusters",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.callback()
def main_callback(
    ctx: typer.Context,
    cluster_name: str | None = typer.Option(
        None, "--cluster-name", "-n", help="Cluster name (overrides CLUSTER_NAME and config file)"
    ),
    region: str | None = typer.Option(
        None, "--region", "-r", help="AWS region (overrides REGION and config file)"
    ),
    config_file: str | None = typer.Option(
        None, "--config-file", "-c", help="YAML file with cluster settings"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")

    overrides = {}
    if cluster_name is not None:
        overrides["name"] = cluster_name
    if region is not None:
        overrides["region"] = region
    ctx.obj = {"overrides": overrides, "config_file": config_file}


def _resolve_spec(ctx: typer.Context):
    from eks_manager.config import resolve

    return resolve(os.environ, ctx.obj["config_file"], overrides=ctx.obj["overrides"])


def _resolve_target(ctx: typer.Context) -> tuple[str, str]:
    from eks_manager.config import resolve_target

    return resolve_target(os.environ, ctx.obj["config_file"], overrides=ctx.obj["overrides"])


def _print_error(e: ClusterManagerError) -> None:
    console.print(f"[red]Error:[/red] {escape(e.message)}")
    if e.details:
        console.print(f"\n{escape(e.details)}")


@contextmanager
def _cancel_on_signals():
    """Set the yielded event on SIGINT/SIGTERM instead of aborting mid-call."""
    cancel = threading.Event()

    def handler(signum, frame):
        console.print("\n[yellow]Interrupt received, stopping after the current poll...[/yellow]")
        cancel.set()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield cancel
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _show_spec(spec) -> None:
    table = Table(title=f"Cluster {spec.name}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Region", spec.region)
    table.add_row("Kubernetes version", spec.version)
    table.add_row("VPC CIDR", spec.vpc_cidr)
    for ng in spec.node_groups:
        table.add_row(
            f"Node group {ng.name}",
            f"{ng.instance_type} min={ng.min_size} desired={ng.desired_capacity} max={ng.max_size}",
        )
    if spec.tags:
        table.add_row("Tags", ", ".join(f"{k}={v}" for k, v in spec.tags.items()))
    console.print(table)


def _check_prerequisites(region: str, required: set[str], optional: set[str] = frozenset()):
    from eks_manager.prerequisites import PrerequisiteChecker

    report = PrerequisiteChecker(region).check(
        required_tools=required, require_credentials=True, optional_tools=optional
    )
    for tool in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {tool.name} not found (optional)")
    report.raise_for_failures()
    return report


@app.command()
def version() -> None:
    """Show version information."""
    from eks_manager import __version__

    typer.echo(f"eks-mgr version {__version__}")


@app.command()
def check(ctx: typer.Context) -> None:
    """
    Check that required tools and AWS credentials are available.

    Reports the version of each tool (eksctl, kubectl, aws, helm) and the
    AWS identity in use.
    """
    from eks_manager.prerequisites import OPTIONAL_TOOLS, REQUIRED_TOOLS, PrerequisiteChecker

    try:
        spec = _resolve_spec(ctx)
        report = PrerequisiteChecker(spec.region).check(
            required_tools=REQUIRED_TOOLS, optional_tools=OPTIONAL_TOOLS
        )

        table = Table(title="Prerequisites")
        table.add_column("Tool", style="cyan")
        table.add_column("Status")
        table.add_column("Version", style="blue")
        for tool in report.tools:
            if tool.present:
                status = "[green]✓ Installed[/green]"
            elif tool.required:
                status = "[red]✗ Missing[/red]"
            else:
                status = "[yellow]✗ Missing (optional)[/yellow]"
            table.add_row(tool.name, status, tool.version or "-")
        console.print(table)

        if report.identity:
            console.print(f"[bold]AWS account:[/bold] {report.identity['account']}")
            console.print(f"[bold]Identity:[/bold] {report.identity['arn']}")

        report.raise_for_failures()
        console.print("\n[green]✓ All prerequisites are met[/green]")

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)


@app.command("config")
def show_config(
    ctx: typer.Context,
    render: bool = typer.Option(
        False, "--render", help="Print the eksctl ClusterConfig document that create would use"
    ),
) -> None:
    """
    Show the resolved cluster configuration and an estimated monthly cost.
    """
    from eks_manager.cost import NOT_INCLUDED, estimate_monthly_cost
    from eks_manager.manifest import dump_cluster_config

    try:
        spec = _resolve_spec(ctx)
        if render:
            typer.echo(dump_cluster_config(spec))
            return

        _show_spec(spec)
        estimate = estimate_monthly_cost(spec)
        console.print("\n[bold cyan]Estimated monthly cost (us-east-1)[/bold cyan]")
        console.print(f"  EKS control plane: ${estimate.control_plane:.2f}")
        for ng in spec.node_groups:
            console.print(
                f"  Node group {ng.name} ({ng.desired_capacity} x {ng.instance_type}): "
                f"${estimate.nodes[ng.name]:.2f}"
            )
        console.print(f"  [bold]Total: ${estimate.total:.2f}[/bold]")
        console.print(f"\n[yellow]Not included:[/yellow] {', '.join(NOT_INCLUDED)}")

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)


@app.command()
def create(
    ctx: typer.Context,
    timeout: int = typer.Option(40, "--timeout", help="Minutes to wait for the cluster to be ready"),
    poll_interval: int = typer.Option(20, "--poll-interval", help="Seconds between status polls"),
    skip_addons: bool = typer.Option(False, "--skip-addons", help="Do not install add-ons"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """
    Create the cluster, wait for it to become ready, then install add-ons.

    Examples:
        # Create with defaults (or CLUSTER_NAME / REGION / NODE_TYPE ... from the environment)
        eks-mgr create

        # Create from a config file without prompting
        eks-mgr --config-file cluster.yaml create --yes
    """
    from eks_manager.addons import DEFAULT_ADDONS, AddonInstaller
    from eks_manager.exceptions import PartialFailureError
    from eks_manager.orchestrator import ClusterOrchestrator

    try:
        spec = _resolve_spec(ctx)
        _show_spec(spec)

        if not yes:
            confirm = typer.confirm("Create this cluster? It will incur AWS charges")
            if not confirm:
                console.print("Operation cancelled")
                raise typer.Exit(code=0)

        report = _check_prerequisites(spec.region, {"eksctl", "kubectl"}, {"helm"})

        orchestrator = ClusterOrchestrator(poll_interval=poll_interval)
        console.print(
            f"\n[bold]Creating cluster {spec.name}[/bold] (this usually takes 15-20 minutes)..."
        )
        with _cancel_on_signals() as cancel:
            handle = orchestrator.create(spec, timeout=timeout * 60, cancel=cancel)
        console.print(f"[green]✓[/green] Cluster {spec.name} is ready")
        console.print(f"  States observed: {' → '.join(s.value for s in handle.history)}")
        if not handle.kube_context:
            console.print(
                "[yellow]Warning:[/yellow] kubectl context not found. Run: "
                f"eksctl utils write-kubeconfig --cluster {spec.name} --region {spec.region}"
            )

        if skip_addons:
            return

        helm_present = any(t.name == "helm" and t.present for t in report.tools)
        addons = [a for a in DEFAULT_ADDONS if a.source != "helm" or helm_present]
        if not helm_present:
            console.print(
                "[yellow]Warning:[/yellow] helm not found; skipping chart-based add-ons "
                "(aws-load-balancer-controller)"
            )

        console.print("\n[bold]Installing add-ons...[/bold]")
        try:
            results = AddonInstaller().install(handle, addons)
        except PartialFailureError as e:
            _show_addon_results(e.results)
            raise
        _show_addon_results(results)
        console.print("\n[yellow]Note:[/yellow] The cluster incurs AWS charges until deleted:")
        console.print(
            f"  eks-mgr --cluster-name {spec.name} --region {spec.region} delete --confirm DELETE"
        )

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]Create interrupted by user[/yellow]")
        raise typer.Exit(code=130)


def _show_addon_results(results) -> None:
    table = Table(title="Add-ons")
    table.add_column("Add-on", style="cyan")
    table.add_column("Result")
    table.add_column("Error", style="red")
    for r in results:
        if r.action == "installed":
            status = "[green]✓ Installed[/green]"
        elif r.action == "present":
            status = "[blue]✓ Already present[/blue]"
        else:
            status = "[red]✗ Failed[/red]"
        table.add_row(r.name, status, escape(r.error or ""))
    console.print(table)


@app.command()
def delete(
    ctx: typer.Context,
    confirm: str | None = typer.Option(
        None, "--confirm", help="Must be exactly DELETE to proceed; deletion is irreversible"
    ),
    timeout: int = typer.Option(30, "--timeout", help="Minutes to wait for deletion"),
    poll_interval: int = typer.Option(20, "--poll-interval", help="Seconds between status polls"),
) -> None:
    """
    Delete the cluster, then report resources that may have been left behind.

    Example:
        eks-mgr --cluster-name demo --region us-east-1 delete --confirm DELETE
    """
    from eks_manager.orchestrator import CONFIRMATION_TOKEN, ClusterOrchestrator
    from eks_manager.reaper import ResourceReaper

    try:
        name, region = _resolve_target(ctx)
        if confirm != CONFIRMATION_TOKEN:
            console.print(
                f"Deletion of '{name}' cancelled: pass --confirm {CONFIRMATION_TOKEN} to proceed"
            )
            raise typer.Exit(code=0)

        _check_prerequisites(region, {"eksctl"})

        console.print(
            f"[yellow]Warning:[/yellow] Deleting cluster '{name}' in {region}. "
            "This is irreversible."
        )
        orchestrator = ClusterOrchestrator(poll_interval=poll_interval)
        with _cancel_on_signals() as cancel:
            result = orchestrator.delete(
                name, region, confirm, timeout=timeout * 60, cancel=cancel
            )
        console.print(f"[green]✓[/green] Cluster '{name}' deleted")
        if result.handle:
            console.print(
                f"  States observed: {' → '.join(s.value for s in result.handle.history)}"
            )

        orphans = ResourceReaper().find_orphans(name, region)
        if not orphans:
            console.print("[green]✓[/green] No orphaned resources found")
            return

        table = Table(title="Possible orphaned resources")
        table.add_column("Kind", style="cyan")
        table.add_column("Identifier", style="magenta")
        table.add_column("Name")
        table.add_column("Matched on", style="yellow")
        for o in orphans:
            table.add_row(o.kind, o.identifier, o.name, o.matched_on)
        console.print(table)
        console.print(
            "\n[yellow]Warning:[/yellow] These resources may keep incurring charges. "
            "Review and delete them manually in the AWS Console or with the AWS CLI."
        )

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]Delete interrupted by user[/yellow]")
        raise typer.Exit(code=130)


@app.command()
def status(ctx: typer.Context) -> None:
    """
    Show the cluster's lifecycle state, node groups and registered add-ons.
    """
    from eks_manager.models.cluster import ClusterState
    from eks_manager.orchestrator import ClusterOrchestrator

    try:
        name, region = _resolve_target(ctx)
        handle = ClusterOrchestrator().status(name, region)

        colors = {ClusterState.READY: "green", ClusterState.ABSENT: "yellow"}
        color = colors.get(handle.state, "red")
        console.print(
            f"[bold cyan]Cluster {name}[/bold cyan] ({region}): "
            f"[{color}]{handle.state.value}[/{color}]"
        )
        if handle.state == ClusterState.ABSENT:
            return

        if handle.node_groups:
            table = Table(title="Node groups")
            table.add_column("Name", style="cyan")
            table.add_column("Status", style="green")
            table.add_column("Instance type", style="magenta")
            table.add_column("Min/Desired/Max")
            for ng in handle.node_groups:
                table.add_row(
                    str(ng.get("Name", "")),
                    str(ng.get("Status", "")),
                    str(ng.get("InstanceType", "")),
                    f"{ng.get('MinSize', '?')}/{ng.get('DesiredCapacity', '?')}/{ng.get('MaxSize', '?')}",
                )
            console.print(table)

        if handle.addons:
            console.print(f"[bold]Add-ons:[/bold] {', '.join(handle.addons)}")
        console.print(f"[bold]kubectl context:[/bold] {handle.kube_context or 'not configured'}")

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)


@app.command()
def diagnose(
    ctx: typer.Context,
    strict: bool = typer.Option(False, "--strict", help="Exit with code 1 if any check fails"),
) -> None:
    """
    Run read-only health checks against an existing cluster.

    Checks the kube-system namespace, node readiness, controller deployments,
    registered EKS add-ons and IRSA service accounts. Every check is reported,
    with a remediation hint for those that fail.
    """
    from eks_manager.diagnostics import DiagnosticsRunner
    from eks_manager.exceptions import ClusterNotFoundError
    from eks_manager.models.cluster import ClusterState
    from eks_manager.orchestrator import ClusterOrchestrator

    try:
        name, region = _resolve_target(ctx)
        handle = ClusterOrchestrator().status(name, region)
        if handle.state == ClusterState.ABSENT:
            raise ClusterNotFoundError(
                f"Cluster '{name}' not found in region '{region}'",
                f"List clusters with: eksctl get cluster --region {region}",
            )

        report = DiagnosticsRunner().diagnose(handle)

        table = Table(title=f"Diagnostics for {name}")
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Evidence")
        icons = {
            "pass": "[green]✓ pass[/green]",
            "fail": "[red]✗ fail[/red]",
            "unknown": "[yellow]? unknown[/yellow]",
        }
        for c in report.checks:
            table.add_row(c.name, icons[c.status], escape(c.evidence))
        console.print(table)

        for c in report.checks:
            if c.status != "pass" and c.remediation:
                console.print(f"\n[bold]{c.name}[/bold] remediation:")
                console.print(escape(c.remediation))

        if report.healthy:
            console.print("\n[green]✓ All checks passed[/green]")
        else:
            console.print(
                f"\n[yellow]⚠ {len(report.by_status('fail'))} failed, "
                f"{len(report.by_status('unknown'))} unknown[/yellow]"
            )
            if strict:
                raise typer.Exit(code=1)

    except ClusterManagerError as e:
        _print_error(e)
        raise typer.Exit(code=e.exit_code)


if __name__ == "__main__":
    app()
