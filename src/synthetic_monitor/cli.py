"""Command-line interface for Synthetic Test Monitor."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from synthetic_monitor import __version__
from synthetic_monitor.alerts import DEFAULT_WINDOW, WINDOWS
from synthetic_monitor.config import Config, create_example_config
from synthetic_monitor.errors import MonitorError, NotFoundError
from synthetic_monitor.history import HistoryFilters
from synthetic_monitor.models import (
    Alert,
    CycleState,
    ExecutionReport,
    NodeHealthReport,
    NodeStatus,
)
from synthetic_monitor.monitor import SyntheticMonitor

console = Console()

DEFAULT_CONFIG_PATHS = ["stm.yaml", "stm.yml", "config.yaml", "~/.config/stm/config.yaml"]


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_config(config: Optional[str]) -> Config:
    """Load the given config file or the first one found in default locations."""
    if config:
        return Config.from_yaml(config)

    for default_path in DEFAULT_CONFIG_PATHS:
        path = Path(default_path).expanduser()
        if path.exists():
            return Config.from_yaml(path)

    console.print("[red]No configuration file found.[/]")
    console.print("Create one with: [cyan]stm init[/]")
    sys.exit(1)


def parse_parameter(ctx: click.Context, param: click.Parameter, values: tuple) -> dict[str, Any]:
    """Parse repeated ``name=value`` options; values are read as YAML scalars."""
    parsed: dict[str, Any] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected name=value, got '{item}'")
        try:
            parsed[name] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            parsed[name] = raw
    return parsed


def status_color(status: NodeStatus) -> str:
    """Get Rich color for node status."""
    colors = {
        NodeStatus.HEALTHY: "green",
        NodeStatus.WARNING: "yellow",
        NodeStatus.ERROR: "red",
    }
    return colors.get(status, "white")


def create_report_table(report: ExecutionReport) -> Table:
    """Create a Rich table with one row per node."""
    table = Table(title=f"Test: {report.test_name}", show_header=True, header_style="bold")

    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Result", justify="center")
    table.add_column("Status", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Output")

    for result in report.results:
        outcome = result.outcome
        if outcome.success:
            result_text = Text("OK", style="green")
        else:
            result_text = Text("FAILED", style="red")
        output = outcome.output if len(outcome.output) <= 60 else outcome.output[:57] + "..."
        table.add_row(
            result.node_name,
            result_text,
            str(outcome.status_code),
            f"{outcome.response_time_ms} ms",
            output,
        )

    return table


def create_summary_panel(report: ExecutionReport) -> Panel:
    """Create a summary panel for an execution cycle."""
    if report.state == CycleState.FAILED:
        return Panel(
            f"[bold]Reason:[/bold] {report.failure_reason.value if report.failure_reason else '-'}\n"
            f"[bold]Error:[/bold] {report.error_message}",
            title=f"Test {report.test_id} did not run",
            border_style="red",
        )

    border = "green" if report.failed_count == 0 else "yellow"
    summary_parts = [
        f"[bold]Nodes:[/bold] {report.total} total, "
        f"[green]{report.succeeded_count}[/] succeeded, "
        f"[red]{report.failed_count}[/] failed",
        f"[bold]Executed:[/bold] {report.executed_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if not report.persisted:
        border = "red"
        summary_parts.append("")
        summary_parts.append("[bold red]Not all outcomes were recorded:[/]")
        for error in report.persistence_errors:
            summary_parts.append(f"  • {error}")

    return Panel(
        "\n".join(summary_parts),
        title=f"{report.test_name} ({report.state.value})",
        border_style=border,
    )


def create_health_table(reports: list[NodeHealthReport]) -> Table:
    """Create a Rich table displaying node health."""
    table = Table(title="Node Health Status", show_header=True, header_style="bold")

    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Check", justify="center")
    table.add_column("Time", justify="right")
    table.add_column("Error")

    for report in reports:
        table.add_row(
            report.node_name,
            Text(report.status.value.upper(), style=status_color(report.status)),
            report.probe.check_type,
            f"{report.probe.response_time_ms} ms",
            report.probe.error_message or "",
        )

    return table


def create_alerts_table(alerts: list[Alert]) -> Table:
    """Create a Rich table of alerts."""
    table = Table(title=f"Alerts ({len(alerts)})", show_header=True, header_style="bold")

    table.add_column("Time", no_wrap=True)
    table.add_column("Test", style="cyan")
    table.add_column("Node")
    table.add_column("Reason", justify="center")
    table.add_column("Status", justify="right")
    table.add_column("Time (ms)", justify="right")

    for alert in alerts:
        style = "red" if alert.reason == "failed" else "yellow"
        table.add_row(
            alert.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            alert.test_name,
            alert.node_name or str(alert.node_id),
            Text(alert.reason.upper(), style=style),
            str(alert.status_code),
            f"{alert.response_time_ms} / {alert.threshold_ms}",
        )

    return table


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Synthetic Test Monitor - API checks across node fleets."""
    pass


config_option = click.option(
    "-c", "--config",
    type=click.Path(exists=True),
    help="Path to configuration file",
)

log_level_option = click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)


@main.command()
@click.argument("test_id", type=int)
@click.option(
    "-p", "--param", "parameters",
    multiple=True,
    callback=parse_parameter,
    help="Parameter override as name=value (can repeat)",
)
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@config_option
@log_level_option
def run(
    test_id: int,
    parameters: dict[str, Any],
    output_json: bool,
    config: Optional[str],
    log_level: str,
) -> None:
    """Execute a synthetic test on all of its nodes."""
    setup_logging(log_level)
    monitor = SyntheticMonitor(load_config(config))

    try:
        report = monitor.execute_synthetic_test(test_id, parameters)
    finally:
        monitor.close()

    if output_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        console.print(create_summary_panel(report))
        if report.results:
            console.print(create_report_table(report))

    if report.state == CycleState.FAILED or not report.persisted:
        sys.exit(1)
    elif report.failed_count:
        sys.exit(2)


@main.command()
@click.argument("node_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@config_option
@log_level_option
def health(node_id: int, output_json: bool, config: Optional[str], log_level: str) -> None:
    """Probe a single node's health endpoint."""
    setup_logging(log_level)
    monitor = SyntheticMonitor(load_config(config))

    try:
        report = monitor.check_node_health(node_id)
    except NotFoundError as e:
        console.print(f"[red]{e.message}[/]")
        sys.exit(1)
    finally:
        monitor.close()

    if output_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    style = status_color(report.status)
    console.print(Panel(
        f"[bold]Status:[/] [{style}]{report.status.value.upper()}[/]\n"
        f"[bold]Check:[/] {report.probe.check_type}\n"
        f"[bold]Response time:[/] {report.probe.response_time_ms} ms\n"
        f"[bold]Error:[/] {report.probe.error_message or '-'}",
        title=f"Health: {report.node_name}",
        border_style=style,
    ))


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@config_option
@log_level_option
def check(output_json: bool, config: Optional[str], log_level: str) -> None:
    """Probe every configured node."""
    setup_logging(log_level)
    monitor = SyntheticMonitor(load_config(config))

    try:
        reports = monitor.check_all_nodes()
    finally:
        monitor.close()

    if output_json:
        click.echo(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        console.print(create_health_table(reports))

    if any(r.status == NodeStatus.ERROR for r in reports):
        sys.exit(1)


@main.command()
@click.option(
    "-w", "--window",
    default=DEFAULT_WINDOW,
    type=click.Choice(list(WINDOWS)),
    help=f"Time window (default: {DEFAULT_WINDOW})",
)
@click.option("--notify", is_flag=True, help="Send alerts to configured notifiers")
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@config_option
@log_level_option
def alerts(
    window: str,
    notify: bool,
    output_json: bool,
    config: Optional[str],
    log_level: str,
) -> None:
    """List slow or failed executions."""
    setup_logging(log_level)
    monitor = SyntheticMonitor(load_config(config))

    try:
        found = monitor.list_alerts(window)
        sent = monitor.notify_alerts(found) if notify else 0
    except MonitorError as e:
        console.print(f"[red]{e.message}[/]")
        sys.exit(1)
    finally:
        monitor.close()

    if output_json:
        click.echo(json.dumps([a.to_dict() for a in found], indent=2))
    else:
        console.print(create_alerts_table(found))
        if notify:
            console.print(f"[dim]Sent {sent} notifications[/]")


@main.command()
@click.option("--test", "test_name", help="Test name contains")
@click.option("--node", "node_name", help="Node name contains")
@click.option("--group", "group_name", help="Node group name contains")
@click.option("--tag", "tag_name", help="Tag name contains")
@click.option(
    "--success",
    default="all",
    type=click.Choice(["Y", "N", "all"]),
    help="Filter by result",
)
@click.option("--since", type=click.DateTime(), help="Earliest timestamp")
@click.option("--until", type=click.DateTime(), help="Latest timestamp")
@click.option("--limit", default=50, type=click.IntRange(1, 1000), help="Rows per page")
@click.option("--offset", default=0, type=click.IntRange(0), help="Rows to skip")
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@config_option
@log_level_option
def history(
    test_name: Optional[str],
    node_name: Optional[str],
    group_name: Optional[str],
    tag_name: Optional[str],
    success: str,
    since: Optional[datetime],
    until: Optional[datetime],
    limit: int,
    offset: int,
    output_json: bool,
    config: Optional[str],
    log_level: str,
) -> None:
    """Search execution history."""
    setup_logging(log_level)
    monitor = SyntheticMonitor(load_config(config))

    filters = HistoryFilters(
        test_name=test_name,
        node_name=node_name,
        group_name=group_name,
        tag_name=tag_name,
        success={"Y": True, "N": False}.get(success),
        start=since,
        end=until,
        limit=limit,
        offset=offset,
    )
    try:
        rows, total = monitor.search_history(filters)
    except MonitorError as e:
        console.print(f"[red]{e.message}[/]")
        sys.exit(1)
    finally:
        monitor.close()

    if output_json:
        click.echo(json.dumps({"total": total, "results": [r.to_dict() for r in rows]}, indent=2))
        return

    table = Table(title=f"History ({len(rows)} of {total})", show_header=True, header_style="bold")
    table.add_column("Time", no_wrap=True)
    table.add_column("Test", justify="right")
    table.add_column("Node", justify="right")
    table.add_column("Result", justify="center")
    table.add_column("Status", justify="right")
    table.add_column("Time (ms)", justify="right")

    for row in rows:
        table.add_row(
            row.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(row.test_id),
            str(row.node_id),
            Text("OK", style="green") if row.success else Text("FAILED", style="red"),
            str(row.status_code),
            str(row.response_time_ms),
        )
    console.print(table)


@main.command()
@click.option(
    "-o", "--output",
    default="stm.yaml",
    help="Output file path",
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing file",
)
def init(output: str, force: bool) -> None:
    """Create an example configuration file."""
    path = Path(output)

    if path.exists() and not force:
        console.print(f"[red]File already exists: {path}[/]")
        console.print("Use --force to overwrite")
        sys.exit(1)

    example = create_example_config()
    example.to_yaml(path)

    console.print(f"[green]Created example configuration: {path}[/]")
    console.print("Edit this file to add your nodes, APIs and tests.")


@main.command()
@config_option
@click.option("--host", default=None, help="API host (default: from config)")
@click.option("--port", default=None, type=int, help="API port (default: from config)")
def dashboard(config: Optional[str], host: Optional[str], port: Optional[int]) -> None:
    """Start the HTTP API."""
    cfg = load_config(config)
    setup_logging(cfg.log_level)

    host = host or cfg.dashboard.host
    port = port or cfg.dashboard.port
    console.print(f"[green]Starting dashboard at http://{host}:{port}[/]")

    from synthetic_monitor.dashboard import create_app
    import uvicorn

    app = create_app(cfg)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
