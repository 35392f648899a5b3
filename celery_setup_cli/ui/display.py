"""Display utilities for the Celery setup CLI.

This module provides shared display functions to avoid circular imports.
"""

from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..cleanup import CleanupReport, CleanupStep, StepStatus
from ..models import DeploymentConfig, RenderedUnit
from ..renderer import describe_paths, start_command

console = Console()


def display_config_summary(config: DeploymentConfig) -> None:
    """Display the resolved configuration.

    Args:
        config: Resolved deployment configuration.
    """
    table = Table(title="Deployment Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    rows = [
        ("Project name", config.project_name),
        ("Linux user", config.linux_user),
        ("Project directory", str(config.project_dir)),
        ("Virtualenv bin", str(config.venv_bin)),
        ("Celery command", config.command),
        ("Settings module", config.settings_module),
        ("Broker", f"{config.broker.value} ({config.broker_unit})"),
        ("Log directory", config.log_dir),
        ("Log level", config.log_level.value),
        ("Unit mode", config.mode.value),
        ("Start immediately", "yes" if config.start_immediately else "no"),
    ]
    for setting, value in rows:
        table.add_row(setting, value)

    console.print(table)


def display_unit_preview(units: List[RenderedUnit]) -> None:
    """Show rendered unit files with ini highlighting.

    Args:
        units: Rendered units to preview.
    """
    for unit in units:
        console.print(Panel(
            Syntax(unit.content, "ini", theme="ansi_dark", background_color="default"),
            title=f"[bold]{unit.path}[/bold]",
            border_style="blue",
            expand=False
        ))


def display_cleanup_plan(plan: List[CleanupStep]) -> None:
    table = Table(title="Cleanup Plan", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Step")

    for i, step in enumerate(plan, 1):
        table.add_row(str(i), step.action.value, step.description)

    console.print(table)


def display_cleanup_report(report: CleanupReport) -> None:
    """Display the outcome of each cleanup step.

    Args:
        report: Report returned by execute_plan.
    """
    styles = {
        StepStatus.SUCCESS: "[green]✓[/green] done",
        StepStatus.SKIPPED: "[dim]- skipped[/dim]",
        StepStatus.DRY_RUN: "[yellow]~ dry-run[/yellow]",
        StepStatus.FAILURE: "[red]✗ failed[/red]",
    }

    table = Table(title="Cleanup", show_header=True, header_style="bold magenta")
    table.add_column("Step", style="cyan")
    table.add_column("Result", justify="center")
    table.add_column("Details", style="dim")

    for outcome in report.outcomes:
        table.add_row(outcome.step.description, styles[outcome.status], outcome.error or "")

    console.print(table)


def display_service_status(statuses: List[Dict[str, Any]]) -> None:
    """Display unit status in a formatted table.

    Args:
        statuses: Results of SystemdManager.check_service_status.
    """
    table = Table(title="Celery Service Status", show_header=True, header_style="bold magenta")
    table.add_column("Unit", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Enabled", justify="center")
    table.add_column("Details", style="dim")

    for status in statuses:
        if status.get("status") == "error":
            status_text = "[red]✗[/red] Error"
        elif status.get("active"):
            status_text = "[green]●[/green] Active"
        else:
            status_text = "[red]●[/red] Inactive"

        enabled_text = "[green]Yes[/green]" if status.get("enabled") else "[yellow]No[/yellow]"
        details = status.get("error") or ("Running normally" if status.get("active") else "Not running")
        table.add_row(status["name"], status_text, enabled_text, details)

    console.print(table)


def display_next_steps(config: DeploymentConfig, started: bool) -> None:
    """Print the commands an operator needs after setup.

    Args:
        config: Resolved deployment configuration.
        started: Whether the services were started.
    """
    paths = describe_paths(config)
    lines = []

    if started:
        lines.append("[bold green]Celery services started.[/bold green]")
    else:
        lines.append("[bold green]Setup complete.[/bold green] Start the services with:")
        for info in paths.values():
            lines.append(f"  [cyan]{start_command(info['unit'])}[/cyan]")

    lines.append("")
    lines.append("[bold]Status:[/bold]")
    for info in paths.values():
        lines.append(f"  [cyan]{info['status']}[/cyan]")

    lines.append("")
    lines.append("[bold]Follow logs:[/bold]")
    for info in paths.values():
        lines.append(f"  [cyan]{info['logs']}[/cyan]")

    lines.append("")
    lines.append("[bold]Files:[/bold]")
    for kind, info in paths.items():
        lines.append(f"  {kind}: log {info['log_file']}, pid {info['pid_file']}")

    console.print(Panel("\n".join(lines), title="Next steps", border_style="green", expand=False))
