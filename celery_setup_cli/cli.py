"""Main CLI interface for celery-setup."""

import functools
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from . import __version__
from .cleanup import execute_plan, instance_unit_name, plan_cleanup
from .config import Config, ConfigFileError
from .deploy_logging import configure_console_logging, get_deployment_logger
from .deployer import DeployOptions
from .errors import (
    ConfigError,
    PermissionError,
    UnitWriteError,
    handle_exception,
    handle_keyboard_interrupt,
    require_root_privileges,
)
from .models import Broker, LogLevel, ServiceKind, UnitMode
from .renderer import UnitRenderer, unit_file_name
from .resolver import ConfigResolver, RawConfig
from .systemd import CommandRunner, SystemdManager
from .ui import display_cleanup_plan, display_cleanup_report, display_service_status
from .validators import InputValidator, ValidationError
from .wizards import CeleryServiceWizard

console = Console()
config = Config()

BROKER_CHOICES = [b.value for b in Broker]
LOG_LEVEL_CHOICES = [lvl.value for lvl in LogLevel]


def handle_interrupts(func: Any) -> Any:
    """Decorator that turns Ctrl+C into exit status 130.

    Args:
        func: The command callback to wrap.

    Returns:
        Wrapped callback.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            handle_keyboard_interrupt()
    return wrapper


def load_defaults() -> Dict[str, Any]:
    """Load saved defaults or exit with a readable error."""
    try:
        return config.load()
    except ConfigFileError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        console.print("Reset it with: [cyan]celery-setup config --reset[/cyan]")
        sys.exit(1)


def confirm_destructive_action(
    action: str,
    resource: str,
    force: bool = False
) -> bool:
    """Confirm destructive actions with user.

    Args:
        action: The action being performed (e.g., "remove").
        resource: The resource being acted upon.
        force: Whether to skip confirmation.

    Returns:
        True if action should proceed, False otherwise.
    """
    if force:
        return True

    console.print(
        Panel(
            f"[bold red]Warning:[/bold red] You are about to {action} '{resource}'.\n"
            f"This action cannot be undone.",
            title="Confirmation Required",
            border_style="red"
        )
    )

    return Confirm.ask(f"Are you sure you want to {action} '{resource}'?")


def validated_project_name(name: str) -> str:
    try:
        return InputValidator.validate_project_name(name)
    except ValidationError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Show debug output on stderr')
def main(verbose: bool) -> None:
    """celery-setup - Run Django Celery worker and beat as systemd services."""
    configure_console_logging(verbose)


@main.command(name='setup')
@click.option('--project-name', help='Celery app / project name (e.g. acme)')
@click.option('--user', 'linux_user', help='Linux user the services run as')
@click.option('--project-dir', help='Django project directory (default: current directory)')
@click.option('--venv', help='Virtualenv root (default: auto-detect inside the project)')
@click.option('--settings-module', help='Django settings module (default: <project>.settings)')
@click.option('--broker', help='Message broker: rabbitmq or redis')
@click.option('--log-dir', help='Directory for Celery log files')
@click.option('--log-level', type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False), help='Celery log level')
@click.option('--template-units', is_flag=True, help='Write shared celery-worker@.service template units')
@click.option('--cleanup/--no-cleanup', default=True, help='Remove a previous deployment first')
@click.option('--prepare-log-dir/--no-prepare-log-dir', default=True, help='Create the log directory for the service user')
@click.option('--install-requirements', is_flag=True, help='pip install requirements.txt into the virtualenv')
@click.option('--start/--no-start', default=None, help='Start the services after enabling them')
@click.option('--use-sudo/--no-use-sudo', default=None, help='Prefix privileged commands with sudo')
@click.option('--dry-run', is_flag=True, help='Print every command instead of running it')
@click.option('--non-interactive', is_flag=True, help='Never prompt; fail on missing values')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='Skip the final confirmation')
@handle_interrupts
def setup_cmd(
    project_name: Optional[str],
    linux_user: Optional[str],
    project_dir: Optional[str],
    venv: Optional[str],
    settings_module: Optional[str],
    broker: Optional[str],
    log_dir: Optional[str],
    log_level: Optional[str],
    template_units: bool,
    cleanup: bool,
    prepare_log_dir: bool,
    install_requirements: bool,
    start: Optional[bool],
    use_sudo: Optional[bool],
    dry_run: bool,
    non_interactive: bool,
    assume_yes: bool,
) -> None:
    """Create, enable and optionally start the worker and beat services."""
    defaults = load_defaults()
    if log_level:
        defaults['log_level'] = log_level.upper()
    if use_sudo is None:
        use_sudo = defaults['use_sudo']

    if not dry_run:
        try:
            require_root_privileges("setup", use_sudo)
        except PermissionError as e:
            handle_exception(e, "Checking privileges")

    if dry_run:
        console.print("[yellow]Dry run: commands are printed, nothing is changed.[/yellow]")

    wizard = CeleryServiceWizard(
        manager=SystemdManager(CommandRunner(use_sudo=use_sudo, dry_run=dry_run)),
        defaults=defaults,
        preset={
            'project_name': project_name,
            'linux_user': linux_user,
            'project_dir': project_dir,
            'venv': venv,
            'settings_module': settings_module,
            'broker': broker,
            'log_dir': log_dir,
        },
        options=DeployOptions(
            cleanup=cleanup,
            prepare_log_dir=prepare_log_dir,
            install_requirements=install_requirements,
        ),
        mode=UnitMode.TEMPLATE if template_units else UnitMode.SINGLE,
        start=start,
        assume_yes=assume_yes or non_interactive,
        interactive=not non_interactive,
        event_logger=get_deployment_logger(),
    )

    if not wizard.run():
        sys.exit(1)


@main.command(name='render')
@click.option('--project-name', required=True, help='Celery app / project name')
@click.option('--user', 'linux_user', required=True, help='Linux user the services run as')
@click.option('--project-dir', help='Django project directory (default: current directory)')
@click.option('--venv', help='Virtualenv root (default: auto-detect inside the project)')
@click.option('--settings-module', help='Django settings module (default: <project>.settings)')
@click.option('--broker', help='Message broker: rabbitmq or redis')
@click.option('--log-dir', help='Directory for Celery log files')
@click.option('--log-level', type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False), help='Celery log level')
@click.option('--template-units', is_flag=True, help='Render shared template units')
@click.option('--output-dir', type=click.Path(file_okay=False), help='Write the unit files here instead of printing them')
@handle_interrupts
def render_cmd(
    project_name: str,
    linux_user: str,
    project_dir: Optional[str],
    venv: Optional[str],
    settings_module: Optional[str],
    broker: Optional[str],
    log_dir: Optional[str],
    log_level: Optional[str],
    template_units: bool,
    output_dir: Optional[str],
) -> None:
    """Render the unit files without touching systemd."""
    defaults = load_defaults()
    raw = RawConfig(
        project_name=validated_project_name(project_name),
        linux_user=linux_user,
        project_dir=project_dir,
        venv=venv,
        settings_module=settings_module,
        broker=broker or defaults['broker'],
        log_dir=log_dir or defaults['log_dir'],
        log_level=(log_level or defaults['log_level']).upper(),
        mode=(UnitMode.TEMPLATE if template_units else UnitMode.SINGLE).value,
        unit_dir=defaults['unit_dir'],
        limit_nofile=defaults['limit_nofile'],
        restart_sec=defaults['restart_sec'],
    )

    try:
        deployment = ConfigResolver().resolve(raw)
    except ConfigError as e:
        get_deployment_logger().log_config_rejected(e.field, e.kind.value, e.message)
        handle_exception(e, "Invalid deployment configuration")

    units = UnitRenderer().render(deployment)

    if not output_dir:
        for i, unit in enumerate(units):
            if i:
                click.echo()
            click.echo(f"# {unit.path}")
            click.echo(unit.content, nl=False)
        return

    target_dir = Path(output_dir)
    runner = CommandRunner(use_sudo=False)
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        for unit in units:
            target = target_dir / unit.path.name
            runner.write_file(target, unit.content)
            console.print(f"[green]✓[/green] Wrote {target}")
    except OSError as e:
        handle_exception(UnitWriteError(f"Cannot create {target_dir}: {e}"), "Writing unit files")
    except UnitWriteError as e:
        handle_exception(e, "Writing unit files")


@main.command(name='cleanup')
@click.argument('project_name')
@click.option('--log-dir', help='Directory holding the Celery log files')
@click.option('--unit-dir', help='systemd unit directory')
@click.option('--use-sudo/--no-use-sudo', default=None, help='Prefix privileged commands with sudo')
@click.option('--dry-run', is_flag=True, help='Print every command instead of running it')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='Skip confirmation')
@handle_interrupts
def cleanup_cmd(
    project_name: str,
    log_dir: Optional[str],
    unit_dir: Optional[str],
    use_sudo: Optional[bool],
    dry_run: bool,
    assume_yes: bool,
) -> None:
    """Stop and remove the Celery services of PROJECT_NAME."""
    project_name = validated_project_name(project_name)
    defaults = load_defaults()
    if use_sudo is None:
        use_sudo = defaults['use_sudo']

    plan = plan_cleanup(project_name, log_dir or defaults['log_dir'], unit_dir or defaults['unit_dir'])
    display_cleanup_plan(plan)

    if not dry_run:
        try:
            require_root_privileges("cleanup", use_sudo)
        except PermissionError as e:
            handle_exception(e, "Checking privileges")

        if not confirm_destructive_action("remove the Celery services of", project_name, force=assume_yes):
            console.print("[yellow]Cleanup cancelled.[/yellow]")
            return

    manager = SystemdManager(CommandRunner(use_sudo=use_sudo, dry_run=dry_run))
    report = execute_plan(plan, manager, project_name, get_deployment_logger())
    display_cleanup_report(report)

    if report.failures:
        console.print(
            f"[yellow]⚠[/yellow] {len(report.failures)} cleanup step(s) failed, see the table above."
        )


@main.command(name='status')
@click.argument('project_name')
@click.option('--template-units', is_flag=True, help='Check celery-<kind>@<project> instances')
@handle_interrupts
def status_cmd(project_name: str, template_units: bool) -> None:
    """Show active and enabled state of PROJECT_NAME's services."""
    project_name = validated_project_name(project_name)
    manager = SystemdManager(CommandRunner(use_sudo=False))

    units = [
        instance_unit_name(project_name, kind) if template_units else unit_file_name(project_name, kind)
        for kind in ServiceKind
    ]
    display_service_status([manager.check_service_status(unit) for unit in units])


@main.command(name='config')
@click.option('--log-dir', help='Default log directory')
@click.option('--unit-dir', help='Default systemd unit directory')
@click.option('--broker', type=click.Choice(BROKER_CHOICES), help='Default broker')
@click.option('--log-level', type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False), help='Default Celery log level')
@click.option('--use-sudo/--no-use-sudo', default=None, help='Prefix privileged commands with sudo')
@click.option('--limit-nofile', type=int, help='LimitNOFILE for the worker unit')
@click.option('--restart-sec', type=int, help='RestartSec for both units')
@click.option('--reset', is_flag=True, help='Forget saved values')
def config_cmd(
    log_dir: Optional[str],
    unit_dir: Optional[str],
    broker: Optional[str],
    log_level: Optional[str],
    use_sudo: Optional[bool],
    limit_nofile: Optional[int],
    restart_sec: Optional[int],
    reset: bool,
) -> None:
    """Show or change saved defaults."""
    event_logger = get_deployment_logger()

    if reset:
        config.reset()
        console.print("[green]✓[/green] Saved defaults removed")
        return

    try:
        requested = {
            'log_dir': InputValidator.validate_absolute_path(log_dir, "Log directory") if log_dir else None,
            'unit_dir': InputValidator.validate_absolute_path(unit_dir, "Unit directory") if unit_dir else None,
            'broker': broker,
            'log_level': log_level.upper() if log_level else None,
            'use_sudo': use_sudo,
            'limit_nofile': limit_nofile,
            'restart_sec': restart_sec,
        }
    except ValidationError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        sys.exit(1)

    changes = {key: value for key, value in requested.items() if value is not None}
    current = load_defaults()

    if not changes:
        table = Table(title="celery-setup defaults", show_header=True, header_style="bold magenta")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key in sorted(current):
            table.add_row(key, str(current[key]))
        console.print(table)
        console.print(f"[dim]{config.config_file}[/dim]")
        return

    try:
        for key, value in changes.items():
            config.set(key, value)
            console.print(f"[green]✓[/green] {key} set to: {value}")
            event_logger.log_configuration_change(key, current.get(key), value)
    except ConfigFileError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
