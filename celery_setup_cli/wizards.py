"""Interactive wizard for Celery service setup.

Prompts are described by ``FieldDescriptor`` entries and collected by one
generic loop, so the wizard and the non-interactive command share the same
defaults and validation.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Self

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from .cleanup import plan_cleanup
from .deploy_logging import DeploymentLogger
from .deployer import Deployer, DeployOptions
from .errors import ConfigError, ConfigErrorKind, ErrorHandler, CelerySetupError
from .models import Broker, DEFAULT_LOG_DIR, DeploymentConfig, UnitMode
from .renderer import UnitRenderer
from .resolver import (
    ConfigResolver,
    RawConfig,
    is_executable,
    resolve_broker,
    resolve_venv,
    user_exists,
)
from .systemd import SystemdManager
from .ui import (
    display_cleanup_plan,
    display_cleanup_report,
    display_config_summary,
    display_next_steps,
    display_unit_preview,
    show_progress,
)
from .validators import InputValidator, ValidationError

console = Console()
error_handler = ErrorHandler()

Validator = Callable[[str, Dict[str, str]], str]


@dataclass(frozen=True)
class FieldDescriptor:
    """One wizard prompt.

    Attributes:
        name: Key in the collected values.
        prompt: Text shown to the operator.
        default: Default value, or a function of the values collected so far.
        validator: Normalizes a value or raises ValidationError/ConfigError.
        choices: Menu entries shown before the prompt.
        required: Whether a blank value is rejected as an empty field.
    """

    name: str
    prompt: str
    default: Optional[Any] = None
    validator: Optional[Validator] = None
    choices: Optional[List[str]] = None
    required: bool = False

    def default_for(self: Self, collected: Dict[str, str]) -> str:
        if callable(self.default):
            return self.default(collected)
        return self.default or ""


def _validate_project_name(value: str, collected: Dict[str, str]) -> str:
    return InputValidator.validate_project_name(value)


def _validate_linux_user(value: str, collected: Dict[str, str]) -> str:
    user = InputValidator.validate_linux_user(value)
    if not user_exists(user):
        raise ConfigError(
            ConfigErrorKind.USER_NOT_FOUND,
            f"Linux user '{user}' does not exist",
            field="linux_user",
        )
    return user


def _validate_project_dir(value: str, collected: Dict[str, str]) -> str:
    path = InputValidator.validate_absolute_path(value, "Project directory")
    if not Path(path).is_dir():
        raise ConfigError(
            ConfigErrorKind.DIRECTORY_NOT_FOUND,
            f"Project directory not found: {path}",
            field="project_dir",
        )
    return path


def _validate_venv(value: str, collected: Dict[str, str]) -> str:
    value = InputValidator.validate_optional_path(value, "Virtualenv path")
    if not value:
        # Leave blank for auto-detection, but fail now so the operator can answer.
        resolve_venv(collected["project_dir"], None, probe=is_executable)
    return value


def _validate_settings_module(value: str, collected: Dict[str, str]) -> str:
    return InputValidator.validate_settings_module(value)


def _validate_broker(value: str, collected: Dict[str, str]) -> str:
    broker, _ = resolve_broker(value)
    return broker.value


def _validate_log_dir(value: str, collected: Dict[str, str]) -> str:
    return InputValidator.validate_absolute_path(value, "Log directory")


def deployment_fields(defaults: Dict[str, Any]) -> List[FieldDescriptor]:
    """The wizard prompts in the order they are asked.

    Args:
        defaults: Saved defaults from Config.
    """
    return [
        FieldDescriptor(
            name="project_name",
            prompt="Project name (the Celery app, e.g. 'acme')",
            validator=_validate_project_name,
            required=True,
        ),
        FieldDescriptor(
            name="project_dir",
            prompt="Project directory",
            default=lambda collected: os.getcwd(),
            validator=_validate_project_dir,
        ),
        FieldDescriptor(
            name="linux_user",
            prompt="Linux user the services run as",
            validator=_validate_linux_user,
            required=True,
        ),
        FieldDescriptor(
            name="venv",
            prompt="Virtualenv path (leave blank to auto-detect)",
            validator=_validate_venv,
        ),
        FieldDescriptor(
            name="settings_module",
            prompt="Django settings module",
            default=lambda collected: f"{collected['project_name']}.settings",
            validator=_validate_settings_module,
        ),
        FieldDescriptor(
            name="broker",
            prompt="Broker (name or number)",
            default=defaults.get("broker", Broker.RABBITMQ.value),
            validator=_validate_broker,
            choices=[b.value for b in Broker],
        ),
        FieldDescriptor(
            name="log_dir",
            prompt="Log directory",
            default=defaults.get("log_dir", DEFAULT_LOG_DIR),
            validator=_validate_log_dir,
        ),
    ]


def collect_fields(
    fields: List[FieldDescriptor],
    preset: Dict[str, Optional[str]],
    interactive: bool = True,
    prompt: Callable[..., str] = Prompt.ask,
) -> Dict[str, str]:
    """Collect and validate every field.

    Preset values skip their prompt. In interactive mode an invalid answer
    is reported and asked again; otherwise the first error is raised. A blank
    required value is always reported as an empty field.

    Args:
        fields: Descriptors in prompt order.
        preset: Values already supplied on the command line.
        interactive: Whether the operator can be prompted.
        prompt: Prompt function, replaceable in tests.

    Returns:
        Normalized values keyed by field name.

    Raises:
        ValidationError: On a malformed value when not interactive.
        ConfigError: On an unresolvable value when not interactive.
    """
    collected: Dict[str, str] = {}

    for field in fields:
        value = preset.get(field.name)

        if value is None and not interactive:
            value = field.default_for(collected)
        elif value is None:
            if field.choices:
                for i, choice in enumerate(field.choices, 1):
                    console.print(f"  [cyan]{i})[/cyan] {choice}")
            value = prompt(field.prompt, default=field.default_for(collected) or None) or ""

        while True:
            try:
                if field.required and not str(value).strip():
                    raise ConfigError(
                        ConfigErrorKind.EMPTY_FIELD,
                        f"Missing required value: {field.name}",
                        field=field.name,
                    )
                collected[field.name] = field.validator(value, collected) if field.validator else value
                break
            except (ValidationError, ConfigError) as e:
                if not interactive:
                    raise
                console.print(f"[red]✗[/red] {e}")
                value = prompt(field.prompt, default=field.default_for(collected) or None) or ""

    return collected


class InteractiveWizard:
    """Base class for interactive wizards."""

    def __init__(self: Self, title: str) -> None:
        """Initialize the wizard.

        Args:
            title: The wizard title to display.
        """
        self.title = title
        self.console = console

    def display_header(self: Self) -> None:
        """Display the wizard header."""
        self.console.print()
        self.console.print(Panel(
            f"[bold cyan]{self.title}[/bold cyan]",
            border_style="cyan"
        ))
        self.console.print()

    def display_step(self: Self, step: int, total: int, description: str) -> None:
        """Display current step information.

        Args:
            step: Current step number.
            total: Total number of steps.
            description: Step description.
        """
        self.console.print(f"[bold]Step {step}/{total}:[/bold] {description}")
        self.console.print()


class CeleryServiceWizard(InteractiveWizard):
    """Walks the operator from questions to running Celery services."""

    STEPS = 4

    def __init__(
        self: Self,
        manager: SystemdManager,
        defaults: Dict[str, Any],
        preset: Optional[Dict[str, Optional[str]]] = None,
        options: DeployOptions = DeployOptions(),
        mode: UnitMode = UnitMode.SINGLE,
        start: Optional[bool] = None,
        assume_yes: bool = False,
        interactive: bool = True,
        event_logger: Optional[DeploymentLogger] = None,
    ) -> None:
        """Initialize the setup wizard.

        Args:
            manager: systemd manager, already configured for sudo and dry-run.
            defaults: Saved defaults from Config.
            preset: Field values given on the command line.
            options: Optional pipeline stages.
            mode: Single-instance or template units.
            start: Start services after enabling; None asks the operator.
            assume_yes: Skip the final confirmation.
            interactive: Prompt for missing values instead of failing.
            event_logger: Deployment event logger.
        """
        super().__init__("Celery Service Setup Wizard")
        self.manager = manager
        self.defaults = defaults
        self.preset = preset or {}
        self.options = options
        self.mode = mode
        self.start = start
        self.assume_yes = assume_yes
        self.interactive = interactive
        self.event_logger = event_logger
        self.renderer = UnitRenderer()
        self.config: Optional[DeploymentConfig] = None

    def run(self: Self) -> bool:
        """Run the wizard.

        Returns:
            True if the services were set up, False otherwise.

        Raises:
            KeyboardInterrupt: If the operator presses Ctrl+C.
        """
        try:
            self.display_header()

            self.display_step(1, self.STEPS, "Deployment parameters")
            values = collect_fields(
                deployment_fields(self.defaults), self.preset, interactive=self.interactive
            )

            self.display_step(2, self.STEPS, "Review")
            self.config = self._resolve(values)
            display_config_summary(self.config)
            display_unit_preview(self.renderer.render(self.config))
            if self.options.cleanup:
                display_cleanup_plan(
                    plan_cleanup(self.config.project_name, self.config.log_dir, self.config.unit_dir)
                )

            if not self.assume_yes and not Confirm.ask("Write these unit files and enable the services?", default=True):
                self.console.print("[yellow]Nothing was changed.[/yellow]")
                return False

            self.display_step(3, self.STEPS, "Install")
            result = self._deploy(self.config)

            self.display_step(4, self.STEPS, "Summary")
            if result.cleanup is not None:
                display_cleanup_report(result.cleanup)
            for warning in result.warnings:
                self.console.print(f"[yellow]⚠[/yellow] {warning}")
            display_next_steps(self.config, result.started)
            return True

        except ConfigError as e:
            if self.event_logger is not None:
                self.event_logger.log_config_rejected(e.field, e.kind.value, e.message)
            error_handler.display_error(e, "Invalid deployment configuration")
            return False
        except ValidationError as e:
            error_handler.display_error(e, "Invalid input")
            return False
        except CelerySetupError as e:
            error_handler.display_error(e, "Celery service setup failed")
            return False

    def _ask_start(self: Self) -> bool:
        if self.start is not None:
            return self.start
        if not self.interactive:
            return False
        return Confirm.ask("Start the services immediately?", default=False)

    def _resolve(self: Self, values: Dict[str, str]) -> DeploymentConfig:
        raw = RawConfig(
            project_name=values["project_name"],
            linux_user=values["linux_user"],
            project_dir=values["project_dir"],
            venv=values["venv"] or None,
            settings_module=values["settings_module"] or None,
            broker=values["broker"],
            log_dir=values["log_dir"],
            start_immediately=self._ask_start(),
            log_level=self.defaults["log_level"],
            mode=self.mode.value,
            unit_dir=self.defaults["unit_dir"],
            limit_nofile=self.defaults["limit_nofile"],
            restart_sec=self.defaults["restart_sec"],
        )
        config = ConfigResolver().resolve(raw)
        if self.event_logger is not None:
            self.event_logger.log_config_resolved(config.project_name, {
                "project_dir": str(config.project_dir),
                "venv_bin": str(config.venv_bin),
                "broker": config.broker.value,
                "mode": config.mode.value,
            })
        return config

    def _deploy(self: Self, config: DeploymentConfig):
        deployer = Deployer(self.manager, self.renderer, self.event_logger)
        if self.manager.runner.dry_run:
            return deployer.deploy(config, self.options)

        with show_progress(f"Installing Celery services for {config.project_name}..."):
            return deployer.deploy(config, self.options)
