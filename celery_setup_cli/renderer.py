"""
Unit file rendering for Celery worker and beat services.

Rendering is a pure transform: the same DeploymentConfig always produces
byte-identical unit files. Writing them is the deployer's job.
"""

from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .models import (
    INSTALL_TARGET,
    NETWORK_TARGET,
    RUNTIME_ROOT,
    SERVICE_KINDS,
    DeploymentConfig,
    RenderedUnit,
    ServiceKind,
    UnitMode,
)

TEMPLATE_DIR = Path(__file__).parent / "templates"

TEMPLATE_PATHS: Dict[UnitMode, str] = {
    UnitMode.SINGLE: "systemd/celery.service.j2",
    UnitMode.TEMPLATE: "systemd/celery-instance.service.j2",
}

INSTANCE_SPECIFIER = "%i"


def runtime_dir_name(project_name: str) -> str:
    """Name of the systemd RuntimeDirectory holding the PID files."""
    return f"celery-{project_name}"


def log_file(log_dir: str, project_name: str, kind: ServiceKind) -> str:
    return f"{log_dir}/{project_name}-{kind.value}.log"


def pid_file(project_name: str, kind: ServiceKind) -> str:
    return f"{RUNTIME_ROOT}/{runtime_dir_name(project_name)}/{kind.value}.pid"


def unit_file_name(project_name: str, kind: ServiceKind) -> str:
    return f"{SERVICE_KINDS[kind].unit_prefix}{project_name}.service"


class SingleUnitStrategy:
    """One concrete unit file per project: ``celery-<project>.service``."""

    mode = UnitMode.SINGLE

    def instance(self, config: DeploymentConfig) -> str:
        return config.project_name

    def unit_prefix(self, kind: ServiceKind) -> str:
        return SERVICE_KINDS[kind].unit_prefix

    def file_name(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return unit_file_name(config.project_name, kind)

    def unit_name(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return self.file_name(config, kind)

    def runtime_dir(self, config: DeploymentConfig) -> str:
        return runtime_dir_name(config.project_name)

    def log_file(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return log_file(config.log_dir, config.project_name, kind)

    def pid_file(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return pid_file(config.project_name, kind)


class TemplateUnitStrategy:
    """Shared ``celery-<kind>@.service`` files, the project is the instance."""

    mode = UnitMode.TEMPLATE

    def instance(self, config: DeploymentConfig) -> str:
        return INSTANCE_SPECIFIER

    def unit_prefix(self, kind: ServiceKind) -> str:
        return f"celery-{kind.value}@"

    def file_name(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return f"{self.unit_prefix(kind)}.service"

    def unit_name(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return f"{self.unit_prefix(kind)}{config.project_name}.service"

    def runtime_dir(self, config: DeploymentConfig) -> str:
        return runtime_dir_name(INSTANCE_SPECIFIER)

    def log_file(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return log_file(config.log_dir, INSTANCE_SPECIFIER, kind)

    def pid_file(self, config: DeploymentConfig, kind: ServiceKind) -> str:
        return (
            f"{RUNTIME_ROOT}/{self.runtime_dir(config)}/"
            f"{INSTANCE_SPECIFIER}-{kind.value}.pid"
        )


STRATEGIES = {
    UnitMode.SINGLE: SingleUnitStrategy(),
    UnitMode.TEMPLATE: TemplateUnitStrategy(),
}


def strategy_for(mode: UnitMode):
    return STRATEGIES[mode]


class UnitRenderer:
    """Renders the worker and beat unit files for a deployment."""

    def __init__(self) -> None:
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
            autoescape=False,
        )

    def build_context(self, config: DeploymentConfig, kind: ServiceKind) -> Dict[str, object]:
        """Template variables for one service kind."""
        strategy = strategy_for(config.mode)
        params = SERVICE_KINDS[kind]

        return {
            'label': params.label,
            'kind': kind.value,
            'instance': strategy.instance(config),
            'unit_prefix': strategy.unit_prefix(kind),
            'network_target': NETWORK_TARGET,
            'broker_unit': config.broker_unit,
            'user': config.linux_user,
            'working_directory': str(config.project_dir),
            'settings_module': config.settings_module,
            'command': config.command,
            'log_level': config.log_level.value,
            'log_file': strategy.log_file(config, kind),
            'pid_file': strategy.pid_file(config, kind),
            'restart_sec': config.restart_sec,
            'limit_nofile': config.limit_nofile if params.limit_nofile else None,
            'runtime_dir': strategy.runtime_dir(config),
            'install_target': INSTALL_TARGET,
        }

    def render_unit(self, config: DeploymentConfig, kind: ServiceKind) -> RenderedUnit:
        """Render a single unit file.

        Args:
            config: Resolved deployment configuration.
            kind: Which service to render.

        Returns:
            The rendered unit and its destination path.
        """
        strategy = strategy_for(config.mode)
        template = self.jinja_env.get_template(TEMPLATE_PATHS[config.mode])
        content = template.render(**self.build_context(config, kind))

        return RenderedUnit(
            kind=kind,
            unit_name=strategy.unit_name(config, kind),
            path=Path(config.unit_dir) / strategy.file_name(config, kind),
            content=content,
        )

    def render(self, config: DeploymentConfig) -> List[RenderedUnit]:
        """Render the worker unit followed by the beat unit."""
        return [self.render_unit(config, kind) for kind in ServiceKind]


def status_command(unit_name: str) -> str:
    return f"sudo systemctl status {unit_name} --no-pager"


def start_command(unit_name: str) -> str:
    return f"sudo systemctl start {unit_name}"


def follow_logs_command(unit_name: str) -> str:
    return f"sudo journalctl -u {unit_name} -f"


def describe_paths(config: DeploymentConfig) -> Dict[str, Dict[str, str]]:
    """Concrete log and PID paths per service for the operator summary.

    Template units are reported with the instance already substituted.
    """
    strategy = strategy_for(config.mode)
    result: Dict[str, Dict[str, str]] = {}

    for kind in ServiceKind:
        unit = strategy.unit_name(config, kind)
        result[kind.value] = {
            'unit': unit,
            'log_file': log_file(config.log_dir, config.project_name, kind),
            'pid_file': (
                pid_file(config.project_name, kind)
                if config.mode is UnitMode.SINGLE
                else f"{RUNTIME_ROOT}/{runtime_dir_name(config.project_name)}/"
                     f"{config.project_name}-{kind.value}.pid"
            ),
            'status': status_command(unit),
            'logs': follow_logs_command(unit),
        }

    return result
