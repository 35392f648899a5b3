"""
Deployment pipeline for Celery services.

Stages run strictly in this order:
1. Cleanup of a previous deployment (optional, best-effort)
2. Log directory preparation (optional)
3. requirements.txt installation (optional)
4. Unit file writing
5. daemon-reload and enable
6. Restart (only when the operator asked to start immediately)

Failures from stage 4 on are fatal and abort the run.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .cleanup import CleanupReport, execute_plan, plan_cleanup
from .deploy_logging import DeploymentLogger
from .errors import CelerySetupError, ServiceError
from .models import DeploymentConfig, RenderedUnit
from .renderer import UnitRenderer
from .systemd import CommandRunner, SystemdManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeployOptions:
    """Optional pipeline stages."""

    cleanup: bool = True
    prepare_log_dir: bool = True
    install_requirements: bool = False


@dataclass
class DeploymentResult:
    units: List[RenderedUnit]
    cleanup: Optional[CleanupReport] = None
    started: bool = False
    warnings: List[str] = field(default_factory=list)


class Deployer:
    """Applies a resolved deployment to the host."""

    def __init__(
        self,
        manager: SystemdManager,
        renderer: Optional[UnitRenderer] = None,
        event_logger: Optional[DeploymentLogger] = None,
    ) -> None:
        self.manager = manager
        self.runner: CommandRunner = manager.runner
        self.renderer = renderer or UnitRenderer()
        self.event_logger = event_logger

    def _log_operation(self, config: DeploymentConfig, operation: str, units: List[str], success: bool) -> None:
        if self.event_logger is not None:
            self.event_logger.log_service_operation(config.project_name, operation, units, success)

    def cleanup(self, config: DeploymentConfig) -> CleanupReport:
        plan = plan_cleanup(config.project_name, config.log_dir, config.unit_dir)
        return execute_plan(plan, self.manager, config.project_name, self.event_logger)

    def prepare_log_dir(self, config: DeploymentConfig) -> Optional[str]:
        """Create the log directory owned by the service user.

        Returns:
            A warning message if the directory could not be prepared.
        """
        try:
            self.runner.run([
                "install", "-d", "-m", "0755",
                "-o", config.linux_user, "-g", config.linux_user,
                config.log_dir,
            ])
        except ServiceError as e:
            logger.warning("Could not prepare %s: %s", config.log_dir, e)
            return f"Log directory {config.log_dir} could not be prepared: {e.message}"
        return None

    def install_requirements(self, config: DeploymentConfig) -> Optional[str]:
        """Install requirements.txt into the virtualenv as the service user.

        Returns:
            A warning message if there is no requirements.txt.

        Raises:
            ServiceError: If pip fails.
        """
        requirements = config.project_dir / "requirements.txt"
        if not requirements.is_file():
            return f"No requirements.txt in {config.project_dir}, skipped dependency installation"

        pip = [str(config.venv_bin / "python"), "-m", "pip", "install", "-r", str(requirements)]
        if self.runner.use_sudo:
            self.runner.run(["sudo", "-u", config.linux_user, *pip], privileged=False)
        else:
            self.runner.run(pip, privileged=False)
        return None

    def write_units(self, config: DeploymentConfig) -> List[RenderedUnit]:
        """Render and write both unit files.

        Raises:
            UnitWriteError: If a unit file cannot be written.
        """
        units = self.renderer.render(config)
        for unit in units:
            self.runner.write_file(unit.path, unit.content)
            if self.event_logger is not None:
                self.event_logger.log_unit_written(
                    config.project_name, unit.unit_name, str(unit.path), dry_run=self.runner.dry_run
                )
        return units

    def enable(self, config: DeploymentConfig, units: List[RenderedUnit]) -> None:
        names = [u.unit_name for u in units]
        try:
            self.manager.daemon_reload()
            self.manager.enable(names)
        except ServiceError:
            self._log_operation(config, "enable", names, False)
            raise
        self._log_operation(config, "enable", names, True)

    def start(self, config: DeploymentConfig, units: List[RenderedUnit]) -> None:
        names = [u.unit_name for u in units]
        try:
            self.manager.restart(names)
        except ServiceError:
            self._log_operation(config, "restart", names, False)
            raise
        self._log_operation(config, "restart", names, True)

    def deploy(self, config: DeploymentConfig, options: DeployOptions = DeployOptions()) -> DeploymentResult:
        """Run every enabled stage in order.

        Args:
            config: Resolved deployment configuration.
            options: Which optional stages to run.

        Returns:
            Written units, cleanup report and warnings.

        Raises:
            CelerySetupError: On any fatal stage failure.
        """
        warnings: List[str] = []
        report = None

        if options.cleanup:
            report = self.cleanup(config)
            warnings.extend(
                f"Cleanup step failed: {o.step.description} ({o.error})" for o in report.failures
            )

        if options.prepare_log_dir:
            warning = self.prepare_log_dir(config)
            if warning:
                warnings.append(warning)

        if options.install_requirements:
            warning = self.install_requirements(config)
            if warning:
                warnings.append(warning)

        try:
            units = self.write_units(config)
            self.enable(config, units)
            if config.start_immediately:
                self.start(config, units)
        except CelerySetupError as e:
            if self.event_logger is not None:
                self.event_logger.log_error(type(e).__name__, e.message, project=config.project_name)
            raise

        return DeploymentResult(
            units=units,
            cleanup=report,
            started=config.start_immediately,
            warnings=warnings,
        )