"""
Cleanup of a previous deployment of the same project.

The plan is computed without touching the system. Executing it is
best-effort: a prior deployment may be partly or wholly absent, so each step
tolerates a missing target and a failed step never stops the ones after it.
"""

import glob
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .errors import CelerySetupError
from .models import DEFAULT_LOG_DIR, DEFAULT_UNIT_DIR, RUNTIME_ROOT, ServiceKind
from .renderer import runtime_dir_name, unit_file_name
from .systemd import SystemdManager

logger = logging.getLogger(__name__)


class CleanupAction(str, Enum):
    STOP = "stop"
    DISABLE = "disable"
    REMOVE_FILE = "remove_file"
    REMOVE_DIR = "remove_dir"
    REMOVE_GLOB = "remove_glob"
    DAEMON_RELOAD = "daemon_reload"
    RESET_FAILED = "reset_failed"


class StepStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILURE = "FAILURE"
    DRY_RUN = "DRY_RUN"


@dataclass(frozen=True)
class CleanupStep:
    action: CleanupAction
    target: str
    description: str


@dataclass
class StepOutcome:
    step: CleanupStep
    status: StepStatus
    error: Optional[str] = None


@dataclass
class CleanupReport:
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepStatus.FAILURE]


def instance_unit_name(project_name: str, kind: ServiceKind) -> str:
    return f"celery-{kind.value}@{project_name}.service"


def plan_cleanup(
    project_name: str,
    log_dir: str = DEFAULT_LOG_DIR,
    unit_dir: str = DEFAULT_UNIT_DIR,
) -> List[CleanupStep]:
    """Ordered steps that remove a previous deployment of *project_name*.

    Both naming schemes are covered so switching between single and template
    units leaves nothing behind. The shared ``celery-<kind>@.service`` files
    are left in place because other projects may instantiate them.
    """
    steps: List[CleanupStep] = []

    for kind in ServiceKind:
        unit = unit_file_name(project_name, kind)
        steps.append(CleanupStep(CleanupAction.STOP, unit, f"Stop {unit}"))
        steps.append(CleanupStep(CleanupAction.DISABLE, unit, f"Disable {unit}"))
        unit_path = f"{unit_dir.rstrip('/')}/{unit}"
        steps.append(CleanupStep(CleanupAction.REMOVE_FILE, unit_path, f"Remove {unit_path}"))

        instance = instance_unit_name(project_name, kind)
        steps.append(CleanupStep(CleanupAction.STOP, instance, f"Stop {instance}"))
        steps.append(CleanupStep(CleanupAction.DISABLE, instance, f"Disable {instance}"))

    run_dir = f"{RUNTIME_ROOT}/{runtime_dir_name(project_name)}"
    steps.append(CleanupStep(CleanupAction.REMOVE_DIR, run_dir, f"Remove PID directory {run_dir}"))

    for kind in ServiceKind:
        pattern = f"{log_dir.rstrip('/')}/{project_name}-{kind.value}*.log"
        steps.append(CleanupStep(CleanupAction.REMOVE_GLOB, pattern, f"Remove log files {pattern}"))

    steps.append(CleanupStep(CleanupAction.DAEMON_RELOAD, "", "Reload systemd manager"))
    steps.append(CleanupStep(CleanupAction.RESET_FAILED, "", "Reset failed units"))

    return steps


def _execute_step(step: CleanupStep, manager: SystemdManager) -> StepStatus:
    runner = manager.runner
    done = StepStatus.DRY_RUN if runner.dry_run else StepStatus.SUCCESS

    if step.action in (CleanupAction.STOP, CleanupAction.DISABLE):
        if not manager.is_known(step.target):
            return StepStatus.SKIPPED
        if step.action is CleanupAction.STOP:
            manager.stop(step.target)
        else:
            manager.disable(step.target)
        return done

    if step.action is CleanupAction.REMOVE_FILE:
        if not Path(step.target).exists():
            return StepStatus.SKIPPED
        runner.remove_file(Path(step.target))
        return done

    if step.action is CleanupAction.REMOVE_DIR:
        if not Path(step.target).is_dir():
            return StepStatus.SKIPPED
        runner.remove_tree(Path(step.target))
        return done

    if step.action is CleanupAction.REMOVE_GLOB:
        matches = sorted(glob.glob(step.target))
        if not matches:
            return StepStatus.SKIPPED
        runner.run(["rm", "-f", *matches])
        return done

    if step.action is CleanupAction.DAEMON_RELOAD:
        manager.daemon_reload()
        return done

    if step.action is CleanupAction.RESET_FAILED:
        manager.reset_failed(check=True)
        return done

    raise ValueError(f"Unknown cleanup action: {step.action}")


def execute_plan(
    plan: List[CleanupStep],
    manager: SystemdManager,
    project_name: str,
    event_logger=None,
) -> CleanupReport:
    """Run every step of *plan*, recording failures instead of raising.

    Args:
        plan: Steps from plan_cleanup.
        manager: systemd manager used for service steps and file removal.
        project_name: Project the plan belongs to, for the event log.
        event_logger: Optional DeploymentLogger.

    Returns:
        Outcome of every step in plan order.
    """
    report = CleanupReport()

    for step in plan:
        try:
            status = _execute_step(step, manager)
            error = None
        except (CelerySetupError, OSError) as e:
            status = StepStatus.FAILURE
            error = str(e)
            logger.warning("Cleanup step '%s' failed: %s", step.description, e)

        report.outcomes.append(StepOutcome(step=step, status=status, error=error))
        if event_logger is not None:
            event_logger.log_cleanup_step(project_name, step.description, status.value, error)

    return report
