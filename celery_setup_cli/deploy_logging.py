"""Structured deployment event logging for the Celery setup CLI.

Each event is written as one JSON object per line to
``~/.celery-setup/logs/deploy.log`` so a run can be reconstructed afterwards.
"""

import getpass
import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .config import config_home

logger = logging.getLogger(__name__)


class DeploymentEventType(Enum):
    """Types of deployment events for logging."""
    CONFIG_RESOLVED = "config_resolved"
    CONFIG_REJECTED = "config_rejected"
    CLEANUP_STEP = "cleanup_step"
    UNIT_WRITTEN = "unit_written"
    SERVICE_OPERATION = "service_operation"
    CONFIGURATION_CHANGE = "configuration_change"
    ERROR = "error"


class DeploymentLogger:
    """Writes deployment events to the JSON-lines deployment log."""

    def __init__(self, log_dir: Optional[Path] = None) -> None:
        """Initialize deployment logger.

        Args:
            log_dir: Directory for the log file. Defaults to ~/.celery-setup/logs
        """
        self.log_dir = log_dir or config_home() / "logs"
        self.log_file = self.log_dir / "deploy.log"

        self.event_logger = logging.getLogger('celery_setup_events')
        self.event_logger.setLevel(logging.INFO)
        self.event_logger.propagate = False
        for old_handler in list(self.event_logger.handlers):
            self.event_logger.removeHandler(old_handler)
            old_handler.close()

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.log_dir, 0o700)
            handler: logging.Handler = logging.FileHandler(self.log_file)
        except OSError as e:
            logger.warning("Deployment log disabled, cannot open %s: %s", self.log_file, e)
            handler = logging.NullHandler()

        handler.setFormatter(logging.Formatter('%(message)s'))
        self.event_logger.addHandler(handler)

    def _create_log_entry(
        self,
        event_type: DeploymentEventType,
        message: str,
        project: Optional[str] = None,
        action: Optional[str] = None,
        result: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: str = "INFO"
    ) -> Dict[str, Any]:
        """Create a structured log entry.

        Args:
            event_type: Type of deployment event
            message: Log message
            project: Project the event belongs to
            action: Action being performed
            result: Result of the action (SUCCESS, FAILURE, SKIPPED, DRY_RUN)
            details: Additional details as dictionary
            severity: Log severity level

        Returns:
            Structured log entry as dictionary
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "severity": severity,
            "message": message,
            "user": self.get_user(),
            "source": "celery_setup_cli",
            "version": __version__,
        }

        if project:
            entry["project"] = project
        if action:
            entry["action"] = action
        if result:
            entry["result"] = result
        if details:
            entry["details"] = details

        return entry

    def _write_entry(self, entry: Dict[str, Any]) -> None:
        self.event_logger.info(json.dumps(entry, default=str))

    def log_config_resolved(self, project: str, details: Dict[str, Any]) -> None:
        self._write_entry(self._create_log_entry(
            DeploymentEventType.CONFIG_RESOLVED,
            f"Resolved configuration for {project}",
            project=project,
            action="resolve",
            result="SUCCESS",
            details=details,
        ))

    def log_config_rejected(self, field: Optional[str], kind: str, message: str) -> None:
        self._write_entry(self._create_log_entry(
            DeploymentEventType.CONFIG_REJECTED,
            message,
            action="validate",
            result="FAILURE",
            details={"field": field, "kind": kind},
            severity="WARNING",
        ))

    def log_cleanup_step(self, project: str, step: str, result: str, error: Optional[str] = None) -> None:
        """Log one cleanup step outcome.

        Args:
            project: Project being cleaned up
            step: Human readable step description
            result: SUCCESS, FAILURE, SKIPPED or DRY_RUN
            error: Error text for failed steps
        """
        self._write_entry(self._create_log_entry(
            DeploymentEventType.CLEANUP_STEP,
            f"Cleanup: {step}",
            project=project,
            action="cleanup",
            result=result,
            details={"error": error} if error else None,
            severity="WARNING" if result == "FAILURE" else "INFO",
        ))

    def log_unit_written(self, project: str, unit_name: str, path: str, dry_run: bool = False) -> None:
        self._write_entry(self._create_log_entry(
            DeploymentEventType.UNIT_WRITTEN,
            f"Unit {unit_name} written to {path}",
            project=project,
            action="write_unit",
            result="DRY_RUN" if dry_run else "SUCCESS",
            details={"unit": unit_name, "path": path},
        ))

    def log_service_operation(
        self,
        project: str,
        operation: str,
        units: list,
        success: bool,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a systemctl operation on the project's units."""
        status = "SUCCESS" if success else "FAILURE"
        self._write_entry(self._create_log_entry(
            DeploymentEventType.SERVICE_OPERATION,
            f"systemctl {operation} {' '.join(units)}: {status.lower()}",
            project=project,
            action=operation,
            result=status,
            details=details,
            severity="INFO" if success else "ERROR",
        ))

    def log_configuration_change(self, setting: str, old_value: Any, new_value: Any) -> None:
        self._write_entry(self._create_log_entry(
            DeploymentEventType.CONFIGURATION_CHANGE,
            f"Default '{setting}' changed",
            action="configure",
            result="SUCCESS",
            details={"setting": setting, "old_value": old_value, "new_value": new_value},
        ))

    def log_error(self, error_type: str, error_message: str, project: Optional[str] = None) -> None:
        self._write_entry(self._create_log_entry(
            DeploymentEventType.ERROR,
            error_message,
            project=project,
            result="FAILURE",
            details={"error_type": error_type},
            severity="ERROR",
        ))

    def get_user(self) -> str:
        """Get the invoking user, looking through sudo."""
        user = os.environ.get('SUDO_USER') or os.environ.get('USER')
        if user:
            return user
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return "unknown"


_deployment_logger: Optional[DeploymentLogger] = None


def get_deployment_logger() -> DeploymentLogger:
    """Get the global deployment logger instance."""
    global _deployment_logger
    if _deployment_logger is None:
        _deployment_logger = DeploymentLogger()
    return _deployment_logger


def configure_console_logging(verbose: bool = False) -> None:
    """Send module log records to stderr, at DEBUG when *verbose*."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )
