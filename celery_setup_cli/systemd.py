"""Command execution and systemd control for the Celery setup CLI."""

import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Self, Sequence

from rich.console import Console

from .errors import ServiceError, UnitWriteError, is_root

console = Console()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    dry_run: bool = False

    @property
    def ok(self: Self) -> bool:
        return self.returncode == 0


class CommandError(ServiceError):
    """Raised when a command exits non-zero and the caller asked for it."""

    def __init__(self: Self, result: CommandResult) -> None:
        detail = (result.stderr or result.stdout).strip()
        message = f"Command failed ({result.returncode}): {shlex.join(result.argv)}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Runs external commands, optionally through sudo or as a dry run.

    In dry-run mode commands that change the system are printed instead of
    executed. Read-only queries still run so the plan reflects reality.
    """

    def __init__(self: Self, use_sudo: bool = True, dry_run: bool = False) -> None:
        self.use_sudo = use_sudo
        self.dry_run = dry_run

    @property
    def needs_sudo(self: Self) -> bool:
        return self.use_sudo and not is_root()

    def _argv(self: Self, argv: Sequence[str], privileged: bool) -> List[str]:
        if privileged and self.needs_sudo:
            return ["sudo", *argv]
        return list(argv)

    def run(
        self: Self,
        argv: Sequence[str],
        privileged: bool = True,
        mutating: bool = True,
        check: bool = True,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run a command.

        Args:
            argv: Command and arguments.
            privileged: Prefix with sudo when sudo is enabled and not root.
            mutating: Whether the command changes the system.
            check: Raise CommandError on a non-zero exit status.
            input: Text passed on stdin.

        Returns:
            The command result.

        Raises:
            CommandError: If check is set and the command fails.
            ServiceError: If the executable cannot be found.
        """
        full = self._argv(argv, privileged)

        if mutating and self.dry_run:
            console.print(f"[dim][DRY-RUN][/dim] {shlex.join(full)}")
            return CommandResult(argv=full, returncode=0, dry_run=True)

        logger.debug("Running: %s", shlex.join(full))
        try:
            proc = subprocess.run(
                full,
                capture_output=True,
                text=True,
                input=input,
                check=False,
            )
        except FileNotFoundError as e:
            raise ServiceError(
                f"Executable not found: {full[0]}",
                [f"Install {full[0]} or make sure it is on PATH"],
            ) from e

        result = CommandResult(
            argv=full,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if check and not result.ok:
            raise CommandError(result)
        return result

    def write_file(self: Self, path: Path, content: str, mode: int = 0o644) -> None:
        """Write *content* to *path*, replacing it atomically.

        Raises:
            UnitWriteError: If the file cannot be written.
        """
        if self.dry_run:
            console.print(f"[dim][DRY-RUN][/dim] write {path} ({len(content)} bytes)")
            return

        if self.needs_sudo:
            # Stage beside the target so the final mv is a same-filesystem rename.
            staged = path.parent / f".{path.name}.tmp"
            try:
                self.run(["tee", str(staged)], input=content)
                self.run(["chmod", format(mode, "o"), str(staged)])
                self.run(["mv", "-f", str(staged), str(path)])
            except ServiceError as e:
                self.run(["rm", "-f", str(staged)], check=False)
                raise UnitWriteError(f"Failed to write {path}: {e}") from e
            return

        temp_name = None
        try:
            fd, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(temp_name, mode)
            os.replace(temp_name, path)
        except OSError as e:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise UnitWriteError(
                f"Failed to write {path}: {e}",
                ["Run with sudo or enable --use-sudo", f"Check that {path.parent} exists"],
            ) from e

    def remove_file(self: Self, path: Path) -> CommandResult:
        return self.run(["rm", "-f", str(path)])

    def remove_tree(self: Self, path: Path) -> CommandResult:
        return self.run(["rm", "-rf", str(path)])


class SystemdManager:
    """Thin wrapper around systemctl for the Celery units."""

    def __init__(self: Self, runner: CommandRunner) -> None:
        self.runner = runner

    def systemctl(self: Self, *args: str, check: bool = True) -> CommandResult:
        return self.runner.run(["systemctl", *args], check=check)

    def query(self: Self, *args: str) -> CommandResult:
        """Run a read-only systemctl query, never raising on exit status."""
        return self.runner.run(["systemctl", *args], privileged=False, mutating=False, check=False)

    def daemon_reload(self: Self, check: bool = True) -> CommandResult:
        return self.systemctl("daemon-reload", check=check)

    def reset_failed(self: Self, check: bool = False) -> CommandResult:
        return self.systemctl("reset-failed", check=check)

    def enable(self: Self, units: Sequence[str]) -> CommandResult:
        return self.systemctl("enable", *units)

    def start(self: Self, units: Sequence[str]) -> CommandResult:
        return self.systemctl("start", *units)

    def stop(self: Self, unit: str, check: bool = True) -> CommandResult:
        return self.systemctl("stop", unit, check=check)

    def disable(self: Self, unit: str, check: bool = True) -> CommandResult:
        return self.systemctl("disable", unit, check=check)

    def restart(self: Self, units: Sequence[str]) -> CommandResult:
        """Restart *units*, falling back to start if restart fails."""
        result = self.systemctl("restart", *units, check=False)
        if result.ok:
            return result

        logger.info("restart failed for %s, trying start", ", ".join(units))
        return self.start(units)

    def is_known(self: Self, unit: str) -> bool:
        """Whether systemd has a unit file or a loaded unit by this name."""
        listed = self.query("list-unit-files", unit, "--no-legend", "--no-pager")
        if listed.ok and unit in listed.stdout:
            return True

        loaded = self.query("list-units", unit, "--all", "--no-legend", "--no-pager")
        return loaded.ok and unit in loaded.stdout

    def is_active(self: Self, unit: str) -> bool:
        return self.query("is-active", unit).ok

    def is_enabled(self: Self, unit: str) -> bool:
        return self.query("is-enabled", unit).ok

    def check_service_status(self: Self, unit: str) -> Dict[str, Any]:
        """Check the status of a systemd unit.

        Args:
            unit: Name of the unit to check.

        Returns:
            Dictionary containing service status information.
        """
        try:
            is_active = self.is_active(unit)
            is_enabled = self.is_enabled(unit)
            details = self.query("status", unit, "--no-pager", "-l").stdout
        except ServiceError as e:
            return {
                "name": unit,
                "active": False,
                "enabled": False,
                "status": "error",
                "error": str(e)
            }

        return {
            "name": unit,
            "active": is_active,
            "enabled": is_enabled,
            "status": "active" if is_active else "inactive",
            "details": details
        }
