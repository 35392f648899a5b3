"""Error handling and recovery suggestions for the Celery setup CLI.

Every fatal condition is raised as a ``CelerySetupError`` subclass carrying a
list of suggestions, and rendered by ``ErrorHandler`` as a single panel.
"""

import os
import sys
from enum import Enum
from typing import Any, Dict, List, Optional, Self

from rich.console import Console
from rich.panel import Panel

console = Console(stderr=True)


class CelerySetupError(Exception):
    """Base exception class for Celery setup errors."""

    def __init__(self: Self, message: str, suggestions: Optional[List[str]] = None) -> None:
        """Initialize the error.

        Args:
            message: The error message to display.
            suggestions: Optional list of recovery suggestions.
        """
        super().__init__(message)
        self.message = message
        self.suggestions = suggestions or []


class ConfigErrorKind(str, Enum):
    """Distinct reasons a deployment configuration is rejected."""

    EMPTY_FIELD = "empty_field"
    DIRECTORY_NOT_FOUND = "directory_not_found"
    USER_NOT_FOUND = "user_not_found"
    VENV_NOT_FOUND = "venv_not_found"
    INVALID_BROKER = "invalid_broker"


CONFIG_ERROR_SUGGESTIONS: Dict[ConfigErrorKind, List[str]] = {
    ConfigErrorKind.EMPTY_FIELD: [
        "Provide a value when prompted or pass it as an option",
        "Run: celery-setup setup --help to list all options",
    ],
    ConfigErrorKind.DIRECTORY_NOT_FOUND: [
        "Check the path to your Django project directory",
        "Run the command from inside the project to use the current directory",
    ],
    ConfigErrorKind.USER_NOT_FOUND: [
        "Create the account first: sudo useradd --system <user>",
        "Check the spelling of the user name: getent passwd <user>",
    ],
    ConfigErrorKind.VENV_NOT_FOUND: [
        "Pass the virtualenv explicitly: --venv /path/to/venv",
        "Create one inside the project: python3 -m venv .venv",
    ],
    ConfigErrorKind.INVALID_BROKER: [
        "Choose one of: rabbitmq, redis",
    ],
}


class ConfigError(CelerySetupError):
    """Raised when the deployment configuration is incomplete or invalid."""

    def __init__(
        self: Self,
        kind: ConfigErrorKind,
        message: str,
        field: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message, suggestions or CONFIG_ERROR_SUGGESTIONS[kind])
        self.kind = kind
        self.field = field


class ServiceError(CelerySetupError):
    """Raised when a systemd operation fails."""
    pass


class UnitWriteError(CelerySetupError):
    """Raised when a unit file cannot be written."""
    pass


class PermissionError(CelerySetupError):
    """Raised when there are permission issues."""
    pass


class ErrorHandler:
    """Handles and displays errors with recovery suggestions."""

    def __init__(self: Self) -> None:
        """Initialize the error handler."""
        self.error_patterns: Dict[str, Dict[str, Any]] = {
            "permission_denied": {
                "keywords": ["permission denied", "operation not permitted", "access denied"],
                "suggestions": [
                    "Run the command with sudo",
                    "Keep --use-sudo enabled: celery-setup config --use-sudo",
                    "Check that your account is allowed to use sudo",
                ]
            },
            "systemd_missing": {
                "keywords": ["systemctl", "no such file or directory: 'systemctl'", "system has not been booted"],
                "suggestions": [
                    "This tool requires a host running systemd",
                    "Use celery-setup render to produce the unit files on another machine",
                ]
            },
            "unit_failed": {
                "keywords": ["failed with result", "start request repeated", "job for"],
                "suggestions": [
                    "Inspect the unit: sudo systemctl status <unit> --no-pager",
                    "Read the journal: sudo journalctl -u <unit> -e",
                    "Verify the broker service is running",
                ]
            },
            "broker": {
                "keywords": ["rabbitmq", "redis", "broker"],
                "suggestions": [
                    "Check the broker service: sudo systemctl status rabbitmq-server redis",
                    "Install the broker before enabling Celery services",
                ]
            },
            "python_environment": {
                "keywords": ["python", "module not found", "no module named", "virtual environment"],
                "suggestions": [
                    "Ensure celery is installed in the virtualenv: <venv>/bin/pip install celery",
                    "Install project dependencies: --install-requirements",
                    "Recreate the virtual environment if corrupted",
                ]
            },
        }

    def identify_error_type(self: Self, error_message: str) -> Optional[str]:
        """Identify the type of error based on the message.

        Args:
            error_message: The error message to analyze.

        Returns:
            The error type key if identified, None otherwise.
        """
        error_lower = error_message.lower()

        for error_type, pattern_data in self.error_patterns.items():
            for keyword in pattern_data["keywords"]:
                if keyword in error_lower:
                    return error_type

        return None

    def get_suggestions(self: Self, error_message: str) -> List[str]:
        """Get recovery suggestions for an error.

        Args:
            error_message: The error message to analyze.

        Returns:
            List of recovery suggestions.
        """
        error_type = self.identify_error_type(error_message)

        if error_type and error_type in self.error_patterns:
            return self.error_patterns[error_type]["suggestions"]

        return [
            "Re-run with --dry-run to see every command without executing it",
            "Re-run with --verbose for debug output",
            "Review the deployment log: ~/.celery-setup/logs/deploy.log",
        ]

    def display_error(
        self: Self,
        error: Exception,
        context: Optional[str] = None,
        show_suggestions: bool = True
    ) -> None:
        """Display an error with formatting and suggestions.

        Args:
            error: The exception that occurred.
            context: Optional context about what was being attempted.
            show_suggestions: Whether to show recovery suggestions.
        """
        error_message = str(error)
        content = []

        if context:
            content.append(f"[bold]Context:[/bold] {context}")
            content.append("")

        content.append(f"[bold red]Error:[/bold red] {error_message}")

        if show_suggestions:
            if isinstance(error, CelerySetupError) and error.suggestions:
                suggestions = error.suggestions
            else:
                suggestions = self.get_suggestions(error_message)

            if suggestions:
                content.append("")
                content.append("[bold blue]Suggested solutions:[/bold blue]")
                for i, suggestion in enumerate(suggestions, 1):
                    content.append(f"  {i}. {suggestion}")

        console.print(Panel(
            "\n".join(content),
            title="[bold red]celery-setup error[/bold red]",
            border_style="red",
            expand=False
        ))


def handle_exception(
    error: Exception,
    context: Optional[str] = None,
    exit_code: int = 1
) -> None:
    """Display an error and terminate.

    Args:
        error: The exception that occurred.
        context: Optional context about what was being attempted.
        exit_code: Exit code to use when terminating.
    """
    ErrorHandler().display_error(error, context)
    sys.exit(exit_code)


def handle_keyboard_interrupt() -> None:
    """Handle Ctrl+C gracefully."""
    console.print("\n[yellow]Operation cancelled by user[/yellow]")
    sys.exit(130)


def is_root() -> bool:
    return os.geteuid() == 0


def require_root_privileges(operation: str, use_sudo: bool) -> None:
    """Fail early when an operation needs root and sudo is disabled.

    Args:
        operation: Description of the operation requiring root access.
        use_sudo: Whether commands will be prefixed with sudo.

    Raises:
        PermissionError: If not running as root and sudo is disabled.
    """
    if use_sudo or is_root():
        return

    raise PermissionError(
        f"{operation} requires root privileges",
        [
            f"Run with sudo: sudo celery-setup {operation}",
            "Or allow sudo for individual commands: celery-setup config --use-sudo",
        ]
    )
