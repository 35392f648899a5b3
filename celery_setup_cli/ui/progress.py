"""Progress indicators for the Celery setup CLI."""

from contextlib import contextmanager
from typing import Iterator, Self

from rich.console import Console
from rich.status import Status

console = Console()


class ProgressManager:
    """Manages spinners shown while external commands run."""

    def __init__(self: Self) -> None:
        """Initialize the progress manager."""
        self.console = console

    @contextmanager
    def spinner(
        self: Self,
        message: str,
        spinner_style: str = "dots"
    ) -> Iterator[Status]:
        """Create a spinner for indeterminate progress.

        Args:
            message: The message to display with the spinner.
            spinner_style: The spinner style to use.

        Yields:
            Status object that can be updated.
        """
        with self.console.status(message, spinner=spinner_style) as status:
            yield status


@contextmanager
def show_progress(
    message: str,
    spinner_style: str = "dots"
) -> Iterator[Status]:
    """Convenience function for showing progress with a spinner.

    Args:
        message: The message to display.
        spinner_style: The spinner style to use.

    Yields:
        Status object that can be updated.
    """
    progress_manager = ProgressManager()
    with progress_manager.spinner(message, spinner_style) as status:
        yield status
