"""UI components for the Celery setup CLI.

This package contains the rich-based display helpers and progress
indicators shared by the wizard and the one-shot commands.
"""

from .display import (
    display_cleanup_plan,
    display_cleanup_report,
    display_config_summary,
    display_next_steps,
    display_service_status,
    display_unit_preview,
)
from .progress import ProgressManager, show_progress

__all__ = [
    'ProgressManager',
    'show_progress',
    'display_cleanup_plan',
    'display_cleanup_report',
    'display_config_summary',
    'display_next_steps',
    'display_service_status',
    'display_unit_preview',
]
