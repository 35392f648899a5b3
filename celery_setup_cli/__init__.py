"""Generate and install systemd services for Django Celery workers and beat."""

__version__ = "0.1.0"
