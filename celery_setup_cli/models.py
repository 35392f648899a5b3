"""Data model for Celery service deployments.

The lookup tables in this module are the single source of truth for broker
unit names, service kinds and log levels. Everything else derives from them.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Self


DEFAULT_LOG_DIR = "/var/log/celery"
DEFAULT_UNIT_DIR = "/etc/systemd/system"
RUNTIME_ROOT = "/run"
NETWORK_TARGET = "network.target"
INSTALL_TARGET = "multi-user.target"
DEFAULT_LIMIT_NOFILE = 10000
DEFAULT_RESTART_SEC = 10

# Probed in this order before falling back to any other subdirectory.
VENV_CANDIDATES = (".venv", "venv", "env")
VENV_BIN_SUBDIR = "bin"


class Broker(str, Enum):
    """Message brokers Celery can be wired to."""

    RABBITMQ = "rabbitmq"
    REDIS = "redis"

    @property
    def unit_name(self: Self) -> str:
        return BROKER_UNITS[self]


BROKER_UNITS: Dict[Broker, str] = {
    Broker.RABBITMQ: "rabbitmq-server.service",
    Broker.REDIS: "redis.service",
}


class ServiceKind(str, Enum):
    """The two long-running Celery processes."""

    WORKER = "worker"
    BEAT = "beat"


@dataclass(frozen=True)
class ServiceKindSpec:
    """Static per-kind rendering parameters."""

    label: str
    unit_prefix: str
    limit_nofile: bool


SERVICE_KINDS: Dict[ServiceKind, ServiceKindSpec] = {
    ServiceKind.WORKER: ServiceKindSpec(
        label="Worker",
        unit_prefix="celery-",
        limit_nofile=True,
    ),
    ServiceKind.BEAT: ServiceKindSpec(
        label="Beat Scheduler",
        unit_prefix="celerybeat-",
        limit_nofile=False,
    ),
}


class LogLevel(str, Enum):
    """Celery ``--loglevel`` values."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class UnitMode(str, Enum):
    """Output strategy of the unit renderer.

    ``single`` writes one unit file per project (``celery-acme.service``).
    ``template`` writes shared ``celery-worker@.service`` files and addresses
    the project as the ``%i`` instance.
    """

    SINGLE = "single"
    TEMPLATE = "template"


@dataclass(frozen=True)
class DeploymentConfig:
    """A fully resolved deployment. Built once per run, never mutated."""

    project_name: str
    linux_user: str
    project_dir: Path
    venv_bin: Path
    settings_module: str
    broker: Broker
    log_dir: str = DEFAULT_LOG_DIR
    start_immediately: bool = False
    celery_command: Optional[str] = None
    log_level: LogLevel = LogLevel.INFO
    mode: UnitMode = UnitMode.SINGLE
    unit_dir: str = DEFAULT_UNIT_DIR
    limit_nofile: int = DEFAULT_LIMIT_NOFILE
    restart_sec: int = DEFAULT_RESTART_SEC

    @property
    def broker_unit(self: Self) -> str:
        return self.broker.unit_name

    @property
    def command(self: Self) -> str:
        """Runtime command used in ``ExecStart``."""
        if self.celery_command:
            return self.celery_command
        return str(self.venv_bin / "celery")

    @property
    def venv_dir(self: Self) -> Path:
        return self.venv_bin.parent


@dataclass(frozen=True)
class RenderedUnit:
    """A rendered unit file and where it goes."""

    kind: ServiceKind
    unit_name: str
    path: Path
    content: str
