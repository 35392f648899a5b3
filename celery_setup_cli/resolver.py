"""
Configuration resolver for Celery deployments.

Turns raw, possibly absent field values into a complete DeploymentConfig:
- Field validation (fail fast, before any probing)
- Virtualenv detection
- Settings module and broker resolution
- Runtime command selection (celery binary or ``python -m celery``)
"""

import logging
import os
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .errors import ConfigError, ConfigErrorKind
from .models import (
    DEFAULT_LIMIT_NOFILE,
    DEFAULT_LOG_DIR,
    DEFAULT_RESTART_SEC,
    DEFAULT_UNIT_DIR,
    VENV_BIN_SUBDIR,
    VENV_CANDIDATES,
    Broker,
    DeploymentConfig,
    LogLevel,
    UnitMode,
)

logger = logging.getLogger(__name__)

PathProbe = Callable[[Path], bool]
UserProbe = Callable[[str], bool]


@dataclass(frozen=True)
class RawConfig:
    """Field values as collected from prompts or command-line options."""

    project_name: Optional[str] = None
    linux_user: Optional[str] = None
    project_dir: Optional[str] = None
    venv: Optional[str] = None
    settings_module: Optional[str] = None
    broker: Optional[str] = None
    log_dir: Optional[str] = None
    start_immediately: bool = False
    log_level: str = LogLevel.INFO.value
    mode: str = UnitMode.SINGLE.value
    unit_dir: str = DEFAULT_UNIT_DIR
    limit_nofile: int = DEFAULT_LIMIT_NOFILE
    restart_sec: int = DEFAULT_RESTART_SEC


def is_executable(path: Path) -> bool:
    """Return True if *path* is a file the current process may execute."""
    return path.is_file() and os.access(path, os.X_OK)


def user_exists(name: str) -> bool:
    """Return True if *name* is a system account."""
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


def absolute_path(value: str, base: Path) -> str:
    """Anchor a relative *value* at *base* and normalize it.

    Unit files only accept absolute paths, so ``.`` or ``logs`` typed by the
    operator must become full paths before rendering.
    """
    return os.path.normpath(os.path.join(str(base), value))


def _has_interpreter(venv_dir: Path, probe: PathProbe) -> bool:
    return probe(venv_dir / VENV_BIN_SUBDIR / "python")


def resolve_venv(
    project_dir: Union[str, Path],
    explicit_path: Optional[str] = None,
    probe: PathProbe = is_executable,
) -> Path:
    """Locate the virtualenv ``bin`` directory.

    An explicit path is trusted as given. Otherwise ``.venv``, ``venv`` and
    ``env`` are tried in that order, then every other immediate subdirectory
    of the project in name order. Hidden directories such as ``.git`` or
    ``.tox`` are not probed.

    Args:
        project_dir: The project directory to probe.
        explicit_path: Virtualenv root supplied by the operator.
        probe: Executable check, replaceable in tests.

    Returns:
        The virtualenv ``bin`` directory.

    Raises:
        ConfigError: With ``VENV_NOT_FOUND`` if no candidate qualifies.
    """
    if explicit_path and explicit_path.strip():
        root = explicit_path.strip().rstrip("/") or "/"
        return Path(root) / VENV_BIN_SUBDIR

    project = Path(project_dir)

    for name in VENV_CANDIDATES:
        candidate = project / name
        if _has_interpreter(candidate, probe):
            logger.debug("Detected virtualenv at %s", candidate)
            return candidate / VENV_BIN_SUBDIR

    try:
        others = sorted(
            p for p in project.iterdir()
            if p.is_dir() and p.name not in VENV_CANDIDATES and not p.name.startswith(".")
        )
    except OSError as e:
        logger.warning("Cannot list %s while probing for a virtualenv: %s", project, e)
        others = []

    for candidate in others:
        if _has_interpreter(candidate, probe):
            logger.debug("Detected virtualenv at %s", candidate)
            return candidate / VENV_BIN_SUBDIR

    raise ConfigError(
        ConfigErrorKind.VENV_NOT_FOUND,
        f"Could not detect a virtualenv in {project}",
        field="venv",
    )


def resolve_settings_module(project_name: str, explicit: Optional[str] = None) -> str:
    """Return the Django settings module, defaulting to ``<project>.settings``."""
    if explicit and explicit.strip():
        return explicit.strip()
    return f"{project_name}.settings"


def resolve_broker(selection: Optional[str]) -> Tuple[Broker, str]:
    """Map a broker selection to the broker and its systemd unit.

    Accepts the broker name or its menu number, case-insensitively.

    Raises:
        ConfigError: With ``INVALID_BROKER`` for anything else.
    """
    value = (selection or "").strip().lower()
    choices = list(Broker)

    broker: Optional[Broker] = None
    if value.isdigit() and 1 <= int(value) <= len(choices):
        broker = choices[int(value) - 1]
    else:
        for candidate in choices:
            if candidate.value == value:
                broker = candidate
                break

    if broker is None:
        raise ConfigError(
            ConfigErrorKind.INVALID_BROKER,
            f"Invalid broker '{selection}'. Choose one of: "
            + ", ".join(b.value for b in choices),
            field="broker",
        )

    return broker, broker.unit_name


def resolve_celery_command(venv_bin: Path, probe: PathProbe = is_executable) -> str:
    """Prefer the virtualenv's celery binary, else ``python -m celery``."""
    celery_bin = venv_bin / "celery"
    if probe(celery_bin):
        return str(celery_bin)

    logger.info("%s is not executable, falling back to python -m celery", celery_bin)
    return f"{venv_bin / 'python'} -m celery"


def validate(
    config: Union[RawConfig, DeploymentConfig],
    user_probe: UserProbe = user_exists,
) -> None:
    """Check the fields every later step depends on.

    Empty fields are reported before anything touches the filesystem, and the
    project directory is checked before the account lookup.

    Raises:
        ConfigError: ``EMPTY_FIELD``, ``DIRECTORY_NOT_FOUND`` or ``USER_NOT_FOUND``.
    """
    for field, label in (("project_name", "Project name"), ("linux_user", "Linux user")):
        value = getattr(config, field)
        if value is None or not str(value).strip():
            raise ConfigError(
                ConfigErrorKind.EMPTY_FIELD,
                f"{label} cannot be empty",
                field=field,
            )

    if config.project_dir is None or not str(config.project_dir).strip():
        raise ConfigError(
            ConfigErrorKind.EMPTY_FIELD,
            "Project directory cannot be empty",
            field="project_dir",
        )

    project_dir = Path(config.project_dir)
    if not project_dir.is_dir():
        raise ConfigError(
            ConfigErrorKind.DIRECTORY_NOT_FOUND,
            f"Project directory not found: {project_dir}",
            field="project_dir",
        )

    if not user_probe(str(config.linux_user).strip()):
        raise ConfigError(
            ConfigErrorKind.USER_NOT_FOUND,
            f"Linux user '{config.linux_user}' does not exist",
            field="linux_user",
        )


class ConfigResolver:
    """Builds a DeploymentConfig from raw values."""

    def __init__(
        self,
        path_probe: PathProbe = is_executable,
        user_probe: UserProbe = user_exists,
        cwd: Optional[Path] = None,
    ) -> None:
        self.path_probe = path_probe
        self.user_probe = user_probe
        self.cwd = cwd

    def resolve(self, raw: RawConfig) -> DeploymentConfig:
        """Validate *raw* and resolve every derived field.

        Raises:
            ConfigError: On the first invalid or unresolvable field.
        """
        base = self.cwd or Path.cwd()
        project_dir = absolute_path((raw.project_dir or "").strip() or ".", base)

        staged = RawConfig(
            project_name=(raw.project_name or "").strip(),
            linux_user=(raw.linux_user or "").strip(),
            project_dir=project_dir,
        )
        validate(staged, user_probe=self.user_probe)

        venv = (raw.venv or "").strip()
        if venv:
            venv = absolute_path(venv, base)

        venv_bin = resolve_venv(project_dir, venv, probe=self.path_probe)
        broker, _ = resolve_broker(raw.broker or Broker.RABBITMQ.value)
        log_dir = absolute_path((raw.log_dir or "").strip() or DEFAULT_LOG_DIR, base)

        config = DeploymentConfig(
            project_name=staged.project_name,
            linux_user=staged.linux_user,
            project_dir=Path(project_dir),
            venv_bin=venv_bin,
            settings_module=resolve_settings_module(staged.project_name, raw.settings_module),
            broker=broker,
            log_dir=log_dir,
            start_immediately=raw.start_immediately,
            celery_command=resolve_celery_command(venv_bin, probe=self.path_probe),
            log_level=LogLevel(raw.log_level.upper()),
            mode=UnitMode(raw.mode),
            unit_dir=absolute_path(raw.unit_dir.strip() or DEFAULT_UNIT_DIR, base),
            limit_nofile=raw.limit_nofile,
            restart_sec=raw.restart_sec,
        )
        logger.debug("Resolved deployment config: %s", config)
        return config
