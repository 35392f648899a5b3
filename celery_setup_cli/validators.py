"""Input validation for values typed at the wizard prompts.

These checks only look at the shape of a value. Whether a directory exists or
an account is real is decided by ``resolver.validate``.
"""

import re
from typing import Optional


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


class InputValidator:
    """Validates and normalizes user inputs."""

    PATTERNS = {
        # Used in unit file names, so no slashes, spaces or '@'.
        'project_name': re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.\-]*$'),
        'linux_user': re.compile(r'^[a-z_][a-z0-9_\-]*\$?$'),
        'settings_module': re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$'),
    }

    MAX_LENGTHS = {
        'project_name': 64,
        'linux_user': 32,
        'settings_module': 255,
        'path': 4096,
    }

    @classmethod
    def validate_project_name(cls, name: str) -> str:
        """Validate project name.

        Args:
            name: Project name to validate

        Returns:
            Stripped project name

        Raises:
            ValidationError: If name is invalid
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError("Project name cannot be empty")

        if len(name) > cls.MAX_LENGTHS['project_name']:
            raise ValidationError(f"Project name cannot exceed {cls.MAX_LENGTHS['project_name']} characters")

        if not cls.PATTERNS['project_name'].match(name):
            raise ValidationError(
                "Project name may only contain letters, digits, underscores, dots and hyphens"
            )

        return name

    @classmethod
    def validate_linux_user(cls, user: str) -> str:
        """Validate Linux account name.

        Args:
            user: Account name to validate

        Returns:
            Stripped account name

        Raises:
            ValidationError: If the name is not a valid account name
        """
        user = (user or '').strip()
        if not user:
            raise ValidationError("Linux user cannot be empty")

        if len(user) > cls.MAX_LENGTHS['linux_user']:
            raise ValidationError(f"Linux user cannot exceed {cls.MAX_LENGTHS['linux_user']} characters")

        if not cls.PATTERNS['linux_user'].match(user):
            raise ValidationError("Linux user must be a valid account name (e.g. 'celery')")

        return user

    @classmethod
    def validate_absolute_path(cls, path: str, label: str = "Path") -> str:
        """Validate an absolute filesystem path.

        Args:
            path: Path to validate
            label: Field label used in error messages

        Returns:
            Path without trailing slashes

        Raises:
            ValidationError: If the path is empty, relative or too long
        """
        path = (path or '').strip()
        if not path:
            raise ValidationError(f"{label} cannot be empty")

        if len(path) > cls.MAX_LENGTHS['path']:
            raise ValidationError(f"{label} cannot exceed {cls.MAX_LENGTHS['path']} characters")

        if not path.startswith('/'):
            raise ValidationError(f"{label} must be an absolute path")

        if any(ch in path for ch in ('\n', '\r', '\x00')):
            raise ValidationError(f"{label} contains invalid characters")

        return path.rstrip('/') or '/'

    @classmethod
    def validate_optional_path(cls, path: Optional[str], label: str = "Path") -> str:
        """Validate a path that may be left blank."""
        if not path or not path.strip():
            return ''
        return cls.validate_absolute_path(path, label)

    @classmethod
    def validate_settings_module(cls, module: Optional[str]) -> str:
        """Validate a dotted Django settings module.

        Args:
            module: Dotted module path, may be blank

        Returns:
            The module path, or an empty string when left blank

        Raises:
            ValidationError: If the module path is malformed
        """
        module = (module or '').strip()
        if not module:
            return ''

        if len(module) > cls.MAX_LENGTHS['settings_module']:
            raise ValidationError(
                f"Settings module cannot exceed {cls.MAX_LENGTHS['settings_module']} characters"
            )

        if not cls.PATTERNS['settings_module'].match(module):
            raise ValidationError("Settings module must be a dotted Python path (e.g. 'acme.settings')")

        return module
